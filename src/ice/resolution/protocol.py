"""
Interactive resolution protocol.

A ResolutionSession walks a human through an ordered list of NameConflicts,
one at a time. It knows nothing about rendering: a UI subscribes to events
("present this conflict", "decision recorded", ...) and calls the transition
methods. States:

    AT_INDEX(i)   0 <= i < N, waiting for input
    ALL_RESOLVED  submit accepted, decisions final
    CANCELLED     session abandoned, decisions discarded

Decisions live in a map keyed by input name, so moving the cursor never
loses one.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence
from ice.errors import ResolutionProtocolError
from ice.logging import logger
from ice.resolution.schemas import DecisionAction, NameConflict, NameResolution


class ProtocolState(str, Enum):
    AT_INDEX = "AT_INDEX"
    ALL_RESOLVED = "ALL_RESOLVED"
    CANCELLED = "CANCELLED"


class EventKind(str, Enum):
    PRESENT = "present"
    DECISION = "decision"
    INCOMPLETE = "incomplete"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


@dataclass
class ProtocolEvent:
    kind: EventKind
    index: Optional[int] = None
    conflict: Optional[NameConflict] = None
    decision: Optional[NameResolution] = None
    decisions: Optional[List[NameResolution]] = None


Listener = Callable[[ProtocolEvent], None]
ConfirmDiscard = Callable[[int], bool]


class ResolutionSession:
    def __init__(self, conflicts: Sequence[NameConflict]):
        names = [c.input_name for c in conflicts]
        if len(set(names)) != len(names):
            raise ValueError("Conflict input names must be unique")
        self.conflicts: List[NameConflict] = list(conflicts)
        self.index = 0
        self.state = ProtocolState.AT_INDEX if self.conflicts else ProtocolState.ALL_RESOLVED
        self._decisions: Dict[str, NameResolution] = {}
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _emit(self, kind: EventKind, **payload):
        event = ProtocolEvent(kind=kind, **payload)
        for listener in list(self._listeners):
            listener(event)

    def _present(self):
        self._emit(EventKind.PRESENT, index=self.index, conflict=self.current)

    def start(self):
        """Emit the first PRESENT event (no-op for an empty session)."""
        if self.state == ProtocolState.AT_INDEX:
            self._present()

    @property
    def total(self) -> int:
        return len(self.conflicts)

    @property
    def current(self) -> Optional[NameConflict]:
        if self.state != ProtocolState.AT_INDEX:
            return None
        return self.conflicts[self.index]

    @property
    def is_last(self) -> bool:
        return self.index == self.total - 1

    @property
    def resolved_count(self) -> int:
        return len(self._decisions)

    @property
    def decisions(self) -> Dict[str, NameResolution]:
        return dict(self._decisions)

    def decision_for(self, input_name: str) -> Optional[NameResolution]:
        return self._decisions.get(input_name)

    def unresolved(self) -> List[NameConflict]:
        return [c for c in self.conflicts if c.input_name not in self._decisions]

    def _ensure_active(self):
        if self.state != ProtocolState.AT_INDEX:
            raise ResolutionProtocolError(f"Session is {self.state.value}, no further input accepted")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def decide(self, resolution: NameResolution):
        """Record a decision for the current conflict and advance unless it is the last."""
        self._ensure_active()
        conflict = self.current
        if resolution.input_name != conflict.input_name:
            raise ResolutionProtocolError(
                f"Decision for '{resolution.input_name}' but current conflict is '{conflict.input_name}'"
            )
        if resolution.action == DecisionAction.MATCH:
            allowed = {c.employee_id for c in conflict.candidates}
            if resolution.employee_id not in allowed:
                raise ResolutionProtocolError(
                    f"Employee {resolution.employee_id} is not a candidate for '{conflict.input_name}'"
                )

        resolution = resolution.model_copy(update={
            "variants": tuple(conflict.variants),
            "employee_number": conflict.employee_number,
        })
        self._decisions[conflict.input_name] = resolution
        self._emit(EventKind.DECISION, index=self.index, conflict=conflict, decision=resolution)

        if not self.is_last:
            self.index += 1
            self._present()

    def match(self, employee_id: int):
        self._ensure_active()
        self.decide(NameResolution(
            input_name=self.current.input_name,
            action=DecisionAction.MATCH,
            employee_id=employee_id,
            confirmed_by_user=True,
        ))

    def create_new(self):
        self._ensure_active()
        self.decide(NameResolution(
            input_name=self.current.input_name,
            action=DecisionAction.CREATE_NEW,
            confirmed_by_user=True,
        ))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    def go_to(self, index: int):
        self._ensure_active()
        if not 0 <= index < self.total:
            raise ResolutionProtocolError(f"Index {index} out of range 0..{self.total - 1}")
        self.index = index
        self._present()

    def back(self):
        self._ensure_active()
        if self.index > 0:
            self.go_to(self.index - 1)

    def forward(self):
        self._ensure_active()
        if not self.is_last:
            self.go_to(self.index + 1)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------
    def submit(self) -> Optional[List[NameResolution]]:
        """Finalize if every conflict has a decision.

        Otherwise jump to the first unresolved conflict and return None.
        An empty session submits immediately with no decisions.
        """
        if self.state == ProtocolState.ALL_RESOLVED and not self.conflicts:
            return []
        self._ensure_active()

        for i, conflict in enumerate(self.conflicts):
            if conflict.input_name not in self._decisions:
                logger.info(f"Submit refused: {len(self.unresolved())} of {self.total} names undecided")
                self._emit(EventKind.INCOMPLETE, index=i, conflict=conflict)
                self.go_to(i)
                return None

        self.state = ProtocolState.ALL_RESOLVED
        ordered = [self._decisions[c.input_name] for c in self.conflicts]
        self._emit(EventKind.FINALIZED, decisions=ordered)
        return ordered

    def cancel(self, confirm: Optional[ConfirmDiscard] = None) -> bool:
        """Abandon the session.

        With no decisions made this always succeeds. Otherwise ``confirm`` is
        called with the number of decisions that would be lost and must return
        True; without a confirm callback the cancel is refused.
        """
        self._ensure_active()
        if self._decisions and (confirm is None or not confirm(len(self._decisions))):
            return False

        discarded = len(self._decisions)
        self._decisions.clear()
        self.state = ProtocolState.CANCELLED
        logger.info(f"Resolution cancelled ({discarded} decisions discarded)")
        self._emit(EventKind.CANCELLED)
        return True
