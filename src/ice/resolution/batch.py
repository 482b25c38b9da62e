"""
Batch identity resolution for one uploaded file.

analyze_names   snapshot once, classify every distinct name, record auto-matches
execute_resolutions   apply human decisions, merge with the automatic bindings
resolve_batch   both phases with the interactive protocol in between
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from ice.errors import AliasConflictError, DuplicateIdentityError, IceError, UnresolvedNameError
from ice.ingest.rows import ParsedRow
from ice.logging import logger
from ice.matching.normalize import normalize_name
from ice.matching.thresholds import DEFAULT_THRESHOLDS, MatchingThresholds
from ice.models.employee import Source
from ice.registry import EmployeeRegistry
from ice.resolution.policy import MatchTier, classify_name
from ice.resolution.protocol import ResolutionSession
from ice.resolution.schemas import (
    AutoMatchedName,
    DecisionAction,
    MatchType,
    NameAnalysisResult,
    NameConflict,
    NameResolution,
    ResolvedName,
)
from ice.resolution.snapshot import Provisional

# Drives a ResolutionSession to completion; returns its decisions or None if cancelled
Resolver = Callable[[ResolutionSession], Optional[List[NameResolution]]]


@dataclass
class NameOccurrence:
    row_numbers: List[int] = field(default_factory=list)
    employee_number: Optional[str] = None


def collect_names(rows: Sequence[ParsedRow]) -> Dict[str, NameOccurrence]:
    """Distinct raw names in file order, with 1-based row numbers."""
    names: Dict[str, NameOccurrence] = {}
    for i, row in enumerate(rows, start=1):
        occ = names.setdefault(row.full_name, NameOccurrence())
        occ.row_numbers.append(i)
        if occ.employee_number is None and row.employee_number:
            occ.employee_number = row.employee_number
    return names


def analyze_names(
    session: Session,
    rows: Sequence[ParsedRow],
    source: Source,
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> NameAnalysisResult:
    registry = EmployeeRegistry(session)
    snapshot = registry.snapshot()
    names = collect_names(rows)

    result = NameAnalysisResult(total_unique_names=len(names))
    conflicts: Dict[Provisional, NameConflict] = {}

    for name, occ in names.items():
        normalized = normalize_name(name)
        if not normalized:
            result.errors.append(f"Rows {occ.row_numbers}: empty employee name")
            continue

        c = classify_name(normalized, snapshot, thresholds)

        if c.tier != MatchTier.NEEDS_RESOLUTION and c.is_provisional:
            # Another spelling of a name that is still waiting for a human
            conflict = conflicts[c.owner]
            conflict.variants.append(name)
            conflict.row_numbers.extend(occ.row_numbers)
            snapshot.add(normalized, c.owner)
            continue

        if c.tier == MatchTier.EXACT:
            match_type = MatchType.USER_CONFIRMED if c.confirmed_by_user else MatchType.EXACT
            result.auto_matched.append(AutoMatchedName(
                input_name=name, employee_id=c.owner, match_type=match_type, similarity_score=c.score,
            ))

        elif c.tier == MatchTier.AUTO_MATCH:
            try:
                registry.record_alias(c.owner, name, normalized, source, confirmed_by_user=False)
            except (AliasConflictError, SQLAlchemyError) as e:
                session.rollback()
                logger.warning(f"Auto-match alias for '{name}' failed: {e}")
                result.errors.append(f"{name}: {e}")
                continue
            snapshot.add(normalized, c.owner)
            result.auto_matched.append(AutoMatchedName(
                input_name=name, employee_id=c.owner, match_type=MatchType.AUTO,
                similarity_score=round(c.score, 4),
            ))
            logger.info(f"Auto-matched '{name}' -> employee {c.owner} ({c.score:.3f})")

        else:
            owner = Provisional(name)
            snapshot.add(normalized, owner)
            conflicts[owner] = NameConflict(
                input_name=name,
                candidates=c.candidates,
                confidence=c.confidence,
                similar_pending=c.pending,
                row_numbers=list(occ.row_numbers),
                employee_number=occ.employee_number,
            )

    for conflict in conflicts.values():
        conflict.row_numbers.sort()
    result.needs_resolution = list(conflicts.values())

    logger.info(
        f"Analyzed {result.total_unique_names} names ({source.value}): "
        f"{len(result.auto_matched)} matched, {len(result.needs_resolution)} need resolution"
    )
    return result


@dataclass
class ResolvedNames:
    """Final name -> employee binding for one batch, plus per-name failures."""
    resolved: Dict[str, ResolvedName] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def employee_id(self, name: str) -> Optional[int]:
        binding = self.resolved.get(name)
        return binding.employee_id if binding else None

    def unbound(self, names: Iterable[str]) -> List[str]:
        return sorted({n for n in names if n not in self.resolved})

    def require_complete(self, names: Iterable[str]):
        missing = self.unbound(names)
        if missing:
            raise UnresolvedNameError(missing)

    def to_payload(self) -> Dict[str, dict]:
        return {name: r.model_dump(by_alias=True) for name, r in self.resolved.items()}


def _apply_decision(registry: EmployeeRegistry, decision: NameResolution, source: Source) -> int:
    normalized = normalize_name(decision.input_name)

    if decision.action == DecisionAction.MATCH:
        if registry.get(decision.employee_id) is None:
            raise IceError(f"Employee {decision.employee_id} does not exist")
        employee_id = decision.employee_id
    else:
        try:
            employee_id = registry.create_employee(
                decision.input_name, employee_number=decision.employee_number
            ).id
        except DuplicateIdentityError as e:
            if e.existing_employee_id is None:
                raise
            # Someone else created this person since the snapshot
            logger.warning(f"'{decision.input_name}' already exists, binding to employee {e.existing_employee_id}")
            employee_id = e.existing_employee_id

    registry.record_alias(
        employee_id, decision.input_name, normalized, source, confirmed_by_user=decision.confirmed_by_user
    )
    return employee_id


def execute_resolutions(
    session: Session,
    decisions: Sequence[NameResolution],
    auto_matched: Sequence[AutoMatchedName],
    source: Source,
) -> ResolvedNames:
    """Apply human decisions and merge them with the automatic bindings.

    A failure for one name is recorded against that name (and its variants)
    and never stops the others.
    """
    registry = EmployeeRegistry(session)
    out = ResolvedNames()

    for match in auto_matched:
        out.resolved[match.input_name] = ResolvedName(
            employee_id=match.employee_id,
            confirmed_by_user=match.match_type == MatchType.USER_CONFIRMED,
        )

    for decision in decisions:
        try:
            employee_id = _apply_decision(registry, decision, source)
        except (IceError, ValueError, SQLAlchemyError) as e:
            session.rollback()
            logger.warning(f"Resolution for '{decision.input_name}' failed: {e}")
            for name in (decision.input_name, *decision.variants):
                out.errors[name] = str(e)
            continue

        out.resolved[decision.input_name] = ResolvedName(
            employee_id=employee_id, confirmed_by_user=decision.confirmed_by_user
        )

        for variant in decision.variants:
            try:
                registry.record_alias(employee_id, variant, None, source, confirmed_by_user=False)
            except (AliasConflictError, SQLAlchemyError) as e:
                session.rollback()
                logger.warning(f"Variant '{variant}' of '{decision.input_name}' failed: {e}")
                out.errors[variant] = str(e)
                continue
            out.resolved[variant] = ResolvedName(employee_id=employee_id, confirmed_by_user=False)

    logger.info(f"Resolved {len(out.resolved)} names, {len(out.errors)} failed")
    return out


def resolve_batch(
    session: Session,
    rows: Sequence[ParsedRow],
    source: Source,
    resolver: Optional[Resolver] = None,
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[NameAnalysisResult, ResolvedNames]:
    """Analyze, ask the resolver about conflicts, execute.

    Without a resolver (or when it cancels) every conflict name stays unbound.
    """
    analysis = analyze_names(session, rows, source, thresholds)

    decisions: List[NameResolution] = []
    if analysis.needs_resolution:
        if resolver is None:
            logger.warning(f"{len(analysis.needs_resolution)} names need resolution but no resolver was given")
        else:
            protocol = ResolutionSession(analysis.needs_resolution)
            outcome = resolver(protocol)
            if outcome is None:
                logger.warning("Name resolution cancelled, conflicting names stay unresolved")
            else:
                decisions = outcome

    resolved = execute_resolutions(session, decisions, analysis.auto_matched, source)
    return analysis, resolved
