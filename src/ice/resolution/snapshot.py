from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Set, Tuple, Union
from ice.matching.normalize import first_token


@dataclass(frozen=True)
class Provisional:
    """Placeholder owner for a name in this batch that is still waiting for a human."""
    input_name: str


Owner = Union[int, Provisional]


@dataclass
class AliasEntry:
    owner: Owner
    first_name: str
    confirmed_by_user: bool = False


@dataclass
class AliasSnapshot:
    """In-memory copy of every known alias, taken once per batch.

    Maps normalized alias -> owner (employee id, or a Provisional during
    analysis) together with the alias's normalized first-name token.
    """
    entries: Dict[str, AliasEntry] = field(default_factory=dict)
    canonical_names: Dict[int, str] = field(default_factory=dict)
    confirmed_employees: Set[int] = field(default_factory=set)

    def add(self, normalized: str, owner: Owner, confirmed_by_user: bool = False):
        if not normalized or normalized in self.entries:
            return
        self.entries[normalized] = AliasEntry(owner, first_token(normalized), confirmed_by_user)
        if confirmed_by_user and isinstance(owner, int):
            self.confirmed_employees.add(owner)

    def add_employee(self, employee_id: int, canonical_name: str, normalized_name: str):
        self.canonical_names[employee_id] = canonical_name
        self.add(normalized_name, employee_id)

    def lookup(self, normalized: str) -> Optional[AliasEntry]:
        return self.entries.get(normalized)

    def items(self) -> Iterator[Tuple[str, AliasEntry]]:
        return iter(list(self.entries.items()))

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, normalized: str) -> bool:
        return normalized in self.entries
