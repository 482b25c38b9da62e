"""
Error taxonomy for identity resolution and ingestion.

Per-name and per-chunk failures are raised at the point they occur and
turned into receipt strings by the caller that owns the batch; none of
them abort a whole upload on their own.
"""
from dataclasses import dataclass
from typing import Iterable, Optional


class IceError(Exception):
    """Base class for domain errors."""


class DuplicateIdentityError(IceError):
    """An employee with the same normalized name already exists."""

    def __init__(self, normalized_name: str, existing_employee_id: Optional[int] = None):
        self.normalized_name = normalized_name
        self.existing_employee_id = existing_employee_id
        super().__init__(
            f"Employee with normalized name '{normalized_name}' already exists"
            + (f" (id={existing_employee_id})" if existing_employee_id is not None else "")
        )


class AliasConflictError(IceError):
    """A normalized alias is already bound to a different employee."""

    def __init__(self, normalized_alias: str, bound_employee_id: int, requested_employee_id: int):
        self.normalized_alias = normalized_alias
        self.bound_employee_id = bound_employee_id
        self.requested_employee_id = requested_employee_id
        super().__init__(
            f"Alias '{normalized_alias}' belongs to employee {bound_employee_id}, "
            f"cannot bind it to employee {requested_employee_id}"
        )


class UnresolvedNameError(IceError):
    """One or more input names never received an employee binding."""

    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__(f"Unresolved names: {', '.join(self.names)}")


class BatchWriteError(IceError):
    """One chunk of a batched upsert failed at the storage layer."""

    def __init__(self, chunk_index: int, total_chunks: int, cause: Exception):
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.cause = cause
        super().__init__(f"Batch {chunk_index}/{total_chunks} upsert failed: {cause}")


class ResolutionProtocolError(IceError):
    """Illegal transition of the interactive resolution state machine."""


@dataclass(frozen=True)
class MergeConflictOverwriteNotice:
    """Audit record: an existing row was changed by a re-upload. Not an error."""
    source: str
    key: str
    detail: str

    def __str__(self) -> str:
        return f"[{self.source}] {self.key}: {self.detail}"
