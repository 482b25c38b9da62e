from datetime import datetime
from enum import Enum
from typing import List, Optional
from sqlmodel import Field, Relationship, SQLModel, UniqueConstraint
from ice.models.base import TimestampMixin, utcnow


class Source(str, Enum):
    HOURS = "hours"
    ARTICLES = "articles"


class Employee(TimestampMixin, table=True):
    """Canonical identity. ``normalized_name`` is the uniqueness key."""
    __table_args__ = (
        UniqueConstraint("normalized_name", name="uq_employee_normalized_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    canonical_name: str = Field(description="Display name, e.g. 'David Cohen'")
    normalized_name: str = Field(index=True, description="Matching key, e.g. 'david cohen'")
    first_name: str = ""
    last_name: str = ""
    employee_number: Optional[str] = None

    aliases: List["EmployeeAlias"] = Relationship(back_populates="employee")


class EmployeeAlias(SQLModel, table=True):
    """Maps raw name variants (from hours/articles exports) to an Employee.

    Rows are immutable facts: re-learning the same normalized alias is a no-op.
    Unique constraint on normalized_alias keeps one owner per variant.
    """
    __table_args__ = (
        UniqueConstraint("normalized_alias", name="uq_employee_alias_normalized"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="employee.id", index=True)

    alias: str = Field(description="Raw name variant found in source data, e.g. 'דוד כהן'")
    normalized_alias: str = Field(index=True)
    source: Source
    confirmed_by_user: bool = Field(default=False)
    confirmed_at: Optional[datetime] = Field(default=None, description="NULL for auto-learned aliases")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)

    employee: Optional[Employee] = Relationship(back_populates="aliases")
