from datetime import date as date_type, datetime
from typing import Optional
from sqlalchemy import CheckConstraint
from sqlmodel import Field, UniqueConstraint
from ice.models.base import TimestampMixin


class DailyHours(TimestampMixin, table=True):
    """Hours worked by one employee on one date. Re-uploads replace the row."""
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_daily_hours_employee_date"),
        CheckConstraint("hours >= 0 AND hours <= 24", name="check_hours_valid"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="employee.id", index=True)

    date: date_type = Field(index=True)
    hours: float
    status: Optional[str] = None
    entry_time: Optional[str] = None
    exit_time: Optional[str] = None
    notes: Optional[str] = None


class Article(TimestampMixin, table=True):
    """Engagement stats for one published article, keyed by the external article id.

    ``views`` only ever grows across re-uploads; ``is_low_views`` always mirrors it.
    """
    __table_args__ = (
        CheckConstraint("views >= 0", name="check_views_valid"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    article_id: int = Field(unique=True, index=True)
    employee_id: Optional[int] = Field(default=None, foreign_key="employee.id", index=True)

    title: str
    views: int = Field(default=0)
    published_at: datetime = Field(index=True)
    is_low_views: bool = Field(default=False, index=True)
