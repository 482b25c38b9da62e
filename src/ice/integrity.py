"""
Data integrity checks over stored records.

Each check is a small query; check_data_integrity runs them all and turns
findings into issues with a severity.
"""
from enum import Enum
from typing import Dict, List
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlmodel import Session, col, select
from ice.logging import logger
from ice.metrics import global_metrics
from ice.models.employee import Employee, EmployeeAlias
from ice.models.records import Article, DailyHours


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class IntegrityIssue(BaseModel):
    code: str
    severity: Severity
    description: str
    impact: str = ""


class IntegrityReport(BaseModel):
    checks: Dict[str, int] = Field(default_factory=dict)
    issues: List[IntegrityIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(i.severity != Severity.INFO for i in self.issues)


def get_orphaned_articles(session: Session) -> List[Article]:
    """Articles with no owning employee."""
    return list(session.exec(
        select(Article).where(col(Article.employee_id).is_(None))
    ).all())


def get_low_view_flag_mismatches(session: Session, low_views_threshold: int) -> List[Article]:
    """Articles whose is_low_views flag disagrees with their view count."""
    return list(session.exec(
        select(Article).where(or_(
            (Article.views < low_views_threshold) & (Article.is_low_views == False),  # noqa: E712
            (Article.views >= low_views_threshold) & (Article.is_low_views == True),  # noqa: E712
        ))
    ).all())


def get_out_of_range_hours(session: Session, min_hours: float = 0.0, max_hours: float = 24.0) -> List[DailyHours]:
    return list(session.exec(
        select(DailyHours).where(or_(DailyHours.hours < min_hours, DailyHours.hours > max_hours))
    ).all())


def get_employees_without_aliases(session: Session) -> List[Employee]:
    with_alias = select(EmployeeAlias.employee_id).distinct()
    return list(session.exec(
        select(Employee).where(col(Employee.id).not_in(with_alias))
    ).all())


def _sum_views(session: Session, *where) -> int:
    stmt = select(func.coalesce(func.sum(Article.views), 0)).where(
        Article.is_low_views == False,  # noqa: E712
        *where,
    )
    return int(session.exec(stmt).one())


def _view_totals(session: Session) -> Dict[str, int]:
    """Counted views summed directly in SQL, next to what the KPI layer reports."""
    return {
        "total_views": _sum_views(session),
        "owned_views": _sum_views(session, col(Article.employee_id).is_not(None)),
        "orphaned_views": _sum_views(session, col(Article.employee_id).is_(None)),
        "metrics_total_views": global_metrics(session).total_views,
    }


def check_data_integrity(
    session: Session,
    low_views_threshold: int = 50,
    min_hours: float = 0.0,
    max_hours: float = 24.0,
) -> IntegrityReport:
    report = IntegrityReport()

    totals = _view_totals(session)
    orphaned = get_orphaned_articles(session)
    mismatched = get_low_view_flag_mismatches(session, low_views_threshold)
    bad_hours = get_out_of_range_hours(session, min_hours, max_hours)
    lonely = get_employees_without_aliases(session)

    report.checks = {
        **totals,
        "orphaned_articles": len(orphaned),
        "low_view_flag_mismatches": len(mismatched),
        "out_of_range_hours": len(bad_hours),
        "employees_without_aliases": len(lonely),
    }

    if totals["metrics_total_views"] != totals["total_views"]:
        report.issues.append(IntegrityIssue(
            code="totals_mismatch",
            severity=Severity.CRITICAL,
            description=(
                f"Global KPI views {totals['metrics_total_views']} != stored views "
                f"{totals['total_views']}"
            ),
            impact="Dashboard KPIs may be incorrect",
        ))
    if bad_hours:
        report.issues.append(IntegrityIssue(
            code="hours_out_of_range",
            severity=Severity.CRITICAL,
            description=f"{len(bad_hours)} daily hours records outside {min_hours}-{max_hours}",
            impact="Rates and efficiency are skewed for the affected employees",
        ))
    if orphaned:
        views = sum(a.views for a in orphaned)
        report.issues.append(IntegrityIssue(
            code="orphaned_articles",
            severity=Severity.WARNING,
            description=f"{len(orphaned)} articles have no employee ({views:,} views)",
            impact="Counted in global totals but not in employee rankings",
        ))
    if mismatched:
        report.issues.append(IntegrityIssue(
            code="low_view_flag_mismatch",
            severity=Severity.WARNING,
            description=f"{len(mismatched)} articles have an is_low_views flag that disagrees with their views",
            impact="Articles may be wrongly included in or excluded from metrics",
        ))
    if lonely:
        report.issues.append(IntegrityIssue(
            code="employees_without_aliases",
            severity=Severity.INFO,
            description=f"{len(lonely)} employees have no recorded name alias",
            impact="They can still be matched by canonical name",
        ))

    logger.info(f"Integrity check: {len(report.issues)} issues ({'ok' if report.ok else 'attention needed'})")
    return report
