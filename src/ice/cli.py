import sys
import typer
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from sqlmodel import Session
from ice.config import settings
from ice.logging import configure_logging, logger
from ice.errors import ResolutionProtocolError
from ice.models.employee import Source
from ice.resolution.protocol import EventKind, ProtocolEvent, ProtocolState, ResolutionSession
from ice.resolution.schemas import DecisionAction, NameResolution

app = typer.Typer(no_args_is_help=True)

DATE_FORMATS = ["%Y-%m-%d"]


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")):
    """
    ICE Analytics ingestion CLI.
    """
    if verbose:
        configure_logging("DEBUG")


def _engine():
    from ice.db import create_db_engine
    return create_db_engine(settings.DATABASE_URL)


@app.command(name="doctor")
def doctor():
    """
    Check configuration and database health.
    """
    from ice.doctor import run_all_checks

    logger.info("Running doctor check...")
    print("\n🩺 ICE Analytics Doctor\n")

    print(f"Python: {sys.version.split()[0]}")
    print(f"Prefix: {sys.prefix}")

    print("\n[Configuration]")
    print(f"DATABASE_URL:                {settings.DATABASE_URL}")
    print(f"AUTO_MATCH_THRESHOLD:        {settings.AUTO_MATCH_THRESHOLD}")
    print(f"MANUAL_RESOLUTION_THRESHOLD: {settings.MANUAL_RESOLUTION_THRESHOLD}")
    print(f"FIRST_NAME_THRESHOLD:        {settings.FIRST_NAME_THRESHOLD}")
    print(f"LOW_VIEWS_THRESHOLD:         {settings.LOW_VIEWS_THRESHOLD}")
    print(f"UPSERT_BATCH_SIZE:           {settings.UPSERT_BATCH_SIZE}")

    errors = run_all_checks(_engine(), settings)
    print("\n[Checks]")
    if errors:
        for err in errors:
            print(f"❌ {err}")
    else:
        print("✅ All checks passed")

    print("\nDoctor check complete.")
    if errors:
        raise typer.Exit(code=1)


db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")


@db_app.command("init")
def init():
    """Initialize the database tables."""
    from ice.db import init_db
    try:
        init_db(_engine())
        logger.info("Database initialized successfully.")
        print("✅ Database initialized.")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# Interactive name resolution
# ----------------------------------------------------------------------
def _render_event(event: ProtocolEvent, protocol: ResolutionSession):
    if event.kind == EventKind.PRESENT:
        conflict = event.conflict
        print(f"\n[{event.index + 1}/{protocol.total}] '{conflict.input_name}' "
              f"(rows {', '.join(str(r) for r in conflict.row_numbers)}, confidence {conflict.confidence})")
        if conflict.variants:
            print(f"    also spelled: {', '.join(conflict.variants)}")
        if conflict.similar_pending:
            print(f"    maybe the same person as: {', '.join(conflict.similar_pending)} (also pending)")
        if conflict.candidates:
            for i, c in enumerate(conflict.candidates, 1):
                mark = " ✓" if c.is_user_confirmed else ""
                print(f"    {i}. {c.canonical_name} (id {c.employee_id}, {c.similarity_score:.0%}){mark}")
        else:
            print("    No similar employees found.")
        decided = protocol.decision_for(conflict.input_name)
        if decided:
            print(f"    current decision: {_describe(decided)}")
    elif event.kind == EventKind.DECISION:
        print(f"    -> {_describe(event.decision)}")
    elif event.kind == EventKind.INCOMPLETE:
        print(f"⚠️  {len(protocol.unresolved())} names still need a decision.")
    elif event.kind == EventKind.FINALIZED:
        print(f"✅ {len(event.decisions)} decisions submitted.")
    elif event.kind == EventKind.CANCELLED:
        print("Resolution cancelled.")


def _describe(decision: NameResolution) -> str:
    if decision.action == DecisionAction.MATCH:
        return f"match employee {decision.employee_id}"
    return "create new employee"


def prompt_resolver(protocol: ResolutionSession) -> Optional[List[NameResolution]]:
    """Drive a ResolutionSession from the terminal."""
    protocol.subscribe(lambda event: _render_event(event, protocol))
    print(f"\n{protocol.total} names need your decision.")
    print("Enter a candidate number, n = new employee, b/f = back/forward, s = submit, q = cancel.")
    protocol.start()

    while protocol.state == ProtocolState.AT_INDEX:
        choice = typer.prompt("Choice").strip().lower()
        try:
            if choice == "n":
                protocol.create_new()
            elif choice == "b":
                protocol.back()
            elif choice == "f":
                protocol.forward()
            elif choice == "s":
                decisions = protocol.submit()
                if decisions is not None:
                    return decisions
            elif choice == "q":
                protocol.cancel(confirm=lambda n: typer.confirm(f"Discard {n} decisions?", default=False))
            elif choice.isdigit() and 1 <= int(choice) <= len(protocol.current.candidates):
                protocol.match(protocol.current.candidates[int(choice) - 1].employee_id)
            else:
                print(f"Unknown choice '{choice}'.")
        except ResolutionProtocolError as e:
            print(f"❌ {e}")

    return None


upload_app = typer.Typer(help="Upload parsed CSV exports.")
app.add_typer(upload_app, name="upload")


def _upload(path: Path, source: Source, interactive: bool):
    from ice.ingest.pipeline import upload_rows
    from ice.ingest.reader import read_rows

    if not path.exists():
        print(f"❌ File not found: {path}")
        raise typer.Exit(code=1)

    rows, parse_errors = read_rows(path, source)
    if not rows:
        print(f"❌ No valid rows in {path.name}")
        for err in parse_errors[:settings.MAX_REPORTED_ERRORS]:
            print(f"   {err}")
        raise typer.Exit(code=1)

    with Session(_engine()) as session:
        receipt = upload_rows(
            session,
            rows,
            source,
            resolver=prompt_resolver if interactive else None,
            file_name=path.name,
            parse_errors=parse_errors,
            config=settings,
        )

    print(f"\nUpload {receipt.upload_id} ({source.value}, {receipt.rows_processed} rows)")
    print(f"  inserted: {receipt.inserted}")
    print(f"  updated:  {receipt.updated}")
    print(f"  skipped:  {receipt.skipped}")
    if receipt.errors:
        print(f"  errors:   {len(receipt.errors)}")
        for err in receipt.errors:
            print(f"   - {err}")


@upload_app.command("hours")
def upload_hours(
    path: Path,
    interactive: bool = typer.Option(True, help="Ask about ambiguous names; otherwise their rows are skipped."),
):
    """Upload a daily hours CSV."""
    _upload(path, Source.HOURS, interactive)


@upload_app.command("articles")
def upload_articles(
    path: Path,
    interactive: bool = typer.Option(True, help="Ask about ambiguous names; otherwise their rows are skipped."),
):
    """Upload an articles CSV."""
    _upload(path, Source.ARTICLES, interactive)


employees_app = typer.Typer(help="Employee registry.")
app.add_typer(employees_app, name="employees")


@employees_app.command("list")
def list_employees():
    """List employees."""
    from ice.registry import EmployeeRegistry
    with Session(_engine()) as session:
        employees = EmployeeRegistry(session).list_employees()
        if not employees:
            print("No employees found.")
            return
        for e in employees:
            number = f" #{e.employee_number}" if e.employee_number else ""
            print(f"[{e.id}] {e.canonical_name}{number}")


@employees_app.command("aliases")
def list_aliases(employee_id: int):
    """Show the name variants bound to an employee."""
    from ice.registry import EmployeeRegistry
    with Session(_engine()) as session:
        registry = EmployeeRegistry(session)
        employee = registry.get(employee_id)
        if not employee:
            print(f"❌ Employee {employee_id} not found.")
            raise typer.Exit(code=1)
        print(f"{employee.canonical_name}:")
        for alias in registry.aliases_for(employee_id):
            flag = "confirmed" if alias.confirmed_by_user else "auto"
            print(f"  {alias.alias}  [{alias.source.value}, {flag}]")


metrics_app = typer.Typer(help="KPI reports.")
app.add_typer(metrics_app, name="metrics")


def _filters(start: Optional[datetime], end: Optional[datetime], employee: Optional[List[int]]):
    from ice.metrics import MetricsFilter
    return MetricsFilter(
        start_date=start.date() if start else None,
        end_date=end.date() if end else None,
        employee_ids=employee or [],
    )


@metrics_app.command("employees")
def metrics_employees(
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Per-employee KPIs, most efficient first."""
    from ice.metrics import employee_metrics
    with Session(_engine()) as session:
        rows = employee_metrics(session, _filters(start, end, employee))
    if not rows:
        print("No employees found.")
        return
    for m in rows:
        eff = m.efficiency_views_per_hour if m.efficiency_views_per_hour is not None else "-"
        rate = m.rate_articles_per_hour if m.rate_articles_per_hour is not None else "-"
        print(f"[{m.employee_id}] {m.employee_name}: {m.total_articles} articles, {m.total_views} views, "
              f"{m.total_hours}h, rate {rate}/h, efficiency {eff} views/h")


@metrics_app.command("global")
def metrics_global(
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Totals across all employees."""
    from ice.metrics import global_metrics
    with Session(_engine()) as session:
        g = global_metrics(session, _filters(start, end, employee))
    print(f"Articles:   {g.total_articles}")
    print(f"Views:      {g.total_views}")
    print(f"Hours:      {g.total_hours:.2f}")
    print(f"Rate:       {g.avg_rate:.2f} articles/h" if g.avg_rate is not None else "Rate:       -")
    print(f"Efficiency: {g.avg_efficiency:.0f} views/h" if g.avg_efficiency is not None else "Efficiency: -")


@metrics_app.command("rankings")
def metrics_rankings(
    metric: str = typer.Option("efficiency", help="hours | articles | views | efficiency"),
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
):
    """Rank employees by one metric."""
    from ice.metrics import employee_rankings
    if metric not in ("hours", "articles", "views", "efficiency"):
        print(f"❌ Unknown metric '{metric}'")
        raise typer.Exit(code=1)
    with Session(_engine()) as session:
        ranking = employee_rankings(session, metric, _filters(start, end, None))
    for r in ranking:
        print(f"{r.rank}. {r.employee_name}: {r.metric_value} ({r.percentile}th percentile)")


@metrics_app.command("top-articles")
def metrics_top_articles(
    limit: int = typer.Option(5, min=1),
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Most viewed articles."""
    from ice.metrics import top_articles
    with Session(_engine()) as session:
        articles = top_articles(session, _filters(start, end, employee), limit)
    if not articles:
        print("No articles found.")
        return
    for i, a in enumerate(articles, 1):
        print(f"{i}. [{a.article_id}] {a.title} - {a.views:,} views ({a.employee_name}, {a.published_at:%Y-%m-%d})")


@metrics_app.command("timeseries")
def metrics_timeseries(
    kind: Source = typer.Argument(..., help="hours | articles"),
    by: str = typer.Option("month", help="day | week | month"),
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Hours or articles per period."""
    from ice.metrics import articles_time_series, hours_time_series
    if by not in ("day", "week", "month"):
        print(f"❌ Unknown period '{by}'")
        raise typer.Exit(code=1)
    filters = _filters(start, end, employee)
    with Session(_engine()) as session:
        if kind == Source.HOURS:
            for p in hours_time_series(session, filters, by):
                print(f"{p.period}: {p.total_hours:.2f}h, {p.employee_count} employees, "
                      f"{p.avg_hours_per_employee:.2f}h each")
        else:
            for p in articles_time_series(session, filters, by):
                print(f"{p.period}: {p.total_articles} articles, {p.total_views:,} views, "
                      f"{p.employee_count} employees")


@metrics_app.command("weekdays")
def metrics_weekdays(
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Hours by day of the week."""
    from ice.metrics import weekday_breakdown
    with Session(_engine()) as session:
        days = weekday_breakdown(session, _filters(start, end, employee))
    for d in days:
        print(f"{d.day_name:<10} {d.total_hours:>8.2f}h  avg {d.avg_hours:.2f}h  ({d.employee_count} employees)")


@metrics_app.command("gaps")
def metrics_gaps(
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
):
    """Employees with hours but no articles, or articles but no hours."""
    from ice.metrics import detect_missing_data
    with Session(_engine()) as session:
        gaps = detect_missing_data(session, _filters(start, end, None))
    if not gaps:
        print("✅ No missing data")
        return
    for g in gaps:
        print(f"[{g.employee_id}] {g.employee_name}: {g.details}")


@metrics_app.command("anomalies")
def metrics_anomalies(
    threshold: float = typer.Option(2.0, help="Standard deviations from the employee's mean."),
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Unusual daily hours."""
    from ice.metrics import detect_anomalies
    with Session(_engine()) as session:
        anomalies = detect_anomalies(session, _filters(start, end, employee), threshold)
    if not anomalies:
        print("✅ No anomalies")
        return
    for a in anomalies:
        print(f"[{a.severity}] {a.employee_name} {a.day}: {a.value}h vs ~{a.expected_value}h "
              f"({a.type}, {a.deviation_percent}%)")


@metrics_app.command("trends")
def metrics_trends(
    start: datetime = typer.Option(..., formats=DATE_FORMATS, help="First day of the current period."),
    end: datetime = typer.Option(..., formats=DATE_FORMATS, help="Last day of the current period."),
    prev_start: datetime = typer.Option(..., formats=DATE_FORMATS),
    prev_end: datetime = typer.Option(..., formats=DATE_FORMATS),
    employee: Optional[List[int]] = typer.Option(None, help="Restrict to these employee ids."),
):
    """Compare two periods."""
    from ice.metrics import trend_analysis
    with Session(_engine()) as session:
        trends = trend_analysis(
            session,
            (start.date(), end.date()),
            (prev_start.date(), prev_end.date()),
            employee or [],
        )
    for t in trends:
        print(f"{t.metric}: {t.previous_value:g} -> {t.current_value:g} ({t.change_percent:+d}%, {t.trend})")


@app.command(name="integrity")
def integrity():
    """Run data integrity checks."""
    from ice.integrity import check_data_integrity
    with Session(_engine()) as session:
        report = check_data_integrity(
            session,
            low_views_threshold=settings.LOW_VIEWS_THRESHOLD,
            min_hours=settings.MIN_DAILY_HOURS,
            max_hours=settings.MAX_DAILY_HOURS,
        )
    for name, value in report.checks.items():
        print(f"{name}: {value}")
    if not report.issues:
        print("✅ All data integrity checks passed")
        return
    for issue in report.issues:
        print(f"[{issue.severity.value}] {issue.description}")
    if not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
