import pytest
from datetime import date, datetime, timedelta, timezone
from sqlmodel import Session, select
from ice.config import Settings
from ice.db import create_db_engine, init_db
from ice.ingest import HoursRow, parse_rows
from ice.ingest.pipeline import upload_rows
from ice.ingest.reader import read_rows
from ice.logging import get_upload_id
from ice.models import Article, DailyHours, Employee, EmployeeAlias, ImportLog, Source


@pytest.fixture(name="session")
def session_fixture():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as session:
        yield session


def create_everyone(protocol):
    for _ in range(protocol.total):
        protocol.create_new()
    return protocol.submit()


def test_end_to_end_empty_registry(session: Session):
    rows = [HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8)]

    receipt = upload_rows(session, rows, Source.HOURS, create_everyone, file_name="hours.csv", config=Settings())

    assert receipt.to_receipt() == {"inserted": 1, "updated": 0, "skipped": 0, "errors": []}
    employees = session.exec(select(Employee)).all()
    assert [e.canonical_name for e in employees] == ["David Cohen"]
    aliases = session.exec(select(EmployeeAlias)).all()
    assert len(aliases) == 1
    assert aliases[0].confirmed_by_user
    assert session.exec(select(DailyHours)).one().employee_id == employees[0].id

    log = session.get(ImportLog, receipt.import_log_id)
    assert log.file_type == Source.HOURS
    assert log.file_name == "hours.csv"
    assert log.rows_processed == 1
    assert log.rows_inserted == 1
    assert log.errors == []

    # upload id is only bound while the upload runs
    assert len(receipt.upload_id) == 12
    assert get_upload_id() == "-"


def test_second_upload_matches_without_asking(session: Session):
    upload_rows(session, [HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8)],
                Source.HOURS, create_everyone, config=Settings())

    def must_not_be_called(protocol):
        raise AssertionError("no conflicts expected")

    receipt = upload_rows(session, [
        HoursRow(full_name="David  Cohen", date=date(2025, 1, 1), hours=6),
        HoursRow(full_name="David Cohn", date=date(2025, 1, 2), hours=7),
    ], Source.HOURS, must_not_be_called, config=Settings())

    assert receipt.inserted == 1
    assert receipt.updated == 1
    assert len(session.exec(select(Employee)).all()) == 1


def test_cancelled_resolution_skips_rows(session: Session):
    def cancel(protocol):
        protocol.cancel()
        return None

    receipt = upload_rows(session, [
        HoursRow(full_name="Moshe Cohen", date=date(2025, 1, 1), hours=8),
    ], Source.HOURS, cancel, config=Settings())

    assert receipt.skipped == 1
    assert receipt.inserted == 0
    assert "Moshe Cohen" in receipt.errors[0]
    assert session.exec(select(Employee)).all() == []
    assert session.exec(select(ImportLog)).one().rows_skipped == 1


def test_articles_upload(session: Session):
    rows, errors = parse_rows([
        {"articleId": 7, "fullName": "Dana Levi", "title": "Hello", "views": 120, "publishedAt": "2025-01-05T09:00:00"},
        {"articleId": 8, "fullName": "Dana Levi", "title": "Small", "views": 12, "publishedAt": "2025-01-06T09:00:00"},
    ], Source.ARTICLES)
    assert errors == []
    assert rows[0].published_at == datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc)

    receipt = upload_rows(session, rows, Source.ARTICLES, create_everyone, config=Settings())

    assert receipt.errors == []
    assert receipt.inserted == 2
    articles = {a.article_id: a for a in session.exec(select(Article)).all()}
    assert not articles[7].is_low_views
    assert articles[8].is_low_views
    assert articles[7].employee_id == articles[8].employee_id

    # re-upload with an offset stamp: converted to UTC, views never drop
    rows, errors = parse_rows([
        {"articleId": 7, "fullName": "Dana Levi", "title": "Hello again", "views": 90,
         "publishedAt": "2025-01-05T12:00:00+03:00"},
    ], Source.ARTICLES)
    assert rows[0].published_at == datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc)
    receipt = upload_rows(session, rows, Source.ARTICLES, create_everyone, config=Settings())
    assert receipt.to_receipt() == {"inserted": 0, "updated": 1, "skipped": 0, "errors": []}
    session.refresh(articles[7])
    assert articles[7].views == 120
    assert articles[7].title == "Hello again"


def test_parse_errors_reported(session: Session):
    rows, errors = parse_rows([
        {"fullName": "David Cohen", "date": "2025-01-01", "hours": "8"},
        {"fullName": "David Cohen", "date": "2025-01-02", "hours": "eight"},
        {"fullName": "David Cohen", "date": "not a date", "hours": "8"},
    ], Source.HOURS)
    assert len(rows) == 1
    assert [e.split(":")[0] for e in errors] == ["Row 2", "Row 3"]

    receipt = upload_rows(session, rows, Source.HOURS, create_everyone, parse_errors=errors, config=Settings())
    assert receipt.inserted == 1
    assert receipt.errors == errors


def test_read_rows_csv(tmp_path):
    path = tmp_path / "hours.csv"
    path.write_text(
        "fullName,date,hours,entryTime,exitTime,status\n"
        "דוד כהן,2025-01-01,8,08:00,16:00,\n"
        "דוד כהן,2025-01-02,abc,,,\n"
        "משה לוי,2025-01-02,0,מחלה,,\n",
        encoding="utf-8",
    )
    rows, errors = read_rows(path, Source.HOURS)

    assert len(rows) == 2
    assert rows[0].full_name == "דוד כהן"
    assert rows[0].entry_time == "08:00"
    assert rows[0].status is None
    assert rows[1].entry_time == "מחלה"
    assert len(errors) == 1
    assert errors[0].startswith("Row 2: hours")


def test_read_rows_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    rows, errors = read_rows(path, Source.ARTICLES)
    assert rows == []
    assert errors == ["empty.csv: file is empty"]


def test_error_count_reported_once(session: Session):
    def cancel(protocol):
        protocol.cancel()
        return None

    start = date(2025, 1, 1)
    rows = [HoursRow(full_name="Ghost Writer", date=start + timedelta(days=i), hours=8) for i in range(100)]

    receipt = upload_rows(session, rows, Source.HOURS, cancel, config=Settings(MAX_REPORTED_ERRORS=50))

    assert receipt.skipped == 100
    assert len(receipt.errors) == 51
    assert receipt.errors[0].startswith("Row 1: no employee resolved for 'Ghost Writer'")
    assert receipt.errors[-1] == "... and 50 more errors"
    assert session.exec(select(ImportLog)).one().errors == receipt.errors


def test_hours_range_from_settings(session: Session):
    rows, errors = parse_rows([
        {"fullName": "David Cohen", "date": "2025-01-01", "hours": "10"},
        {"fullName": "David Cohen", "date": "2025-01-02", "hours": "14"},
        {"fullName": "David Cohen", "date": "2025-01-03", "hours": "30"},
    ], Source.HOURS)
    assert errors == []

    receipt = upload_rows(session, rows, Source.HOURS, create_everyone, config=Settings(MAX_DAILY_HOURS=12))

    assert receipt.inserted == 1
    assert receipt.skipped == 2
    assert [e.split(":")[0] for e in receipt.errors] == ["Row 2", "Row 3"]
    assert all("outside 0.0-12.0" in e for e in receipt.errors)
    assert session.exec(select(DailyHours)).one().hours == 10
