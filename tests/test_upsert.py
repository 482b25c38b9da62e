import pytest
from datetime import date, datetime
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select
from ice.db import create_db_engine, init_db
from ice.ingest.rows import ArticleRow, HoursRow
from ice.ingest.upsert import chunked, extract_status, is_valid_time, upsert_rows
from ice.models import Article, DailyHours, Source
from ice.registry import EmployeeRegistry


@pytest.fixture(name="session")
def session_fixture():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="david")
def david_fixture(session: Session):
    return EmployeeRegistry(session).create_employee("David Cohen")


def article(views: int, article_id: int = 1001, title: str = "Budget vote") -> ArticleRow:
    return ArticleRow(
        article_id=article_id,
        full_name="David Cohen",
        title=title,
        views=views,
        published_at=datetime(2025, 1, 5, 10, 0),
    )


def test_status_extraction():
    assert is_valid_time("08:30")
    assert is_valid_time("8:30:15")
    assert not is_valid_time("25:00")
    assert not is_valid_time("מחלה")
    assert extract_status("מחלה", None, None) == "מחלה"
    assert extract_status("08:00", "חופש", None) == "חופש"
    assert extract_status("מחלה", None, "explicit") == "explicit"
    assert extract_status("08:00", "17:00", None) is None


def test_chunked():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []


def test_hours_latest_wins(session: Session, david):
    resolved = {"David Cohen": david.id}
    first = upsert_rows(session, resolved, [
        HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8, entry_time="08:00", exit_time="16:00"),
    ], Source.HOURS)
    assert first.to_receipt() == {"inserted": 1, "updated": 0, "skipped": 0, "errors": []}

    second = upsert_rows(session, resolved, [
        HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=3, entry_time="מחלה"),
    ], Source.HOURS)
    assert second.to_receipt() == {"inserted": 0, "updated": 1, "skipped": 0, "errors": []}
    assert len(second.notices) == 1

    records = session.exec(select(DailyHours)).all()
    assert len(records) == 1
    assert records[0].hours == 3
    assert records[0].status == "מחלה"
    # fully replaced: old times do not survive
    assert records[0].entry_time is None
    assert records[0].exit_time is None


def test_article_views_never_decrease(session: Session, david):
    resolved = {"David Cohen": david.id}

    result = upsert_rows(session, resolved, [article(30)], Source.ARTICLES)
    assert result.inserted == 1
    stored = session.exec(select(Article)).one()
    assert stored.views == 30
    assert stored.is_low_views

    result = upsert_rows(session, resolved, [article(20, title="Budget vote (updated)")], Source.ARTICLES)
    assert result.updated == 1
    session.refresh(stored)
    assert stored.views == 30
    assert stored.is_low_views
    assert stored.title == "Budget vote (updated)"

    result = upsert_rows(session, resolved, [article(80)], Source.ARTICLES)
    assert result.updated == 1
    session.refresh(stored)
    assert stored.views == 80
    assert not stored.is_low_views
    assert [str(n) for n in result.notices] == ["[articles] 1001: views 30 -> 80"]


def test_low_views_threshold_configurable(session: Session, david):
    upsert_rows(session, {"David Cohen": david.id}, [article(80)], Source.ARTICLES, low_views_threshold=100)
    assert session.exec(select(Article)).one().is_low_views


def test_unresolved_rows_skipped(session: Session, david):
    rows = [
        HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8),
        HoursRow(full_name="Moshe Cohen", date=date(2025, 1, 1), hours=6),
        HoursRow(full_name="Moshe Cohen", date=date(2025, 1, 2), hours=6),
    ]
    result = upsert_rows(
        session, {"David Cohen": david.id}, rows, Source.HOURS,
        reasons={"Moshe Cohen": "resolution cancelled"},
    )
    assert result.inserted == 1
    assert result.skipped == 2
    assert len(result.errors) == 2
    assert "Row 2" in result.errors[0]
    assert "Moshe Cohen" in result.errors[0]
    assert "resolution cancelled" in result.errors[0]


def test_unresolved_articles_not_written(session: Session):
    result = upsert_rows(session, {}, [article(100)], Source.ARTICLES)
    assert result.skipped == 1
    assert session.exec(select(Article)).all() == []


def test_out_of_range_hours_skipped(session: Session, david):
    rows = [HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=14)]
    result = upsert_rows(session, {"David Cohen": david.id}, rows, Source.HOURS, max_hours=12)
    assert result.skipped == 1
    assert "outside" in result.errors[0]


def test_duplicate_key_in_one_file(session: Session, david):
    rows = [
        HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8),
        HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=5),
    ]
    result = upsert_rows(session, {"David Cohen": david.id}, rows, Source.HOURS)
    assert result.inserted == 1
    assert result.skipped == 1
    assert session.exec(select(DailyHours)).one().hours == 5


def test_failed_chunk_does_not_block_others(session: Session, david, monkeypatch):
    rows = [
        HoursRow(full_name="David Cohen", date=date(2025, 1, day), hours=8)
        for day in (1, 2, 3)
    ]
    real_commit = session.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("INSERT INTO dailyhours", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(session, "commit", flaky_commit)
    result = upsert_rows(session, {"David Cohen": david.id}, rows, Source.HOURS, batch_size=2)

    assert result.inserted == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Batch 1/2 upsert failed")
    stored = session.exec(select(DailyHours)).all()
    assert [r.date for r in stored] == [date(2025, 1, 3)]


def test_all_chunks_failing_reports_total_failure(session: Session, david, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT INTO dailyhours", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", broken_commit)
    rows = [HoursRow(full_name="David Cohen", date=date(2025, 1, 1), hours=8)]
    result = upsert_rows(session, {"David Cohen": david.id}, rows, Source.HOURS)

    assert result.inserted == 0
    assert result.errors[-1] == "Upload failed: all 1 batches failed"


def test_error_list_truncated(session: Session):
    rows = [HoursRow(full_name=f"Ghost {i}", date=date(2025, 1, 1), hours=1) for i in range(10)]
    result = upsert_rows(session, {}, rows, Source.HOURS, max_reported_errors=3)
    assert result.skipped == 10
    assert len(result.errors) == 4
    assert result.errors[-1] == "... and 7 more errors"
