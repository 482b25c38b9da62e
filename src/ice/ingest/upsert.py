"""
Batched upsert of resolved rows.

Merge rules:
- hours: key (employee_id, date); the newest upload replaces every field
- articles: key article_id; views = max(stored, incoming), low-view flag
  recomputed from the final value, other fields refreshed

Existing keys are fetched before writing so each row can be counted as an
insert or an update. Rows are committed chunk by chunk; a failed chunk is
rolled back and reported without stopping the chunks after it.
"""
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select
from ice.errors import BatchWriteError, MergeConflictOverwriteNotice
from ice.ingest.rows import ArticleRow, HoursRow, ParsedRow
from ice.logging import logger
from ice.models.employee import Source
from ice.models.records import Article, DailyHours

T = TypeVar("T")

_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9](:[0-5][0-9])?$")


def is_valid_time(value: Optional[str]) -> bool:
    """HH:MM or HH:MM:SS on a 24h clock."""
    if not value:
        return False
    return bool(_TIME_RE.match(value.strip()))


def extract_status(entry_time: Optional[str], exit_time: Optional[str], status: Optional[str]) -> Optional[str]:
    """Explicit status wins; otherwise non-time text in entry/exit (e.g. "מחלה") is the status."""
    if status:
        return status
    if entry_time and not is_valid_time(entry_time):
        return entry_time.strip()
    if exit_time and not is_valid_time(exit_time):
        return exit_time.strip()
    return None


def truncate_errors(errors: List[str], limit: Optional[int]) -> List[str]:
    """Keep the first ``limit`` errors and say how many were dropped."""
    if limit is None or len(errors) <= limit:
        return list(errors)
    return errors[:limit] + [f"... and {len(errors) - limit} more errors"]


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size < 1:
        raise ValueError("Chunk size must be positive")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


@dataclass
class UpsertResult:
    """Receipt of one upsert call."""
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    notices: List[MergeConflictOverwriteNotice] = field(default_factory=list)

    def skip(self, message: str):
        self.skipped += 1
        self.errors.append(message)

    def truncate_errors(self, limit: Optional[int]):
        self.errors = truncate_errors(self.errors, limit)

    def to_receipt(self) -> dict:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def _unresolved_message(row_number: int, name: str, reasons: Mapping[str, str]) -> str:
    reason = reasons.get(name)
    msg = f"Row {row_number}: no employee resolved for '{name}'"
    return f"{msg} ({reason})" if reason else msg


# ----------------------------------------------------------------------
# Hours
# ----------------------------------------------------------------------
HoursKey = Tuple[int, date]


def _hours_record(row: HoursRow, employee_id: int) -> dict:
    return {
        "employee_id": employee_id,
        "date": row.date,
        "hours": row.hours,
        "status": extract_status(row.entry_time, row.exit_time, row.status),
        "entry_time": row.entry_time.strip() if is_valid_time(row.entry_time) else None,
        "exit_time": row.exit_time.strip() if is_valid_time(row.exit_time) else None,
        "notes": row.notes or None,
    }


def _existing_hours(session: Session, employee_ids: List[int], fetch_chunk_size: int) -> Dict[HoursKey, int]:
    existing: Dict[HoursKey, int] = {}
    for ids in chunked(employee_ids, fetch_chunk_size):
        stmt = select(DailyHours.id, DailyHours.employee_id, DailyHours.date).where(
            col(DailyHours.employee_id).in_(ids)
        )
        for pk, employee_id, day in session.exec(stmt).all():
            existing[(employee_id, day)] = pk
    return existing


def _upsert_hours(
    session: Session,
    resolved: Mapping[str, int],
    rows: Sequence[ParsedRow],
    result: UpsertResult,
    reasons: Mapping[str, str],
    min_hours: float,
    max_hours: float,
    batch_size: int,
    fetch_chunk_size: int,
):
    records: Dict[HoursKey, dict] = {}
    for i, row in enumerate(rows, start=1):
        if not isinstance(row, HoursRow):
            result.skip(f"Row {i}: expected an hours row, got '{row.kind}'")
            continue
        employee_id = resolved.get(row.full_name)
        if employee_id is None:
            result.skip(_unresolved_message(i, row.full_name, reasons))
            continue
        if not min_hours <= row.hours <= max_hours:
            result.skip(f"Row {i}: hours {row.hours} outside {min_hours}-{max_hours}")
            continue

        key = (employee_id, row.date)
        if key in records:
            # Same person and day twice in one file: the later row wins
            result.skipped += 1
            result.notices.append(MergeConflictOverwriteNotice(
                Source.HOURS.value, f"{employee_id}/{row.date}", f"superseded within file by row {i}"
            ))
        records[key] = _hours_record(row, employee_id)

    if not records:
        return

    existing = _existing_hours(session, sorted({k[0] for k in records}), fetch_chunk_size)
    items = list(records.items())
    chunks = list(chunked(items, batch_size))
    failed = 0

    for n, chunk in enumerate(chunks, start=1):
        logger.info(f"Upserting hours batch {n}/{len(chunks)} ({len(chunk)} records)")
        inserted = updated = 0
        notices: List[MergeConflictOverwriteNotice] = []
        try:
            for key, values in chunk:
                pk = existing.get(key)
                if pk is None:
                    session.add(DailyHours(**values))
                    inserted += 1
                    continue
                record = session.get(DailyHours, pk)
                if record.hours != values["hours"] or record.status != values["status"]:
                    notices.append(MergeConflictOverwriteNotice(
                        Source.HOURS.value, f"{key[0]}/{key[1]}",
                        f"hours {record.hours} -> {values['hours']}, status {record.status!r} -> {values['status']!r}",
                    ))
                for name, value in values.items():
                    setattr(record, name, value)
                session.add(record)
                updated += 1
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            failed += 1
            err = BatchWriteError(n, len(chunks), e)
            logger.error(str(err))
            result.errors.append(str(err))
            continue

        result.inserted += inserted
        result.updated += updated
        result.notices.extend(notices)

    if failed == len(chunks):
        result.errors.append(f"Upload failed: all {failed} batches failed")


# ----------------------------------------------------------------------
# Articles
# ----------------------------------------------------------------------
def _existing_articles(session: Session, article_ids: List[int], fetch_chunk_size: int) -> Dict[int, int]:
    existing: Dict[int, int] = {}
    for ids in chunked(article_ids, fetch_chunk_size):
        stmt = select(Article.id, Article.article_id).where(col(Article.article_id).in_(ids))
        for pk, article_id in session.exec(stmt).all():
            existing[article_id] = pk
    return existing


def _upsert_articles(
    session: Session,
    resolved: Mapping[str, int],
    rows: Sequence[ParsedRow],
    result: UpsertResult,
    reasons: Mapping[str, str],
    low_views_threshold: int,
    batch_size: int,
    fetch_chunk_size: int,
):
    records: Dict[int, dict] = {}
    for i, row in enumerate(rows, start=1):
        if not isinstance(row, ArticleRow):
            result.skip(f"Row {i}: expected an articles row, got '{row.kind}'")
            continue
        employee_id = resolved.get(row.full_name)
        if employee_id is None:
            result.skip(_unresolved_message(i, row.full_name, reasons))
            continue

        views = row.views
        if row.article_id in records:
            result.skipped += 1
            views = max(views, records[row.article_id]["views"])
        records[row.article_id] = {
            "article_id": row.article_id,
            "employee_id": employee_id,
            "title": row.title,
            "views": views,
            "published_at": row.published_at,
        }

    if not records:
        return

    existing = _existing_articles(session, sorted(records), fetch_chunk_size)
    items = list(records.items())
    chunks = list(chunked(items, batch_size))
    failed = 0

    for n, chunk in enumerate(chunks, start=1):
        logger.info(f"Upserting articles batch {n}/{len(chunks)} ({len(chunk)} records)")
        inserted = updated = 0
        notices: List[MergeConflictOverwriteNotice] = []
        try:
            for article_id, values in chunk:
                pk = existing.get(article_id)
                if pk is None:
                    session.add(Article(**values, is_low_views=values["views"] < low_views_threshold))
                    inserted += 1
                    continue
                article = session.get(Article, pk)
                final_views = max(article.views, values["views"])
                if final_views != article.views:
                    notices.append(MergeConflictOverwriteNotice(
                        Source.ARTICLES.value, str(article_id), f"views {article.views} -> {final_views}"
                    ))
                article.employee_id = values["employee_id"]
                article.title = values["title"]
                article.published_at = values["published_at"]
                article.views = final_views
                article.is_low_views = final_views < low_views_threshold
                session.add(article)
                updated += 1
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            failed += 1
            err = BatchWriteError(n, len(chunks), e)
            logger.error(str(err))
            result.errors.append(str(err))
            continue

        result.inserted += inserted
        result.updated += updated
        result.notices.extend(notices)

    if failed == len(chunks):
        result.errors.append(f"Upload failed: all {failed} batches failed")


def upsert_rows(
    session: Session,
    resolved: Mapping[str, int],
    rows: Sequence[ParsedRow],
    source: Source,
    reasons: Optional[Mapping[str, str]] = None,
    low_views_threshold: int = 50,
    min_hours: float = 0.0,
    max_hours: float = 24.0,
    batch_size: int = 500,
    fetch_chunk_size: int = 1000,
    max_reported_errors: Optional[int] = 50,
) -> UpsertResult:
    """Write ``rows`` using the name -> employee id map from resolution.

    ``reasons`` optionally explains why a name is missing from ``resolved``;
    it is appended to the skip message of that name's rows. With
    ``max_reported_errors=None`` the error list is returned whole, for callers
    that merge it with errors of their own before truncating.
    """
    result = UpsertResult()
    reasons = reasons or {}
    source = Source(source)

    if source == Source.HOURS:
        _upsert_hours(
            session, resolved, rows, result, reasons,
            min_hours, max_hours, batch_size, fetch_chunk_size,
        )
    elif source == Source.ARTICLES:
        _upsert_articles(
            session, resolved, rows, result, reasons,
            low_views_threshold, batch_size, fetch_chunk_size,
        )

    for notice in result.notices:
        logger.info(f"Overwrite: {notice}")
    logger.info(
        f"Upsert complete ({source.value}): {result.inserted} inserted, {result.updated} updated, "
        f"{result.skipped} skipped, {len(result.errors)} errors"
    )
    result.truncate_errors(max_reported_errors)
    return result
