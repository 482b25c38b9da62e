"""
One upload, end to end:

    analyze names -> interactive resolution -> execute decisions -> upsert -> ImportLog

Every log record emitted along the way carries the upload id.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from ice.config import Settings
from ice.errors import UnresolvedNameError
from ice.ingest.rows import ParsedRow
from ice.ingest.upsert import UpsertResult, truncate_errors, upsert_rows
from ice.logging import logger, upload_context
from ice.matching.normalize import normalize_name
from ice.matching.thresholds import MatchingThresholds
from ice.models.employee import Source
from ice.models.import_log import ImportLog
from ice.resolution.batch import ResolvedNames, Resolver, resolve_batch
from ice.resolution.schemas import NameAnalysisResult


@dataclass
class UploadReceipt:
    upload_id: str
    source: Source
    rows_processed: int
    analysis: NameAnalysisResult
    resolved: ResolvedNames
    result: UpsertResult
    errors: List[str] = field(default_factory=list)
    import_log_id: Optional[int] = None

    @property
    def inserted(self) -> int:
        return self.result.inserted

    @property
    def updated(self) -> int:
        return self.result.updated

    @property
    def skipped(self) -> int:
        return self.result.skipped

    def to_receipt(self) -> dict:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def upload_rows(
    session: Session,
    rows: Sequence[ParsedRow],
    source: Source,
    resolver: Optional[Resolver] = None,
    file_name: Optional[str] = None,
    parse_errors: Sequence[str] = (),
    config: Optional[Settings] = None,
) -> UploadReceipt:
    """Resolve names and store ``rows``; returns the upload receipt.

    ``resolver`` drives the interactive protocol for names that need a human.
    If it is missing or cancels, those names stay unbound and their rows are
    skipped.
    """
    config = config or Settings()
    source = Source(source)

    with upload_context() as upload_id:
        logger.info(f"Upload started: {source.value} {file_name or '<rows>'} ({len(rows)} rows)")

        analysis, resolved = resolve_batch(
            session, rows, source, resolver, MatchingThresholds.from_settings(config)
        )

        reasons = dict(resolved.errors)
        names = {r.full_name for r in rows if normalize_name(r.full_name)}
        try:
            resolved.require_complete(names)
        except UnresolvedNameError as e:
            logger.warning(str(e))
            for name in e.names:
                reasons.setdefault(name, "name was not resolved")

        result = upsert_rows(
            session,
            {name: binding.employee_id for name, binding in resolved.resolved.items()},
            rows,
            source,
            reasons=reasons,
            low_views_threshold=config.LOW_VIEWS_THRESHOLD,
            min_hours=config.MIN_DAILY_HOURS,
            max_hours=config.MAX_DAILY_HOURS,
            batch_size=config.UPSERT_BATCH_SIZE,
            fetch_chunk_size=config.FETCH_CHUNK_SIZE,
            max_reported_errors=None,
        )

        errors = truncate_errors(
            [*parse_errors, *analysis.errors, *result.errors], config.MAX_REPORTED_ERRORS
        )

        receipt = UploadReceipt(
            upload_id=upload_id,
            source=source,
            rows_processed=len(rows),
            analysis=analysis,
            resolved=resolved,
            result=result,
            errors=errors,
        )

        log = ImportLog(
            file_type=source,
            file_name=file_name,
            rows_processed=len(rows),
            rows_inserted=result.inserted,
            rows_updated=result.updated,
            rows_skipped=result.skipped,
        )
        log.set_errors(errors)
        session.add(log)
        try:
            session.commit()
            session.refresh(log)
            receipt.import_log_id = log.id
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to log import: {e}")
            receipt.errors.append(f"Failed to log import: {e}")

        logger.info(
            f"Upload complete: {result.inserted} inserted, {result.updated} updated, "
            f"{result.skipped} skipped, {len(errors)} errors"
        )
        return receipt
