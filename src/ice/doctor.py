from typing import List
from pathlib import Path
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from ice.config import Settings
from ice.models import Article, DailyHours, Employee, EmployeeAlias, ImportLog


def validate_schema() -> List[str]:
    """Check that every table model is mapped."""
    errors = []
    for model in (Employee, EmployeeAlias, DailyHours, Article, ImportLog):
        if not hasattr(model, "__table__"):
            errors.append(f"Model {model.__name__} is missing table definition.")
    return errors


def validate_thresholds(settings: Settings) -> List[str]:
    """Matching tiers must be ordered: manual <= auto <= exact."""
    errors = []
    if not 0.0 <= settings.MANUAL_RESOLUTION_THRESHOLD <= settings.AUTO_MATCH_THRESHOLD <= settings.EXACT_MATCH:
        errors.append(
            "Thresholds out of order: need 0 <= MANUAL_RESOLUTION_THRESHOLD "
            f"({settings.MANUAL_RESOLUTION_THRESHOLD}) <= AUTO_MATCH_THRESHOLD "
            f"({settings.AUTO_MATCH_THRESHOLD}) <= EXACT_MATCH ({settings.EXACT_MATCH})"
        )
    if not 0.0 <= settings.FIRST_NAME_THRESHOLD <= 1.0:
        errors.append(f"FIRST_NAME_THRESHOLD must be within 0..1, got {settings.FIRST_NAME_THRESHOLD}")
    if settings.MIN_DAILY_HOURS > settings.MAX_DAILY_HOURS:
        errors.append("MIN_DAILY_HOURS is greater than MAX_DAILY_HOURS")
    if settings.UPSERT_BATCH_SIZE < 1 or settings.FETCH_CHUNK_SIZE < 1:
        errors.append("UPSERT_BATCH_SIZE and FETCH_CHUNK_SIZE must be positive")
    return errors


def validate_data_dir(settings: Settings) -> List[str]:
    """For file-backed SQLite, the database directory must be writable."""
    url = settings.DATABASE_URL
    if not url.startswith("sqlite:///") or url == "sqlite:///:memory:":
        return []

    data_dir = Path(url.removeprefix("sqlite:///")).parent
    errors = []
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        test_file = data_dir / ".write_test"
        test_file.touch()
        test_file.unlink()
    except OSError as e:
        errors.append(f"Cannot write to data directory {data_dir}: {e}")
    return errors


def validate_db_connection(engine: Engine) -> List[str]:
    """Database reachable and initialized."""
    errors = []
    try:
        with Session(engine) as session:
            session.exec(select(Employee).limit(1)).first()
    except SQLAlchemyError as e:
        errors.append(f"Database check failed (run `ice db init`?): {e}")
    return errors


def run_all_checks(engine: Engine, settings: Settings) -> List[str]:
    errors = []
    errors.extend(validate_schema())
    errors.extend(validate_thresholds(settings))
    errors.extend(validate_data_dir(settings))
    errors.extend(validate_db_connection(engine))
    return errors
