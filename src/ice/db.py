from pathlib import Path
from typing import Optional
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine
from ice.logging import logger


def create_db_engine(db_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Build an engine for ``db_url`` (defaults to the configured DATABASE_URL).

    For file-backed SQLite the parent directory is created and foreign keys
    are switched on for every connection.
    """
    if db_url is None:
        from ice.config import settings
        db_url = settings.DATABASE_URL

    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        Path(db_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(db_url, echo=echo)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(engine: Engine):
    # Import all models here so SQLModel knows about them
    # This is critical for create_all to work
    from ice.models import employee, records, import_log  # noqa: F401

    logger.info(f"Initializing database at {engine.url}")
    SQLModel.metadata.create_all(engine)
