import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable to track the upload currently being processed
upload_id_ctx: ContextVar[Optional[str]] = ContextVar("upload_id", default=None)

def get_upload_id() -> str:
    """Retrieve the current upload_id, or '-' outside of an upload."""
    return upload_id_ctx.get() or "-"

@contextmanager
def upload_context(upload_id: Optional[str] = None) -> Iterator[str]:
    """Bind an upload_id for every log record emitted inside the block."""
    uid = upload_id or uuid.uuid4().hex[:12]
    token = upload_id_ctx.set(uid)
    try:
        yield uid
    finally:
        upload_id_ctx.reset(token)

class UploadIDFilter(logging.Filter):
    """Injects upload_id into log records."""
    def filter(self, record):
        record.upload_id = get_upload_id()
        return True

def configure_logging(level: str = "INFO"):
    """Configures the root logger with a standard format including upload_id."""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers to avoid duplication
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | [%(upload_id)s] | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
    )
    handler.setFormatter(formatter)

    # Add filter to inject upload_id
    handler.addFilter(UploadIDFilter())

    logger.addHandler(handler)

    # SQL echo is far too chatty at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

# Initialize logging on import with default settings
configure_logging()
logger = logging.getLogger("ice")
