import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageError
from app.core.observability import log_event

logger = logging.getLogger("pulse.storage")


def commit_or_raise(db: Session, *, operation: str) -> None:
    """Commit the unit of work; a failed write is rolled back and surfaced as StorageError."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(logger, logging.ERROR, "storage_write_failed", operation=operation, error=str(exc))
        raise StorageError(f"Failed to persist {operation}") from exc
