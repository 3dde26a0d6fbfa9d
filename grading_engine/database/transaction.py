"""
Transaction management utilities

Repository methods that form part of a larger unit of work do NOT commit;
callers wrap them in ``transaction()`` so that everything is committed or
rolled back together:

    with transaction(db, "Submit grade set"):
        grade_repo.add_grade_set(...)
        for entry in entries:
            grade_repo.add_grade(...)

Database errors raised inside the block are rolled back and re-raised as
``PersistenceError`` (retryable). ``IntegrityError`` is re-raised as-is so
callers can translate constraint violations into domain conflicts.
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session, description: str = "transaction") -> Generator[Session, None, None]:
    """
    Commit on success, roll back on any exception.

    Args:
        db: Active session
        description: Human readable label used in logs

    Raises:
        IntegrityError: Constraint violation (rolled back)
        PersistenceError: Any other database failure (rolled back)
    """
    try:
        yield db
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Transaction rolled back on constraint violation", extra={"operation": description})
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Transaction failed: {type(e).__name__}",
            exc_info=True,
            extra={"operation": description},
        )
        raise PersistenceError(description, str(e)) from e
    except Exception:
        db.rollback()
        raise
