"""
Transaction boundary for front-desk operations
Each operation runs inside ``atomic``: one commit on success, one rollback on any
error. Database-level failures are translated into the front-desk error taxonomy.
"""
import logging
from contextlib import contextmanager
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from frontdesk.errors import ConcurrentModification, TransactionAborted

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, operation: str):
    """
    Run the enclosed block as one transaction.

    Raises:
        ConcurrentModification: a versioned row was changed by another transaction
        TransactionAborted: lock wait timed out or the connection failed
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"{operation}: concurrent modification detected, rolled back")
        raise ConcurrentModification(
            "The record was modified by another operation; reload and retry",
            {"operation": operation}
        ) from e
    except OperationalError as e:
        db.rollback()
        logger.warning(f"{operation}: transaction aborted ({e.orig})")
        raise TransactionAborted(
            "The operation could not be completed, please retry",
            {"operation": operation}
        ) from e
    except Exception:
        db.rollback()
        raise
