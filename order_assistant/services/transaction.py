"""
Transaction helpers for the ordering services.

Every multi-step mutation (mode switch, confirmation, cancellation, draft
edits) runs inside atomic(): either everything commits or the session is
rolled back and the failure surfaces as TransientStoreError, the only error
class callers may retry.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any exception.

    IntegrityError is re-raised as-is so callers can map constraint
    violations (e.g. a second order for the same draft) to a conflict.
    Other SQLAlchemy errors become TransientStoreError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Store transaction failed: %s", exc)
        raise TransientStoreError() from exc
    except Exception:
        db.rollback()
        raise


def lock_for_update(query: Query) -> Query:
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute an operation, retrying only on TransientStoreError.

    Backoff doubles per attempt. The last failure is re-raised.
    """
    for attempt in range(attempts):
        try:
            return func()
        except TransientStoreError:
            if attempt >= attempts - 1:
                raise
            logger.warning("Transient store failure, retrying (attempt %d of %d)", attempt + 1, attempts)
            sleep(backoff_base * (2 ** attempt))
    raise TransientStoreError()
