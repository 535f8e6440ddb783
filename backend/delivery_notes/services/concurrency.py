# Overview: Transaction and retry helpers shared by the service layer.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

from ..extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """
    Run a multi-statement write as one transaction.

    Commits when the block exits cleanly; on any exception the session is
    rolled back and the exception re-raised unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def _is_lock_error(exc: OperationalError) -> bool:
    return "locked" in str(exc).lower() or "busy" in str(exc).lower()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on SQLite lock contention.

    Only "database is locked"/"busy" failures are retried; every other
    OperationalError propagates on the first attempt. Operations passed here
    must be atomic so a failed attempt leaves nothing behind.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            if not _is_lock_error(exc):
                raise
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Store locked, retrying (attempt %d/%d)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
