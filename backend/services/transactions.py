"""
Exécution d'une unité de travail dans une transaction unique.

- commit si tout passe
- rollback complet sur n'importe quelle erreur
- retry borné (backoff exponentiel) uniquement sur les erreurs transitoires
  du store : deadlock, lock timeout, serialization failure, sqlite locked
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.services.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# deadlock_detected, serialization_failure, lock_not_available, query_canceled (statement_timeout)
TRANSIENT_SQLSTATES = {"40P01", "40001", "55P03", "57014"}


def is_transient(exc: OperationalError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "deadlock" in message


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    operation: str,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    if max_retries is None:
        max_retries = settings.TX_MAX_RETRIES
    if backoff_seconds is None:
        backoff_seconds = settings.TX_RETRY_BACKOFF_SECONDS

    attempt = 0
    while True:
        try:
            result = work(db)
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            if not is_transient(e):
                raise
            if attempt >= max_retries:
                logger.error("%s: transient store error, giving up after %d retries", operation, attempt)
                raise ServiceUnavailable(f"{operation} could not complete, please retry later") from e
            attempt += 1
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning("%s: transient store error (%s), retry %d/%d in %.2fs", operation, e.orig, attempt, max_retries, delay)
            time.sleep(delay)
        except Exception:
            db.rollback()
            raise
