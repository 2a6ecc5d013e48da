# Overview: Service-layer helpers for locking, retries, timeouts and independent sessions.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def apply_statement_timeout(session=None) -> None:
    """
    Bound the current transaction's statements on PostgreSQL.

    SET LOCAL only lasts until the transaction ends, so this is called at
    the start of every locking transaction. No-op on other dialects.
    """
    session = session or db.session
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    timeout_ms = int(current_app.config.get("STATEMENT_TIMEOUT_MS", 15000))
    session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts). The session is
    rolled back before each retry so func() always starts a fresh transaction.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after database contention (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


@contextmanager
def independent_session():
    """
    A session with its own pooled connection, outside the request session.

    Used for post-commit work: whatever happens here can never roll back
    the caller's already-committed transaction.
    """
    session = Session(bind=db.engine, expire_on_commit=False)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
