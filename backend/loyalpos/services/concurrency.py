# Overview: Service-layer helpers for locking, write transactions and retries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, begin_write() provides the equivalent guarantee.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the current transaction as a writer.

    SQLite: issue BEGIN IMMEDIATE so the database write lock is taken before
    the first read of the transaction. Without it, two transactions can both
    read a stock level and then both fail to upgrade their lock.

    Other dialects: no-op; row locks and conditional updates do the work.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if getattr(dbapi_connection, "in_transaction", False):
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Call func until it gets through without a lock or version conflict.

    OperationalError (database locked, deadlock victim) and StaleDataError
    roll the session back and retry with exponential backoff; after the last
    attempt the error propagates. Domain errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)
    attempt = 1
    while True:
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            current_app.logger.warning(
                "Write conflict (%s), retry %d of %d",
                type(exc).__name__, attempt, attempts - 1,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
            attempt += 1
