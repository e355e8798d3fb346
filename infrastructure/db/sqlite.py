from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from domain.errors import Unavailable


logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 10.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def connect(db_path: str) -> sqlite3.Connection:
    """
    Open a connection in autocommit mode.

    Transactions are started explicitly by `transaction()` so that writers
    take the database lock up front with `BEGIN IMMEDIATE`.
    """

    conn = sqlite3.connect(
        db_path,
        timeout=BUSY_TIMEOUT_SECONDS,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def ensure_schema(db_path: str, ddl: str) -> None:
    with read(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(ddl)


def _rollback(conn: sqlite3.Connection) -> None:
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        # Nothing to roll back when BEGIN itself failed.
        logger.debug("Rollback skipped: no active transaction.")


@contextmanager
def transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one write transaction.

    Either everything inside the block commits or nothing does. Driver
    errors are re-raised as `Unavailable`; any other exception (including
    domain errors raised inside the block) rolls back and propagates as is.
    """

    try:
        conn = connect(db_path)
    except sqlite3.Error as exc:
        raise Unavailable(f"Cannot open database: {exc}") from exc

    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        _rollback(conn)
        logger.warning("SQLite transaction failed: %s", exc)
        raise Unavailable(str(exc)) from exc
    except BaseException:
        _rollback(conn)
        raise
    finally:
        conn.close()


@contextmanager
def read(db_path: str) -> Iterator[sqlite3.Connection]:
    """Autocommit connection for single statements and plain reads."""

    try:
        conn = connect(db_path)
    except sqlite3.Error as exc:
        raise Unavailable(f"Cannot open database: {exc}") from exc

    try:
        yield conn
    except sqlite3.Error as exc:
        logger.warning("SQLite query failed: %s", exc)
        raise Unavailable(str(exc)) from exc
    finally:
        conn.close()
