from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from domain.models import Account, CreditResult, DebitResult, LedgerEntry
from domain.repositories import BalanceStore
from infrastructure.db.sqlite import (
    ensure_schema,
    from_db_time,
    read,
    to_db_time,
    transaction,
    utcnow,
)


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    user_key TEXT PRIMARY KEY,
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    version INTEGER NOT NULL DEFAULT 0,
    archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_key TEXT NOT NULL,
    amount INTEGER NOT NULL,
    kind TEXT NOT NULL,
    idempotency_key TEXT UNIQUE,
    balance_after INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ledger_entries_user ON ledger_entries(user_key, id);
"""


class SqliteBalanceStore(BalanceStore):
    """
    SQLite-backed implementation of `BalanceStore`.

    Owns the `accounts` and `ledger_entries` tables. Every mutation runs in
    a `BEGIN IMMEDIATE` transaction that updates the account row and
    appends the ledger entry together, so a credit and its idempotency key
    are never visible without each other.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _ensure_table(self) -> None:
        ensure_schema(self._db_path, SCHEMA)

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> Account:
        return Account(
            user_key=str(row[0]),
            balance=int(row[1]),
            version=int(row[2]),
            archived=bool(row[3]),
            created_at=from_db_time(row[4]),
        )

    @staticmethod
    def _ensure_account(conn: sqlite3.Connection, user_key: str) -> None:
        conn.execute(
            """
            INSERT OR IGNORE INTO accounts (user_key, balance, version, archived, created_at)
            VALUES (?, 0, 0, 0, ?)
            """,
            (user_key, to_db_time(utcnow())),
        )

    @staticmethod
    def _current_balance(conn: sqlite3.Connection, user_key: str) -> int:
        row = conn.execute(
            "SELECT balance FROM accounts WHERE user_key = ?",
            (user_key,),
        ).fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _append_entry(
        conn: sqlite3.Connection,
        user_key: str,
        amount: int,
        kind: str,
        idempotency_key: Optional[str],
        balance_after: int,
    ) -> None:
        conn.execute(
            """
            INSERT INTO ledger_entries
                (user_key, amount, kind, idempotency_key, balance_after, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_key, amount, kind, idempotency_key, balance_after, to_db_time(utcnow())),
        )

    @staticmethod
    def _key_applied(conn: sqlite3.Connection, idempotency_key: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM ledger_entries WHERE idempotency_key = ?",
            (idempotency_key,),
        ).fetchone()
        return row is not None

    def get_account(self, user_key: str) -> Account:
        with read(self._db_path) as conn:
            self._ensure_account(conn, user_key)
            row = conn.execute(
                """
                SELECT user_key, balance, version, archived, created_at
                FROM accounts WHERE user_key = ?
                """,
                (user_key,),
            ).fetchone()
            return self._to_domain(row)

    def get_balance(self, user_key: str) -> int:
        with read(self._db_path) as conn:
            return self._current_balance(conn, user_key)

    def reserve_and_debit(
        self,
        user_key: str,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> DebitResult:
        if amount <= 0:
            raise ValueError("Debit amount must be positive.")

        with transaction(self._db_path) as conn:
            self._ensure_account(conn, user_key)
            if idempotency_key and self._key_applied(conn, idempotency_key):
                return DebitResult(ok=True, balance=self._current_balance(conn, user_key))

            cur = conn.execute(
                """
                UPDATE accounts
                SET balance = balance - ?, version = version + 1
                WHERE user_key = ? AND balance >= ?
                """,
                (amount, user_key, amount),
            )
            if cur.rowcount == 0:
                balance = self._current_balance(conn, user_key)
                logger.info(
                    "Debit of %s refused for %s: balance %s", amount, user_key, balance
                )
                return DebitResult(ok=False, balance=balance)

            balance = self._current_balance(conn, user_key)
            self._append_entry(conn, user_key, -amount, "debit", idempotency_key, balance)
            return DebitResult(ok=True, balance=balance)

    def credit(
        self,
        user_key: str,
        amount: int,
        idempotency_key: str,
    ) -> CreditResult:
        if amount <= 0:
            raise ValueError("Credit amount must be positive.")
        if not idempotency_key:
            raise ValueError("Credits require an idempotency key.")

        with transaction(self._db_path) as conn:
            self._ensure_account(conn, user_key)
            if self._key_applied(conn, idempotency_key):
                logger.debug("Credit %s already applied, skipping.", idempotency_key)
                return CreditResult(
                    applied=False,
                    balance=self._current_balance(conn, user_key),
                )

            conn.execute(
                """
                UPDATE accounts
                SET balance = balance + ?, version = version + 1
                WHERE user_key = ?
                """,
                (amount, user_key),
            )
            balance = self._current_balance(conn, user_key)
            self._append_entry(conn, user_key, amount, "credit", idempotency_key, balance)
            return CreditResult(applied=True, balance=balance)

    def has_applied(self, idempotency_key: str) -> bool:
        with read(self._db_path) as conn:
            return self._key_applied(conn, idempotency_key)

    def archive(self, user_key: str) -> None:
        with transaction(self._db_path) as conn:
            self._ensure_account(conn, user_key)
            conn.execute(
                """
                UPDATE accounts
                SET archived = 1, version = version + 1
                WHERE user_key = ? AND archived = 0
                """,
                (user_key,),
            )

    def get_history(self, user_key: str, limit: int = 10) -> List[LedgerEntry]:
        with read(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT user_key, amount, kind, balance_after, idempotency_key, created_at
                FROM ledger_entries
                WHERE user_key = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (user_key, limit),
            ).fetchall()
            return [
                LedgerEntry(
                    user_key=str(row[0]),
                    amount=int(row[1]),
                    kind=row[2],
                    balance_after=int(row[3]),
                    idempotency_key=row[4],
                    created_at=from_db_time(row[5]),
                )
                for row in rows
            ]
