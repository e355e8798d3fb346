from __future__ import annotations

import sqlite3
from typing import Optional

from domain.models import DepositEvent, DepositStatus
from domain.repositories import DepositRepository
from infrastructure.db.sqlite import (
    ensure_schema,
    from_db_time,
    read,
    to_db_time,
    transaction,
    utcnow,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS deposits (
    tx_hash TEXT PRIMARY KEY,
    user_key TEXT NOT NULL,
    amount INTEGER NOT NULL,
    confirmations INTEGER NOT NULL,
    processed_at TEXT,
    status TEXT NOT NULL DEFAULT 'credited',
    reason TEXT
);

CREATE INDEX IF NOT EXISTS idx_deposits_user ON deposits(user_key);
"""


class SqliteDepositRepository(DepositRepository):
    """
    SQLite-backed record of deposit transactions that reached a decision.

    The exactly-once guarantee itself comes from the balance store's
    idempotency key; this table keeps the deposit metadata, lets
    duplicates be answered without touching the ledger and keeps an audit
    row for deposits that were refused.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _ensure_table(self) -> None:
        ensure_schema(self._db_path, SCHEMA)

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> DepositEvent:
        return DepositEvent(
            tx_hash=str(row[0]),
            user_key=str(row[1]),
            amount=int(row[2]),
            confirmations=int(row[3]),
            processed_at=from_db_time(row[4]),
            status=DepositStatus(row[5]),
            reason=row[6],
        )

    def is_processed(self, tx_hash: str) -> bool:
        with read(self._db_path) as conn:
            row = conn.execute(
                """
                SELECT 1 FROM deposits
                WHERE tx_hash = ? AND processed_at IS NOT NULL AND status = ?
                """,
                (tx_hash, DepositStatus.CREDITED.value),
            ).fetchone()
            return row is not None

    def record_processed(self, event: DepositEvent) -> None:
        if event.processed_at is None:
            event.processed_at = utcnow()

        with transaction(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO deposits
                    (tx_hash, user_key, amount, confirmations, processed_at, status, reason)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (tx_hash) DO NOTHING
                """,
                (
                    event.tx_hash,
                    event.user_key,
                    event.amount,
                    event.confirmations,
                    to_db_time(event.processed_at),
                    event.status.value,
                    event.reason,
                ),
            )

    def get(self, tx_hash: str) -> Optional[DepositEvent]:
        with read(self._db_path) as conn:
            row = conn.execute(
                """
                SELECT tx_hash, user_key, amount, confirmations, processed_at, status, reason
                FROM deposits WHERE tx_hash = ?
                """,
                (tx_hash,),
            ).fetchone()
            if not row:
                return None
            return self._to_domain(row)
