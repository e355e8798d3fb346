from __future__ import annotations

import sqlite3
from typing import List, Optional

from domain.models import BetRecord, BetStatus
from domain.repositories import BetRepository
from infrastructure.db.sqlite import (
    ensure_schema,
    from_db_time,
    read,
    to_db_time,
    transaction,
    utcnow,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS bets (
    id TEXT PRIMARY KEY,
    user_key TEXT NOT NULL,
    stake_amount INTEGER NOT NULL,
    prediction INTEGER NOT NULL,
    client_seed TEXT NOT NULL,
    nonce INTEGER,
    round_id TEXT,
    server_seed_hash TEXT,
    server_seed TEXT,
    outcome INTEGER,
    payout_amount INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    settled_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_bets_user ON bets(user_key, created_at);
CREATE INDEX IF NOT EXISTS idx_bets_status ON bets(status);

CREATE TABLE IF NOT EXISTS bet_nonces (
    user_key TEXT PRIMARY KEY,
    next_nonce INTEGER NOT NULL
);
"""

_COLUMNS = """
    id, user_key, stake_amount, prediction, client_seed, nonce, round_id,
    server_seed_hash, server_seed, outcome, payout_amount, status,
    created_at, settled_at
"""

_PENDING_STATUSES = tuple(s.value for s in BetStatus if s.is_pending)


class SqliteBetRepository(BetRepository):
    """
    SQLite-backed implementation of `BetRepository`.

    Owns the `bets` table and the per-user nonce counters in `bet_nonces`.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _ensure_table(self) -> None:
        ensure_schema(self._db_path, SCHEMA)

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> BetRecord:
        return BetRecord(
            id=str(row[0]),
            user_key=str(row[1]),
            stake_amount=int(row[2]),
            prediction=int(row[3]),
            client_seed=row[4],
            nonce=row[5],
            round_id=row[6],
            server_seed_hash=row[7],
            server_seed=row[8],
            outcome=row[9],
            payout_amount=int(row[10]),
            status=BetStatus(row[11]),
            created_at=from_db_time(row[12]),
            settled_at=from_db_time(row[13]),
        )

    def allocate_nonce(self, user_key: str) -> int:
        with transaction(self._db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO bet_nonces (user_key, next_nonce) VALUES (?, 0)",
                (user_key,),
            )
            row = conn.execute(
                "SELECT next_nonce FROM bet_nonces WHERE user_key = ?",
                (user_key,),
            ).fetchone()
            nonce = int(row[0])
            conn.execute(
                "UPDATE bet_nonces SET next_nonce = ? WHERE user_key = ?",
                (nonce + 1, user_key),
            )
            return nonce

    def peek_nonce(self, user_key: str) -> int:
        with read(self._db_path) as conn:
            row = conn.execute(
                "SELECT next_nonce FROM bet_nonces WHERE user_key = ?",
                (user_key,),
            ).fetchone()
            return int(row[0]) if row else 0

    def save(self, bet: BetRecord) -> None:
        if bet.created_at is None:
            bet.created_at = utcnow()

        with transaction(self._db_path) as conn:
            # Settled rows are final; the WHERE clause turns a late update
            # into a no-op.
            conn.execute(
                f"""
                INSERT INTO bets ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    nonce = excluded.nonce,
                    round_id = excluded.round_id,
                    server_seed_hash = excluded.server_seed_hash,
                    server_seed = excluded.server_seed,
                    outcome = excluded.outcome,
                    payout_amount = excluded.payout_amount,
                    status = excluded.status,
                    settled_at = excluded.settled_at
                WHERE bets.status != 'settled'
                """,
                (
                    bet.id,
                    bet.user_key,
                    bet.stake_amount,
                    bet.prediction,
                    bet.client_seed,
                    bet.nonce,
                    bet.round_id,
                    bet.server_seed_hash,
                    bet.server_seed,
                    bet.outcome,
                    bet.payout_amount,
                    bet.status.value,
                    to_db_time(bet.created_at),
                    to_db_time(bet.settled_at),
                ),
            )

    def get(self, bet_id: str) -> Optional[BetRecord]:
        with read(self._db_path) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM bets WHERE id = ?",
                (bet_id,),
            ).fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def list_for_user(
        self,
        user_key: str,
        status: Optional[BetStatus] = None,
    ) -> List[BetRecord]:
        query = f"SELECT {_COLUMNS} FROM bets WHERE user_key = ?"
        params: list = [user_key]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at, nonce"

        with read(self._db_path) as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._to_domain(row) for row in rows]

    def list_pending(self) -> List[BetRecord]:
        placeholders = ", ".join("?" for _ in _PENDING_STATUSES)
        with read(self._db_path) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM bets WHERE status IN ({placeholders}) ORDER BY created_at",
                _PENDING_STATUSES,
            ).fetchall()
            return [self._to_domain(row) for row in rows]
