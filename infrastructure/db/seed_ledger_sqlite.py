from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from domain.errors import AlreadyRevealed, DuplicateRound, UnknownRound
from domain.fairness import generate_server_seed, hash_server_seed
from domain.models import SeedCommitment
from domain.repositories import SeedLedger
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
CREATE TABLE IF NOT EXISTS seed_commitments (
    round_id TEXT PRIMARY KEY,
    server_seed TEXT NOT NULL,
    server_seed_hash TEXT NOT NULL,
    revealed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    revealed_at TEXT
);
"""


class SqliteSeedLedger(SeedLedger):
    """
    SQLite-backed implementation of `SeedLedger`.

    Rows in `seed_commitments` are only ever inserted or flipped to
    revealed, never deleted, so every (hash, seed) pair stays available
    for public audit.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _ensure_table(self) -> None:
        ensure_schema(self._db_path, SCHEMA)

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> SeedCommitment:
        return SeedCommitment(
            round_id=str(row[0]),
            server_seed=row[1],
            server_seed_hash=row[2],
            revealed=bool(row[3]),
            created_at=from_db_time(row[4]),
            revealed_at=from_db_time(row[5]),
        )

    def commit(self, round_id: str) -> str:
        server_seed = generate_server_seed()
        server_seed_hash = hash_server_seed(server_seed)

        with transaction(self._db_path) as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO seed_commitments
                        (round_id, server_seed, server_seed_hash, revealed, created_at)
                    VALUES (?, ?, ?, 0, ?)
                    """,
                    (round_id, server_seed, server_seed_hash, to_db_time(utcnow())),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRound(f"Round {round_id} is already committed.") from exc

        logger.debug("Committed round %s (%s)", round_id, server_seed_hash)
        return server_seed_hash

    def reveal(self, round_id: str) -> str:
        with transaction(self._db_path) as conn:
            row = conn.execute(
                "SELECT server_seed, revealed FROM seed_commitments WHERE round_id = ?",
                (round_id,),
            ).fetchone()
            if row is None:
                raise UnknownRound(f"Round {round_id} was never committed.")
            if row[1]:
                raise AlreadyRevealed(f"Round {round_id} has already been revealed.")

            conn.execute(
                """
                UPDATE seed_commitments
                SET revealed = 1, revealed_at = ?
                WHERE round_id = ?
                """,
                (to_db_time(utcnow()), round_id),
            )
            return str(row[0])

    def get(self, round_id: str) -> Optional[SeedCommitment]:
        with read(self._db_path) as conn:
            row = conn.execute(
                """
                SELECT round_id, server_seed, server_seed_hash, revealed, created_at, revealed_at
                FROM seed_commitments
                WHERE round_id = ?
                """,
                (round_id,),
            ).fetchone()
            if not row:
                return None
            return self._to_domain(row)
