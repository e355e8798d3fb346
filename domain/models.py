from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


LOVELACE_PER_ADA = 1_000_000


@dataclass
class Account:
    """
    Domain representation of a player's wallet balance.

    `balance` is kept in the smallest currency unit (lovelace) and is never
    negative. `version` is bumped on every mutation.
    """

    user_key: str
    balance: int = 0
    version: int = 0
    archived: bool = False
    created_at: Optional[datetime] = None


@dataclass
class LedgerEntry:
    """One row of an account's transaction history."""

    user_key: str
    amount: int
    kind: str
    balance_after: int
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class DebitResult:
    ok: bool
    balance: int


@dataclass
class CreditResult:
    """
    Result of a credit. `applied` is False when the idempotency key had
    already been used, in which case `balance` is the current balance and
    no mutation took place.
    """

    applied: bool
    balance: int


@dataclass
class SeedCommitment:
    """
    Server seed committed for a single round.

    `server_seed_hash` is public from the moment of commit; `server_seed`
    must only be shown once `revealed` is true.
    """

    round_id: str
    server_seed: str
    server_seed_hash: str
    revealed: bool = False
    created_at: Optional[datetime] = None
    revealed_at: Optional[datetime] = None


class BetStatus(str, Enum):
    CREATED = "created"
    FUNDS_RESERVED = "funds_reserved"
    OUTCOME_COMPUTED = "outcome_computed"
    SETTLED = "settled"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_pending(self) -> bool:
        return self in (
            BetStatus.CREATED,
            BetStatus.FUNDS_RESERVED,
            BetStatus.OUTCOME_COMPUTED,
        )


@dataclass
class BetRecord:
    id: str
    user_key: str
    stake_amount: int
    prediction: int
    client_seed: str
    nonce: Optional[int] = None
    round_id: Optional[str] = None
    server_seed_hash: Optional[str] = None
    server_seed: Optional[str] = None
    outcome: Optional[int] = None
    payout_amount: int = 0
    status: BetStatus = BetStatus.CREATED
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    @property
    def won(self) -> bool:
        return self.outcome is not None and self.outcome == self.prediction


class DepositStatus(str, Enum):
    CREDITED = "credited"
    ALREADY_PROCESSED = "already_processed"
    REJECTED = "rejected"


@dataclass
class DepositEvent:
    """
    A deposit that reached a final decision.

    `status` is `credited`, or `rejected` with a `reason` for funds that
    arrived on-chain but were not added to the balance.
    """

    tx_hash: str
    user_key: str
    amount: int
    confirmations: int
    processed_at: Optional[datetime] = None
    status: DepositStatus = DepositStatus.CREDITED
    reason: Optional[str] = None


@dataclass
class DepositAddress:
    user_key: str
    address: str
    expires_at: datetime


@dataclass
class PlayerStats:
    user_key: str
    total_bets: int = 0
    total_wagered: int = 0
    total_won: int = 0
    biggest_win: int = 0
    wins: int = 0

    @property
    def win_rate(self) -> float:
        if not self.total_bets:
            return 0.0
        return round(100.0 * self.wins / self.total_bets, 1)

    @property
    def profit(self) -> int:
        return self.total_won - self.total_wagered
