from __future__ import annotations

from typing import List, Optional, Protocol

from .models import (
    Account,
    BetRecord,
    BetStatus,
    CreditResult,
    DebitResult,
    DepositEvent,
    LedgerEntry,
    SeedCommitment,
)


class BalanceStore(Protocol):
    """
    Abstraction over balance persistence.

    Implementations are responsible for:
    - Applying each debit and credit atomically per `user_key`.
    - Never letting a balance go negative.
    - Recording a `LedgerEntry` in the same unit of work as the mutation.
    - Raising `Unavailable` (with nothing applied) on storage failure.
    """

    def get_account(self, user_key: str) -> Account:
        """Return the account, creating an empty one on first reference."""

        ...

    def get_balance(self, user_key: str) -> int:
        ...

    def reserve_and_debit(
        self,
        user_key: str,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> DebitResult:
        """
        Deduct `amount` if the balance covers it.

        Insufficient funds is reported through `DebitResult.ok`, not raised.
        """

        ...

    def credit(
        self,
        user_key: str,
        amount: int,
        idempotency_key: str,
    ) -> CreditResult:
        """
        Add `amount` exactly once per `idempotency_key`.

        A repeated key leaves the balance untouched and returns
        `CreditResult(applied=False, ...)`.
        """

        ...

    def has_applied(self, idempotency_key: str) -> bool:
        ...

    def archive(self, user_key: str) -> None:
        ...

    def get_history(self, user_key: str, limit: int = 10) -> List[LedgerEntry]:
        """Return the most recent ledger entries, newest first."""

        ...


class SeedLedger(Protocol):
    """
    Append-only store of server seed commitments.

    `commit` publishes a hash before a round is played; `reveal` hands out
    the seed once, after the round's outcome has been decided.
    """

    def commit(self, round_id: str) -> str:
        """Generate and store a seed; raise `DuplicateRound` if it exists."""

        ...

    def reveal(self, round_id: str) -> str:
        """
        Return the seed for `round_id`.

        Raises `UnknownRound` if it was never committed and
        `AlreadyRevealed` on every call after the first.
        """

        ...

    def get(self, round_id: str) -> Optional[SeedCommitment]:
        ...


class BetRepository(Protocol):
    def allocate_nonce(self, user_key: str) -> int:
        """Atomically reserve and return the user's next nonce."""

        ...

    def peek_nonce(self, user_key: str) -> int:
        """Return the nonce the user's next bet will receive."""

        ...

    def save(self, bet: BetRecord) -> None:
        """Insert or update a bet. Settled bets must not be modified."""

        ...

    def get(self, bet_id: str) -> Optional[BetRecord]:
        ...

    def list_for_user(
        self,
        user_key: str,
        status: Optional[BetStatus] = None,
    ) -> List[BetRecord]:
        ...

    def list_pending(self) -> List[BetRecord]:
        """Return bets stuck in a non-terminal state."""

        ...


class DepositRepository(Protocol):
    def is_processed(self, tx_hash: str) -> bool:
        ...

    def record_processed(self, event: DepositEvent) -> None:
        """Store the decided event with `processed_at` set. Repeats are ignored."""

        ...

    def get(self, tx_hash: str) -> Optional[DepositEvent]:
        ...


class AddressDeriver(Protocol):
    """Capability of an external wallet service to issue deposit addresses."""

    def derive_address(self, user_key: str) -> str:
        ...
