from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from domain.errors import InvalidDeposit
from domain.models import DepositEvent, DepositStatus
from domain.repositories import BalanceStore, DepositRepository


logger = logging.getLogger(__name__)

INSUFFICIENT_CONFIRMATIONS = "insufficient_confirmations"
BELOW_MINIMUM = "below_minimum"


@dataclass
class DepositResult:
    tx_hash: str
    status: DepositStatus
    reason: Optional[str] = None
    balance: Optional[int] = None

    @property
    def credited(self) -> bool:
        return self.status == DepositStatus.CREDITED


def deposit_key(tx_hash: str) -> str:
    return f"deposit:{tx_hash}"


def on_deposit_confirmed(
    tx_hash: str,
    user_key: str,
    amount: int,
    confirmations: int,
    balance_store: BalanceStore,
    deposit_repo: DepositRepository,
    min_confirmations: int = 3,
    min_deposit: int = 0,
) -> DepositResult:
    """
    Credit an on-chain deposit exactly once per transaction hash.

    Webhooks are delivered at least once, so the same event may arrive any
    number of times and concurrently. The credit uses `deposit:<tx_hash>` as
    its idempotency key, which the balance store writes in the same
    transaction as the balance change.

    Too few confirmations is not an error: the sender is expected to
    deliver the event again later. Deposits below the minimum are final
    and recorded as rejected.
    """

    if not tx_hash or not user_key:
        raise InvalidDeposit("Deposit events need a transaction hash and a user key.")

    if confirmations < min_confirmations:
        logger.info(
            "Deposit %s has %s/%s confirmations, waiting.",
            tx_hash,
            confirmations,
            min_confirmations,
        )
        return DepositResult(
            tx_hash=tx_hash,
            status=DepositStatus.REJECTED,
            reason=INSUFFICIENT_CONFIRMATIONS,
        )

    if amount <= 0 or amount < min_deposit:
        logger.warning("Deposit %s of %s is below the minimum of %s.", tx_hash, amount, min_deposit)
        # The funds are on-chain even though they are not credited.
        deposit_repo.record_processed(
            DepositEvent(
                tx_hash=tx_hash,
                user_key=user_key,
                amount=amount,
                confirmations=confirmations,
                processed_at=datetime.now(timezone.utc),
                status=DepositStatus.REJECTED,
                reason=BELOW_MINIMUM,
            )
        )
        return DepositResult(
            tx_hash=tx_hash,
            status=DepositStatus.REJECTED,
            reason=BELOW_MINIMUM,
        )

    if deposit_repo.is_processed(tx_hash):
        logger.info("Deposit %s already processed.", tx_hash)
        return DepositResult(tx_hash=tx_hash, status=DepositStatus.ALREADY_PROCESSED)

    credit = balance_store.credit(user_key, amount, deposit_key(tx_hash))

    # Also reached when an earlier delivery credited but died before this
    # write, so the deposit row is always filled in eventually.
    deposit_repo.record_processed(
        DepositEvent(
            tx_hash=tx_hash,
            user_key=user_key,
            amount=amount,
            confirmations=confirmations,
            processed_at=datetime.now(timezone.utc),
        )
    )

    if not credit.applied:
        logger.info("Deposit %s was credited by a concurrent delivery.", tx_hash)
        return DepositResult(
            tx_hash=tx_hash,
            status=DepositStatus.ALREADY_PROCESSED,
            balance=credit.balance,
        )

    logger.info("Credited deposit %s: %s to %s", tx_hash, amount, user_key)
    return DepositResult(
        tx_hash=tx_hash,
        status=DepositStatus.CREDITED,
        balance=credit.balance,
    )
