from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_DOWN, Decimal
from typing import List, Optional

from domain import fairness
from domain.errors import (
    DuplicateRound,
    InvalidWager,
    LedgerError,
    RoundNotCommitted,
    Unavailable,
    UnknownBet,
    UnknownRound,
)
from domain.models import BetRecord, BetStatus, SeedCommitment
from domain.repositories import BalanceStore, BetRepository, SeedLedger


logger = logging.getLogger(__name__)

MAX_CLIENT_SEED_LENGTH = 64
RECOVERY_GRACE_PERIOD = timedelta(minutes=5)


@dataclass(frozen=True)
class WagerRules:
    """
    Game economics for a dice bet.

    A 5.5x payout on a 1-in-6 roll leaves the house an edge of about 8.3%.
    """

    multiplier: Decimal = Decimal("5.5")
    min_bet: Optional[int] = None
    max_bet: Optional[int] = None

    def payout_for(self, stake: int) -> int:
        payout = (Decimal(stake) * self.multiplier).to_integral_value(rounding=ROUND_DOWN)
        return int(payout)


@dataclass
class BetResult:
    """
    What a front end needs to present a bet: the record itself, the
    balance after settlement and the hash committed for the next round.
    """

    bet: BetRecord
    balance: int
    next_server_seed_hash: Optional[str] = None

    @property
    def rejected(self) -> bool:
        return self.bet.status == BetStatus.REJECTED

    @property
    def outcome(self) -> Optional[int]:
        return self.bet.outcome

    @property
    def payout(self) -> int:
        return self.bet.payout_amount

    @property
    def won(self) -> bool:
        return self.bet.won


@dataclass
class NextCommitment:
    user_key: str
    nonce: int
    round_id: str
    server_seed_hash: str


@dataclass
class VerificationResult:
    bet_id: str
    revealed: bool
    hash_matches: bool = False
    outcome_matches: bool = False
    server_seed: Optional[str] = None
    server_seed_hash: Optional[str] = None
    client_seed: Optional[str] = None
    nonce: Optional[int] = None
    outcome: Optional[int] = None
    expected_outcome: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.revealed and self.hash_matches and self.outcome_matches


def _now() -> datetime:
    return datetime.now(timezone.utc)


def round_id_for(user_key: str, nonce: int) -> str:
    return f"{user_key}:{nonce}"


def stake_key(bet_id: str) -> str:
    return f"bet:{bet_id}:stake"


def payout_key(bet_id: str) -> str:
    return f"bet:{bet_id}:payout"


def refund_key(bet_id: str) -> str:
    return f"bet:{bet_id}:refund"


def ensure_commitment(seed_ledger: SeedLedger, round_id: str) -> SeedCommitment:
    """Return the round's commitment, committing it first if needed."""

    commitment = seed_ledger.get(round_id)
    if commitment is not None:
        return commitment

    try:
        seed_ledger.commit(round_id)
    except DuplicateRound:
        logger.debug("Round %s was committed concurrently.", round_id)

    commitment = seed_ledger.get(round_id)
    if commitment is None:
        raise UnknownRound(f"Round {round_id} vanished after commit.")
    return commitment


def get_next_commitment(
    user_key: str,
    seed_ledger: SeedLedger,
    bet_repo: BetRepository,
) -> NextCommitment:
    """
    Publish the hash of the seed the user's next bet will be rolled with.

    Players read this before choosing a client seed.
    """

    nonce = bet_repo.peek_nonce(user_key)
    round_id = round_id_for(user_key, nonce)
    commitment = ensure_commitment(seed_ledger, round_id)
    return NextCommitment(
        user_key=user_key,
        nonce=nonce,
        round_id=round_id,
        server_seed_hash=commitment.server_seed_hash,
    )


def _validate_wager(
    stake: int,
    prediction: int,
    client_seed: str,
    rules: WagerRules,
) -> None:
    if stake <= 0:
        raise InvalidWager("Bet must be greater than zero.")
    if prediction not in range(1, fairness.DIE_FACES + 1):
        raise InvalidWager("Prediction must be a number from 1 to 6.")
    if not client_seed or not client_seed.strip():
        raise InvalidWager("A client seed is required.")
    if len(client_seed) > MAX_CLIENT_SEED_LENGTH:
        raise InvalidWager(f"Client seed must be at most {MAX_CLIENT_SEED_LENGTH} characters.")
    if rules.min_bet is not None and stake < rules.min_bet:
        raise InvalidWager("Bet is below the table minimum.")
    if rules.max_bet is not None and stake > rules.max_bet:
        raise InvalidWager("Bet is above the table maximum.")


def place_bet(
    user_key: str,
    stake: int,
    prediction: int,
    client_seed: str,
    balance_store: BalanceStore,
    seed_ledger: SeedLedger,
    bet_repo: BetRepository,
    rules: WagerRules = WagerRules(),
) -> BetResult:
    """
    Play one dice bet end to end.

    The bet row is written as `created` before any money moves, so a stake
    debited under its key can always be found by `recover_unsettled_bets`.
    A bet that cannot be covered is stored and returned as `rejected`.
    Once the stake is debited, any failure before the payout lands refunds
    the stake under its own idempotency key, marks the bet `failed` and
    re-raises.

    The bet is only rolled against a round whose hash was published before
    the bet arrived. Otherwise the stake is refunded and `RoundNotCommitted`
    carries the freshly published hash for the next attempt.
    """

    _validate_wager(stake, prediction, client_seed, rules)
    if balance_store.get_account(user_key).archived:
        raise InvalidWager("This account has been archived.")

    bet = BetRecord(
        id=uuid.uuid4().hex,
        user_key=user_key,
        stake_amount=stake,
        prediction=prediction,
        client_seed=client_seed.strip(),
        created_at=_now(),
    )
    bet_repo.save(bet)

    debit = balance_store.reserve_and_debit(user_key, stake, stake_key(bet.id))
    if not debit.ok:
        bet.status = BetStatus.REJECTED
        bet.settled_at = _now()
        try:
            bet_repo.save(bet)
        except Unavailable:
            # Nothing was debited; recovery closes the `created` row.
            logger.warning("Could not record rejected bet %s.", bet.id, exc_info=True)
        return BetResult(bet=bet, balance=debit.balance)

    bet.status = BetStatus.FUNDS_RESERVED
    try:
        balance = _roll_and_pay(bet, balance_store, seed_ledger, bet_repo, rules)
    except RoundNotCommitted:
        logger.info("Bet %s arrived before its round was published; refunding.", bet.id)
        _compensate(bet, balance_store, bet_repo)
        raise
    except Exception:
        logger.exception("Bet %s failed after the stake was reserved; refunding.", bet.id)
        _compensate(bet, balance_store, bet_repo)
        raise

    # The payout is final at this point. If recording the settlement fails
    # the bet stays `outcome_computed` and recover_unsettled_bets finishes it.
    bet.status = BetStatus.SETTLED
    bet.settled_at = _now()
    try:
        bet_repo.save(bet)
    except Unavailable:
        logger.warning(
            "Bet %s was paid but its settlement was not recorded; leaving it to recovery.",
            bet.id,
            exc_info=True,
        )

    logger.info(
        "Bet %s settled for %s: stake=%s prediction=%s outcome=%s payout=%s",
        bet.id,
        user_key,
        stake,
        prediction,
        bet.outcome,
        bet.payout_amount,
    )

    result = BetResult(bet=bet, balance=balance)
    try:
        result.next_server_seed_hash = get_next_commitment(
            user_key, seed_ledger, bet_repo
        ).server_seed_hash
    except LedgerError:
        # The next round is committed again on the player's next request.
        logger.warning("Could not pre-commit the next round for %s.", user_key, exc_info=True)
    return result


def _roll_and_pay(
    bet: BetRecord,
    balance_store: BalanceStore,
    seed_ledger: SeedLedger,
    bet_repo: BetRepository,
    rules: WagerRules,
) -> int:
    bet_repo.save(bet)

    bet.nonce = bet_repo.allocate_nonce(bet.user_key)
    bet.round_id = round_id_for(bet.user_key, bet.nonce)
    commitment = seed_ledger.get(bet.round_id)
    if not _published_before(commitment, bet):
        upcoming = get_next_commitment(bet.user_key, seed_ledger, bet_repo)
        raise RoundNotCommitted(
            "No server seed hash was published for this bet yet. "
            f"Next server seed hash: {upcoming.server_seed_hash}. Place your bet again."
        )
    bet.server_seed_hash = commitment.server_seed_hash
    bet_repo.save(bet)

    bet.server_seed = seed_ledger.reveal(bet.round_id)
    bet.outcome = fairness.compute_outcome(bet.server_seed, bet.client_seed, bet.nonce)
    bet.payout_amount = rules.payout_for(bet.stake_amount) if bet.won else 0
    bet.status = BetStatus.OUTCOME_COMPUTED
    bet_repo.save(bet)

    if bet.payout_amount > 0:
        return balance_store.credit(bet.user_key, bet.payout_amount, payout_key(bet.id)).balance
    return balance_store.get_balance(bet.user_key)


def _published_before(commitment: Optional[SeedCommitment], bet: BetRecord) -> bool:
    if commitment is None:
        return False
    if commitment.created_at is None or bet.created_at is None:
        return True
    return commitment.created_at <= bet.created_at


def _compensate(
    bet: BetRecord,
    balance_store: BalanceStore,
    bet_repo: BetRepository,
) -> None:
    """Return the reserved stake and mark the bet failed."""

    try:
        balance_store.credit(bet.user_key, bet.stake_amount, refund_key(bet.id))
        bet.status = BetStatus.FAILED
        bet.settled_at = _now()
        bet_repo.save(bet)
    except Exception:
        # The original failure is re-raised by the caller.
        logger.critical(
            "Compensation for bet %s (user %s, stake %s) did not complete; "
            "recover_unsettled_bets must finish it.",
            bet.id,
            bet.user_key,
            bet.stake_amount,
            exc_info=True,
        )


def recover_unsettled_bets(
    balance_store: BalanceStore,
    bet_repo: BetRepository,
    min_age: timedelta = RECOVERY_GRACE_PERIOD,
) -> List[BetRecord]:
    """
    Drive bets left in a non-terminal state to `settled` or `failed`.

    - A refund already on the ledger means the bet failed.
    - `outcome_computed` bets get their payout (idempotent) and settle.
    - A bet whose stake was never debited is closed as `rejected`.
    - Anything else is refunded.

    Bets younger than `min_age` are skipped so that bets still in flight
    are left alone. Running this repeatedly is safe.
    """

    cutoff = _now() - min_age
    resolved: List[BetRecord] = []

    for bet in bet_repo.list_pending():
        if bet.created_at is not None and bet.created_at > cutoff:
            continue

        if balance_store.has_applied(refund_key(bet.id)):
            bet.status = BetStatus.FAILED
        elif bet.status == BetStatus.OUTCOME_COMPUTED:
            if bet.payout_amount > 0:
                balance_store.credit(bet.user_key, bet.payout_amount, payout_key(bet.id))
            bet.status = BetStatus.SETTLED
        elif not balance_store.has_applied(stake_key(bet.id)):
            bet.status = BetStatus.REJECTED
        else:
            balance_store.credit(bet.user_key, bet.stake_amount, refund_key(bet.id))
            bet.status = BetStatus.FAILED

        bet.settled_at = _now()
        bet_repo.save(bet)
        resolved.append(bet)
        logger.warning("Recovered bet %s as %s", bet.id, bet.status.value)

    return resolved


def verify_bet(
    bet_id: str,
    bet_repo: BetRepository,
    seed_ledger: SeedLedger,
) -> VerificationResult:
    """
    Re-check a bet against the published commitment, exactly as an
    outside auditor would.
    """

    bet = bet_repo.get(bet_id)
    if bet is None:
        raise UnknownBet(f"No bet with id {bet_id}.")

    commitment = seed_ledger.get(bet.round_id) if bet.round_id else None
    if commitment is None or not commitment.revealed or bet.outcome is None:
        return VerificationResult(bet_id=bet_id, revealed=False)

    expected = fairness.compute_outcome(commitment.server_seed, bet.client_seed, bet.nonce)
    hash_matches = fairness.hash_server_seed(commitment.server_seed) == commitment.server_seed_hash
    if bet.server_seed_hash is not None:
        hash_matches = hash_matches and bet.server_seed_hash == commitment.server_seed_hash

    return VerificationResult(
        bet_id=bet_id,
        revealed=True,
        hash_matches=hash_matches,
        outcome_matches=expected == bet.outcome,
        server_seed=commitment.server_seed,
        server_seed_hash=commitment.server_seed_hash,
        client_seed=bet.client_seed,
        nonce=bet.nonce,
        outcome=bet.outcome,
        expected_outcome=expected,
    )
