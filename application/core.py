from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from application import services, wager_engine
from application.deposit_reconciler import DepositResult, on_deposit_confirmed
from application.wager_engine import (
    BetResult,
    NextCommitment,
    VerificationResult,
    WagerRules,
)
from domain.errors import LedgerError, Unavailable
from domain.models import BetRecord, DepositAddress, LedgerEntry, PlayerStats
from domain.repositories import (
    AddressDeriver,
    BalanceStore,
    BetRepository,
    DepositRepository,
    SeedLedger,
)


logger = logging.getLogger(__name__)


@dataclass
class LedgerCore:
    """
    The narrow surface the front ends talk to.

    Holds the repositories and the configured rules, and forwards to the
    application functions. Nothing here knows about Discord, Telegram or
    HTTP.
    """

    balance_store: BalanceStore
    seed_ledger: SeedLedger
    bet_repo: BetRepository
    deposit_repo: DepositRepository
    address_deriver: Optional[AddressDeriver] = None
    rules: WagerRules = field(default_factory=WagerRules)
    min_confirmations: int = 3
    min_deposit: int = 0
    address_ttl: timedelta = services.DEFAULT_ADDRESS_TTL

    def place_bet(
        self,
        user_key: str,
        stake: int,
        prediction: int,
        client_seed: str,
    ) -> BetResult:
        return wager_engine.place_bet(
            user_key,
            stake,
            prediction,
            client_seed,
            self.balance_store,
            self.seed_ledger,
            self.bet_repo,
            self.rules,
        )

    def get_balance(self, user_key: str) -> int:
        return services.get_balance(user_key, self.balance_store)

    def get_history(self, user_key: str, limit: int = 10) -> List[LedgerEntry]:
        return services.get_history(user_key, self.balance_store, limit=limit)

    def get_stats(self, user_key: str) -> PlayerStats:
        return services.get_stats(user_key, self.bet_repo)

    def get_next_commitment(self, user_key: str) -> NextCommitment:
        return wager_engine.get_next_commitment(user_key, self.seed_ledger, self.bet_repo)

    def verify_bet(self, bet_id: str) -> VerificationResult:
        return wager_engine.verify_bet(bet_id, self.bet_repo, self.seed_ledger)

    def recover_unsettled_bets(
        self,
        min_age: timedelta = wager_engine.RECOVERY_GRACE_PERIOD,
    ) -> List[BetRecord]:
        return wager_engine.recover_unsettled_bets(
            self.balance_store,
            self.bet_repo,
            min_age=min_age,
        )

    def request_deposit_address(self, user_key: str) -> DepositAddress:
        if self.address_deriver is None:
            raise Unavailable("No deposit address service is configured.")
        address = services.request_deposit_address(
            user_key,
            self.address_deriver,
            ttl=self.address_ttl,
        )
        self._publish_next_round(user_key)
        return address

    def on_deposit_confirmed(
        self,
        tx_hash: str,
        user_key: str,
        amount: int,
        confirmations: int,
    ) -> DepositResult:
        result = on_deposit_confirmed(
            tx_hash,
            user_key,
            amount,
            confirmations,
            self.balance_store,
            self.deposit_repo,
            min_confirmations=self.min_confirmations,
            min_deposit=self.min_deposit,
        )
        if result.credited:
            self._publish_next_round(user_key)
        return result

    def _publish_next_round(self, user_key: str) -> None:
        # A funded player's first bet must find its round already committed.
        try:
            wager_engine.get_next_commitment(user_key, self.seed_ledger, self.bet_repo)
        except LedgerError:
            logger.warning("Could not pre-commit the next round for %s.", user_key, exc_info=True)
