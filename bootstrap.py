from __future__ import annotations

from datetime import timedelta

from application.core import LedgerCore
from application.wager_engine import WagerRules
from config import Settings
from infrastructure.db.balance_store_sqlite import SqliteBalanceStore
from infrastructure.db.bet_repository_sqlite import SqliteBetRepository
from infrastructure.db.deposit_repository_sqlite import SqliteDepositRepository
from infrastructure.db.seed_ledger_sqlite import SqliteSeedLedger
from infrastructure.wallet.address_service_http import HttpAddressDeriver


def build_core(settings: Settings) -> LedgerCore:
    """Wire the SQLite stores and the wallet service into a `LedgerCore`."""

    address_deriver = None
    if settings.address_service_url:
        address_deriver = HttpAddressDeriver(
            settings.address_service_url,
            timeout=settings.address_service_timeout,
        )

    return LedgerCore(
        balance_store=SqliteBalanceStore(settings.db_path),
        seed_ledger=SqliteSeedLedger(settings.db_path),
        bet_repo=SqliteBetRepository(settings.db_path),
        deposit_repo=SqliteDepositRepository(settings.db_path),
        address_deriver=address_deriver,
        rules=WagerRules(
            multiplier=settings.payout_multiplier,
            min_bet=settings.min_bet,
            max_bet=settings.max_bet,
        ),
        min_confirmations=settings.min_confirmations,
        min_deposit=settings.min_deposit,
        address_ttl=timedelta(hours=settings.deposit_address_ttl_hours),
    )
