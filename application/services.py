from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List

from domain.models import BetStatus, DepositAddress, LedgerEntry, PlayerStats
from domain.repositories import AddressDeriver, BalanceStore, BetRepository


logger = logging.getLogger(__name__)

DEFAULT_ADDRESS_TTL = timedelta(hours=24)


def get_balance(user_key: str, balance_store: BalanceStore) -> int:
    return balance_store.get_balance(user_key)


def get_history(
    user_key: str,
    balance_store: BalanceStore,
    limit: int = 10,
) -> List[LedgerEntry]:
    return balance_store.get_history(user_key, limit=limit)


def get_stats(user_key: str, bet_repo: BetRepository) -> PlayerStats:
    """
    Aggregate a player's settled bets.

    Failed and rejected bets moved no money, so they are left out.
    """

    stats = PlayerStats(user_key=user_key)
    for bet in bet_repo.list_for_user(user_key, status=BetStatus.SETTLED):
        stats.total_bets += 1
        stats.total_wagered += bet.stake_amount
        stats.total_won += bet.payout_amount
        stats.biggest_win = max(stats.biggest_win, bet.payout_amount)
        if bet.won:
            stats.wins += 1
    return stats


def request_deposit_address(
    user_key: str,
    address_deriver: AddressDeriver,
    ttl: timedelta = DEFAULT_ADDRESS_TTL,
) -> DepositAddress:
    """
    Ask the wallet service for the user's deposit address.

    The address is only advertised for `ttl`; the front end shows the
    expiry so that players fetch a fresh one for later deposits.
    """

    address = address_deriver.derive_address(user_key)
    logger.debug("Issued deposit address for %s", user_key)
    return DepositAddress(
        user_key=user_key,
        address=address,
        expires_at=datetime.now(timezone.utc) + ttl,
    )
