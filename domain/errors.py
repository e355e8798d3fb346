from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class InvalidWager(LedgerError):
    """The bet request is malformed; the player can correct it."""


class RoundNotCommitted(InvalidWager):
    """
    No server seed hash was published for the bet's round before the bet
    arrived. The stake is refunded and the player bets again.
    """


class InvalidDeposit(LedgerError):
    """A deposit event is missing its transaction hash or user key."""


class UnknownBet(LedgerError):
    pass


class UnknownRound(LedgerError):
    pass


class AlreadyRevealed(LedgerError):
    pass


class DuplicateRound(LedgerError):
    pass


class Unavailable(LedgerError):
    """
    The storage backend failed. The operation had no effect and may be
    retried by the caller.
    """
