from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from application.core import LedgerCore
from domain.amounts import format_ada, parse_ada
from domain.errors import InvalidDeposit, InvalidWager, Unavailable, UnknownBet


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """
    Plain-text reply produced by a command.

    `private` asks the front end to deliver the reply only to the caller
    (e.g. a DM), which is used for deposit addresses.
    """

    success: bool
    text: str
    private: bool = False


class CommandError(Exception):
    """The arguments could not be parsed; the message is shown to the user."""


class Command(Protocol):
    name: str
    usage: str
    description: str

    def validate(self, args: Sequence[str]) -> Dict[str, Any]:
        ...

    def execute(
        self,
        core: LedgerCore,
        user_key: str,
        params: Dict[str, Any],
    ) -> CommandResult:
        ...


class BaseCommand:
    name = ""
    usage = ""
    description = ""

    def __init__(self, prefix: str = "!") -> None:
        self.prefix = prefix

    def validate(self, args: Sequence[str]) -> Dict[str, Any]:
        if args:
            raise CommandError(f"Usage: {self.prefix}{self.usage}")
        return {}


class BalanceCommand(BaseCommand):
    name = "balance"
    usage = "balance"
    description = "check your ADA balance"

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        balance = core.get_balance(user_key)
        return CommandResult(success=True, text=f"💰 Your balance: {format_ada(balance)}")


class DepositCommand(BaseCommand):
    name = "deposit"
    usage = "deposit"
    description = "get your deposit address"

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        deposit = core.request_deposit_address(user_key)
        lines = [
            "💳 Send ADA to this address to fund your account:",
            deposit.address,
            "• Only send ADA to this address",
            f"• Address expires at {deposit.expires_at:%Y-%m-%d %H:%M} UTC",
            "• Deposits are credited automatically once confirmed",
        ]
        if core.min_deposit > 0:
            lines.insert(3, f"• Minimum deposit: {format_ada(core.min_deposit)}")
        return CommandResult(success=True, text="\n".join(lines), private=True)


class DiceCommand(BaseCommand):
    name = "dice"
    usage = "dice <bet> <prediction 1-6> <client_seed>"
    description = "bet ADA on the roll of a die"

    def validate(self, args: Sequence[str]) -> Dict[str, Any]:
        if len(args) != 3:
            raise CommandError(f"Usage: {self.prefix}{self.usage}")

        try:
            stake = parse_ada(args[0])
        except ValueError as exc:
            raise CommandError(str(exc)) from exc

        try:
            prediction = int(args[1])
        except ValueError as exc:
            raise CommandError("Prediction must be a number from 1 to 6.") from exc

        return {"stake": stake, "prediction": prediction, "client_seed": args[2]}

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        result = core.place_bet(
            user_key,
            params["stake"],
            params["prediction"],
            params["client_seed"],
        )
        bet = result.bet

        if result.rejected:
            return CommandResult(
                success=False,
                text=(
                    "❌ Insufficient balance\n"
                    f"You need {format_ada(bet.stake_amount)} but only have "
                    f"{format_ada(result.balance)}.\n"
                    f"Use {self.prefix}deposit to fund your account."
                ),
            )

        lines = [
            f"🎯 Your prediction: {bet.prediction}",
            f"🎲 Dice roll: {bet.outcome}",
            f"Bet amount: {format_ada(bet.stake_amount)}",
            "Result: 🎉 WIN!" if result.won else "Result: 😔 Loss",
            f"Payout: {format_ada(result.payout)}",
            f"New balance: {format_ada(result.balance)}",
            "",
            "Provably fair",
            f"Bet id: {bet.id}",
            f"Server seed: {bet.server_seed}",
            f"Server seed hash: {bet.server_seed_hash}",
            f"Client seed: {bet.client_seed}",
            f"Nonce: {bet.nonce}",
        ]
        if result.next_server_seed_hash:
            lines.append(f"Next server seed hash: {result.next_server_seed_hash}")
        return CommandResult(success=True, text="\n".join(lines))


class StatsCommand(BaseCommand):
    name = "stats"
    usage = "stats"
    description = "view your gaming statistics"

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        stats = core.get_stats(user_key)
        profit = stats.profit
        sign = "-" if profit < 0 else ""
        text = "\n".join(
            [
                "📊 Your stats",
                f"Total bets: {stats.total_bets}",
                f"Total wagered: {format_ada(stats.total_wagered)}",
                f"Total won: {format_ada(stats.total_won)}",
                f"Biggest win: {format_ada(stats.biggest_win)}",
                f"Win rate: {stats.win_rate}%",
                f"Profit/Loss: {sign}{format_ada(abs(profit))}",
            ]
        )
        return CommandResult(success=True, text=text)


class FairnessCommand(BaseCommand):
    name = "fairness"
    usage = "fairness"
    description = "show the server seed hash for your next bet"

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        commitment = core.get_next_commitment(user_key)
        text = (
            f"🔒 Next server seed hash (nonce {commitment.nonce}):\n"
            f"{commitment.server_seed_hash}\n"
            "Pick your own client seed, then bet with "
            f"{self.prefix}dice <bet> <prediction> <client_seed>.\n"
            "The server seed is revealed after the roll so you can check it."
        )
        return CommandResult(success=True, text=text)


class VerifyCommand(BaseCommand):
    name = "verify"
    usage = "verify <bet_id>"
    description = "re-check a settled bet against its commitment"

    def validate(self, args: Sequence[str]) -> Dict[str, Any]:
        if len(args) != 1:
            raise CommandError(f"Usage: {self.prefix}{self.usage}")
        return {"bet_id": args[0]}

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        check = core.verify_bet(params["bet_id"])
        if not check.revealed:
            return CommandResult(
                success=False,
                text="This bet has no revealed server seed yet.",
            )

        verdict = "✅ Verified" if check.valid else "❌ Verification failed"
        text = "\n".join(
            [
                verdict,
                f"Server seed: {check.server_seed}",
                f"Server seed hash: {check.server_seed_hash}",
                f"Client seed: {check.client_seed}",
                f"Nonce: {check.nonce}",
                f"Recorded roll: {check.outcome}, recomputed roll: {check.expected_outcome}",
            ]
        )
        return CommandResult(success=check.valid, text=text)


class HistoryCommand(BaseCommand):
    name = "history"
    usage = "history"
    description = "list your last transactions"

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        entries = core.get_history(user_key)
        if not entries:
            return CommandResult(success=True, text="No transactions yet.")

        lines = []
        for entry in entries:
            sign = "+" if entry.amount >= 0 else "-"
            lines.append(
                f"{sign}{format_ada(abs(entry.amount))} {entry.kind} "
                f"(balance {format_ada(entry.balance_after)})"
            )
        return CommandResult(success=True, text="\n".join(lines))


class HelpCommand(BaseCommand):
    name = "help"
    usage = "help"
    description = "show this message"

    def __init__(self, registry: Mapping[str, Command], prefix: str = "!") -> None:
        super().__init__(prefix)
        self._registry = registry

    def execute(self, core: LedgerCore, user_key: str, params: Dict[str, Any]) -> CommandResult:
        width = max(len(c.usage) for c in self._registry.values()) + len(self.prefix)
        lines = [
            f"{(self.prefix + c.usage).ljust(width)}  - {c.description}"
            for c in self._registry.values()
        ]
        return CommandResult(success=True, text="\n".join(lines))


def build_commands(prefix: str = "!") -> Dict[str, Command]:
    registry: Dict[str, Command] = {}
    commands: List[Command] = [
        BalanceCommand(prefix),
        DepositCommand(prefix),
        DiceCommand(prefix),
        StatsCommand(prefix),
        FairnessCommand(prefix),
        VerifyCommand(prefix),
        HistoryCommand(prefix),
    ]
    for command in commands:
        registry[command.name] = command
    registry["help"] = HelpCommand(registry, prefix)
    return registry


def dispatch(
    core: LedgerCore,
    registry: Mapping[str, Command],
    name: str,
    user_key: str,
    args: Sequence[str],
) -> CommandResult:
    """
    Run a command by name and turn every failure into a reply.

    User mistakes come back as their own message. Storage problems and
    unexpected errors are logged and answered with a generic message.
    """

    command: Optional[Command] = registry.get(name)
    if command is None:
        return CommandResult(success=False, text=f"Unknown command: {name}")

    try:
        params = command.validate(args)
        return command.execute(core, user_key, params)
    except (CommandError, InvalidWager, InvalidDeposit, UnknownBet) as exc:
        return CommandResult(success=False, text=f"❌ {exc}")
    except Unavailable:
        logger.warning("Command %s for %s hit an unavailable backend.", name, user_key, exc_info=True)
        return CommandResult(
            success=False,
            text="⚠️ The service is temporarily unavailable. Please try again.",
        )
    except Exception:
        logger.exception("Command %s failed for %s", name, user_key)
        return CommandResult(
            success=False,
            text="❌ An error occurred while executing this command.",
        )
