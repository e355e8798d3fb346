import tempfile
import unittest

from application.commands import build_commands, dispatch
from interfaces.telegram.command_text import parse_command
from tests.fakes import StaticAddressDeriver, make_sqlite_core

ADA = 1_000_000


class CommandDispatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.core = make_sqlite_core(
            self._tmp.name,
            seeds=["server-seed"],
            address_deriver=StaticAddressDeriver(),
            min_deposit=2 * ADA,
        )
        self.registry = build_commands("!")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_command(self, name, *args):
        return dispatch(self.core, self.registry, name, "discord:42", list(args))

    def fund(self, amount):
        self.core.balance_store.credit("discord:42", amount, "dep-1")
        self.core.get_next_commitment("discord:42")

    def test_balance(self):
        self.fund(12_500_000)
        result = self.run_command("balance")
        self.assertTrue(result.success)
        self.assertIn("12.50 ADA", result.text)

    def test_dice_win(self):
        self.fund(10 * ADA)

        result = self.run_command("dice", "2", "4", "client-seed")

        self.assertTrue(result.success)
        self.assertIn("WIN", result.text)
        self.assertIn("Payout: 11.00 ADA", result.text)
        self.assertIn("New balance: 19.00 ADA", result.text)
        self.assertIn("Server seed: server-seed", result.text)
        self.assertIn("Next server seed hash:", result.text)

    def test_dice_requires_a_client_seed(self):
        self.fund(10 * ADA)
        result = self.run_command("dice", "0.5", "2")
        self.assertFalse(result.success)
        self.assertIn("Usage: !dice <bet> <prediction 1-6> <client_seed>", result.text)
        self.assertEqual(self.core.bet_repo.list_for_user("discord:42"), [])
        self.assertEqual(self.core.get_balance("discord:42"), 10 * ADA)

    def test_dice_before_any_round_is_published(self):
        self.core.balance_store.credit("discord:42", 10 * ADA, "dep-1")

        refused = self.run_command("dice", "1", "4", "client-seed")

        self.assertFalse(refused.success)
        self.assertIn("Place your bet again", refused.text)
        published = self.core.get_next_commitment("discord:42").server_seed_hash
        self.assertIn(published, refused.text)
        self.assertEqual(self.core.get_balance("discord:42"), 10 * ADA)

        retry = self.run_command("dice", "1", "4", "client-seed")
        self.assertTrue(retry.success)
        self.assertIn(f"Server seed hash: {published}", retry.text)

    def test_dice_insufficient_balance(self):
        self.fund(ADA)
        result = self.run_command("dice", "2", "4", "client-seed")
        self.assertFalse(result.success)
        self.assertIn("Insufficient balance", result.text)
        self.assertIn("!deposit", result.text)

    def test_dice_argument_errors(self):
        self.assertIn("Usage: !dice", self.run_command("dice", "2").text)
        self.assertIn("greater than zero", self.run_command("dice", "-1", "4", "seed").text)
        self.assertIn("6 decimal places", self.run_command("dice", "0.0000001", "4", "seed").text)
        self.assertIn("1 to 6", self.run_command("dice", "1", "four", "seed").text)
        self.assertIn("1 to 6", self.run_command("dice", "1", "9", "seed").text)

    def test_deposit_is_private(self):
        result = self.run_command("deposit")
        self.assertTrue(result.private)
        self.assertIn("addr_test1_1", result.text)
        self.assertIn("Minimum deposit: 2.00 ADA", result.text)

    def test_deposit_without_address_service(self):
        self.core.address_deriver = None
        result = self.run_command("deposit")
        self.assertFalse(result.success)
        self.assertIn("temporarily unavailable", result.text)

    def test_fairness_then_verify(self):
        self.fund(10 * ADA)
        fairness = self.run_command("fairness")
        published = self.core.get_next_commitment("discord:42").server_seed_hash
        self.assertIn(published, fairness.text)

        self.run_command("dice", "1", "4", "client-seed")
        [bet] = self.core.bet_repo.list_for_user("discord:42")

        verify = self.run_command("verify", bet.id)
        self.assertTrue(verify.success)
        self.assertIn("Verified", verify.text)

    def test_verify_unknown_bet(self):
        result = self.run_command("verify", "nope")
        self.assertFalse(result.success)
        self.assertIn("No bet", result.text)

    def test_stats_and_history(self):
        self.fund(10 * ADA)
        self.run_command("dice", "2", "4", "client-seed")

        stats = self.run_command("stats")
        self.assertIn("Total bets: 1", stats.text)
        self.assertIn("Biggest win: 11.00 ADA", stats.text)
        self.assertIn("Profit/Loss: 9.00 ADA", stats.text)

        history = self.run_command("history")
        self.assertIn("+11.00 ADA credit", history.text)
        self.assertIn("-2.00 ADA debit", history.text)

    def test_help_lists_every_command(self):
        text = self.run_command("help").text
        for name in ("balance", "deposit", "dice", "stats", "fairness", "verify", "history", "help"):
            self.assertIn(f"!{name}", text)

    def test_unknown_command(self):
        result = self.run_command("roulette")
        self.assertFalse(result.success)

    def test_unexpected_arguments(self):
        result = self.run_command("balance", "extra")
        self.assertFalse(result.success)
        self.assertIn("Usage: !balance", result.text)


class TelegramCommandTextTests(unittest.TestCase):
    def test_parse_command(self):
        self.assertEqual(parse_command("/dice 2 4 abc"), ("dice", ["2", "4", "abc"]))
        self.assertEqual(parse_command("/Balance@dice_bot"), ("balance", []))
        self.assertIsNone(parse_command("hello"))
        self.assertIsNone(parse_command(""))
        self.assertIsNone(parse_command("/"))


if __name__ == "__main__":
    unittest.main()
