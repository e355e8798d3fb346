import tempfile
import threading
import unittest

from application.deposit_reconciler import deposit_key
from domain.errors import InvalidDeposit
from domain.models import DepositStatus
from tests.fakes import make_sqlite_core

ADA = 1_000_000


class DepositReconcilerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.core = make_sqlite_core(self._tmp.name, min_confirmations=3, min_deposit=2 * ADA)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_first_delivery_credits(self):
        result = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)

        self.assertEqual(result.status, DepositStatus.CREDITED)
        self.assertTrue(result.credited)
        self.assertEqual(result.balance, 5 * ADA)
        event = self.core.deposit_repo.get("tx-1")
        self.assertEqual(event.user_key, "alice")
        self.assertIsNotNone(event.processed_at)

    def test_duplicate_delivery_credits_once(self):
        self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)
        again = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 4)

        self.assertEqual(again.status, DepositStatus.ALREADY_PROCESSED)
        self.assertEqual(self.core.get_balance("alice"), 5 * ADA)

    def test_waits_for_confirmations(self):
        early = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 1)

        self.assertEqual(early.status, DepositStatus.REJECTED)
        self.assertEqual(early.reason, "insufficient_confirmations")
        self.assertEqual(self.core.get_balance("alice"), 0)
        self.assertIsNone(self.core.deposit_repo.get("tx-1"))

        later = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)
        self.assertEqual(later.status, DepositStatus.CREDITED)
        self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)
        self.assertEqual(self.core.get_balance("alice"), 5 * ADA)

    def test_below_minimum_is_rejected_and_recorded(self):
        result = self.core.on_deposit_confirmed("tx-1", "alice", ADA, 10)
        self.assertEqual(result.status, DepositStatus.REJECTED)
        self.assertEqual(result.reason, "below_minimum")
        self.assertEqual(self.core.get_balance("alice"), 0)

        event = self.core.deposit_repo.get("tx-1")
        self.assertEqual(event.status, DepositStatus.REJECTED)
        self.assertEqual(event.reason, "below_minimum")
        self.assertEqual(event.amount, ADA)
        self.assertIsNotNone(event.processed_at)
        self.assertFalse(self.core.deposit_repo.is_processed("tx-1"))

        again = self.core.on_deposit_confirmed("tx-1", "alice", ADA, 11)
        self.assertEqual(again.reason, "below_minimum")
        self.assertEqual(self.core.get_balance("alice"), 0)

    def test_missing_identifiers(self):
        with self.assertRaises(InvalidDeposit):
            self.core.on_deposit_confirmed("", "alice", 5 * ADA, 3)
        with self.assertRaises(InvalidDeposit):
            self.core.on_deposit_confirmed("tx-1", "", 5 * ADA, 3)

    def test_concurrent_deliveries_credit_once(self):
        statuses = []
        lock = threading.Lock()

        def deliver():
            result = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)
            with lock:
                statuses.append(result.status)

        threads = [threading.Thread(target=deliver) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(statuses.count(DepositStatus.CREDITED), 1)
        self.assertEqual(statuses.count(DepositStatus.ALREADY_PROCESSED), 9)
        self.assertEqual(self.core.get_balance("alice"), 5 * ADA)

    def test_credit_without_deposit_row_is_repaired(self):
        # An earlier delivery credited the balance but stopped before the
        # deposit row was written.
        self.core.balance_store.credit("alice", 5 * ADA, deposit_key("tx-1"))

        result = self.core.on_deposit_confirmed("tx-1", "alice", 5 * ADA, 3)

        self.assertEqual(result.status, DepositStatus.ALREADY_PROCESSED)
        self.assertEqual(self.core.get_balance("alice"), 5 * ADA)
        self.assertIsNotNone(self.core.deposit_repo.get("tx-1"))
        self.assertTrue(self.core.deposit_repo.is_processed("tx-1"))

    def test_deposits_fund_bets(self):
        self.core.on_deposit_confirmed("tx-1", "alice", 10 * ADA, 3)
        result = self.core.place_bet("alice", 2 * ADA, 4, "client-seed")
        self.assertFalse(result.rejected)
        self.assertEqual(
            self.core.get_balance("alice"),
            8 * ADA + result.payout,
        )

    def test_credited_deposit_publishes_the_first_round(self):
        self.assertIsNone(self.core.seed_ledger.get("alice:0"))

        self.core.on_deposit_confirmed("tx-1", "alice", 10 * ADA, 3)

        commitment = self.core.seed_ledger.get("alice:0")
        self.assertIsNotNone(commitment)
        self.assertFalse(commitment.revealed)

        result = self.core.place_bet("alice", 2 * ADA, 4, "chosen-after-commit")
        self.assertEqual(result.bet.round_id, "alice:0")
        self.assertEqual(result.bet.server_seed_hash, commitment.server_seed_hash)

    def test_deposit_keys_do_not_collide_with_bet_keys(self):
        self.core.on_deposit_confirmed("bet:abc:refund", "alice", 5 * ADA, 3)

        self.assertTrue(self.core.balance_store.has_applied(deposit_key("bet:abc:refund")))
        self.assertFalse(self.core.balance_store.has_applied("bet:abc:refund"))


if __name__ == "__main__":
    unittest.main()
