import os
import tempfile
import threading
import unittest

from domain.errors import Unavailable
from infrastructure.db.balance_store_sqlite import SqliteBalanceStore


class SqliteBalanceStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "ledger.db")
        self.store = SqliteBalanceStore(self.db_path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_unknown_user_has_zero_balance(self):
        self.assertEqual(self.store.get_balance("nobody"), 0)

    def test_account_is_created_lazily(self):
        account = self.store.get_account("alice")
        self.assertEqual(account.user_key, "alice")
        self.assertEqual(account.balance, 0)
        self.assertEqual(account.version, 0)
        self.assertFalse(account.archived)
        self.assertIsNotNone(account.created_at)

    def test_credit_then_debit(self):
        credit = self.store.credit("alice", 1_000, "dep-1")
        self.assertTrue(credit.applied)
        self.assertEqual(credit.balance, 1_000)

        debit = self.store.reserve_and_debit("alice", 400)
        self.assertTrue(debit.ok)
        self.assertEqual(debit.balance, 600)
        self.assertEqual(self.store.get_balance("alice"), 600)
        self.assertEqual(self.store.get_account("alice").version, 2)

    def test_insufficient_funds_is_not_an_error(self):
        self.store.credit("alice", 100, "dep-1")
        debit = self.store.reserve_and_debit("alice", 200)
        self.assertFalse(debit.ok)
        self.assertEqual(debit.balance, 100)
        self.assertEqual(self.store.get_balance("alice"), 100)
        self.assertEqual(self.store.get_account("alice").version, 1)

    def test_credit_is_idempotent(self):
        self.store.credit("alice", 500, "tx-1")
        again = self.store.credit("alice", 500, "tx-1")
        self.assertFalse(again.applied)
        self.assertEqual(again.balance, 500)
        self.assertEqual(self.store.get_balance("alice"), 500)
        self.assertTrue(self.store.has_applied("tx-1"))
        self.assertFalse(self.store.has_applied("tx-2"))

    def test_debit_with_key_applies_once(self):
        self.store.credit("alice", 500, "tx-1")
        self.store.reserve_and_debit("alice", 200, "bet-1:stake")
        self.store.reserve_and_debit("alice", 200, "bet-1:stake")
        self.assertEqual(self.store.get_balance("alice"), 300)

    def test_rejects_non_positive_amounts(self):
        with self.assertRaises(ValueError):
            self.store.credit("alice", 0, "tx-0")
        with self.assertRaises(ValueError):
            self.store.reserve_and_debit("alice", -5)

    def test_concurrent_debits_never_overdraw(self):
        self.store.credit("alice", 10, "dep-1")
        results = []
        lock = threading.Lock()

        def debit():
            result = self.store.reserve_and_debit("alice", 1)
            with lock:
                results.append(result.ok)

        threads = [threading.Thread(target=debit) for _ in range(30)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results.count(True), 10)
        self.assertEqual(self.store.get_balance("alice"), 0)

    def test_concurrent_credits_and_debits_keep_the_books(self):
        self.store.credit("alice", 50, "dep-0")

        def work(i):
            self.store.credit("alice", 3, f"dep-{i + 1}")
            self.store.reserve_and_debit("alice", 5)

        threads = [threading.Thread(target=work, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        history = self.store.get_history("alice", limit=100)
        self.assertEqual(sum(e.amount for e in history), self.store.get_balance("alice"))
        self.assertGreaterEqual(self.store.get_balance("alice"), 0)
        self.assertTrue(all(e.balance_after >= 0 for e in history))

    def test_history_is_newest_first(self):
        self.store.credit("alice", 100, "dep-1")
        self.store.reserve_and_debit("alice", 30)
        self.store.credit("bob", 5, "dep-2")

        history = self.store.get_history("alice")
        self.assertEqual([e.amount for e in history], [-30, 100])
        self.assertEqual([e.kind for e in history], ["debit", "credit"])
        self.assertEqual(history[0].balance_after, 70)
        self.assertEqual(history[1].idempotency_key, "dep-1")

    def test_archive(self):
        self.store.credit("alice", 100, "dep-1")
        self.store.archive("alice")
        account = self.store.get_account("alice")
        self.assertTrue(account.archived)
        self.assertEqual(account.balance, 100)

    def test_state_survives_a_new_store_instance(self):
        self.store.credit("alice", 100, "dep-1")
        reopened = SqliteBalanceStore(self.db_path)
        self.assertEqual(reopened.get_balance("alice"), 100)
        self.assertFalse(reopened.credit("alice", 100, "dep-1").applied)

    def test_unopenable_database_is_unavailable(self):
        with self.assertRaises(Unavailable):
            SqliteBalanceStore(self._tmp.name)


if __name__ == "__main__":
    unittest.main()
