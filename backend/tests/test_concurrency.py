"""
Concurrency checks against a file-backed SQLite database.

Each worker thread gets its own app context (and so its own session and
connection); the conditional UPDATEs must keep every counter exact.
"""
import os
import tempfile
import threading
import unittest

from app import create_app
from app.errors import AlreadyReceivedError, InsufficientStockError
from app.extensions import db
from app.services import inventory_service, ledger_service, reconciliation_service, store_sale_service, store_service
from app.services import stock_request_service as requests_svc


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 15}},
            "LEDGER_RETRY_ATTEMPTS": 10,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            store = store_service.create_store({"name": "Mylapore", "address": "4 Kutchery Rd"})
            self.store_id = store.id
            saree = inventory_service.create_saree(
                {"name": "Mysore Silk", "price_cents": 120_000, "total_stock": 5, "distribution_channel": "shop"},
                store_allocations=[{"store_id": self.store_id, "quantity": 5}],
            )
            self.saree_id = saree.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_concurrent_store_sales_never_oversell(self):
        def sell_one():
            sale = store_sale_service.create_store_sale(
                self.store_id, [{"saree_id": self.saree_id, "quantity": 1, "unit_price_cents": 120_000}]
            )
            return sale.id

        results, errors = self._run_threads(sell_one, 10)

        self.assertEqual(len(results), 5)
        self.assertEqual(len(errors), 5)
        self.assertTrue(all(isinstance(e, InsufficientStockError) for e in errors), errors)

        with self.app.app_context():
            self.assertEqual(ledger_service.get_store_quantity(self.store_id, self.saree_id), 0)
            self.assertEqual(inventory_service.get_saree(self.saree_id).total_stock, 0)
            self.assertEqual(
                len(ledger_service.list_movements(saree_id=self.saree_id, movement_type="sale")), 5
            )
            self.assertTrue(reconciliation_service.reconcile()["ok"])

    def test_concurrent_receive_applies_once(self):
        with self.app.app_context():
            inventory_service.adjust_warehouse_stock(self.saree_id, 8)
            req = requests_svc.create_stock_request(self.store_id, self.saree_id, 8)
            requests_svc.approve_stock_request(req.id)
            requests_svc.dispatch_stock_request(req.id)
            request_id = req.id

        def receive():
            return requests_svc.receive_stock_request(request_id).status

        results, errors = self._run_threads(receive, 4)

        self.assertEqual(results, ["received"])
        self.assertEqual(len(errors), 3)
        self.assertTrue(all(isinstance(e, AlreadyReceivedError) for e in errors), errors)

        with self.app.app_context():
            self.assertEqual(ledger_service.get_store_quantity(self.store_id, self.saree_id), 13)
            self.assertEqual(ledger_service.get_unallocated_stock(self.saree_id), 0)
            self.assertTrue(reconciliation_service.reconcile()["ok"])


if __name__ == "__main__":
    unittest.main()
