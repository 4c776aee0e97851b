# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency Tests

Threads share one SQLite file. Writers may hit "database is locked"
(OperationalError) once retries run out; those attempts must leave nothing
behind. The assertions only check invariants that hold for any interleaving.
"""

import os
import tempfile
import threading
import unittest
from decimal import Decimal

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from shoeledger import create_app
from shoeledger.errors import InsufficientStockError
from shoeledger.extensions import db
from shoeledger.models import Purchase, Sale, SupplierPayment
from shoeledger.services import (
    catalog_service,
    exchange_rate_service,
    inventory_service,
    payment_service,
    purchase_service,
    sales_service,
    supplier_service,
)
from shoeledger.services.concurrency import run_with_retry


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "RETRY_ATTEMPTS": 5,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            shoe = catalog_service.create_shoe(
                name="Concurrent Runner", brand="Test", sku="CONCUR-1",
                sizes=["42"], price="50000", cost_price="20",
            )
            self.shoe_id = shoe.id
            exchange_rate_service.set_rate("1500")
            inventory_service.replenish(shoe_id=self.shoe_id, size="42", quantity=5)

            supplier = supplier_service.create_supplier(name="Concurrent Supplier")
            self.supplier_id = supplier.id
            self.purchase_id = purchase_service.create_purchase(
                supplier_id=self.supplier_id, shoe_id=self.shoe_id, size="42",
                quantity=10, unit_cost="1000", is_credit=True,
            ).purchase.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        outcomes = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    result = target()
                    with lock:
                        outcomes.append(("ok", result))
                except Exception as exc:
                    with lock:
                        outcomes.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return outcomes

    def test_concurrent_sales_never_oversell(self):
        outcomes = self._run_threads(
            lambda: sales_service.create_sale(shoe_id=self.shoe_id, size="42", quantity=2).id,
            count=8,
        )

        for kind, value in outcomes:
            if kind == "error":
                self.assertIsInstance(value, (InsufficientStockError, OperationalError))

        with self.app.app_context():
            remaining = inventory_service.get_quantity(self.shoe_id, "42")
            sold = sum(s.quantity for s in db.session.query(Sale).all())

        succeeded = [v for k, v in outcomes if k == "ok"]
        self.assertLessEqual(sold, 5)
        self.assertEqual(sold, 2 * len(succeeded))
        self.assertGreaterEqual(remaining, 0)
        self.assertEqual(remaining + sold, 5)

    def test_concurrent_payments_respect_cap(self):
        outcomes = self._run_threads(
            lambda: payment_service.create_payment(
                supplier_id=self.supplier_id, amount="3000", purchase_id=self.purchase_id,
            ).payment.id,
            count=6,
        )

        for kind, value in outcomes:
            if kind == "error":
                self.assertIsInstance(value, (OperationalError, StaleDataError))

        with self.app.app_context():
            purchase = db.session.get(Purchase, self.purchase_id)
            payments = db.session.query(SupplierPayment).all()
            applied = sum((p.applied_amount for p in payments), Decimal("0"))

            self.assertLessEqual(purchase.paid_amount, purchase.total_cost)
            self.assertEqual(purchase.paid_amount, purchase.initial_paid_amount + applied)
            self.assertEqual(len(payments), len([k for k, _ in outcomes if k == "ok"]))

    def test_run_with_retry_retries_conflicts_then_succeeds(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("conflict")
            return "done"

        with self.app.app_context():
            self.assertEqual(run_with_retry(flaky, backoff_base=0), "done")
        self.assertEqual(len(calls), 3)

    def test_run_with_retry_does_not_retry_domain_errors(self):
        calls = []

        def failing():
            calls.append(1)
            raise InsufficientStockError(shoe_id=1, size="42", requested=2, available=1)

        with self.app.app_context():
            with self.assertRaises(InsufficientStockError):
                run_with_retry(failing, backoff_base=0)
        self.assertEqual(len(calls), 1)


if __name__ == "__main__":
    unittest.main()
