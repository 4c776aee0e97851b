# Overview: Pytest coverage for the payment allocator and supplier balances.

"""
Payment Allocator Tests

- linked payments move paid_amount up to total_cost and never past it
- overpayment is recorded in full and flagged, never clamped in the aggregate
- deleting a payment reverses exactly what it applied
- editing a payment releases its old allocation before applying the new one
- the supplier balance always equals a from-scratch recomputation
"""

from decimal import Decimal

import pytest
from shoeledger.errors import ConflictError, InvalidAmountError, NotFoundError, OverpaymentWarning
from shoeledger.models import Purchase, SupplierPayment
from shoeledger.services import payment_service, purchase_service


@pytest.fixture
def credit_purchase(supplier_x, shoe_b):
    """total_cost 200000, paid 50000 at creation."""
    return purchase_service.create_purchase(
        supplier_id=supplier_x.id,
        shoe_id=shoe_b.id,
        size="41",
        quantity=10,
        unit_cost="20000",
        is_credit=True,
        initial_paid_amount="50000",
    ).purchase


def _recomputed_outstanding(db_session, supplier_id) -> Decimal:
    purchases = db_session.query(Purchase).filter_by(supplier_id=supplier_id, is_credit=True).all()
    payments = db_session.query(SupplierPayment).filter_by(supplier_id=supplier_id).all()
    credit = sum((p.total_cost for p in purchases), Decimal("0"))
    paid = sum((p.amount for p in payments), Decimal("0")) + sum((p.initial_paid_amount for p in purchases), Decimal("0"))
    return credit - paid


class TestLinkedPayments:
    def test_settling_payment(self, db_session, supplier_x, credit_purchase):
        result = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="150000", purchase_id=credit_purchase.id,
        )

        assert result.warnings == []
        assert result.payment.applied_amount == Decimal("150000")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("200000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("0")

    def test_overpayment_scenario(self, db_session, supplier_x, credit_purchase):
        payment_service.create_payment(supplier_id=supplier_x.id, amount="150000", purchase_id=credit_purchase.id)

        result = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="50000", purchase_id=credit_purchase.id,
        )

        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, OverpaymentWarning)
        assert warning.excess_amount == Decimal("50000")
        assert warning.applied_amount == Decimal("0")
        assert result.payment.amount == Decimal("50000")

        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("200000")
        balance = payment_service.get_supplier_balance(supplier_x.id)
        assert balance.total_paid == Decimal("250000")
        assert balance.outstanding_balance == Decimal("-50000")
        assert balance.is_overpaid is True

    def test_partial_overpayment_applies_remaining_only(self, db_session, supplier_x, credit_purchase):
        result = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="160000", purchase_id=credit_purchase.id,
        )
        assert result.warnings[0].applied_amount == Decimal("150000")
        assert result.warnings[0].excess_amount == Decimal("10000")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("200000")

    def test_payment_cap(self, db_session, supplier_x, credit_purchase):
        for amount in ("70000", "70000", "70000", "1"):
            payment_service.create_payment(supplier_id=supplier_x.id, amount=amount, purchase_id=credit_purchase.id)
            purchase = purchase_service.get_purchase(credit_purchase.id)
            assert purchase.paid_amount <= purchase.total_cost
        assert purchase.paid_amount == Decimal("200000")

    def test_cash_purchase_rejected(self, db_session, supplier_x, shoe_b):
        cash = purchase_service.create_purchase(
            supplier_id=supplier_x.id, shoe_id=shoe_b.id, size="40", quantity=1, unit_cost="100",
        ).purchase
        with pytest.raises(InvalidAmountError):
            payment_service.create_payment(supplier_id=supplier_x.id, amount="10", purchase_id=cash.id)
        assert db_session.query(SupplierPayment).count() == 0

    def test_other_suppliers_purchase_rejected(self, db_session, supplier_y, credit_purchase):
        with pytest.raises(InvalidAmountError):
            payment_service.create_payment(supplier_id=supplier_y.id, amount="10", purchase_id=credit_purchase.id)
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("50000")

    def test_unknown_purchase(self, db_session, supplier_x):
        with pytest.raises(NotFoundError):
            payment_service.create_payment(supplier_id=supplier_x.id, amount="10", purchase_id=404)


class TestUnlinkedPayments:
    def test_unlinked_payment_only_moves_supplier_totals(self, db_session, supplier_x, credit_purchase):
        result = payment_service.create_payment(supplier_id=supplier_x.id, amount="30000")

        assert result.payment.applied_amount == Decimal("0")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("50000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("120000")

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amount(self, db_session, supplier_x, amount):
        with pytest.raises(InvalidAmountError):
            payment_service.create_payment(supplier_id=supplier_x.id, amount=amount)

    def test_unknown_supplier(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.create_payment(supplier_id=999, amount="10")


class TestDeletePayment:
    def test_delete_reverses_applied_amount(self, db_session, supplier_x, credit_purchase):
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="100000", purchase_id=credit_purchase.id,
        ).payment

        deleted = payment_service.delete_payment(payment.id)

        assert deleted["amount"] == "100000.00"
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("50000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("150000")

    def test_deleting_overpayment_keeps_settled_purchase(self, db_session, supplier_x, credit_purchase):
        payment_service.create_payment(supplier_id=supplier_x.id, amount="150000", purchase_id=credit_purchase.id)
        extra = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="50000", purchase_id=credit_purchase.id,
        ).payment

        payment_service.delete_payment(extra.id)

        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("200000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("0")

    def test_delete_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.delete_payment(404)


class TestUpdatePayment:
    def test_larger_amount_is_reallocated(self, db_session, supplier_x, credit_purchase):
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="50000", purchase_id=credit_purchase.id,
        ).payment

        result = payment_service.update_payment(payment.id, amount="100000")
        assert result.warnings == []
        assert result.payment.applied_amount == Decimal("100000")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("150000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("50000")

    def test_update_past_remaining_warns(self, db_session, supplier_x, credit_purchase):
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="50000", purchase_id=credit_purchase.id,
        ).payment

        result = payment_service.update_payment(payment.id, amount="200000")
        assert result.payment.applied_amount == Decimal("150000")
        assert result.warnings[0].excess_amount == Decimal("50000")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("200000")
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("-50000")

    def test_unlink(self, db_session, supplier_x, credit_purchase):
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="30000", purchase_id=credit_purchase.id,
        ).payment

        result = payment_service.update_payment(payment.id, purchase_id=None)
        assert result.payment.purchase_id is None
        assert result.payment.applied_amount == Decimal("0")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("50000")
        # The money still counts for the supplier
        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("120000")

    def test_move_to_another_purchase(self, db_session, supplier_x, shoe_b, credit_purchase):
        second = purchase_service.create_purchase(
            supplier_id=supplier_x.id, shoe_id=shoe_b.id, size="40", quantity=1,
            unit_cost="10000", is_credit=True,
        ).purchase
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="30000", purchase_id=credit_purchase.id,
        ).payment

        result = payment_service.update_payment(payment.id, purchase_id=second.id)
        assert result.payment.applied_amount == Decimal("10000")
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("50000")
        assert purchase_service.get_purchase(second.id).paid_amount == Decimal("10000")

    def test_invalid_link_changes_nothing(self, db_session, supplier_x, supplier_y, credit_purchase):
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="30000", purchase_id=credit_purchase.id,
        ).payment

        with pytest.raises(InvalidAmountError):
            payment_service.update_payment(payment.id, supplier_id=supplier_y.id)
        assert payment_service.get_payment(payment.id).supplier_id == supplier_x.id
        assert purchase_service.get_purchase(credit_purchase.id).paid_amount == Decimal("80000")

    def test_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.update_payment(404, amount="10")

    def test_list_payments(self, db_session, supplier_x, supplier_y):
        first = payment_service.create_payment(supplier_id=supplier_x.id, amount="10").payment
        second = payment_service.create_payment(supplier_id=supplier_y.id, amount="20").payment

        ids = [p.id for p in payment_service.list_payments()]
        assert set(ids) == {first.id, second.id}
        assert len(payment_service.list_payments(limit=1)) == 1


class TestBalanceConsistency:
    def test_balance_matches_recomputation(self, db_session, supplier_x, shoe_b, credit_purchase):
        second = purchase_service.create_purchase(
            supplier_id=supplier_x.id, shoe_id=shoe_b.id, size="40", quantity=3,
            unit_cost="15000", is_credit=True,
        ).purchase
        purchase_service.create_purchase(
            supplier_id=supplier_x.id, shoe_id=shoe_b.id, size="39", quantity=1, unit_cost="9000",
        )

        steps = [
            ("pay", "20000", credit_purchase.id),
            ("pay", "45000", second.id),
            ("pay", "5000", None),
            ("pay", "200000", credit_purchase.id),
            ("delete", 0, None),
            ("pay", "1000", second.id),
            ("delete", 2, None),
        ]
        created = []
        for action, value, purchase_id in steps:
            if action == "pay":
                created.append(
                    payment_service.create_payment(
                        supplier_id=supplier_x.id, amount=value, purchase_id=purchase_id,
                    ).payment.id
                )
            else:
                payment_service.delete_payment(created[value])

            db_session.expire_all()
            balance = payment_service.get_supplier_balance(supplier_x.id)
            assert balance.outstanding_balance == _recomputed_outstanding(db_session, supplier_x.id)
            for purchase in db_session.query(Purchase).filter_by(is_credit=True).all():
                assert Decimal("0") <= purchase.paid_amount <= purchase.total_cost

    def test_list_payments_by_supplier(self, db_session, supplier_x, supplier_y):
        payment_service.create_payment(supplier_id=supplier_x.id, amount="10")
        payment_service.create_payment(supplier_id=supplier_x.id, amount="20")
        payment_service.create_payment(supplier_id=supplier_y.id, amount="30")

        assert len(payment_service.list_payments_by_supplier(supplier_x.id)) == 2

    def test_unknown_supplier_balance(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.get_supplier_balance(999)

    def test_balance_matches_recomputation_through_reversals(self, db_session, supplier_x, shoe_b, credit_purchase):
        other = purchase_service.create_purchase(
            supplier_id=supplier_x.id, shoe_id=shoe_b.id, size="40", quantity=2,
            unit_cost="10000", is_credit=True, initial_paid_amount="5000", add_to_stock=True,
        ).purchase
        payment = payment_service.create_payment(
            supplier_id=supplier_x.id, amount="60000", purchase_id=credit_purchase.id,
        ).payment

        steps = [
            lambda: payment_service.update_payment(payment.id, amount="90000"),
            lambda: purchase_service.update_purchase(credit_purchase.id, unit_cost="25000"),
            lambda: purchase_service.update_purchase(other.id, quantity=1),
            lambda: payment_service.update_payment(payment.id, purchase_id=None),
            lambda: purchase_service.update_purchase(credit_purchase.id, is_credit=False),
            lambda: purchase_service.delete_purchase(other.id),
            lambda: payment_service.delete_payment(payment.id),
            lambda: purchase_service.delete_purchase(credit_purchase.id),
        ]
        for step in steps:
            step()
            db_session.expire_all()
            balance = payment_service.get_supplier_balance(supplier_x.id)
            assert balance.outstanding_balance == _recomputed_outstanding(db_session, supplier_x.id)
            for purchase in db_session.query(Purchase).filter_by(is_credit=True).all():
                applied = sum((p.applied_amount for p in purchase.payments), Decimal("0"))
                assert purchase.paid_amount == purchase.initial_paid_amount + applied
                assert Decimal("0") <= purchase.paid_amount <= purchase.total_cost

        assert payment_service.get_supplier_balance(supplier_x.id).outstanding_balance == Decimal("0")

    def test_payment_blocks_purchase_delete(self, db_session, supplier_x, credit_purchase):
        payment_service.create_payment(supplier_id=supplier_x.id, amount="1", purchase_id=credit_purchase.id)
        with pytest.raises(ConflictError):
            purchase_service.delete_purchase(credit_purchase.id)
