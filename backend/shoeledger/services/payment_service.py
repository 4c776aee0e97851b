# Overview: Service-layer operations for supplier payments; allocation to credit purchases and balance aggregation.

"""
Payment Allocator

Linked payment (purchase_id given):
- the purchase must belong to the supplier and be a credit purchase
- applied = min(amount, total_cost - paid_amount); paid_amount += applied
- amount above the remaining balance is still recorded in full and the
  result carries an OverpaymentWarning with the excess

Unlinked payment: only the supplier totals move.

Deleting a payment reverses min(applied_amount, paid_amount) on the linked
purchase, so paid_amount returns to what it was before the payment. Editing a
payment releases its old applied_amount the same way and then allocates the
new amount from scratch.

Supplier balance is never stored:
    total_credit = sum(total_cost) over credit purchases
    total_paid   = sum(payment.amount) + sum(initial_paid_amount) over credit purchases
    outstanding  = total_credit - total_paid   (negative means credit in the store's favor)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidAmountError, NotFoundError, OverpaymentWarning
from ..models import Purchase, SupplierPayment
from ..money import to_money
from shoeledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .purchase_service import _money_arg, get_purchase_for_update
from .supplier_service import get_supplier
from ..validation import ValidationError

UPDATABLE_FIELDS = frozenset({"supplier_id", "purchase_id", "amount", "payment_date", "notes"})


@dataclass
class PaymentResult:
    payment: SupplierPayment
    warnings: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class SupplierBalance:
    supplier_id: int
    total_credit: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal

    @property
    def is_overpaid(self) -> bool:
        return self.outstanding_balance < 0

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "total_credit": str(self.total_credit),
            "total_paid": str(self.total_paid),
            "outstanding_balance": str(self.outstanding_balance),
            "is_overpaid": self.is_overpaid,
        }


def _positive_amount(amount) -> Decimal:
    amount = _money_arg("amount", amount)
    if amount <= 0:
        raise InvalidAmountError("amount must be > 0", details={"amount": str(amount)})
    return amount


def _allocate(*, supplier_id: int, purchase_id: int | None, amount: Decimal) -> tuple[Decimal, list]:
    """Apply amount to a linked credit purchase, capped at its remaining balance. No commit."""
    if purchase_id is None:
        return to_money(0), []

    purchase = get_purchase_for_update(purchase_id)
    if purchase.supplier_id != supplier_id:
        raise InvalidAmountError(
            f"Purchase {purchase.id} does not belong to supplier {supplier_id}",
            details={"purchase_id": purchase.id, "supplier_id": supplier_id},
        )
    if not purchase.is_credit:
        raise InvalidAmountError(
            f"Purchase {purchase.id} is not a credit purchase",
            details={"purchase_id": purchase.id},
        )

    remaining = max(to_money(purchase.total_cost) - to_money(purchase.paid_amount), to_money(0))
    applied = min(amount, remaining)
    purchase.paid_amount = to_money(purchase.paid_amount) + applied

    warnings = []
    if amount > remaining:
        warnings.append(
            OverpaymentWarning(
                purchase_id=purchase.id,
                amount=amount,
                applied_amount=applied,
                excess_amount=amount - remaining,
            )
        )
    return applied, warnings


def _release(payment: SupplierPayment) -> Decimal:
    """Undo what a payment applied to its purchase. No commit."""
    if payment.purchase_id is None:
        return to_money(0)
    purchase = get_purchase_for_update(payment.purchase_id)
    released = min(to_money(payment.applied_amount), to_money(purchase.paid_amount))
    purchase.paid_amount = to_money(purchase.paid_amount) - released
    db.session.flush()
    return released


def _log_warnings(result: PaymentResult) -> PaymentResult:
    for warning in result.warnings:
        current_app.logger.warning(
            "Overpayment on purchase %s: amount %s, applied %s, excess %s",
            warning.purchase_id, warning.amount, warning.applied_amount, warning.excess_amount,
        )
    return result


def create_payment(
    *,
    supplier_id: int,
    amount,
    purchase_id: int | None = None,
    payment_date=None,
    notes: str | None = None,
) -> PaymentResult:
    """
    Record a payment to a supplier, optionally against one credit purchase.

    Raises:
        InvalidAmountError: amount <= 0, or the linked purchase is a cash
            purchase or belongs to another supplier
        NotFoundError: unknown supplier or purchase
    """
    amount = _positive_amount(amount)

    def _op():
        get_supplier(supplier_id)
        applied, warnings = _allocate(supplier_id=supplier_id, purchase_id=purchase_id, amount=amount)

        payment = SupplierPayment(
            supplier_id=supplier_id,
            purchase_id=purchase_id,
            amount=amount,
            applied_amount=applied,
            payment_date=payment_date or utcnow(),
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        append_ledger_event(
            event_type="payment.created",
            event_category="payments",
            entity_type="supplier_payment",
            entity_id=payment.id,
            occurred_at=payment.payment_date,
            payload={
                "supplier_id": supplier_id,
                "purchase_id": purchase_id,
                "amount": amount,
                "applied_amount": applied,
            },
        )

        db.session.commit()
        return PaymentResult(payment=payment, warnings=warnings)

    return _log_warnings(run_with_retry(_op))


def update_payment(payment_id: int, **fields) -> PaymentResult:
    """
    Edit a payment and re-run its allocation.

    The old applied_amount is released from its purchase first, then the
    (possibly new) amount is applied to the (possibly new) purchase with the
    usual cap and OverpaymentWarning. Passing purchase_id=None unlinks the
    payment; omitting purchase_id keeps the current link.

    Raises:
        InvalidAmountError: amount <= 0, or the new link is invalid
        NotFoundError: unknown payment, supplier or purchase
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if fields.get("amount") is not None:
        fields["amount"] = _positive_amount(fields["amount"])

    def _op():
        payment = (
            lock_for_update(db.session.query(SupplierPayment).filter(SupplierPayment.id == payment_id))
            .populate_existing()
            .first()
        )
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})
        before = {"supplier_id": payment.supplier_id, "purchase_id": payment.purchase_id, "amount": payment.amount}

        supplier_id = fields.get("supplier_id") or payment.supplier_id
        purchase_id = fields["purchase_id"] if "purchase_id" in fields else payment.purchase_id
        amount = fields.get("amount") or to_money(payment.amount)
        get_supplier(supplier_id)

        released = _release(payment)
        applied, warnings = _allocate(supplier_id=supplier_id, purchase_id=purchase_id, amount=amount)

        payment.supplier_id = supplier_id
        payment.purchase_id = purchase_id
        payment.amount = amount
        payment.applied_amount = applied
        if fields.get("payment_date") is not None:
            payment.payment_date = fields["payment_date"]
        if "notes" in fields:
            payment.notes = fields["notes"]

        append_ledger_event(
            event_type="payment.updated",
            event_category="payments",
            entity_type="supplier_payment",
            entity_id=payment.id,
            payload={
                "before": before,
                "supplier_id": supplier_id,
                "purchase_id": purchase_id,
                "amount": amount,
                "released_amount": released,
                "applied_amount": applied,
            },
        )
        db.session.commit()
        return PaymentResult(payment=payment, warnings=warnings)

    return _log_warnings(run_with_retry(_op))


def get_payment(payment_id: int) -> SupplierPayment:
    payment = db.session.get(SupplierPayment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})
    return payment


def delete_payment(payment_id: int) -> dict:
    """
    Remove a payment and reverse what it applied to its purchase.

    Returns the serialized payment as it was before deletion.
    """
    def _op():
        payment = get_payment(payment_id)
        snapshot = payment.to_dict()
        reversed_amount = _release(payment)

        append_ledger_event(
            event_type="payment.deleted",
            event_category="payments",
            entity_type="supplier_payment",
            entity_id=payment.id,
            payload={
                "supplier_id": payment.supplier_id,
                "purchase_id": payment.purchase_id,
                "amount": payment.amount,
                "reversed_amount": reversed_amount,
            },
        )
        db.session.delete(payment)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def list_payments(*, limit: int = 100, offset: int = 0) -> list[SupplierPayment]:
    return (
        db.session.query(SupplierPayment)
        .order_by(SupplierPayment.payment_date.desc(), SupplierPayment.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_payments_by_supplier(supplier_id: int) -> list[SupplierPayment]:
    get_supplier(supplier_id)
    return (
        db.session.query(SupplierPayment)
        .filter(SupplierPayment.supplier_id == supplier_id)
        .order_by(SupplierPayment.payment_date.desc(), SupplierPayment.id.desc())
        .all()
    )


def get_supplier_balance(supplier_id: int) -> SupplierBalance:
    """Recompute the supplier balance from purchases and payments. Pure read."""
    get_supplier(supplier_id)

    total_credit, initial_paid = (
        db.session.query(
            func.coalesce(func.sum(Purchase.total_cost), 0),
            func.coalesce(func.sum(Purchase.initial_paid_amount), 0),
        )
        .filter(Purchase.supplier_id == supplier_id, Purchase.is_credit.is_(True))
        .one()
    )
    payments_total = (
        db.session.query(func.coalesce(func.sum(SupplierPayment.amount), 0))
        .filter(SupplierPayment.supplier_id == supplier_id)
        .scalar()
    )

    total_credit = to_money(total_credit or 0)
    total_paid = to_money(payments_total or 0) + to_money(initial_paid or 0)
    return SupplierBalance(
        supplier_id=supplier_id,
        total_credit=total_credit,
        total_paid=total_paid,
        outstanding_balance=total_credit - total_paid,
    )
