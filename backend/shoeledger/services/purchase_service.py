# Overview: Service-layer operations for supplier purchases; credit tracking, todo workflow and stock intake.

"""
Purchase Service

Purchase invariants:
- total_cost = unit_cost * quantity.
- Cash purchase: paid_amount = initial_paid_amount = total_cost, no linked payments.
- Credit purchase: paid_amount = initial_paid_amount + sum(applied_amount of linked
  payments), and 0 <= paid_amount <= total_cost.
- is_todo is a follow-up flag; it never touches money or stock.

Stock intake (add_to_stock) runs in a savepoint of the purchase transaction.
A failed intake rolls back only the savepoint; the purchase commits and the
result carries a StockReplenishmentWarning. Either both land or the purchase
lands with its warning; there is no state in between.

Edits and deletion keep the ledger reversible:
- net intake of a purchase = its REPLENISH minus REVERSAL movements
- changing shoe, size or quantity of a purchase with intake reverses the old
  intake and takes in the new quantity, all in one transaction
- a purchase with linked payments cannot be deleted, moved to another
  supplier, or turned into a cash purchase (ConflictError)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..extensions import db
from ..errors import ConflictError, EngineError, InvalidAmountError, NotFoundError, StockReplenishmentWarning
from ..models import Purchase, Supplier, SupplierPayment
from ..money import to_money
from shoeledger.time_utils import utcnow
from . import inventory_service
from .catalog_service import get_shoe, normalize_size_label
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .supplier_service import get_supplier
from ..validation import ValidationError

UPDATABLE_FIELDS = frozenset({
    "supplier_id", "shoe_id", "size", "quantity", "unit_cost", "is_credit",
    "initial_paid_amount", "add_to_stock", "is_todo", "notes", "purchase_date",
})


@dataclass
class PurchaseResult:
    purchase: Purchase
    warnings: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "purchase": self.purchase.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _money_arg(name: str, value) -> Decimal:
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"{name} must be a number", details={name: str(value)})
    if isinstance(value, bool) or not amount.is_finite():
        raise InvalidAmountError(f"{name} must be a number", details={name: str(value)})
    return amount


def _size_arg(size) -> str:
    try:
        return normalize_size_label(size)
    except ValidationError as exc:
        raise InvalidAmountError(str(exc), details={"size": size})


def _unit_cost_arg(unit_cost) -> Decimal:
    unit_cost = _money_arg("unit_cost", unit_cost)
    if unit_cost < 0:
        raise InvalidAmountError("unit_cost must be >= 0", details={"unit_cost": str(unit_cost)})
    return unit_cost


def _stock_intake(purchase: Purchase) -> StockReplenishmentWarning | None:
    """
    Take the purchased quantity into stock inside a savepoint.

    Returns None on success. On failure only the savepoint is rolled back and
    a warning describes why. Lock timeouts propagate so the whole purchase is
    retried.
    """
    reason = None
    for _ in range(2):
        try:
            with db.session.begin_nested():
                inventory_service.replenish(
                    shoe_id=purchase.shoe_id,
                    size=purchase.size,
                    quantity=purchase.quantity,
                    purchase_id=purchase.id,
                    note=f"Purchase {purchase.id}",
                    commit=False,
                )
            return None
        except OperationalError:
            raise
        except IntegrityError as exc:
            # A concurrent first intake created the stock row; the second pass updates it
            reason = exc
        except (EngineError, SQLAlchemyError) as exc:
            reason = exc
            break

    return StockReplenishmentWarning(
        purchase_id=purchase.id,
        shoe_id=purchase.shoe_id,
        size=purchase.size,
        quantity=purchase.quantity,
        reason=str(reason),
    )


def _log_warnings(result: PurchaseResult) -> PurchaseResult:
    for warning in result.warnings:
        current_app.logger.warning(
            "Stock intake failed for purchase %s (shoe %s size %s): %s",
            warning.purchase_id, warning.shoe_id, warning.size, warning.reason,
        )
    return result


def create_purchase(
    *,
    supplier_id: int,
    shoe_id: int,
    size,
    quantity: int,
    unit_cost,
    is_credit: bool = False,
    initial_paid_amount=None,
    add_to_stock: bool = False,
    is_todo: bool = False,
    notes: str | None = None,
    purchase_date=None,
) -> PurchaseResult:
    """
    Record a purchase from a supplier.

    Raises:
        InvalidAmountError: quantity <= 0, unit_cost < 0, or an initial payment
            outside 0..total_cost on a credit purchase
        NotFoundError: unknown supplier or shoe
    """
    inventory_service.require_positive_quantity(quantity)
    unit_cost = _unit_cost_arg(unit_cost)
    size_label = _size_arg(size)

    total_cost = to_money(unit_cost * quantity)

    if is_credit:
        initial = _money_arg("initial_paid_amount", initial_paid_amount) if initial_paid_amount is not None else to_money(0)
        if initial < 0 or initial > total_cost:
            raise InvalidAmountError(
                "initial_paid_amount must be between 0 and total_cost",
                details={"initial_paid_amount": str(initial), "total_cost": str(total_cost)},
            )
    else:
        initial = total_cost

    def _op():
        get_supplier(supplier_id)
        get_shoe(shoe_id)

        purchase = Purchase(
            supplier_id=supplier_id,
            shoe_id=shoe_id,
            size=size_label,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            is_credit=bool(is_credit),
            initial_paid_amount=initial,
            paid_amount=initial,
            is_todo=bool(is_todo),
            notes=notes,
            purchase_date=purchase_date or utcnow(),
        )
        db.session.add(purchase)
        db.session.flush()

        append_ledger_event(
            event_type="purchase.created",
            event_category="purchases",
            entity_type="purchase",
            entity_id=purchase.id,
            occurred_at=purchase.purchase_date,
            payload={
                "supplier_id": supplier_id,
                "shoe_id": shoe_id,
                "size": size_label,
                "quantity": quantity,
                "total_cost": total_cost,
                "is_credit": bool(is_credit),
                "paid_amount": initial,
            },
        )

        result = PurchaseResult(purchase=purchase)
        if add_to_stock:
            warning = _stock_intake(purchase)
            if warning is not None:
                result.warnings.append(warning)

        db.session.commit()
        return result

    return _log_warnings(run_with_retry(_op))


def _linked_payments(purchase_id: int) -> tuple[int, Decimal]:
    count, applied = (
        db.session.query(
            func.count(SupplierPayment.id),
            func.coalesce(func.sum(SupplierPayment.applied_amount), 0),
        )
        .filter(SupplierPayment.purchase_id == purchase_id)
        .one()
    )
    return int(count or 0), to_money(applied or 0)


def update_purchase(purchase_id: int, **fields) -> PurchaseResult:
    """
    Edit a purchase. Fields not given keep their stored value.

    Money is recomputed from the merged values: total_cost = unit_cost *
    quantity; a credit purchase keeps paid_amount = initial_paid_amount plus
    what its linked payments applied. add_to_stock=True takes a purchase that
    has no intake yet into stock (warning on failure, as on creation).

    Raises:
        InvalidAmountError: bad quantity or cost, or the linked payments and
            initial payment no longer fit in total_cost
        ConflictError: linked payments block a supplier change or a switch to cash
        InsufficientStockError: the old intake is partly sold and cannot be reversed
        NotFoundError: unknown purchase, supplier, shoe, or (with intake) undeclared size
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if fields.get("quantity") is not None:
        inventory_service.require_positive_quantity(fields["quantity"])
    if fields.get("unit_cost") is not None:
        fields["unit_cost"] = _unit_cost_arg(fields["unit_cost"])
    if fields.get("size") is not None:
        fields["size"] = _size_arg(fields["size"])
    if fields.get("initial_paid_amount") is not None:
        fields["initial_paid_amount"] = _money_arg("initial_paid_amount", fields["initial_paid_amount"])

    def _value(purchase: Purchase, key: str):
        value = fields.get(key)
        return getattr(purchase, key) if value is None else value

    def _op():
        purchase = get_purchase_for_update(purchase_id)
        before = purchase.to_dict()

        supplier_id = _value(purchase, "supplier_id")
        shoe_id = _value(purchase, "shoe_id")
        size = _value(purchase, "size")
        quantity = _value(purchase, "quantity")
        unit_cost = to_money(_value(purchase, "unit_cost"))
        is_credit = bool(_value(purchase, "is_credit"))

        if supplier_id != purchase.supplier_id:
            get_supplier(supplier_id)
        if shoe_id != purchase.shoe_id:
            get_shoe(shoe_id)

        payment_count, applied_total = _linked_payments(purchase.id)
        if payment_count and (supplier_id != purchase.supplier_id or not is_credit):
            raise ConflictError(
                f"Purchase {purchase.id} has linked payments",
                details={"purchase_id": purchase.id, "payments": payment_count},
            )

        total_cost = to_money(unit_cost * quantity)
        if is_credit:
            initial = to_money(_value(purchase, "initial_paid_amount"))
            paid = initial + applied_total
            if initial < 0 or paid > total_cost:
                raise InvalidAmountError(
                    "initial_paid_amount plus linked payments must be between 0 and total_cost",
                    details={
                        "initial_paid_amount": str(initial),
                        "applied_by_payments": str(applied_total),
                        "total_cost": str(total_cost),
                    },
                )
        else:
            initial = paid = total_cost

        intake = inventory_service.purchase_intake(purchase.id)
        if intake > 0:
            same_variant = (shoe_id, size) == (purchase.shoe_id, purchase.size)
            # Same variant: only the difference moves, so sold units do not block the edit
            taken_back = intake - quantity if same_variant else intake
            taken_in = quantity - intake if same_variant else quantity
            if taken_back > 0:
                inventory_service.reverse_purchase_intake(
                    shoe_id=purchase.shoe_id, size=purchase.size, quantity=taken_back, purchase_id=purchase.id,
                )
            if taken_in > 0:
                inventory_service.replenish(
                    shoe_id=shoe_id,
                    size=size,
                    quantity=taken_in,
                    purchase_id=purchase.id,
                    note=f"Purchase {purchase.id} edited",
                    commit=False,
                )

        purchase.supplier_id = supplier_id
        purchase.shoe_id = shoe_id
        purchase.size = size
        purchase.quantity = quantity
        purchase.unit_cost = unit_cost
        purchase.total_cost = total_cost
        purchase.is_credit = is_credit
        purchase.initial_paid_amount = initial
        purchase.paid_amount = paid
        if fields.get("is_todo") is not None:
            purchase.is_todo = bool(fields["is_todo"])
        if "notes" in fields:
            purchase.notes = fields["notes"]
        if fields.get("purchase_date") is not None:
            purchase.purchase_date = fields["purchase_date"]
        db.session.flush()

        result = PurchaseResult(purchase=purchase)
        if fields.get("add_to_stock") and intake == 0:
            warning = _stock_intake(purchase)
            if warning is not None:
                result.warnings.append(warning)

        after = purchase.to_dict()
        append_ledger_event(
            event_type="purchase.updated",
            event_category="purchases",
            entity_type="purchase",
            entity_id=purchase.id,
            payload={
                "fields": sorted(k for k in after if k not in ("updated_at", "version_id") and after[k] != before[k]),
                "total_cost": total_cost,
                "paid_amount": paid,
            },
        )
        db.session.commit()
        return result

    return _log_warnings(run_with_retry(_op))


def delete_purchase(purchase_id: int) -> dict:
    """
    Remove a purchase and take its stock intake back out.

    Returns the serialized purchase as it was before deletion.

    Raises:
        ConflictError: payments are linked to the purchase (delete them first)
        InsufficientStockError: part of the intake is already sold; nothing is written
    """
    def _op():
        purchase = get_purchase_for_update(purchase_id)
        payment_count, _ = _linked_payments(purchase.id)
        if payment_count:
            raise ConflictError(
                f"Purchase {purchase.id} has linked payments",
                details={"purchase_id": purchase.id, "payments": payment_count},
            )

        snapshot = purchase.to_dict()
        intake = inventory_service.purchase_intake(purchase.id)
        if intake > 0:
            inventory_service.reverse_purchase_intake(
                shoe_id=purchase.shoe_id, size=purchase.size, quantity=intake, purchase_id=purchase.id,
            )

        append_ledger_event(
            event_type="purchase.deleted",
            event_category="purchases",
            entity_type="purchase",
            entity_id=purchase.id,
            payload={
                "supplier_id": purchase.supplier_id,
                "total_cost": purchase.total_cost,
                "is_credit": purchase.is_credit,
                "stock_reversed": intake,
            },
        )
        db.session.delete(purchase)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def get_purchase_for_update(purchase_id: int) -> Purchase:
    """Load a purchase with a row lock where the dialect supports one, refreshing stale state."""
    purchase = (
        lock_for_update(db.session.query(Purchase).filter(Purchase.id == purchase_id))
        .populate_existing()
        .first()
    )
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def _set_todo(purchase_id: int, value: bool) -> Purchase:
    def _op():
        purchase = get_purchase_for_update(purchase_id)
        if purchase.is_todo == value:
            return purchase

        purchase.is_todo = value
        append_ledger_event(
            event_type="purchase.todo" if value else "purchase.done",
            event_category="purchases",
            entity_type="purchase",
            entity_id=purchase.id,
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def mark_as_todo(purchase_id: int) -> Purchase:
    """Flag a purchase for supplier follow-up. Idempotent."""
    return _set_todo(purchase_id, True)


def mark_as_done(purchase_id: int) -> Purchase:
    """Clear the follow-up flag. Idempotent."""
    return _set_todo(purchase_id, False)


def list_purchases(*, limit: int = 100, offset: int = 0, is_todo: bool | None = None) -> list[Purchase]:
    q = db.session.query(Purchase)
    if is_todo is not None:
        q = q.filter(Purchase.is_todo.is_(is_todo))
    return q.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).offset(offset).limit(limit).all()


def list_purchases_by_supplier(supplier_id: int) -> list[Purchase]:
    get_supplier(supplier_id)
    return (
        db.session.query(Purchase)
        .filter(Purchase.supplier_id == supplier_id)
        .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .all()
    )


def list_credit_purchases_by_supplier(supplier_id: int) -> list[Purchase]:
    get_supplier(supplier_id)
    return (
        db.session.query(Purchase)
        .filter(Purchase.supplier_id == supplier_id, Purchase.is_credit.is_(True))
        .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .all()
    )


def get_purchase_balance(purchase_id: int) -> dict:
    purchase = get_purchase(purchase_id)
    return {
        "purchase_id": purchase.id,
        "is_credit": purchase.is_credit,
        "total_cost": str(to_money(purchase.total_cost)),
        "paid_amount": str(to_money(purchase.paid_amount)),
        "remaining_balance": str(to_money(purchase.remaining_balance)),
    }


def list_todos_grouped_by_supplier() -> list[dict]:
    """
    Purchases still flagged for follow-up, grouped per supplier.

    Suppliers are ordered by name; purchases within a group newest first.
    """
    rows = (
        db.session.query(Purchase, Supplier)
        .join(Supplier, Supplier.id == Purchase.supplier_id)
        .filter(Purchase.is_todo.is_(True))
        .order_by(Supplier.name.asc(), Supplier.id.asc(), Purchase.purchase_date.desc(), Purchase.id.desc())
        .all()
    )

    groups: dict[int, dict] = {}
    for purchase, supplier in rows:
        group = groups.get(supplier.id)
        if group is None:
            group = groups[supplier.id] = {
                "supplier": supplier.to_dict(),
                "purchases": [],
                "total_cost": Decimal("0"),
                "remaining_balance": Decimal("0"),
            }
        group["purchases"].append(purchase.to_dict())
        group["total_cost"] += purchase.total_cost
        group["remaining_balance"] += purchase.remaining_balance

    result = []
    for group in groups.values():
        group["total_cost"] = str(to_money(group["total_cost"]))
        group["remaining_balance"] = str(to_money(group["remaining_balance"]))
        result.append(group)
    return result
