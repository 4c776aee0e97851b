# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are the counterparty of every purchase and payment. A supplier has
no stored balance; get_supplier_with_balance() attaches a freshly computed one.
"""

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import Purchase, Supplier, SupplierPayment
from ..validation import ValidationError
from .ledger_service import append_ledger_event

_TEXT_FIELDS = ("contact", "address", "notes")


def _clean_optional(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def create_supplier(
    *,
    name: str,
    contact: str | None = None,
    address: str | None = None,
    notes: str | None = None,
) -> Supplier:
    """
    Create a supplier.

    Raises:
        ValidationError: blank name
    """
    if not name or not str(name).strip():
        raise ValidationError("Supplier name is required")

    supplier = Supplier(
        name=str(name).strip(),
        contact=_clean_optional(contact),
        address=_clean_optional(address),
        notes=_clean_optional(notes),
    )
    db.session.add(supplier)
    db.session.flush()

    append_ledger_event(
        event_type="supplier.created",
        event_category="suppliers",
        entity_type="supplier",
        entity_id=supplier.id,
        note=supplier.name,
    )

    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, **fields) -> Supplier:
    supplier = get_supplier(supplier_id)
    changes: dict = {}

    if "name" in fields:
        name = str(fields["name"] or "").strip()
        if not name:
            raise ValidationError("Supplier name cannot be blank")
        changes["name"] = name
    for key in _TEXT_FIELDS:
        if key in fields:
            changes[key] = _clean_optional(fields[key])

    for key, value in changes.items():
        setattr(supplier, key, value)

    append_ledger_event(
        event_type="supplier.updated",
        event_category="suppliers",
        entity_type="supplier",
        entity_id=supplier.id,
        payload={"fields": sorted(changes)},
    )

    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int) -> dict:
    """
    Remove a supplier with no purchases and no payments.

    Raises:
        ConflictError: purchases or payments still reference the supplier
    """
    supplier = get_supplier(supplier_id)
    purchases = db.session.query(Purchase).filter(Purchase.supplier_id == supplier.id).count()
    payments = db.session.query(SupplierPayment).filter(SupplierPayment.supplier_id == supplier.id).count()
    if purchases or payments:
        raise ConflictError(
            f"Supplier {supplier.id} still has purchases or payments",
            details={"supplier_id": supplier.id, "purchases": purchases, "payments": payments},
        )

    snapshot = supplier.to_dict()
    append_ledger_event(
        event_type="supplier.deleted",
        event_category="suppliers",
        entity_type="supplier",
        entity_id=supplier.id,
        note=supplier.name,
    )
    db.session.delete(supplier)
    db.session.commit()
    return snapshot


def list_suppliers(*, limit: int = 100, offset: int = 0) -> list[Supplier]:
    return (
        db.session.query(Supplier)
        .order_by(Supplier.name.asc(), Supplier.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_supplier_with_balance(supplier_id: int) -> dict:
    # Imported here: payment_service depends on this module for get_supplier
    from .payment_service import get_supplier_balance

    supplier = get_supplier(supplier_id)
    data = supplier.to_dict()
    data["balance"] = get_supplier_balance(supplier_id).to_dict()
    return data
