# Overview: Service-layer operations for the shoe catalog; encapsulates business logic and database work.

"""
Catalog Service

The catalog is read-mostly: the sales and purchase paths only look shoes up.
Create/update exist so a store can maintain its own product list.

SIZES BOUNDARY:
Shoe.sizes is stored as JSON text. parse_sizes() is the only reader; it
returns an ordered tuple of unique, non-empty labels or raises
ValidationError. Stock and sales call require_size() before touching stock,
so a caller can never create stock for a size the shoe does not declare.
"""

from __future__ import annotations

import json
from decimal import Decimal

from ..extensions import db
from ..errors import ConflictError, InvalidAmountError, NotFoundError
from ..models import Purchase, Sale, Shoe, StockEntry, StockMovement
from ..money import to_money
from ..validation import ValidationError
from .ledger_service import append_ledger_event

VALID_CATEGORIES = ("men", "women", "kids")
MAX_SIZE_LABEL_LENGTH = 16


def normalize_size_label(raw) -> str:
    """
    Canonical text form of one size label.

    Every path that stores or looks up a size goes through here, so 43, 43.0
    and " 43 " all address the same variant.
    """
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise ValidationError("size labels must be strings or numbers")
    if isinstance(raw, float):
        label = format(raw, "g")
    else:
        label = str(raw).strip()
    if not label:
        raise ValidationError("size labels cannot be blank")
    if len(label) > MAX_SIZE_LABEL_LENGTH:
        raise ValidationError(f"size label exceeds max length {MAX_SIZE_LABEL_LENGTH}")
    return label


def normalize_sizes(sizes) -> tuple[str, ...]:
    """Normalize an iterable of size labels, keeping first-seen order and dropping duplicates."""
    if isinstance(sizes, (str, bytes)) or not hasattr(sizes, "__iter__"):
        raise ValidationError("sizes must be a list")
    seen: dict[str, None] = {}
    for raw in sizes:
        seen.setdefault(normalize_size_label(raw), None)
    return tuple(seen)


def parse_sizes(text: str | None) -> tuple[str, ...]:
    if text is None or not text.strip():
        return ()
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"sizes is not valid JSON: {exc.msg}")
    if not isinstance(decoded, list):
        raise ValidationError("sizes must encode a JSON list")
    return normalize_sizes(decoded)


def encode_sizes(sizes) -> str:
    return json.dumps(list(normalize_sizes(sizes)))


def get_shoe(shoe_id: int) -> Shoe:
    shoe = db.session.get(Shoe, shoe_id)
    if shoe is None:
        raise NotFoundError(f"Shoe {shoe_id} not found", details={"shoe_id": shoe_id})
    return shoe


def require_size(shoe: Shoe, size) -> str:
    """Return the normalized size label if the shoe declares it, else raise NotFoundError."""
    try:
        label = normalize_size_label(size)
    except ValidationError:
        raise NotFoundError(f"Size {size!r} is not valid for shoe {shoe.id}", details={"shoe_id": shoe.id, "size": size})
    if label not in parse_sizes(shoe.sizes):
        raise NotFoundError(
            f"Size {label} is not declared for shoe {shoe.id}",
            details={"shoe_id": shoe.id, "size": label},
        )
    return label


def _validate_money(name: str, value) -> Decimal:
    value = to_money(value)
    if value < 0:
        raise InvalidAmountError(f"{name} must be >= 0", details={name: str(value)})
    return value


def create_shoe(
    *,
    name: str,
    brand: str,
    sku: str,
    sizes,
    price,
    cost_price,
    category: str = "men",
    description: str | None = None,
) -> Shoe:
    """
    Create a catalog entry.

    Raises:
        ValidationError: blank name/brand/sku, bad category, bad sizes, duplicate SKU
        InvalidAmountError: negative price or cost_price
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not brand or not brand.strip():
        raise ValidationError("brand is required")
    if not sku or not sku.strip():
        raise ValidationError("sku is required")
    if category not in VALID_CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(VALID_CATEGORIES)}")

    size_labels = normalize_sizes(sizes)
    if not size_labels:
        raise ValidationError("at least one size is required")

    sku = sku.strip().upper()
    if db.session.query(Shoe).filter_by(sku=sku).first() is not None:
        raise ValidationError(f"SKU '{sku}' already exists")

    shoe = Shoe(
        name=name.strip(),
        brand=brand.strip(),
        sku=sku,
        category=category,
        description=description,
        sizes=json.dumps(list(size_labels)),
        price=_validate_money("price", price),
        cost_price=_validate_money("cost_price", cost_price),
    )
    db.session.add(shoe)
    db.session.flush()

    append_ledger_event(
        event_type="shoe.created",
        event_category="catalog",
        entity_type="shoe",
        entity_id=shoe.id,
        note=f"{shoe.brand} {shoe.name}",
    )

    db.session.commit()
    return shoe


def update_shoe(shoe_id: int, **fields) -> Shoe:
    """
    Update catalog fields. Existing sales keep their cost snapshot.

    All fields are validated before any attribute is touched. Removing a size
    that still has stock is allowed; the stock entry stays readable but no new
    sale or replenishment can target it.
    """
    shoe = get_shoe(shoe_id)
    changes: dict = {}

    for key in ("name", "brand"):
        if key in fields:
            value = str(fields[key] or "").strip()
            if not value:
                raise ValidationError(f"{key} cannot be blank")
            changes[key] = value
    if "category" in fields:
        if fields["category"] not in VALID_CATEGORIES:
            raise ValidationError(f"category must be one of {', '.join(VALID_CATEGORIES)}")
        changes["category"] = fields["category"]
    if "description" in fields:
        changes["description"] = fields["description"]
    if "sizes" in fields:
        size_labels = normalize_sizes(fields["sizes"])
        if not size_labels:
            raise ValidationError("at least one size is required")
        changes["sizes"] = json.dumps(list(size_labels))
    for key in ("price", "cost_price"):
        if key in fields:
            changes[key] = _validate_money(key, fields[key])
    if "sku" in fields:
        sku = str(fields["sku"] or "").strip().upper()
        if not sku:
            raise ValidationError("sku cannot be blank")
        clash = db.session.query(Shoe).filter(Shoe.sku == sku, Shoe.id != shoe.id).first()
        if clash is not None:
            raise ValidationError(f"SKU '{sku}' already exists")
        changes["sku"] = sku

    for key, value in changes.items():
        setattr(shoe, key, value)

    append_ledger_event(
        event_type="shoe.updated",
        event_category="catalog",
        entity_type="shoe",
        entity_id=shoe.id,
        payload={"fields": sorted(changes)},
    )

    db.session.commit()
    return shoe


def _shoe_references(shoe_id: int) -> dict[str, int]:
    counts = {
        "sales": db.session.query(Sale).filter(Sale.shoe_id == shoe_id).count(),
        "purchases": db.session.query(Purchase).filter(Purchase.shoe_id == shoe_id).count(),
        "stock_entries": db.session.query(StockEntry).filter(StockEntry.shoe_id == shoe_id).count(),
        "stock_movements": db.session.query(StockMovement).filter(StockMovement.shoe_id == shoe_id).count(),
    }
    return {k: v for k, v in counts.items() if v}


def delete_shoe(shoe_id: int) -> dict:
    """
    Remove a catalog entry that nothing refers to.

    A shoe with any sale, purchase, stock row or stock movement keeps its
    history and cannot be deleted (ConflictError). Returns the serialized shoe.
    """
    shoe = get_shoe(shoe_id)
    references = _shoe_references(shoe.id)
    if references:
        raise ConflictError(f"Shoe {shoe.id} is still referenced", details={"shoe_id": shoe.id, **references})

    snapshot = shoe.to_dict()
    append_ledger_event(
        event_type="shoe.deleted",
        event_category="catalog",
        entity_type="shoe",
        entity_id=shoe.id,
        note=f"{shoe.brand} {shoe.name}",
    )
    db.session.delete(shoe)
    db.session.commit()
    return snapshot


def list_shoes(*, limit: int = 100, offset: int = 0) -> tuple[list[Shoe], int]:
    q = db.session.query(Shoe)
    total = q.count()
    shoes = q.order_by(Shoe.brand.asc(), Shoe.name.asc(), Shoe.id.asc()).offset(offset).limit(limit).all()
    return shoes, total
