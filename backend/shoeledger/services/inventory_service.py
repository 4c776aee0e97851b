# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

# backend/shoeledger/services/inventory_service.py

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import InsufficientStockError, InvalidAmountError, NotFoundError
from ..models import StockEntry, StockMovement
from ..validation import ValidationError
from shoeledger.time_utils import utcnow
from .catalog_service import get_shoe, normalize_size_label, require_size
from .ledger_service import append_ledger_event
from .concurrency import run_with_retry
"""
Stock Ledger Invariants (authoritative)

Stock model:
- One StockEntry row per variant (shoe_id, size), created lazily by the first replenishment.
- A variant without a row has quantity 0.
- quantity >= 0 always (service guarantee, backed by a DB check constraint).
- Sizes are addressed by catalog_service.normalize_size_label() on reads and writes alike.

Mutations:
- replenish():             +delta, delta > 0, size must be declared by the catalog.
- reserve_and_decrement(): -qty via a single conditional UPDATE
                           (quantity = quantity - qty WHERE quantity >= qty).
                           Zero rows updated means InsufficientStock; nothing is written.
                           Fails fast; there is no waiting for stock.
- compensate():            +qty, used only when a sale is deleted. Never fails for qty > 0
                           and does not re-check the catalog (sizes may have been removed since).
- reverse_purchase_intake(): -qty, conditional like a sale; undoes a purchase's intake when the
                           purchase is edited or deleted.
- set_quantity() / delete_stock_entry(): manual correction of one row. Compare-and-set on the
                           quantity that was read, so the recorded delta is exact.

Audit:
- Every mutation appends a StockMovement (REPLENISH / SALE / COMPENSATE / REVERSAL / ADJUST)
  in the same DB transaction, so compensation stays distinguishable from replenishment.
"""

MOVEMENT_REPLENISH = "REPLENISH"
MOVEMENT_SALE = "SALE"
MOVEMENT_COMPENSATE = "COMPENSATE"
MOVEMENT_REVERSAL = "REVERSAL"
MOVEMENT_ADJUST = "ADJUST"

REPLENISH_RETRY_ON = (OperationalError, StaleDataError, IntegrityError)


def require_positive_quantity(quantity, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidAmountError(f"{field} must be an integer", details={field: quantity})
    if quantity <= 0:
        raise InvalidAmountError(f"{field} must be > 0", details={field: quantity})
    return quantity


def _resolve_variant(shoe_id: int, size) -> str:
    shoe = get_shoe(shoe_id)
    return require_size(shoe, size)


def _find_entry(shoe_id: int, size: str) -> StockEntry | None:
    return (
        db.session.query(StockEntry)
        .filter_by(shoe_id=shoe_id, size=size)
        .populate_existing()
        .first()
    )


def _lookup_label(size) -> str | None:
    # None: the input cannot name any variant
    try:
        return normalize_size_label(size)
    except ValidationError:
        return None


def get_quantity(shoe_id: int, size) -> int:
    """Quantity on hand for a variant; 0 when nothing was ever recorded. Never fails."""
    label = _lookup_label(size)
    if label is None:
        return 0
    quantity = (
        db.session.query(StockEntry.quantity)
        .filter(StockEntry.shoe_id == shoe_id, StockEntry.size == label)
        .scalar()
    )
    return int(quantity or 0)


def record_movement(
    *,
    shoe_id: int,
    size: str,
    kind: str,
    quantity_delta: int,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        shoe_id=shoe_id,
        size=size,
        kind=kind,
        quantity_delta=quantity_delta,
        sale_id=sale_id,
        purchase_id=purchase_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _add_quantity(shoe_id: int, size: str, delta: int) -> StockEntry:
    """Add delta to a variant, creating the row when absent. No commit."""
    result = db.session.execute(
        update(StockEntry)
        .where(StockEntry.shoe_id == shoe_id, StockEntry.size == size)
        .values(quantity=StockEntry.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # A concurrent first replenishment of the same variant raises IntegrityError
        # on the unique constraint here; the caller retries and takes the UPDATE path.
        db.session.add(StockEntry(shoe_id=shoe_id, size=size, quantity=delta))
        db.session.flush()
    return _find_entry(shoe_id, size)


def _replenish_inner(
    *,
    shoe_id: int,
    size: str,
    quantity: int,
    purchase_id: int | None = None,
    note: str | None = None,
) -> StockEntry:
    """Core REPLENISH logic without validation, retry, or commit."""
    entry = _add_quantity(shoe_id, size, quantity)
    record_movement(
        shoe_id=shoe_id,
        size=size,
        kind=MOVEMENT_REPLENISH,
        quantity_delta=quantity,
        purchase_id=purchase_id,
        note=note,
    )
    return entry


def replenish(
    *,
    shoe_id: int,
    size,
    quantity: int,
    purchase_id: int | None = None,
    note: str | None = None,
    commit: bool = True,
) -> StockEntry:
    """
    Add quantity to a variant. No upper bound.

    With commit=False the caller owns the transaction (purchase intake runs
    inside the purchase's savepoint).

    Raises:
        InvalidAmountError: quantity is not a positive integer
        NotFoundError: unknown shoe or size not declared for the shoe
    """
    require_positive_quantity(quantity)

    def _op():
        label = _resolve_variant(shoe_id, size)
        entry = _replenish_inner(
            shoe_id=shoe_id,
            size=label,
            quantity=quantity,
            purchase_id=purchase_id,
            note=note,
        )
        append_ledger_event(
            event_type="stock.replenished",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry.id,
            note=note,
            payload={"shoe_id": shoe_id, "size": label, "quantity": quantity, "purchase_id": purchase_id},
        )
        if commit:
            db.session.commit()
        return entry

    if not commit:
        return _op()
    return run_with_retry(_op, retry_on=REPLENISH_RETRY_ON)


def bulk_replenish(*, shoe_id: int, entries: list[dict], note: str | None = None) -> list[StockEntry]:
    """
    Replenish several sizes of one shoe in a single transaction.

    entries: [{"size": "42", "quantity": 3}, ...]. Repeated sizes are summed.
    All-or-nothing: one bad size or quantity rejects the whole batch.
    """
    if not entries:
        raise InvalidAmountError("entries must not be empty")

    totals: dict = {}
    for item in entries:
        if not isinstance(item, dict) or "size" not in item or "quantity" not in item:
            raise InvalidAmountError("each entry requires size and quantity")
        qty = require_positive_quantity(item["quantity"])
        key = _lookup_label(item["size"])
        if key is None:
            raise NotFoundError(f"Size {item['size']!r} is not valid for shoe {shoe_id}", details={"shoe_id": shoe_id})
        totals[key] = totals.get(key, 0) + qty

    def _op():
        shoe = get_shoe(shoe_id)
        for label in totals:
            require_size(shoe, label)

        results = []
        for label, qty in totals.items():
            entry = _replenish_inner(shoe_id=shoe_id, size=label, quantity=qty, note=note)
            results.append(entry)

        append_ledger_event(
            event_type="stock.bulk_replenished",
            event_category="stock",
            entity_type="shoe",
            entity_id=shoe_id,
            note=note,
            payload={"sizes": dict(totals)},
        )
        db.session.commit()
        return results

    return run_with_retry(_op, retry_on=REPLENISH_RETRY_ON)


def _reserve_and_decrement_inner(*, shoe_id: int, size: str, quantity: int) -> None:
    """
    Atomically take quantity from a variant. No commit.

    The WHERE clause is the serialization point: two concurrent callers can
    never both succeed against stock that only covers one of them.
    """
    result = db.session.execute(
        update(StockEntry)
        .where(
            StockEntry.shoe_id == shoe_id,
            StockEntry.size == size,
            StockEntry.quantity >= quantity,
        )
        .values(quantity=StockEntry.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(
            shoe_id=shoe_id,
            size=size,
            requested=quantity,
            available=get_quantity(shoe_id, size),
        )


def reserve_and_decrement(*, shoe_id: int, size, quantity: int, note: str | None = None) -> StockEntry:
    """
    Standalone decrement of a variant (sales call the inner function inside their own transaction).

    Raises:
        InvalidAmountError: quantity is not a positive integer
        NotFoundError: unknown shoe or undeclared size
        InsufficientStockError: quantity exceeds stock; nothing is written
    """
    require_positive_quantity(quantity)

    def _op():
        label = _resolve_variant(shoe_id, size)
        _reserve_and_decrement_inner(shoe_id=shoe_id, size=label, quantity=quantity)
        record_movement(shoe_id=shoe_id, size=label, kind=MOVEMENT_SALE, quantity_delta=-quantity, note=note)
        db.session.commit()
        return _find_entry(shoe_id, label)

    return run_with_retry(_op)


def compensate(*, shoe_id: int, size: str, quantity: int, sale_id: int | None = None, commit: bool = True) -> StockEntry:
    """
    Return quantity taken by a sale. Only sales_service calls this.

    Does not consult the catalog: a size removed from the shoe after the sale
    still gets its stock back.
    """
    require_positive_quantity(quantity)

    def _op():
        entry = _add_quantity(shoe_id, size, quantity)
        record_movement(
            shoe_id=shoe_id,
            size=size,
            kind=MOVEMENT_COMPENSATE,
            quantity_delta=quantity,
            sale_id=sale_id,
            note=f"Sale {sale_id} deleted" if sale_id is not None else None,
        )
        if commit:
            db.session.commit()
        return entry

    if not commit:
        return _op()
    return run_with_retry(_op, retry_on=REPLENISH_RETRY_ON)


def reverse_purchase_intake(*, shoe_id: int, size: str, quantity: int, purchase_id: int) -> None:
    """
    Take back stock a purchase added. No commit; purchase_service owns the transaction.

    Conditional like a sale: if part of that stock is already sold, raises
    InsufficientStockError and nothing is written.
    """
    require_positive_quantity(quantity)
    _reserve_and_decrement_inner(shoe_id=shoe_id, size=size, quantity=quantity)
    record_movement(
        shoe_id=shoe_id,
        size=size,
        kind=MOVEMENT_REVERSAL,
        quantity_delta=-quantity,
        purchase_id=purchase_id,
        note=f"Purchase {purchase_id} intake reversed",
    )


def purchase_intake(purchase_id: int) -> int:
    """Net quantity a purchase currently has in stock (intakes minus reversals)."""
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0))
        .filter(
            StockMovement.purchase_id == purchase_id,
            StockMovement.kind.in_((MOVEMENT_REPLENISH, MOVEMENT_REVERSAL)),
        )
        .scalar()
    )
    return int(total or 0)


def get_stock_entry(*, shoe_id: int, size) -> StockEntry:
    label = _lookup_label(size)
    entry = _find_entry(shoe_id, label) if label is not None else None
    if entry is None:
        raise NotFoundError(f"No stock recorded for shoe {shoe_id} size {size}", details={"shoe_id": shoe_id, "size": size})
    return entry


def get_stock_entry_by_id(entry_id: int) -> StockEntry:
    entry = db.session.get(StockEntry, entry_id, populate_existing=True)
    if entry is None:
        raise NotFoundError(f"Stock entry {entry_id} not found", details={"stock_entry_id": entry_id})
    return entry


def set_quantity(entry_id: int, quantity, note: str | None = None) -> StockEntry:
    """
    Overwrite the quantity of one stock row (stock count correction).

    The write only lands if the row still holds the quantity that was read;
    a concurrent sale in between raises StaleDataError and the whole read-write
    is retried. The ADJUST movement records the exact delta.

    Raises:
        InvalidAmountError: quantity is not an integer >= 0
        NotFoundError: unknown stock entry
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise InvalidAmountError("quantity must be an integer >= 0", details={"quantity": quantity})

    def _op():
        entry = get_stock_entry_by_id(entry_id)
        previous = entry.quantity
        if previous == quantity:
            return entry

        result = db.session.execute(
            update(StockEntry)
            .where(StockEntry.id == entry.id, StockEntry.quantity == previous)
            .values(quantity=quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDataError(f"Stock entry {entry.id} changed while being adjusted")

        record_movement(
            shoe_id=entry.shoe_id,
            size=entry.size,
            kind=MOVEMENT_ADJUST,
            quantity_delta=quantity - previous,
            note=note,
        )
        append_ledger_event(
            event_type="stock.adjusted",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry.id,
            note=note,
            payload={"shoe_id": entry.shoe_id, "size": entry.size, "from": previous, "to": quantity},
        )
        db.session.commit()
        return get_stock_entry_by_id(entry_id)

    return run_with_retry(_op)


def delete_stock_entry(entry_id: int, note: str | None = None) -> dict:
    """
    Remove one stock row. The variant reads as 0 afterwards and a later
    replenish or compensate creates the row again.

    Returns the serialized row as it was when deleted.
    """
    def _op():
        entry = get_stock_entry_by_id(entry_id)
        snapshot = entry.to_dict()

        result = db.session.execute(
            delete(StockEntry)
            .where(StockEntry.id == entry.id, StockEntry.quantity == entry.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDataError(f"Stock entry {entry.id} changed while being deleted")

        if entry.quantity:
            record_movement(
                shoe_id=entry.shoe_id,
                size=entry.size,
                kind=MOVEMENT_ADJUST,
                quantity_delta=-entry.quantity,
                note=note or "Stock entry deleted",
            )
        append_ledger_event(
            event_type="stock.deleted",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry.id,
            note=note,
            payload={"shoe_id": entry.shoe_id, "size": entry.size, "quantity": entry.quantity},
        )
        db.session.expunge(entry)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def list_stock(*, shoe_id: int | None = None, limit: int = 100, offset: int = 0) -> list[StockEntry]:
    q = db.session.query(StockEntry)
    if shoe_id is not None:
        q = q.filter(StockEntry.shoe_id == shoe_id)
    return q.order_by(StockEntry.shoe_id.asc(), StockEntry.size.asc()).offset(offset).limit(limit).all()


def list_below(threshold: int) -> list[StockEntry]:
    """Variants with quantity strictly below threshold, emptiest first. Pure read."""
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
        raise InvalidAmountError("threshold must be a non-negative integer", details={"threshold": threshold})
    return (
        db.session.query(StockEntry)
        .filter(StockEntry.quantity < threshold)
        .order_by(StockEntry.quantity.asc(), StockEntry.shoe_id.asc(), StockEntry.size.asc())
        .all()
    )


def list_movements(*, shoe_id: int, size=None, limit: int = 200) -> list[StockMovement]:
    q = db.session.query(StockMovement).filter(StockMovement.shoe_id == shoe_id)
    if size is not None:
        label = _lookup_label(size)
        if label is None:
            return []
        q = q.filter(StockMovement.size == label)
    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()
