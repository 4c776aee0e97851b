# Overview: Service-layer operations for sales; stock reservation, snapshots and sale statistics.

"""
Sales Service - single-variant sales with a cost/rate snapshot

Creation order inside one transaction:
1. resolve shoe + declared size, default the unit price to the list price
2. read the current exchange rate (NoRateConfigured aborts)
3. reserve_and_decrement the variant (InsufficientStock aborts, nothing written)
4. compute totals and persist the sale with cost_price_at_sale / exchange_rate_at_sale

Deletion compensates stock first, then removes the sale row, in the same
transaction. Bulk deletes are repeated single deletions.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidAmountError, NotFoundError
from ..models import Sale, Shoe
from ..money import to_money
from shoeledger.time_utils import utcnow, window_start
from .catalog_service import get_shoe, require_size
from .exchange_rate_service import current_rate
from .inventory_service import (
    MOVEMENT_SALE,
    require_positive_quantity,
    _reserve_and_decrement_inner,
    compensate,
    record_movement,
)
from .ledger_service import append_ledger_event
from .concurrency import run_with_retry


def compute_profit(*, unit_price: Decimal, cost_price: Decimal, exchange_rate: Decimal, quantity: int) -> Decimal:
    """(unit_price - cost_price * exchange_rate) * quantity, rounded to cents."""
    return to_money((Decimal(unit_price) - Decimal(cost_price) * Decimal(exchange_rate)) * quantity)


def create_sale(
    *,
    shoe_id: int,
    size,
    quantity: int,
    unit_price=None,
    is_online: bool = False,
    owner_id: int | None = None,
) -> Sale:
    """
    Record a sale and take its quantity from stock.

    Raises:
        InvalidAmountError: quantity <= 0 or negative unit_price
        NotFoundError: unknown shoe or undeclared size
        NoRateConfiguredError: no exchange rate has been set
        InsufficientStockError: not enough stock; stock is unchanged and no sale exists
    """
    require_positive_quantity(quantity)
    if unit_price is not None:
        try:
            unit_price = to_money(unit_price)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError("unit_price must be a number", details={"unit_price": str(unit_price)})
        if not unit_price.is_finite() or unit_price < 0:
            raise InvalidAmountError("unit_price must be >= 0", details={"unit_price": str(unit_price)})

    def _op():
        shoe = get_shoe(shoe_id)
        label = require_size(shoe, size)
        price = unit_price if unit_price is not None else to_money(shoe.price)
        cost_price = to_money(shoe.cost_price)

        rate = current_rate()

        _reserve_and_decrement_inner(shoe_id=shoe.id, size=label, quantity=quantity)

        sale = Sale(
            shoe_id=shoe.id,
            size=label,
            quantity=quantity,
            unit_price=price,
            total_price=to_money(price * quantity),
            cost_price_at_sale=cost_price,
            exchange_rate_at_sale=rate,
            profit=compute_profit(unit_price=price, cost_price=cost_price, exchange_rate=rate, quantity=quantity),
            is_online=bool(is_online),
            owner_id=owner_id,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        record_movement(
            shoe_id=shoe.id,
            size=label,
            kind=MOVEMENT_SALE,
            quantity_delta=-quantity,
            sale_id=sale.id,
            note=f"Sale {sale.id}",
        )
        append_ledger_event(
            event_type="sale.created",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_id=owner_id,
            occurred_at=sale.created_at,
            payload={
                "shoe_id": shoe.id,
                "size": label,
                "quantity": quantity,
                "total_price": sale.total_price,
                "profit": sale.profit,
                "exchange_rate": rate,
            },
        )

        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _delete_sale_locked(sale: Sale, actor_id: int | None = None) -> None:
    # Stock first: if the sale delete is lost, the sale is still there and the
    # stock movement shows it was compensated.
    compensate(
        shoe_id=sale.shoe_id,
        size=sale.size,
        quantity=sale.quantity,
        sale_id=sale.id,
        commit=False,
    )
    append_ledger_event(
        event_type="sale.deleted",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_id=actor_id,
        payload={"shoe_id": sale.shoe_id, "size": sale.size, "quantity": sale.quantity},
    )
    db.session.delete(sale)
    db.session.flush()


def delete_sale(sale_id: int, *, actor_id: int | None = None) -> dict:
    """
    Delete a sale and return its quantity to stock.

    Returns the serialized sale as it was before deletion.
    """
    def _op():
        sale = get_sale(sale_id)
        snapshot = sale.to_dict()
        _delete_sale_locked(sale, actor_id=actor_id)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def _delete_matching(filter_online: bool, actor_id: int | None) -> int:
    q = db.session.query(Sale.id)
    if filter_online:
        q = q.filter(Sale.is_online.is_(True))
    sale_ids = [row.id for row in q.order_by(Sale.id.asc()).all()]

    deleted = 0
    for sale_id in sale_ids:
        try:
            delete_sale(sale_id, actor_id=actor_id)
        except NotFoundError:
            # Deleted concurrently by another request
            continue
        deleted += 1
    return deleted


def delete_all_sales(*, actor_id: int | None = None) -> int:
    """Delete every sale, one compensated deletion at a time. Returns the count deleted."""
    return _delete_matching(False, actor_id)


def delete_all_online_sales(*, actor_id: int | None = None) -> int:
    return _delete_matching(True, actor_id)


def list_sales(
    *,
    limit: int = 100,
    offset: int = 0,
    online_only: bool = False,
    owner_id: int | None = None,
    since=None,
) -> list[Sale]:
    q = db.session.query(Sale)
    if online_only:
        q = q.filter(Sale.is_online.is_(True))
    if owner_id is not None:
        q = q.filter(Sale.owner_id == owner_id)
    if since is not None:
        q = q.filter(Sale.created_at >= since)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()


def list_today_sales(*, limit: int = 100, offset: int = 0) -> list[Sale]:
    return list_sales(limit=limit, offset=offset, since=window_start(1))


def list_online_sales(*, limit: int = 100, offset: int = 0) -> list[Sale]:
    return list_sales(limit=limit, offset=offset, online_only=True)


def list_sales_by_owner(owner_id: int, *, limit: int = 100, offset: int = 0) -> list[Sale]:
    return list_sales(limit=limit, offset=offset, owner_id=owner_id)


def _aggregate(q) -> tuple[int, Decimal, Decimal]:
    count, revenue, profit = q.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_price), 0),
        func.coalesce(func.sum(Sale.profit), 0),
    ).one()
    return int(count or 0), to_money(revenue or 0), to_money(profit or 0)


def get_sales_stats(*, online_only: bool = False) -> dict:
    """Counts, revenue and profit over all sales and over today's sales."""
    q = db.session.query(Sale)
    if online_only:
        q = q.filter(Sale.is_online.is_(True))

    total_sales, total_revenue, total_profit = _aggregate(q)
    today_sales, today_revenue, today_profit = _aggregate(q.filter(Sale.created_at >= window_start(1)))

    return {
        "total_sales": total_sales,
        "total_revenue": str(total_revenue),
        "total_profit": str(total_profit),
        "today_sales": today_sales,
        "today_revenue": str(today_revenue),
        "today_profit": str(today_profit),
    }


def get_owner_sales_stats(owner_id: int, *, top: int = 5) -> dict:
    """
    Per-owner totals, averages, today/7-day/30-day windows and best sellers.
    """
    q = db.session.query(Sale).filter(Sale.owner_id == owner_id)
    total_sales, total_revenue, total_profit = _aggregate(q)

    stats = {
        "owner_id": owner_id,
        "total_sales": total_sales,
        "total_revenue": str(total_revenue),
        "total_profit": str(total_profit),
        "average_sale_amount": str(to_money(total_revenue / total_sales)) if total_sales else "0.00",
        "average_profit": str(to_money(total_profit / total_sales)) if total_sales else "0.00",
    }

    now = utcnow()
    for label, days in (("today", 1), ("week", 7), ("month", 30)):
        count, revenue, profit = _aggregate(q.filter(Sale.created_at >= window_start(days, now)))
        stats[f"{label}_sales"] = count
        stats[f"{label}_revenue"] = str(revenue)
        stats[f"{label}_profit"] = str(profit)

    rows = (
        db.session.query(
            Sale.shoe_id,
            func.sum(Sale.quantity).label("quantity"),
            func.sum(Sale.total_price).label("revenue"),
            func.sum(Sale.profit).label("profit"),
            func.count(Sale.id).label("sales_count"),
        )
        .filter(Sale.owner_id == owner_id)
        .group_by(Sale.shoe_id)
        .order_by(func.sum(Sale.quantity).desc(), Sale.shoe_id.asc())
        .limit(top)
        .all()
    )
    shoes = {
        s.id: s for s in db.session.query(Shoe).filter(Shoe.id.in_([r.shoe_id for r in rows])).all()
    } if rows else {}
    stats["best_selling_products"] = [
        {
            "shoe": (
                {"id": shoes[r.shoe_id].id, "name": shoes[r.shoe_id].name, "brand": shoes[r.shoe_id].brand, "sku": shoes[r.shoe_id].sku}
                if r.shoe_id in shoes else None
            ),
            "quantity": int(r.quantity or 0),
            "revenue": str(to_money(r.revenue or 0)),
            "profit": str(to_money(r.profit or 0)),
            "sales_count": int(r.sales_count or 0),
        }
        for r in rows
    ]
    return stats
