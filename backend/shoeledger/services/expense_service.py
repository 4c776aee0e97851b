# Overview: Service-layer operations for store expenses; CRUD, calendar reads and totals.

"""
Expense Service

Expenses are independent of stock, sales and supplier balances. Amounts are
local currency and strictly positive. Calendar windows (day, month) are UTC,
like the sales statistics.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidAmountError, NotFoundError
from ..models import Expense
from ..money import to_money
from shoeledger.time_utils import start_of_day, utcnow
from ..validation import ValidationError
from .ledger_service import append_ledger_event

EXPENSE_CATEGORIES = ("salary", "rent", "utilities", "supplies", "other")
EXPENSE_TYPES = ("daily", "monthly")


def _amount_arg(value) -> Decimal:
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError("amount must be a number", details={"amount": str(value)})
    if isinstance(value, bool) or not amount.is_finite() or amount <= 0:
        raise InvalidAmountError("amount must be > 0", details={"amount": str(value)})
    return amount


def _choice(key: str, value, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise ValidationError(f"{key} must be one of {', '.join(allowed)}")
    return value


def _month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found", details={"expense_id": expense_id})
    return expense


def create_expense(
    *,
    title: str,
    amount,
    category: str = "other",
    expense_type: str = "daily",
    expense_date: datetime | None = None,
    description: str | None = None,
) -> Expense:
    """
    Record an expense.

    Raises:
        ValidationError: blank title, unknown category or expense_type
        InvalidAmountError: amount <= 0
    """
    if not title or not str(title).strip():
        raise ValidationError("title is required")

    expense = Expense(
        title=str(title).strip(),
        description=description,
        amount=_amount_arg(amount),
        category=_choice("category", category, EXPENSE_CATEGORIES),
        expense_type=_choice("expense_type", expense_type, EXPENSE_TYPES),
        expense_date=expense_date or utcnow(),
    )
    db.session.add(expense)
    db.session.flush()

    append_ledger_event(
        event_type="expense.created",
        event_category="expenses",
        entity_type="expense",
        entity_id=expense.id,
        occurred_at=expense.expense_date,
        note=expense.title,
        payload={"amount": expense.amount, "category": expense.category, "expense_type": expense.expense_type},
    )

    db.session.commit()
    return expense


def update_expense(expense_id: int, **fields) -> Expense:
    expense = get_expense(expense_id)
    changes: dict = {}

    if "title" in fields:
        title = str(fields["title"] or "").strip()
        if not title:
            raise ValidationError("title cannot be blank")
        changes["title"] = title
    if "amount" in fields:
        changes["amount"] = _amount_arg(fields["amount"])
    if "category" in fields:
        changes["category"] = _choice("category", fields["category"], EXPENSE_CATEGORIES)
    if "expense_type" in fields:
        changes["expense_type"] = _choice("expense_type", fields["expense_type"], EXPENSE_TYPES)
    if fields.get("expense_date") is not None:
        changes["expense_date"] = fields["expense_date"]
    if "description" in fields:
        changes["description"] = fields["description"]

    for key, value in changes.items():
        setattr(expense, key, value)

    append_ledger_event(
        event_type="expense.updated",
        event_category="expenses",
        entity_type="expense",
        entity_id=expense.id,
        payload={"fields": sorted(changes)},
    )

    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> dict:
    expense = get_expense(expense_id)
    snapshot = expense.to_dict()

    append_ledger_event(
        event_type="expense.deleted",
        event_category="expenses",
        entity_type="expense",
        entity_id=expense.id,
        note=expense.title,
        payload={"amount": expense.amount},
    )
    db.session.delete(expense)
    db.session.commit()
    return snapshot


def list_expenses(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 500,
    offset: int = 0,
) -> list[Expense]:
    """Expenses with start <= expense_date < end (either bound optional), newest first."""
    q = db.session.query(Expense)
    if start is not None:
        q = q.filter(Expense.expense_date >= start)
    if end is not None:
        q = q.filter(Expense.expense_date < end)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).offset(offset).limit(limit).all()


def list_expenses_for_day(day: datetime | None = None) -> list[Expense]:
    start = start_of_day(day or utcnow())
    return list_expenses(start=start, end=start + timedelta(days=1))


def list_expenses_for_month(year: int | None = None, month: int | None = None) -> list[Expense]:
    now = utcnow()
    start, end = _month_bounds(year or now.year, month or now.month)
    return list_expenses(start=start, end=end)


def get_expense_stats(start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    Totals over start <= expense_date < end.

    Returns {total_expenses, count, by_category, by_type}; money as strings.
    """
    def _filtered(q):
        if start is not None:
            q = q.filter(Expense.expense_date >= start)
        if end is not None:
            q = q.filter(Expense.expense_date < end)
        return q

    total, count = _filtered(
        db.session.query(func.coalesce(func.sum(Expense.amount), 0), func.count(Expense.id))
    ).one()
    by_category = _filtered(
        db.session.query(Expense.category, func.sum(Expense.amount))
    ).group_by(Expense.category).all()
    by_type = _filtered(
        db.session.query(Expense.expense_type, func.sum(Expense.amount))
    ).group_by(Expense.expense_type).all()

    return {
        "total_expenses": str(to_money(total or 0)),
        "count": int(count or 0),
        "by_category": {key: str(to_money(value)) for key, value in by_category},
        "by_type": {key: str(to_money(value)) for key, value in by_type},
    }


def get_today_expense_stats() -> dict:
    start = start_of_day(utcnow())
    return get_expense_stats(start, start + timedelta(days=1))


def get_month_expense_stats() -> dict:
    now = utcnow()
    return get_expense_stats(*_month_bounds(now.year, now.month))
