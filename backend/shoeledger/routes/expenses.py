# Overview: Flask API routes for store expenses; parses input and returns JSON responses.

# backend/shoeledger/routes/expenses.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..models import Expense
from ..services import expense_service
from ..validation import ModelValidationPolicy, ValidationError, coerce_int, validate_payload
from shoeledger.time_utils import parse_iso_datetime

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"title", "description", "amount", "category", "expense_type", "expense_date"},
    required_on_create={"title", "amount"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_arg(key: str):
    try:
        return parse_iso_datetime(request.args.get(key))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _int_arg(key: str):
    raw = request.args.get(key)
    return coerce_int(key, raw) if raw not in (None, "") else None


@expenses_bp.get("")
def list_expenses():
    limit = min(request.args.get("limit", default=500, type=int), 1000)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    expenses = expense_service.list_expenses(limit=limit, offset=offset)
    return {"items": [e.to_dict() for e in expenses], "limit": limit, "offset": offset}


@expenses_bp.get("/daily")
def daily_expenses():
    """Expenses dated on ?date= (UTC day, defaults to today)."""
    try:
        expenses = expense_service.list_expenses_for_day(_date_arg("date"))
        return {"items": [e.to_dict() for e in expenses]}
    except ValidationError as e:
        return error_response(e)


@expenses_bp.get("/monthly")
def monthly_expenses():
    """Expenses in ?year=&month= (defaults to the current month)."""
    try:
        expenses = expense_service.list_expenses_for_month(_int_arg("year"), _int_arg("month"))
        return {"items": [e.to_dict() for e in expenses]}
    except ValidationError as e:
        return error_response(e)


@expenses_bp.get("/stats")
def expense_stats():
    """Totals over ?start_date=&end_date= (both optional, end exclusive)."""
    try:
        return expense_service.get_expense_stats(_date_arg("start_date"), _date_arg("end_date"))
    except ValidationError as e:
        return error_response(e)


@expenses_bp.get("/today")
def today_stats():
    return expense_service.get_today_expense_stats()


@expenses_bp.get("/month")
def month_stats():
    return expense_service.get_month_expense_stats()


@expenses_bp.get("/<int:expense_id>")
def get_expense(expense_id: int):
    try:
        return expense_service.get_expense(expense_id).to_dict()
    except EngineError as e:
        return error_response(e)


@expenses_bp.post("")
def create_expense():
    """
    Request body:
    {
        "title": "Shop rent",
        "amount": "750000",
        "category": "rent",                        (salary, rent, utilities, supplies, other)
        "expense_type": "monthly",                 (daily, monthly)
        "expense_date": "2024-05-01T00:00:00Z",    (optional, defaults to now)
        "description": "..."                       (optional)
    }
    """
    try:
        patch = validate_payload(
            model=Expense,
            payload=request.get_json(silent=True) or {},
            policy=EXPENSE_POLICY,
            partial=False,
        )
        expense = expense_service.create_expense(**patch)
        return jsonify(expense.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@expenses_bp.put("/<int:expense_id>")
def update_expense(expense_id: int):
    try:
        patch = validate_payload(
            model=Expense,
            payload=request.get_json(silent=True) or {},
            policy=EXPENSE_POLICY,
            partial=True,
        )
        return expense_service.update_expense(expense_id, **patch).to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense %s", expense_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
def delete_expense(expense_id: int):
    try:
        return {"deleted": expense_service.delete_expense(expense_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete expense %s", expense_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
