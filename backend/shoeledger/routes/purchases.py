# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

# backend/shoeledger/routes/purchases.py
"""
Purchase API Routes

POST and PUT return {"purchase": {...}, "warnings": [...]}. A failed stock
intake (add_to_stock) shows up as a StockReplenishmentWarning; the purchase
itself is saved.

DELETE is refused (409) while supplier payments are linked to the purchase.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..models import Purchase
from ..services import purchase_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_bool,
    enforce_rules_purchase,
    validate_payload,
)

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id", "shoe_id", "quantity", "unit_cost",
        "is_credit", "initial_paid_amount", "is_todo", "notes", "purchase_date",
    },
    required_on_create={"supplier_id", "shoe_id", "size", "quantity", "unit_cost"},
)

# size skips column coercion so 41.0 and "41" reach the service as the same label
PURCHASE_OPTIONS = {"add_to_stock", "paid_amount", "size"}

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _purchase_patch(*, partial: bool) -> dict:
    patch = validate_payload(
        model=Purchase,
        payload=request.get_json(silent=True) or {},
        policy=PURCHASE_POLICY,
        partial=partial,
        extra_fields=PURCHASE_OPTIONS,
    )
    enforce_rules_purchase(patch)

    alias = patch.pop("paid_amount", None)
    if patch.get("initial_paid_amount") is None and alias is not None:
        patch["initial_paid_amount"] = alias
    return patch


@purchases_bp.post("")
def create_purchase_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "shoe_id": 2,
        "size": "41",
        "quantity": 10,
        "unit_cost": "20000",
        "is_credit": true,
        "initial_paid_amount": "50000",   (credit only; "paid_amount" is accepted as an alias)
        "add_to_stock": true,
        "is_todo": false,
        "notes": "...",
        "purchase_date": "2024-05-01T10:00:00Z"
    }
    """
    try:
        result = purchase_service.create_purchase(**_purchase_patch(partial=False))
        return jsonify(result.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@purchases_bp.get("")
def list_purchases_route():
    """
    Query params:
    - is_todo: true/false (optional)
    - limit / offset
    """
    try:
        raw = request.args.get("is_todo")
        is_todo = None
        if raw not in (None, ""):
            is_todo = coerce_bool("is_todo", raw)
        limit = min(request.args.get("limit", default=100, type=int), 500)
        offset = max(request.args.get("offset", default=0, type=int), 0)
        purchases = purchase_service.list_purchases(limit=limit, offset=offset, is_todo=is_todo)
        return {"items": [p.to_dict() for p in purchases], "limit": limit, "offset": offset}
    except ValidationError as e:
        return error_response(e)


@purchases_bp.get("/todos")
def todos_route():
    """Todo purchases grouped per supplier."""
    return {"groups": purchase_service.list_todos_grouped_by_supplier()}


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        return purchase_service.get_purchase(purchase_id).to_dict()
    except EngineError as e:
        return error_response(e)


@purchases_bp.get("/<int:purchase_id>/balance")
def purchase_balance_route(purchase_id: int):
    try:
        return purchase_service.get_purchase_balance(purchase_id)
    except EngineError as e:
        return error_response(e)


@purchases_bp.get("/supplier/<int:supplier_id>")
def purchases_by_supplier_route(supplier_id: int):
    try:
        return {"items": [p.to_dict() for p in purchase_service.list_purchases_by_supplier(supplier_id)]}
    except EngineError as e:
        return error_response(e)


@purchases_bp.get("/supplier/<int:supplier_id>/credit")
def credit_purchases_by_supplier_route(supplier_id: int):
    try:
        return {"items": [p.to_dict() for p in purchase_service.list_credit_purchases_by_supplier(supplier_id)]}
    except EngineError as e:
        return error_response(e)


@purchases_bp.patch("/<int:purchase_id>/todo")
def mark_todo_route(purchase_id: int):
    try:
        return purchase_service.mark_as_todo(purchase_id).to_dict()
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark purchase %s as todo", purchase_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@purchases_bp.patch("/<int:purchase_id>/done")
def mark_done_route(purchase_id: int):
    try:
        return purchase_service.mark_as_done(purchase_id).to_dict()
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark purchase %s as done", purchase_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@purchases_bp.put("/<int:purchase_id>")
def update_purchase_route(purchase_id: int):
    """
    Partial update; same fields as POST. Returns {"purchase": {...}, "warnings": [...]}.

    Returns:
        200: updated
        400: invalid amounts (including linked payments no longer fitting total_cost)
        404: unknown purchase, supplier or shoe
        409: linked payments block the change, or the old stock intake is already sold
    """
    try:
        result = purchase_service.update_purchase(purchase_id, **_purchase_patch(partial=True))
        return result.to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase %s", purchase_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    try:
        return {"deleted": purchase_service.delete_purchase(purchase_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase %s", purchase_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
