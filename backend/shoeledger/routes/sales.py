# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/shoeledger/routes/sales.py
"""
Sales API Routes

- POST creates a sale and takes stock in one transaction
- DELETE returns the sale's stock before removing it
- stats endpoints aggregate over stored sale rows only (profit is never recomputed)
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..services import sales_service
from ..validation import ValidationError, coerce_bool, coerce_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _page_args() -> tuple[int, int]:
    limit = min(request.args.get("limit", default=100, type=int), 500)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    return limit, offset


@sales_bp.post("")
def create_sale_route():
    """
    Request body:
    {
        "shoe_id": 1,
        "size": "42",
        "quantity": 3,
        "unit_price": "50000",   (optional, defaults to the list price)
        "is_online": false,      (optional)
        "owner_id": 7            (optional)
    }

    Returns:
        201: sale created
        400: invalid quantity or price
        404: unknown shoe or size
        409: insufficient stock / no exchange rate configured
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        missing = [k for k in ("shoe_id", "size", "quantity") if data.get(k) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        owner_id = data.get("owner_id")
        sale = sales_service.create_sale(
            shoe_id=coerce_int("shoe_id", data["shoe_id"]),
            size=data["size"],
            quantity=coerce_int("quantity", data["quantity"]),
            unit_price=data.get("unit_price"),
            is_online=coerce_bool("is_online", data.get("is_online", False)),
            owner_id=coerce_int("owner_id", owner_id) if owner_id is not None else None,
        )
        return jsonify(sale.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    limit, offset = _page_args()
    sales = sales_service.list_sales(limit=limit, offset=offset)
    return {"items": [s.to_dict() for s in sales], "limit": limit, "offset": offset}


@sales_bp.get("/today")
def list_today_sales_route():
    limit, offset = _page_args()
    return {"items": [s.to_dict() for s in sales_service.list_today_sales(limit=limit, offset=offset)]}


@sales_bp.get("/online")
def list_online_sales_route():
    limit, offset = _page_args()
    return {"items": [s.to_dict() for s in sales_service.list_online_sales(limit=limit, offset=offset)]}


@sales_bp.get("/stats")
def sales_stats_route():
    return sales_service.get_sales_stats()


@sales_bp.get("/stats/online")
def online_sales_stats_route():
    return sales_service.get_sales_stats(online_only=True)


@sales_bp.get("/owner/<int:owner_id>")
def sales_by_owner_route(owner_id: int):
    limit, offset = _page_args()
    return {"items": [s.to_dict() for s in sales_service.list_sales_by_owner(owner_id, limit=limit, offset=offset)]}


@sales_bp.get("/owner/<int:owner_id>/stats")
def owner_stats_route(owner_id: int):
    return sales_service.get_owner_sales_stats(owner_id)


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return sales_service.get_sale(sale_id).to_dict()
    except EngineError as e:
        return error_response(e)


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    try:
        return {"deleted": sales_service.delete_sale(sale_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale %s", sale_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@sales_bp.delete("/all")
def delete_all_sales_route():
    try:
        return {"deleted_count": sales_service.delete_all_sales()}
    except Exception:
        current_app.logger.exception("Failed to delete all sales")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@sales_bp.delete("/online/all")
def delete_all_online_sales_route():
    try:
        return {"deleted_count": sales_service.delete_all_online_sales()}
    except Exception:
        current_app.logger.exception("Failed to delete online sales")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
