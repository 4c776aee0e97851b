# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/shoeledger/routes/stock.py
"""
Stock routes.

Stock grows through replenishment and is corrected through PUT/DELETE on a
stock row; sales take stock through /api/sales and give it back when a sale
is deleted.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..services import inventory_service
from ..validation import ValidationError, coerce_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _required(data: dict, *keys: str) -> None:
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


@stock_bp.get("")
def list_stock():
    """
    Query params:
    - shoe_id: int (optional)
    - limit / offset
    """
    shoe_id = request.args.get("shoe_id", type=int)
    limit = min(request.args.get("limit", default=100, type=int), 500)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    entries = inventory_service.list_stock(shoe_id=shoe_id, limit=limit, offset=offset)
    return {"items": [e.to_dict() for e in entries], "limit": limit, "offset": offset}


@stock_bp.get("/quantity")
def get_quantity():
    """Quantity on hand for ?shoe_id=&size=; 0 when nothing was recorded."""
    try:
        _required(request.args, "shoe_id", "size")
        shoe_id = coerce_int("shoe_id", request.args["shoe_id"])
        size = request.args["size"].strip()
        return {"shoe_id": shoe_id, "size": size, "quantity": inventory_service.get_quantity(shoe_id, size)}
    except ValidationError as e:
        return error_response(e)


@stock_bp.get("/low")
def low_stock():
    """Variants strictly below ?threshold= (defaults to LOW_STOCK_THRESHOLD)."""
    try:
        raw = request.args.get("threshold")
        threshold = (
            coerce_int("threshold", raw)
            if raw not in (None, "")
            else current_app.config["LOW_STOCK_THRESHOLD"]
        )
        entries = inventory_service.list_below(threshold)
        return {
            "threshold": threshold,
            "items": [
                {**e.to_dict(), "shoe": {"id": e.shoe.id, "name": e.shoe.name, "brand": e.shoe.brand, "sku": e.shoe.sku}}
                for e in entries
            ],
        }
    except (EngineError, ValidationError) as e:
        return error_response(e)


@stock_bp.post("")
def replenish():
    """
    Request body:
    {"shoe_id": 1, "size": "42", "quantity": 10, "note": "..." (optional)}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        _required(data, "shoe_id", "size", "quantity")
        entry = inventory_service.replenish(
            shoe_id=coerce_int("shoe_id", data["shoe_id"]),
            size=data["size"],
            quantity=coerce_int("quantity", data["quantity"]),
            note=data.get("note"),
        )
        return jsonify(entry.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to replenish stock")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@stock_bp.post("/bulk")
def bulk_replenish():
    """
    Request body:
    {"shoe_id": 1, "entries": [{"size": "41", "quantity": 3}, {"size": "42", "quantity": 5}]}

    All-or-nothing.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        _required(data, "shoe_id", "entries")
        if not isinstance(data["entries"], list):
            raise ValidationError("entries must be a list")
        entries = [
            {"size": item.get("size"), "quantity": coerce_int("quantity", item.get("quantity"))}
            if isinstance(item, dict) else item
            for item in data["entries"]
        ]
        results = inventory_service.bulk_replenish(
            shoe_id=coerce_int("shoe_id", data["shoe_id"]),
            entries=entries,
            note=data.get("note"),
        )
        return jsonify({"items": [e.to_dict() for e in results]}), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk replenish stock")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@stock_bp.get("/movements")
def list_movements():
    """Stock provenance for ?shoe_id= (optional &size=), newest first."""
    try:
        _required(request.args, "shoe_id")
        movements = inventory_service.list_movements(
            shoe_id=coerce_int("shoe_id", request.args["shoe_id"]),
            size=request.args.get("size"),
            limit=min(request.args.get("limit", default=200, type=int), 1000),
        )
        return {"items": [m.to_dict() for m in movements]}
    except ValidationError as e:
        return error_response(e)


@stock_bp.get("/<int:entry_id>")
def get_stock_entry(entry_id: int):
    try:
        return inventory_service.get_stock_entry_by_id(entry_id).to_dict()
    except EngineError as e:
        return error_response(e)


@stock_bp.put("/<int:entry_id>")
def set_stock_quantity(entry_id: int):
    """
    Stock count correction.

    Request body:
    {"quantity": 7, "note": "recount" (optional)}

    Overwrites the quantity and records an ADJUST movement with the difference.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        if data.get("quantity") in (None, ""):
            raise ValidationError("Missing required fields: quantity")
        entry = inventory_service.set_quantity(
            entry_id,
            coerce_int("quantity", data["quantity"]),
            note=data.get("note"),
        )
        return entry.to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock entry %s", entry_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@stock_bp.delete("/<int:entry_id>")
def delete_stock_entry(entry_id: int):
    try:
        return {"deleted": inventory_service.delete_stock_entry(entry_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete stock entry %s", entry_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
