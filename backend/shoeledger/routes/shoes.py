# Overview: Flask API routes for the shoe catalog; parses input and returns JSON responses.

# backend/shoeledger/routes/shoes.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..models import Shoe
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_shoe,
    validate_payload,
)

SHOE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "brand", "category", "description", "price", "cost_price"},
    required_on_create={"sku", "name", "brand", "price", "cost_price"},
)

shoes_bp = Blueprint("shoes", __name__, url_prefix="/api/shoes")


def _split_sizes(data: dict) -> tuple[dict, object]:
    # sizes is a list in JSON and text in the column; it bypasses column coercion
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    data = dict(data)
    return data, data.pop("sizes", None)


@shoes_bp.get("")
def list_shoes():
    """
    Query params:
    - limit: int (default 100, max 500)
    - offset: int (default 0)
    """
    limit = min(request.args.get("limit", default=100, type=int), 500)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    shoes, total = catalog_service.list_shoes(limit=limit, offset=offset)
    return {"items": [s.to_dict() for s in shoes], "total": total, "limit": limit, "offset": offset}


@shoes_bp.get("/<int:shoe_id>")
def get_shoe(shoe_id: int):
    try:
        return catalog_service.get_shoe(shoe_id).to_dict()
    except EngineError as e:
        return error_response(e)


@shoes_bp.post("")
def create_shoe():
    """
    Request body:
    {
        "sku": "NK-AM90-BLK",
        "name": "Air Max 90",
        "brand": "Nike",
        "sizes": ["40", "41", "42"],
        "price": "50000",          (local currency)
        "cost_price": "20",        (foreign currency)
        "category": "men",         (optional: men, women, kids)
        "description": "..."       (optional)
    }
    """
    try:
        data, sizes = _split_sizes(request.get_json(silent=True) or {})
        if sizes is None:
            raise ValidationError("Missing required fields: sizes")
        patch = validate_payload(model=Shoe, payload=data, policy=SHOE_POLICY, partial=False)
        enforce_rules_shoe(patch)
        shoe = catalog_service.create_shoe(sizes=sizes, **patch)
        return jsonify(shoe.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create shoe")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@shoes_bp.put("/<int:shoe_id>")
def update_shoe(shoe_id: int):
    try:
        data, sizes = _split_sizes(request.get_json(silent=True) or {})
        patch = validate_payload(model=Shoe, payload=data, policy=SHOE_POLICY, partial=True)
        enforce_rules_shoe(patch)
        if sizes is not None:
            patch["sizes"] = sizes
        shoe = catalog_service.update_shoe(shoe_id, **patch)
        return shoe.to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update shoe")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@shoes_bp.delete("/<int:shoe_id>")
def delete_shoe(shoe_id: int):
    """409 while sales, purchases or stock still refer to the shoe."""
    try:
        return {"deleted": catalog_service.delete_shoe(shoe_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete shoe %s", shoe_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
