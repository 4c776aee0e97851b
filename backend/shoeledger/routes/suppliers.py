# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

# backend/shoeledger/routes/suppliers.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..models import Supplier
from ..services import payment_service, supplier_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact", "address", "notes"},
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
def list_suppliers():
    limit = min(request.args.get("limit", default=100, type=int), 500)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    suppliers = supplier_service.list_suppliers(limit=limit, offset=offset)
    return {"items": [s.to_dict() for s in suppliers], "limit": limit, "offset": offset}


@suppliers_bp.post("")
def create_supplier():
    """
    Request body:
    {"name": "Ali Trading", "contact": "...", "address": "...", "notes": "..."}
    """
    try:
        patch = validate_payload(
            model=Supplier,
            payload=request.get_json(silent=True) or {},
            policy=SUPPLIER_POLICY,
            partial=False,
        )
        supplier = supplier_service.create_supplier(**patch)
        return jsonify(supplier.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
def get_supplier(supplier_id: int):
    try:
        return supplier_service.get_supplier(supplier_id).to_dict()
    except EngineError as e:
        return error_response(e)


@suppliers_bp.put("/<int:supplier_id>")
def update_supplier(supplier_id: int):
    try:
        patch = validate_payload(
            model=Supplier,
            payload=request.get_json(silent=True) or {},
            policy=SUPPLIER_POLICY,
            partial=True,
        )
        return supplier_service.update_supplier(supplier_id, **patch).to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier %s", supplier_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
def delete_supplier(supplier_id: int):
    """409 while purchases or payments still refer to the supplier."""
    try:
        return {"deleted": supplier_service.delete_supplier(supplier_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier %s", supplier_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/balance")
def supplier_balance(supplier_id: int):
    """Outstanding balance, recomputed from purchases and payments on every call."""
    try:
        return payment_service.get_supplier_balance(supplier_id).to_dict()
    except EngineError as e:
        return error_response(e)


@suppliers_bp.get("/<int:supplier_id>/with-balance")
def supplier_with_balance(supplier_id: int):
    try:
        return supplier_service.get_supplier_with_balance(supplier_id)
    except EngineError as e:
        return error_response(e)
