# Overview: Flask API routes for supplier payments; parses input and returns JSON responses.

# backend/shoeledger/routes/payments.py
"""
Supplier Payment API Routes

POST returns {"payment": {...}, "warnings": [...]}. Paying more than a
linked purchase still owes is accepted; the response carries an
OverpaymentWarning with the excess.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..services import payment_service
from ..validation import ValidationError, coerce_decimal, coerce_int
from shoeledger.time_utils import parse_iso_datetime

payments_bp = Blueprint("payments", __name__, url_prefix="/api/supplier-payments")


def _payment_date(raw):
    try:
        return parse_iso_datetime(raw)
    except (ValueError, AttributeError):
        raise ValidationError("payment_date must be an ISO-8601 datetime")


@payments_bp.post("")
def create_payment_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "amount": "150000",
        "purchase_id": 3,                       (optional)
        "payment_date": "2024-05-02T09:00:00Z", (optional)
        "notes": "..."                          (optional)
    }

    Returns:
        201: payment recorded (check warnings)
        400: invalid amount, cash purchase, or purchase of another supplier
        404: unknown supplier or purchase
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        missing = [k for k in ("supplier_id", "amount") if data.get(k) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        purchase_id = data.get("purchase_id")
        payment_date = _payment_date(data.get("payment_date"))

        result = payment_service.create_payment(
            supplier_id=coerce_int("supplier_id", data["supplier_id"]),
            amount=coerce_decimal("amount", data["amount"]),
            purchase_id=coerce_int("purchase_id", purchase_id) if purchase_id not in (None, "") else None,
            payment_date=payment_date,
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier payment")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@payments_bp.get("")
def list_payments_route():
    limit = min(request.args.get("limit", default=100, type=int), 500)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    payments = payment_service.list_payments(limit=limit, offset=offset)
    return {"items": [p.to_dict() for p in payments], "limit": limit, "offset": offset}


@payments_bp.get("/<int:payment_id>")
def get_payment_route(payment_id: int):
    try:
        return payment_service.get_payment(payment_id).to_dict()
    except EngineError as e:
        return error_response(e)


@payments_bp.put("/<int:payment_id>")
def update_payment_route(payment_id: int):
    """
    Partial update; any of supplier_id, amount, purchase_id, payment_date, notes.

    "purchase_id": null unlinks the payment. The allocation is recomputed and
    the response is {"payment": {...}, "warnings": [...]} like POST.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        unknown = sorted(set(data) - payment_service.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}")

        fields = {}
        if data.get("supplier_id") not in (None, ""):
            fields["supplier_id"] = coerce_int("supplier_id", data["supplier_id"])
        if data.get("amount") not in (None, ""):
            fields["amount"] = coerce_decimal("amount", data["amount"])
        if "purchase_id" in data:
            raw = data["purchase_id"]
            fields["purchase_id"] = coerce_int("purchase_id", raw) if raw not in (None, "") else None
        if data.get("payment_date") not in (None, ""):
            fields["payment_date"] = _payment_date(data["payment_date"])
        if "notes" in data:
            fields["notes"] = data["notes"]

        return payment_service.update_payment(payment_id, **fields).to_dict()
    except (EngineError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier payment %s", payment_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@payments_bp.delete("/<int:payment_id>")
def delete_payment_route(payment_id: int):
    try:
        return {"deleted": payment_service.delete_payment(payment_id)}
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier payment %s", payment_id)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@payments_bp.get("/supplier/<int:supplier_id>")
def payments_by_supplier_route(supplier_id: int):
    try:
        return {"items": [p.to_dict() for p in payment_service.list_payments_by_supplier(supplier_id)]}
    except EngineError as e:
        return error_response(e)
