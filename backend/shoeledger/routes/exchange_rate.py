# Overview: Flask API routes for the exchange rate store; parses input and returns JSON responses.

# backend/shoeledger/routes/exchange_rate.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import EngineError, error_response
from ..services import exchange_rate_service

exchange_rate_bp = Blueprint("exchange_rate", __name__, url_prefix="/api/exchange-rate")


@exchange_rate_bp.get("")
def current_rate_route():
    try:
        return exchange_rate_service.current_rate_record().to_dict()
    except EngineError as e:
        return error_response(e)


@exchange_rate_bp.post("")
def set_rate_route():
    """Request body: {"rate": "1500"}"""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        if data.get("rate") in (None, ""):
            return jsonify({"error": "ValidationError", "message": "rate is required", "details": {}}), 400
        record = exchange_rate_service.set_rate(data["rate"])
        return jsonify(record.to_dict()), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set exchange rate")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


@exchange_rate_bp.get("/history")
def rate_history_route():
    limit = min(request.args.get("limit", default=100, type=int), 1000)
    return {"items": [r.to_dict() for r in exchange_rate_service.rate_history(limit=limit)]}
