# Overview: Flask API routes for the audit ledger; read-only.

# backend/shoeledger/routes/ledger.py
from flask import Blueprint, request

from ..services.ledger_service import list_ledger_events

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_events():
    """
    Query params:
    - category: stock, sales, purchases, payments, rates, catalog, suppliers
    - entity_type / entity_id
    - limit: int (default 100, max 500)
    """
    events = list_ledger_events(
        event_category=request.args.get("category"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        limit=min(request.args.get("limit", default=100, type=int), 500),
    )
    return {"items": [e.to_dict() for e in events]}
