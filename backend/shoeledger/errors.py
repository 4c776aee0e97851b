# Overview: Typed engine errors and soft warnings shared by services and routes.

"""
Error model for the consistency engine.

Hard errors (EngineError subclasses) abort the requested mutation; the
service has not committed anything when one is raised.

Warnings are plain values returned next to a committed entity. They tell the
caller something noteworthy happened without undoing the write.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal


class EngineError(Exception):
    """Base class for typed engine errors."""

    code = "EngineError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self), "details": self.details}


class NotFoundError(EngineError):
    """Unknown shoe, size, sale, purchase, supplier or payment."""

    code = "NotFound"
    http_status = 404


class InvalidAmountError(EngineError):
    """Non-positive quantity, amount or rate, or a negative price/cost."""

    code = "InvalidAmount"
    http_status = 400


class InsufficientStockError(EngineError):
    code = "InsufficientStock"
    http_status = 409

    def __init__(self, *, shoe_id: int, size: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for shoe {shoe_id} size {size}: requested {requested}, available {available}",
            details={"shoe_id": shoe_id, "size": size, "requested": requested, "available": available},
        )
        self.available = available
        self.requested = requested


class ConflictError(EngineError):
    """The row is still referenced by other records, or the change would break them."""

    code = "Conflict"
    http_status = 409


class NoRateConfiguredError(EngineError):
    code = "NoRateConfigured"
    http_status = 409

    def __init__(self, message: str = "No exchange rate has been configured"):
        super().__init__(message)


def _jsonable(values: dict) -> dict:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in values.items()}


@dataclass(frozen=True)
class OverpaymentWarning:
    """Payment recorded, but it exceeded the remaining balance of the linked purchase."""

    purchase_id: int
    amount: Decimal
    applied_amount: Decimal
    excess_amount: Decimal

    code = "OverpaymentWarning"

    def to_dict(self) -> dict:
        return {"warning": self.code, **_jsonable(asdict(self))}


@dataclass(frozen=True)
class StockReplenishmentWarning:
    """Purchase recorded, but adding its quantity to stock failed."""

    purchase_id: int
    shoe_id: int
    size: str
    quantity: int
    reason: str

    code = "StockReplenishmentWarning"

    def to_dict(self) -> dict:
        return {"warning": self.code, **_jsonable(asdict(self))}


def error_response(exc: Exception) -> tuple[dict, int]:
    """JSON body and status for an EngineError or a validation.ValidationError."""
    if isinstance(exc, EngineError):
        return exc.to_dict(), exc.http_status
    return {"error": "ValidationError", "message": str(exc), "details": {}}, 400
