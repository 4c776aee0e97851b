# Overview: Service-layer operations for exchange rates; append-only rate history.

"""
Exchange Rate Store

- set_rate() appends; nothing is ever updated or deleted.
- current_rate() is the most recently recorded rate (recorded_at, then id).
- Sales copy the current value into the sale row, so history has no effect
  on sales that already exist.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ..extensions import db
from ..errors import InvalidAmountError, NoRateConfiguredError
from ..models import ExchangeRate
from ..money import to_rate
from shoeledger.time_utils import utcnow
from .ledger_service import append_ledger_event


def _latest() -> ExchangeRate | None:
    return (
        db.session.query(ExchangeRate)
        .order_by(ExchangeRate.recorded_at.desc(), ExchangeRate.id.desc())
        .first()
    )


def set_rate(rate, *, actor_id: int | None = None) -> ExchangeRate:
    """
    Record a new current rate.

    Raises:
        InvalidAmountError: rate is not a number > 0
    """
    try:
        value = to_rate(rate)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError("rate must be a number", details={"rate": str(rate)})
    if isinstance(rate, bool) or not value.is_finite() or value <= 0:
        raise InvalidAmountError("rate must be > 0", details={"rate": str(rate)})

    record = ExchangeRate(rate=value, recorded_at=utcnow())
    db.session.add(record)
    db.session.flush()

    append_ledger_event(
        event_type="rate.set",
        event_category="rates",
        entity_type="exchange_rate",
        entity_id=record.id,
        actor_id=actor_id,
        occurred_at=record.recorded_at,
        payload={"rate": value},
    )

    db.session.commit()
    return record


def current_rate_record() -> ExchangeRate:
    record = _latest()
    if record is None:
        raise NoRateConfiguredError()
    return record


def current_rate() -> Decimal:
    """The current rate value; NoRateConfiguredError when no rate was ever set."""
    return Decimal(current_rate_record().rate)


def rate_history(*, limit: int = 100) -> list[ExchangeRate]:
    """Recorded rates, newest first. Read-only."""
    return (
        db.session.query(ExchangeRate)
        .order_by(ExchangeRate.recorded_at.desc(), ExchangeRate.id.desc())
        .limit(limit)
        .all()
    )
