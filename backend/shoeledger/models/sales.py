from __future__ import annotations

from ..extensions import db
from ..money import money_str, rate_str
from shoeledger.time_utils import to_utc_z


class ExchangeRate(db.Model):
    """
    Foreign-to-local exchange rate (e.g. 1 USD = 1500 IQD).

    Append-only: rows are never updated or deleted. The current rate is the
    most recently recorded row. Sales copy the value, not the id.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        db.CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rate = db.Column(db.Numeric(14, 4), nullable=False)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rate": rate_str(self.rate),
            "recorded_at": to_utc_z(self.recorded_at),
        }


class Sale(db.Model):
    """
    Single-line sale of one variant.

    SNAPSHOT: cost_price_at_sale and exchange_rate_at_sale are copied when the
    sale is created. profit is derived from fields on this row only:
        profit = (unit_price - cost_price_at_sale * exchange_rate_at_sale) * quantity

    Sales are immutable. Deleting one returns its quantity to stock first.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.Index("ix_sales_shoe_size", "shoe_id", "size"),
        db.Index("ix_sales_online_created", "is_online", "created_at"),
        db.Index("ix_sales_owner_created", "owner_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shoe_id = db.Column(db.Integer, db.ForeignKey("shoes.id"), nullable=False, index=True)
    size = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # Local currency
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    total_price = db.Column(db.Numeric(16, 2), nullable=False)
    profit = db.Column(db.Numeric(16, 2), nullable=False)

    # Snapshots (foreign currency cost, foreign->local rate)
    cost_price_at_sale = db.Column(db.Numeric(14, 2), nullable=False)
    exchange_rate_at_sale = db.Column(db.Numeric(14, 4), nullable=False)

    is_online = db.Column(db.Boolean, nullable=False, default=False)
    owner_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    shoe = db.relationship("Shoe", backref=db.backref("sales", lazy=True))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} shoe_id={self.shoe_id} size={self.size!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shoe_id": self.shoe_id,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "profit": money_str(self.profit),
            "cost_price_at_sale": money_str(self.cost_price_at_sale),
            "exchange_rate_at_sale": rate_str(self.exchange_rate_at_sale),
            "is_online": self.is_online,
            "owner_id": self.owner_id,
            "created_at": to_utc_z(self.created_at),
        }
