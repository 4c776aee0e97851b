from __future__ import annotations

from ..extensions import db
from shoeledger.time_utils import to_utc_z


class StockEntry(db.Model):
    """
    Current on-hand quantity for one variant (shoe_id, size).

    Rows are created lazily by the first replenishment of a variant.
    quantity is only mutated through inventory_service:
    - replenish()             (+delta, purchases and manual receiving)
    - reserve_and_decrement() (-qty, sales; conditional UPDATE, never below 0)
    - compensate()            (+qty, sale deletion only)
    - reverse_purchase_intake() (-qty, purchase edit or deletion; conditional like a sale)
    - set_quantity() / delete_stock_entry() (manual correction)
    The check constraint backs the service-level guarantee at the DB layer.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("shoe_id", "size", name="uq_stock_entries_shoe_size"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_entries_quantity_non_negative"),
        db.Index("ix_stock_entries_quantity", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shoe_id = db.Column(db.Integer, db.ForeignKey("shoes.id"), nullable=False, index=True)
    size = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shoe = db.relationship("Shoe", backref=db.backref("stock_entries", lazy=True))

    def __repr__(self) -> str:
        return f"<StockEntry shoe_id={self.shoe_id} size={self.size!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shoe_id": self.shoe_id,
            "size": self.size,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only provenance of every stock mutation.

    kind:
    - REPLENISH:  stock added by receiving or a purchase
    - SALE:       stock reserved by a sale
    - COMPENSATE: stock returned because a sale was deleted
    - REVERSAL:   stock taken back because a purchase was edited or deleted
    - ADJUST:     manual correction or removal of a stock row

    sale_id / purchase_id are plain integers, not foreign keys: a deleted sale
    keeps its SALE and COMPENSATE movements, a deleted purchase its REPLENISH
    and REVERSAL movements.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_variant_occurred", "shoe_id", "size", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shoe_id = db.Column(db.Integer, db.ForeignKey("shoes.id"), nullable=False, index=True)
    size = db.Column(db.String(16), nullable=False)
    kind = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, nullable=True, index=True)
    purchase_id = db.Column(db.Integer, nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shoe_id": self.shoe_id,
            "size": self.size,
            "kind": self.kind,
            "quantity_delta": self.quantity_delta,
            "sale_id": self.sale_id,
            "purchase_id": self.purchase_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
