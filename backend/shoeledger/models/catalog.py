from __future__ import annotations

from ..extensions import db
from ..money import money_str
from shoeledger.time_utils import to_utc_z


class Shoe(db.Model):
    """
    Catalog entry for a shoe model.

    PRICING:
    - price is the list price in local currency (IQD)
    - cost_price is the purchase cost in foreign currency (USD)
    Sales copy cost_price at creation time, so editing it later never changes
    historical profit.

    SIZES:
    sizes holds the declared size set as JSON text, e.g. '["40", "41", "42"]'.
    Never read it directly; go through catalog_service.parse_sizes(), which
    validates the encoding and returns an ordered tuple of labels.
    """
    __tablename__ = "shoes"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_shoes_sku"),
        db.Index("ix_shoes_brand_name", "brand", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(16), nullable=False, default="men")  # men, women, kids
    description = db.Column(db.Text, nullable=True)

    sizes = db.Column(db.Text, nullable=False, default="[]")

    price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Shoe id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        from ..services.catalog_service import parse_sizes

        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "description": self.description,
            "sizes": list(parse_sizes(self.sizes)),
            "price": money_str(self.price),
            "cost_price": money_str(self.cost_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
