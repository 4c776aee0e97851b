from __future__ import annotations

from ..extensions import db
from ..money import money_str
from shoeledger.time_utils import to_utc_z


class Supplier(db.Model):
    """
    Supplier identity for purchases and payments.

    BALANCE: there is deliberately no balance column. The outstanding balance
    is recomputed from purchases and payments on every read
    (payment_service.get_supplier_balance).
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "address": self.address,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Purchase(db.Model):
    """
    Purchase of one variant from a supplier.

    PAYMENT FIELDS:
    - Cash purchase: paid_amount = initial_paid_amount = total_cost.
    - Credit purchase: initial_paid_amount is what was paid at creation;
      paid_amount starts there and grows with linked payments, capped at
      total_cost.
    Supplier totals count initial_paid_amount plus every payment amount, so a
    linked payment is never counted twice.

    CONCURRENCY: version_id makes concurrent paid_amount updates of the same
    purchase fail with StaleDataError instead of losing an update.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchases_quantity_positive"),
        db.CheckConstraint("unit_cost >= 0", name="ck_purchases_unit_cost_non_negative"),
        db.CheckConstraint("paid_amount >= 0", name="ck_purchases_paid_non_negative"),
        db.CheckConstraint("paid_amount <= total_cost", name="ck_purchases_paid_within_total"),
        db.Index("ix_purchases_supplier_credit", "supplier_id", "is_credit"),
        db.Index("ix_purchases_todo_supplier", "is_todo", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    shoe_id = db.Column(db.Integer, db.ForeignKey("shoes.id"), nullable=False, index=True)
    size = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    unit_cost = db.Column(db.Numeric(14, 2), nullable=False)
    total_cost = db.Column(db.Numeric(16, 2), nullable=False)

    is_credit = db.Column(db.Boolean, nullable=False, default=False)
    initial_paid_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    # Supplier follow-up workflow; independent of payment state
    is_todo = db.Column(db.Boolean, nullable=False, default=False, index=True)

    notes = db.Column(db.Text, nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    shoe = db.relationship("Shoe")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_balance(self):
        if not self.is_credit:
            return 0
        return self.total_cost - self.paid_amount

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} supplier_id={self.supplier_id} total_cost={self.total_cost}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "shoe_id": self.shoe_id,
            "size": self.size,
            "quantity": self.quantity,
            "unit_cost": money_str(self.unit_cost),
            "total_cost": money_str(self.total_cost),
            "is_credit": self.is_credit,
            "initial_paid_amount": money_str(self.initial_paid_amount),
            "paid_amount": money_str(self.paid_amount),
            "remaining_balance": money_str(self.remaining_balance),
            "is_todo": self.is_todo,
            "notes": self.notes,
            "purchase_date": to_utc_z(self.purchase_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SupplierPayment(db.Model):
    """
    Payment to a supplier, optionally linked to one credit purchase.

    applied_amount is the part of amount that was credited to the linked
    purchase's paid_amount (0 for unlinked payments). Deleting the payment
    reverses exactly that part. The full amount always counts toward the
    supplier total.
    """
    __tablename__ = "supplier_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_supplier_payments_amount_positive"),
        db.Index("ix_supplier_payments_supplier_date", "supplier_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(16, 2), nullable=False)
    applied_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("payments", lazy=True))
    purchase = db.relationship("Purchase", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_id": self.purchase_id,
            "amount": money_str(self.amount),
            "applied_amount": money_str(self.applied_amount),
            "payment_date": to_utc_z(self.payment_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
