from __future__ import annotations

from ..extensions import db
from ..money import money_str
from shoeledger.time_utils import to_utc_z


class Expense(db.Model):
    """
    Store operating expense in local currency (IQD).

    Expenses sit beside the inventory and supplier ledgers: they never touch
    stock, sales profit or supplier balances.

    category: salary, rent, utilities, supplies, other
    expense_type: daily (one-off) or monthly (recurring bill booked once a month)
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_type_date", "expense_type", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Numeric(16, 2), nullable=False)
    category = db.Column(db.String(16), nullable=False, default="other", index=True)
    expense_type = db.Column(db.String(16), nullable=False, default="daily")
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Expense id={self.id} title={self.title!r} amount={self.amount}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "amount": money_str(self.amount),
            "category": self.category,
            "expense_type": self.expense_type,
            "expense_date": to_utc_z(self.expense_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
