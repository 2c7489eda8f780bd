from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import TenantEntity
from .inventory import _money


class ExpenseCategory(TenantEntity, db.Model):
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_expense_categories_org_name"),
    )

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)

    def to_dict(self) -> dict:
        return {"id": str(self.id), "name": self.name, "description": self.description}


class Expense(TenantEntity, db.Model):
    __tablename__ = "expenses"

    expense_category_id = db.Column(
        db.Uuid, db.ForeignKey("expense_categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    description = db.Column(db.String(500), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    vendor = db.Column(db.String(200), nullable=True)
    reference = db.Column(db.String(100), nullable=True)

    expense_category = db.relationship("ExpenseCategory")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "expense_category_id": str(self.expense_category_id) if self.expense_category_id else None,
            "description": self.description,
            "amount": _money(self.amount),
            "expense_date": to_utc_z(self.expense_date),
            "vendor": self.vendor,
            "reference": self.reference,
        }
