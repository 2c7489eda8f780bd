from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import TenantEntity
from .enums import OrderStatus, OrderType
from .inventory import _money


class Customer(TenantEntity, db.Model):
    __tablename__ = "customers"

    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    company_name = db.Column(db.String(200), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.String(1000), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company_name": self.company_name,
            "address": self.address,
            "is_active": self.is_active,
        }


class Supplier(TenantEntity, db.Model):
    __tablename__ = "suppliers"

    name = db.Column(db.String(200), nullable=False)
    contact_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
        }


class Order(TenantEntity, db.Model):
    """
    Purchase/sale/transfer document with line items.

    MULTI-TENANT: order_number is unique per organization.
    Totals are derived from items by orders_service and stored denormalized.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_date", "org_id", "order_date"),
    )

    order_number = db.Column(db.String(50), nullable=False)
    order_type = db.Column(db.String(32), nullable=False, default=OrderType.SALE.value)
    status = db.Column(db.String(32), nullable=False, default=OrderStatus.DRAFT.value, index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    customer_id = db.Column(db.Uuid, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    supplier_id = db.Column(db.Uuid, db.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.String(1000), nullable=True)
    shipping_address = db.Column(db.String(500), nullable=True)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderItem.created_at",
    )
    customer = db.relationship("Customer")
    supplier = db.relationship("Supplier")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": str(self.id),
            "order_number": self.order_number,
            "order_type": self.order_type,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "expected_date": to_utc_z(self.expected_date),
            "completed_date": to_utc_z(self.completed_date),
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "customer_name": self.customer.name if self.customer else None,
            "supplier_id": str(self.supplier_id) if self.supplier_id else None,
            "supplier_name": self.supplier.name if self.supplier else None,
            "subtotal": _money(self.subtotal),
            "tax_amount": _money(self.tax_amount),
            "discount_amount": _money(self.discount_amount),
            "shipping_amount": _money(self.shipping_amount),
            "total_amount": _money(self.total_amount),
            "notes": self.notes,
            "shipping_address": self.shipping_address,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items if not i.is_deleted]
        return data


class OrderItem(TenantEntity, db.Model):
    __tablename__ = "order_items"

    order_id = db.Column(db.Uuid, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
        }
