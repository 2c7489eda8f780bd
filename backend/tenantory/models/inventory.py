from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import TenantEntity
from .enums import ProductStatus


def _money(value) -> float | None:
    return float(value) if value is not None else None


class Category(TenantEntity, db.Model):
    """
    Product category (tree via parent_category_id).

    MULTI-TENANT: Category names are unique within an organization.
    The only cycle check is "not its own parent".
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
    )

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    parent_category_id = db.Column(
        db.Uuid, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    parent = db.relationship("Category", remote_side="Category.id")

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        parent = self.parent if self.parent is not None and not self.parent.is_deleted else None
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "parent_category_id": str(self.parent_category_id) if self.parent_category_id else None,
            "parent_category_name": parent.name if parent else None,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


class Product(TenantEntity, db.Model):
    """
    Catalog item.

    MULTI-TENANT: SKU is unique per organization, not globally, so two
    tenants can both sell "ABC-1".
    Soft-deleted products keep their SKU reserved.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "org_id", "name"),
    )

    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    category_id = db.Column(
        db.Uuid, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=True)
    max_stock_level = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(32), nullable=False, default=ProductStatus.ACTIVE.value, index=True)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r}>"

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock_level is not None and self.stock_quantity <= self.min_stock_level

    def to_dict(self) -> dict:
        category = self.category if self.category is not None and not self.category.is_deleted else None
        return {
            "id": str(self.id),
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "barcode": self.barcode,
            "unit": self.unit,
            "category_id": str(self.category_id) if self.category_id else None,
            "category_name": category.name if category else None,
            "price": _money(self.price),
            "cost_price": _money(self.cost_price),
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "is_low_stock": self.is_low_stock,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(TenantEntity, db.Model):
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_warehouses_org_name"),
    )

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postal_code": self.postal_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryMovement(TenantEntity, db.Model):
    """
    Append-only stock movement. quantity is always positive; the movement
    type decides the direction applied to Product.stock_quantity.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_date", "product_id", "movement_date"),
    )

    product_id = db.Column(db.Uuid, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    warehouse_id = db.Column(
        db.Uuid, db.ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True, index=True
    )
    movement_type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "warehouse_id": str(self.warehouse_id) if self.warehouse_id else None,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference": self.reference,
            "notes": self.notes,
            "movement_date": to_utc_z(self.movement_date),
            "created_by": self.created_by,
        }
