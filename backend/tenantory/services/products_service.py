# backend/tenantory/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations go through TenantRepository(Product, org_id),
so a product id from another organization behaves exactly like a missing id.
- SKU is unique per organization (soft-deleted products keep their SKU)
- category_id must reference a category of the same organization
- Deletes are soft (see lifecycle.py)
"""
from __future__ import annotations

import uuid

from sqlalchemy import or_

from ..errors import BusinessRuleError
from ..extensions import db
from ..models import Category, InventoryMovement, Product, Warehouse
from ..models.enums import MovementType, OUTBOUND_MOVEMENTS, ProductStatus
from ..repository import Page, TenantRepository
from ..validation import ConflictError, ValidationError
from ..time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "sku",
    "description",
    "barcode",
    "unit",
    "category_id",
    "price",
    "cost_price",
    "stock_quantity",
    "min_stock_level",
    "max_stock_level",
    "status",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _repo(org_id: uuid.UUID, **kwargs) -> TenantRepository:
    return TenantRepository(Product, org_id, **kwargs)


def _ensure_sku_available(org_id: uuid.UUID, sku: str, exclude_id: uuid.UUID | None = None) -> None:
    if not is_sku_available(org_id=org_id, sku=sku, exclude_id=exclude_id):
        raise ConflictError(f"SKU already exists in your organization: {sku}")


def _ensure_category_in_org(org_id: uuid.UUID, category_id: uuid.UUID | None) -> None:
    if category_id is None:
        return
    if not TenantRepository(Category, org_id).exists(Category.id == category_id):
        raise ValidationError("category_id does not reference an existing category")


def list_products(
    *,
    org_id: uuid.UUID,
    search: str | None = None,
    category_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 10,
) -> Page[Product]:
    """
    Tenant-scoped product listing.

    Args:
        search: case-insensitive substring over name, SKU and description
        category_id: only products in this category
        status: only products with this status
        page / page_size: 1-indexed paging
    """
    criteria = []
    if search and search.strip():
        term = f"%{search.strip()}%"
        criteria.append(or_(
            Product.name.ilike(term),
            Product.sku.ilike(term),
            Product.description.ilike(term),
        ))
    if category_id is not None:
        criteria.append(Product.category_id == category_id)
    if status:
        criteria.append(Product.status == status)

    return _repo(org_id).get_paged(
        page, page_size, *criteria, order_by=(Product.name.asc(), Product.id.asc())
    )


def get_product(*, org_id: uuid.UUID, product_id: uuid.UUID) -> Product | None:
    return _repo(org_id).get_by_id(product_id)


def is_sku_available(*, org_id: uuid.UUID, sku: str, exclude_id: uuid.UUID | None = None) -> bool:
    """SKU check that also sees soft-deleted products (the unique index does)."""
    criteria = [Product.sku == sku]
    if exclude_id is not None:
        criteria.append(Product.id != exclude_id)
    return not _repo(org_id, include_deleted=True).exists(*criteria)


def create_product(*, org_id: uuid.UUID, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: SKU already used in this organization
        ValidationError: category not found in this organization
    """
    _ensure_sku_available(org_id, patch["sku"])
    _ensure_category_in_org(org_id, patch.get("category_id"))

    p = Product(org_id=org_id, status=ProductStatus.ACTIVE.value)
    apply_product_patch(p, patch)
    _repo(org_id).add(p)
    db.session.commit()
    return p


def update_product(*, org_id: uuid.UUID, product_id: uuid.UUID, patch: dict) -> Product | None:
    p = get_product(org_id=org_id, product_id=product_id)
    if p is None:
        return None

    if "sku" in patch and patch["sku"] != p.sku:
        _ensure_sku_available(org_id, patch["sku"], exclude_id=p.id)
    if "category_id" in patch:
        _ensure_category_in_org(org_id, patch["category_id"])

    apply_product_patch(p, patch)
    _repo(org_id).update(p)
    db.session.commit()
    return p


def delete_product(*, org_id: uuid.UUID, product_id: uuid.UUID) -> bool:
    repo = _repo(org_id)
    deleted = repo.delete(product_id)
    if deleted:
        db.session.commit()
    return deleted


def _stock_delta(movement_type: str, quantity: int) -> int:
    if movement_type in OUTBOUND_MOVEMENTS:
        return -quantity
    if movement_type == MovementType.TRANSFER.value:
        # Moves units between warehouses; total on hand is unchanged
        return 0
    # StockIn, Return, and signed Adjustment
    return quantity


def record_stock_movement(
    *,
    org_id: uuid.UUID,
    product_id: uuid.UUID,
    movement_type: str,
    quantity: int,
    warehouse_id: uuid.UUID | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> InventoryMovement | None:
    """
    Record a stock movement and apply it to Product.stock_quantity.

    quantity is positive for every type except Adjustment, which takes a
    signed correction. Returns None when the product is not in this org.

    Raises:
        ValidationError: bad type/quantity, or warehouse not in this org
        BusinessRuleError: movement would take stock below zero
    """
    valid_types = [m.value for m in MovementType]
    if movement_type not in valid_types:
        raise ValidationError(f"movement_type must be one of: {', '.join(valid_types)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        raise ValidationError("quantity must be a non-zero integer")
    if quantity < 0 and movement_type != MovementType.ADJUSTMENT.value:
        raise ValidationError("quantity must be positive unless movement_type is Adjustment")

    product = get_product(org_id=org_id, product_id=product_id)
    if product is None:
        return None
    if warehouse_id is not None and not TenantRepository(Warehouse, org_id).exists(Warehouse.id == warehouse_id):
        raise ValidationError("warehouse_id does not reference an existing warehouse")

    new_quantity = product.stock_quantity + _stock_delta(movement_type, quantity)
    if new_quantity < 0:
        raise BusinessRuleError(
            f"Insufficient stock for {product.sku}: {product.stock_quantity} on hand"
        )

    product.stock_quantity = new_quantity
    if new_quantity == 0 and product.status == ProductStatus.ACTIVE.value:
        product.status = ProductStatus.OUT_OF_STOCK.value
    elif new_quantity > 0 and product.status == ProductStatus.OUT_OF_STOCK.value:
        product.status = ProductStatus.ACTIVE.value

    movement = InventoryMovement(
        org_id=org_id,
        product_id=product.id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
        quantity=quantity,
        reference=reference,
        notes=notes,
        movement_date=utcnow(),
    )
    TenantRepository(InventoryMovement, org_id).add(movement)
    db.session.commit()
    return movement


def list_stock_movements(*, org_id: uuid.UUID, product_id: uuid.UUID, page: int = 1, page_size: int = 20) -> Page:
    return TenantRepository(InventoryMovement, org_id).get_paged(
        page,
        page_size,
        InventoryMovement.product_id == product_id,
        order_by=InventoryMovement.movement_date.desc(),
    )
