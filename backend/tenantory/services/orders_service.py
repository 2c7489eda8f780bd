"""
Orders Service

MULTI-TENANT: Orders, their items and the products they reference are all
read through repositories bound to the caller's organization; an item naming
another tenant's product is rejected as unknown.

Totals are derived here and stored on the order:
    line total = quantity * unit_price
    total      = subtotal + tax + shipping - discount
"""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import or_

from ..errors import BusinessRuleError
from ..extensions import db
from ..models import Customer, Order, OrderItem, Product, Supplier
from ..models.enums import OrderStatus, TERMINAL_ORDER_STATUSES
from ..repository import Page, TenantRepository
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError

CENT = Decimal("0.01")
ORDER_MUTABLE_FIELDS = {
    "order_number",
    "order_type",
    "status",
    "order_date",
    "expected_date",
    "customer_id",
    "supplier_id",
    "tax_amount",
    "discount_amount",
    "shipping_amount",
    "notes",
    "shipping_address",
}


def _repo(org_id: uuid.UUID, **kwargs) -> TenantRepository:
    return TenantRepository(Order, org_id, **kwargs)


def list_orders(
    *,
    org_id: uuid.UUID,
    search: str | None = None,
    status: str | None = None,
    order_type: str | None = None,
    page: int = 1,
    page_size: int = 10,
) -> Page[Order]:
    criteria = []
    if search and search.strip():
        term = f"%{search.strip()}%"
        criteria.append(or_(Order.order_number.ilike(term), Order.notes.ilike(term)))
    if status:
        criteria.append(Order.status == status)
    if order_type:
        criteria.append(Order.order_type == order_type)
    return _repo(org_id).get_paged(
        page, page_size, *criteria, order_by=(Order.order_date.desc(), Order.id.asc())
    )


def get_order(*, org_id: uuid.UUID, order_id: uuid.UUID) -> Order | None:
    return _repo(org_id).get_by_id(order_id)


def next_order_number(org_id: uuid.UUID) -> str:
    """ORD-YYYYMMDD-NNNN, sequential per organization and day."""
    prefix = f"ORD-{utcnow():%Y%m%d}-"
    taken = _repo(org_id, include_deleted=True).count(Order.order_number.startswith(prefix))
    return f"{prefix}{taken + 1:04d}"


def _ensure_party(org_id: uuid.UUID, model, party_id: uuid.UUID | None, field: str) -> None:
    if party_id is not None and not TenantRepository(model, org_id).exists(model.id == party_id):
        raise ValidationError(f"{field} does not reference an existing record")


def create_order(*, org_id: uuid.UUID, patch: dict, items: list[dict]) -> Order:
    """
    Create an order with its lines in one commit.

    items: [{product_id, quantity, unit_price|None}] (see validation.parse_order_items).
    A missing unit_price takes the product's current price.

    Raises:
        ConflictError: order number already used in this organization
        ValidationError: unknown product/customer/supplier
    """
    order_number = patch.get("order_number") or next_order_number(org_id)
    if _repo(org_id, include_deleted=True).exists(Order.order_number == order_number):
        raise ConflictError(f"Order number already exists in your organization: {order_number}")

    _ensure_party(org_id, Customer, patch.get("customer_id"), "customer_id")
    _ensure_party(org_id, Supplier, patch.get("supplier_id"), "supplier_id")

    product_ids = {i["product_id"] for i in items}
    products = {
        p.id: p for p in TenantRepository(Product, org_id).find(Product.id.in_(product_ids))
    }
    missing = [str(pid) for pid in product_ids if pid not in products]
    if missing:
        raise ValidationError([f"Product not found: {pid}" for pid in sorted(missing)])

    order = Order(org_id=org_id, order_number=order_number, order_date=utcnow())
    for k, v in patch.items():
        if k in ORDER_MUTABLE_FIELDS and k != "order_number":
            setattr(order, k, v)

    subtotal = Decimal("0")
    for line in items:
        product = products[line["product_id"]]
        unit_price = line["unit_price"] if line["unit_price"] is not None else Decimal(product.price)
        total = (unit_price * line["quantity"]).quantize(CENT)
        order.items.append(OrderItem(
            org_id=org_id,
            product_id=product.id,
            quantity=line["quantity"],
            unit_price=unit_price,
            total_price=total,
        ))
        subtotal += total

    _apply_totals(order, subtotal)
    if order.status == OrderStatus.COMPLETED.value:
        order.completed_date = utcnow()

    _repo(org_id).add(order)
    db.session.commit()
    return order


def _apply_totals(order: Order, subtotal: Decimal) -> None:
    tax = Decimal(order.tax_amount or 0)
    discount = Decimal(order.discount_amount or 0)
    shipping = Decimal(order.shipping_amount or 0)
    total = subtotal + tax + shipping - discount
    if total < 0:
        raise ValidationError("discount_amount cannot exceed the order total")
    order.subtotal = subtotal.quantize(CENT)
    order.total_amount = total.quantize(CENT)


def update_order_status(*, org_id: uuid.UUID, order_id: uuid.UUID, status: str) -> Order | None:
    """
    Raises:
        BusinessRuleError: order already in a terminal status
    """
    order = get_order(org_id=org_id, order_id=order_id)
    if order is None:
        return None
    if order.status == status:
        return order
    if order.status in TERMINAL_ORDER_STATUSES:
        raise BusinessRuleError(f"Order {order.order_number} is {order.status} and can no longer change")

    order.status = status
    if status == OrderStatus.COMPLETED.value:
        order.completed_date = utcnow()
    db.session.commit()
    return order


def delete_order(*, org_id: uuid.UUID, order_id: uuid.UUID) -> bool:
    """Soft delete; items are soft-deleted with the order through the cascade."""
    deleted = _repo(org_id).delete(order_id)
    if deleted:
        db.session.commit()
    return deleted
