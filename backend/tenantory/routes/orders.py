# Overview: Flask API routes for purchase/sale orders; parses input and returns JSON responses.

"""
Order routes.

MULTI-TENANT: scoped to g.org_id; line items may only reference products of
the same organization. Creating an order counts against the monthly order
allowance of the plan (402).
"""
import uuid

from flask import Blueprint, request, g

from ..decorators import require_auth, require_tenant, enforce_plan_limit
from ..models import Order
from ..models.enums import LimitType, OrderStatus, OrderType
from ..services import orders_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_order,
    parse_order_items,
    parse_paging,
)

ORDER_POLICY = ModelValidationPolicy(
    writable_fields=set(orders_service.ORDER_MUTABLE_FIELDS),
    required_on_create=set(),
    choices={"status": OrderStatus, "order_type": OrderType},
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _choice_arg(name: str, enum_type) -> str | None:
    value = request.args.get(name) or None
    allowed = [member.value for member in enum_type]
    if value is not None and value not in allowed:
        raise ValidationError(f"{name} must be one of: {', '.join(allowed)}")
    return value


@orders_bp.get("")
@require_auth
@require_tenant
def list_orders():
    """
    Query params: search (order number / notes), status, order_type, page, page_size.
    Newest orders first.
    """
    page, page_size = parse_paging(request.args)
    result = orders_service.list_orders(
        org_id=g.org_id,
        search=request.args.get("search"),
        status=_choice_arg("status", OrderStatus),
        order_type=_choice_arg("order_type", OrderType),
        page=page,
        page_size=page_size,
    )
    return result.to_dict(serializer=lambda o: o.to_dict(include_items=False))


@orders_bp.get("/<uuid:order_id>")
@require_auth
@require_tenant
def get_order(order_id: uuid.UUID):
    order = orders_service.get_order(org_id=g.org_id, order_id=order_id)
    if order is None:
        return {"error": "Order not found"}, 404
    return order.to_dict()


@orders_bp.post("")
@require_auth
@require_tenant
@enforce_plan_limit(LimitType.ORDERS)
def create_order():
    """
    Body: order fields plus `items` [{product_id, quantity, unit_price?}].
    order_number is generated (ORD-YYYYMMDD-NNNN) when omitted.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    raw_items = payload.pop("items", None)

    errors: list[str] = []
    patch: dict = {}
    items: list[dict] = []
    try:
        patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=False)
        enforce_rules_order(patch)
    except ValidationError as e:
        errors.extend(e.errors)
    try:
        items = parse_order_items(raw_items)
    except ValidationError as e:
        errors.extend(e.errors)
    if errors:
        raise ValidationError(errors)

    order = orders_service.create_order(org_id=g.org_id, patch=patch, items=items)
    return order.to_dict(), 201


@orders_bp.put("/<uuid:order_id>/status")
@require_auth
@require_tenant
def update_order_status(order_id: uuid.UUID):
    """Body: {"status": ...}. Completed, Cancelled and Returned are final."""
    payload = request.get_json(silent=True) or {}
    status = payload.get("status") if isinstance(payload, dict) else None
    allowed = [s.value for s in OrderStatus]
    if status not in allowed:
        raise ValidationError(f"status must be one of: {', '.join(allowed)}")

    order = orders_service.update_order_status(org_id=g.org_id, order_id=order_id, status=status)
    if order is None:
        return {"error": "Order not found"}, 404
    return order.to_dict()


@orders_bp.delete("/<uuid:order_id>")
@require_auth
@require_tenant
def delete_order(order_id: uuid.UUID):
    if not orders_service.delete_order(org_id=g.org_id, order_id=order_id):
        return {"error": "Order not found"}, 404
    return "", 204
