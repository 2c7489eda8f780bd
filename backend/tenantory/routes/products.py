# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/tenantory/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).

SECURITY: All routes require authentication and a resolved organization.
Creating a product counts against the plan's product allowance (402).
"""
import uuid

from flask import Blueprint, request, g

from ..decorators import require_auth, require_tenant, enforce_plan_limit
from ..models import Product
from ..models.enums import LimitType, ProductStatus
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_product,
    parse_paging,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"sku", "name"},
    choices={"status": ProductStatus},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _optional_uuid_arg(name: str) -> uuid.UUID | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a valid id")


@products_bp.get("")
@require_auth
@require_tenant
def list_products():
    """
    List products in the caller's organization.

    Query params:
    - search: substring over name, SKU and description
    - category_id: only products in this category
    - status: Active | Inactive | Discontinued | OutOfStock
    - page / page_size: 1-indexed paging (default 10, max 100)
    """
    page, page_size = parse_paging(request.args)
    status = request.args.get("status") or None
    if status and status not in [s.value for s in ProductStatus]:
        raise ValidationError(f"status must be one of: {', '.join(s.value for s in ProductStatus)}")

    result = products_service.list_products(
        org_id=g.org_id,
        search=request.args.get("search"),
        category_id=_optional_uuid_arg("category_id"),
        status=status,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@products_bp.get("/check-sku")
@require_auth
@require_tenant
def check_sku():
    """Whether a SKU is still free in this organization (exclude_id for edits)."""
    sku = (request.args.get("sku") or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    available = products_service.is_sku_available(
        org_id=g.org_id, sku=sku, exclude_id=_optional_uuid_arg("exclude_id")
    )
    return {"sku": sku, "available": available}


@products_bp.get("/<uuid:product_id>")
@require_auth
@require_tenant
def get_product(product_id: uuid.UUID):
    product = products_service.get_product(org_id=g.org_id, product_id=product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_tenant
@enforce_plan_limit(LimitType.PRODUCTS)
def create_product():
    """
    Create a new product in the caller's organization.

    Returns 400 on validation errors or a duplicate SKU, 402 at the plan limit.
    """
    payload = request.get_json(silent=True)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(org_id=g.org_id, patch=patch)
    return created.to_dict(), 201


@products_bp.put("/<uuid:product_id>")
@require_auth
@require_tenant
def update_product(product_id: uuid.UUID):
    payload = request.get_json(silent=True)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    current = products_service.get_product(org_id=g.org_id, product_id=product_id)
    if current is None:
        return {"error": "Product not found"}, 404
    enforce_rules_product(patch, current)

    updated = products_service.update_product(org_id=g.org_id, product_id=product_id, patch=patch)
    if updated is None:
        return {"error": "Product not found"}, 404
    return updated.to_dict()


@products_bp.delete("/<uuid:product_id>")
@require_auth
@require_tenant
def delete_product(product_id: uuid.UUID):
    """Soft delete. The SKU stays reserved within the organization."""
    if not products_service.delete_product(org_id=g.org_id, product_id=product_id):
        return {"error": "Product not found"}, 404
    return "", 204


@products_bp.get("/<uuid:product_id>/movements")
@require_auth
@require_tenant
def list_movements(product_id: uuid.UUID):
    if products_service.get_product(org_id=g.org_id, product_id=product_id) is None:
        return {"error": "Product not found"}, 404
    page, page_size = parse_paging(request.args, default_page_size=20)
    result = products_service.list_stock_movements(
        org_id=g.org_id, product_id=product_id, page=page, page_size=page_size
    )
    return result.to_dict()


@products_bp.post("/<uuid:product_id>/movements")
@require_auth
@require_tenant
def record_movement(product_id: uuid.UUID):
    """
    Record a stock movement.

    Body: movement_type, quantity, optional warehouse_id, reference, notes.
    Adjustment takes a signed quantity; every other type a positive one.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    warehouse_id = payload.get("warehouse_id")
    if warehouse_id is not None:
        try:
            warehouse_id = uuid.UUID(str(warehouse_id))
        except ValueError:
            raise ValidationError("warehouse_id must be a valid id")

    movement = products_service.record_stock_movement(
        org_id=g.org_id,
        product_id=product_id,
        movement_type=payload.get("movement_type"),
        quantity=payload.get("quantity"),
        warehouse_id=warehouse_id,
        reference=payload.get("reference"),
        notes=payload.get("notes"),
    )
    if movement is None:
        return {"error": "Product not found"}, 404
    return movement.to_dict(), 201
