# Overview: Flask API routes for product categories; parses input and returns JSON responses.

"""
Category routes.

MULTI-TENANT: scoped to g.org_id. Responses carry parent_category_name,
sub_categories and product_count.
"""
import uuid

from flask import Blueprint, request, g

from ..decorators import require_auth, require_tenant
from ..models import Category
from ..services import categories_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, parse_paging

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=set(categories_service.CATEGORY_MUTABLE_FIELDS),
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_tenant
def list_categories():
    """
    Query params:
    - search: substring over name and description
    - parent_id: only direct children of this category
    - page / page_size (default 50)
    """
    page, page_size = parse_paging(request.args, default_page_size=50)
    parent_id = request.args.get("parent_id")
    if parent_id:
        try:
            parent_id = uuid.UUID(parent_id)
        except ValueError:
            raise ValidationError("parent_id must be a valid id")

    result = categories_service.list_categories(
        org_id=g.org_id,
        search=request.args.get("search"),
        parent_id=parent_id or None,
        page=page,
        page_size=page_size,
    )
    data = result.to_dict(serializer=lambda c: c)
    data["items"] = categories_service.serialize_categories(g.org_id, result.items)
    return data


@categories_bp.get("/hierarchy")
@require_auth
@require_tenant
def category_hierarchy():
    return {"items": categories_service.get_category_hierarchy(org_id=g.org_id)}


@categories_bp.get("/<uuid:category_id>")
@require_auth
@require_tenant
def get_category(category_id: uuid.UUID):
    category = categories_service.get_category(org_id=g.org_id, category_id=category_id)
    if category is None:
        return {"error": "Category not found"}, 404
    return categories_service.serialize_category(g.org_id, category)


@categories_bp.post("")
@require_auth
@require_tenant
def create_category():
    payload = request.get_json(silent=True)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    category = categories_service.create_category(org_id=g.org_id, patch=patch)
    return categories_service.serialize_category(g.org_id, category), 201


@categories_bp.put("/<uuid:category_id>")
@require_auth
@require_tenant
def update_category(category_id: uuid.UUID):
    payload = request.get_json(silent=True)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    category = categories_service.update_category(org_id=g.org_id, category_id=category_id, patch=patch)
    if category is None:
        return {"error": "Category not found"}, 404
    return categories_service.serialize_category(g.org_id, category)


@categories_bp.delete("/<uuid:category_id>")
@require_auth
@require_tenant
def delete_category(category_id: uuid.UUID):
    """400 while the category still holds products or subcategories."""
    if not categories_service.delete_category(org_id=g.org_id, category_id=category_id):
        return {"error": "Category not found"}, 404
    return "", 204
