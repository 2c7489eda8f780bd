# Overview: Flask API routes for warehouses; parses input and returns JSON responses.

"""
Warehouse routes.

MULTI-TENANT: scoped to g.org_id. Creating a warehouse counts against the
plan's warehouse allowance (402).
"""
import uuid

from flask import Blueprint, request, g

from ..decorators import require_auth, require_tenant, enforce_plan_limit
from ..models import Warehouse
from ..models.enums import LimitType
from ..services import warehouses_service
from ..validation import ModelValidationPolicy, validate_payload, parse_paging

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields=set(warehouses_service.WAREHOUSE_MUTABLE_FIELDS),
    required_on_create={"name"},
)

warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")


@warehouses_bp.get("")
@require_auth
@require_tenant
def list_warehouses():
    page, page_size = parse_paging(request.args, default_page_size=50)
    result = warehouses_service.list_warehouses(org_id=g.org_id, page=page, page_size=page_size)
    return result.to_dict()


@warehouses_bp.get("/<uuid:warehouse_id>")
@require_auth
@require_tenant
def get_warehouse(warehouse_id: uuid.UUID):
    warehouse = warehouses_service.get_warehouse(org_id=g.org_id, warehouse_id=warehouse_id)
    if warehouse is None:
        return {"error": "Warehouse not found"}, 404
    return warehouse.to_dict()


@warehouses_bp.post("")
@require_auth
@require_tenant
@enforce_plan_limit(LimitType.WAREHOUSES)
def create_warehouse():
    patch = validate_payload(
        model=Warehouse, payload=request.get_json(silent=True), policy=WAREHOUSE_POLICY, partial=False
    )
    warehouse = warehouses_service.create_warehouse(org_id=g.org_id, patch=patch)
    return warehouse.to_dict(), 201


@warehouses_bp.put("/<uuid:warehouse_id>")
@require_auth
@require_tenant
def update_warehouse(warehouse_id: uuid.UUID):
    patch = validate_payload(
        model=Warehouse, payload=request.get_json(silent=True), policy=WAREHOUSE_POLICY, partial=True
    )
    warehouse = warehouses_service.update_warehouse(org_id=g.org_id, warehouse_id=warehouse_id, patch=patch)
    if warehouse is None:
        return {"error": "Warehouse not found"}, 404
    return warehouse.to_dict()


@warehouses_bp.delete("/<uuid:warehouse_id>")
@require_auth
@require_tenant
def delete_warehouse(warehouse_id: uuid.UUID):
    if not warehouses_service.delete_warehouse(org_id=g.org_id, warehouse_id=warehouse_id):
        return {"error": "Warehouse not found"}, 404
    return "", 204
