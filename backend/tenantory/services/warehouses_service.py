"""
Warehouse Service

MULTI-TENANT: scoped through TenantRepository(Warehouse, org_id).
Warehouse names are unique per organization.
"""
from __future__ import annotations

import uuid

from ..extensions import db
from ..models import Warehouse
from ..repository import Page, TenantRepository
from ..validation import ConflictError

WAREHOUSE_MUTABLE_FIELDS = {
    "name",
    "description",
    "address",
    "city",
    "state",
    "country",
    "postal_code",
    "is_active",
}


def _repo(org_id: uuid.UUID, **kwargs) -> TenantRepository:
    return TenantRepository(Warehouse, org_id, **kwargs)


def _ensure_name_available(org_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> None:
    criteria = [Warehouse.name == name]
    if exclude_id is not None:
        criteria.append(Warehouse.id != exclude_id)
    if _repo(org_id, include_deleted=True).exists(*criteria):
        raise ConflictError(f"Warehouse name already exists in your organization: {name}")


def list_warehouses(*, org_id: uuid.UUID, page: int = 1, page_size: int = 50) -> Page[Warehouse]:
    return _repo(org_id).get_paged(page, page_size, order_by=(Warehouse.name.asc(), Warehouse.id.asc()))


def get_warehouse(*, org_id: uuid.UUID, warehouse_id: uuid.UUID) -> Warehouse | None:
    return _repo(org_id).get_by_id(warehouse_id)


def create_warehouse(*, org_id: uuid.UUID, patch: dict) -> Warehouse:
    _ensure_name_available(org_id, patch["name"])
    w = Warehouse(org_id=org_id)
    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(w, k, v)
    _repo(org_id).add(w)
    db.session.commit()
    return w


def update_warehouse(*, org_id: uuid.UUID, warehouse_id: uuid.UUID, patch: dict) -> Warehouse | None:
    w = get_warehouse(org_id=org_id, warehouse_id=warehouse_id)
    if w is None:
        return None
    if "name" in patch and patch["name"] != w.name:
        _ensure_name_available(org_id, patch["name"], exclude_id=w.id)
    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(w, k, v)
    db.session.commit()
    return w


def delete_warehouse(*, org_id: uuid.UUID, warehouse_id: uuid.UUID) -> bool:
    deleted = _repo(org_id).delete(warehouse_id)
    if deleted:
        db.session.commit()
    return deleted
