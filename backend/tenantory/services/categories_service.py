"""
Category Service

MULTI-TENANT: Every read and write goes through TenantRepository(Category, org_id).

Rules:
- Names are unique within an organization
- parent_category_id must reference a category of the same organization
- A category cannot be its own parent or sit under one of its own subcategories
- A category with products or subcategories cannot be deleted
"""
from __future__ import annotations

import uuid

from sqlalchemy import func, or_

from ..errors import BusinessRuleError
from ..extensions import db
from ..models import Category, Product
from ..repository import Page, TenantRepository
from ..validation import ConflictError, ValidationError

CATEGORY_MUTABLE_FIELDS = {"name", "description", "parent_category_id"}


def _repo(org_id: uuid.UUID, **kwargs) -> TenantRepository:
    return TenantRepository(Category, org_id, **kwargs)


def _product_counts(org_id: uuid.UUID, category_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not category_ids:
        return {}
    rows = (
        TenantRepository(Product, org_id)
        .query()
        .filter(Product.category_id.in_(category_ids))
        .with_entities(Product.category_id, func.count(Product.id))
        .group_by(Product.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def serialize_categories(org_id: uuid.UUID, categories: list[Category]) -> list[dict]:
    """Category dicts with sub_categories and product_count filled in."""
    ids = [c.id for c in categories]
    counts = _product_counts(org_id, ids)
    children: dict[uuid.UUID, list[Category]] = {}
    if ids:
        for child in _repo(org_id).find(Category.parent_category_id.in_(ids), order_by=Category.name.asc()):
            children.setdefault(child.parent_category_id, []).append(child)

    result = []
    for c in categories:
        data = c.to_dict()
        data["sub_categories"] = [{"id": str(s.id), "name": s.name} for s in children.get(c.id, [])]
        data["product_count"] = counts.get(c.id, 0)
        result.append(data)
    return result


def serialize_category(org_id: uuid.UUID, category: Category) -> dict:
    return serialize_categories(org_id, [category])[0]


def _ensure_name_available(org_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> None:
    criteria = [func.lower(Category.name) == name.lower()]
    if exclude_id is not None:
        criteria.append(Category.id != exclude_id)
    if _repo(org_id, include_deleted=True).exists(*criteria):
        raise ConflictError(f"Category name already exists in your organization: {name}")


def _ensure_parent(org_id: uuid.UUID, parent_id: uuid.UUID | None, category_id: uuid.UUID | None = None) -> None:
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise ValidationError("Category cannot be its own parent")
    repo = _repo(org_id)
    parent = repo.get_by_id(parent_id)
    if parent is None:
        raise ValidationError("Parent category not found")
    if category_id is None:
        return

    # Walk up from the new parent; reaching the category itself means a cycle
    seen = set()
    ancestor = parent
    while ancestor is not None and ancestor.id not in seen:
        if ancestor.id == category_id:
            raise ValidationError("Category cannot be placed under one of its own subcategories")
        seen.add(ancestor.id)
        ancestor = repo.get_by_id(ancestor.parent_category_id)


def list_categories(
    *,
    org_id: uuid.UUID,
    search: str | None = None,
    parent_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 50,
) -> Page[Category]:
    criteria = []
    if search and search.strip():
        term = f"%{search.strip()}%"
        criteria.append(or_(Category.name.ilike(term), Category.description.ilike(term)))
    if parent_id is not None:
        criteria.append(Category.parent_category_id == parent_id)
    return _repo(org_id).get_paged(page, page_size, *criteria, order_by=(Category.name.asc(), Category.id.asc()))


def get_category(*, org_id: uuid.UUID, category_id: uuid.UUID) -> Category | None:
    return _repo(org_id).get_by_id(category_id)


def create_category(*, org_id: uuid.UUID, patch: dict) -> Category:
    _ensure_name_available(org_id, patch["name"])
    _ensure_parent(org_id, patch.get("parent_category_id"))

    c = Category(org_id=org_id)
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    _repo(org_id).add(c)
    db.session.commit()
    return c


def update_category(*, org_id: uuid.UUID, category_id: uuid.UUID, patch: dict) -> Category | None:
    c = get_category(org_id=org_id, category_id=category_id)
    if c is None:
        return None

    if "name" in patch and patch["name"].lower() != c.name.lower():
        _ensure_name_available(org_id, patch["name"], exclude_id=c.id)
    if "parent_category_id" in patch:
        _ensure_parent(org_id, patch["parent_category_id"], category_id=c.id)

    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    _repo(org_id).update(c)
    db.session.commit()
    return c


def delete_category(*, org_id: uuid.UUID, category_id: uuid.UUID) -> bool:
    """
    Soft-delete a category.

    Raises:
        BusinessRuleError: category still has products or subcategories
    """
    repo = _repo(org_id)
    c = repo.get_by_id(category_id)
    if c is None:
        return False

    if TenantRepository(Product, org_id).exists(Product.category_id == c.id):
        raise BusinessRuleError("Cannot delete category that contains products")
    if repo.exists(Category.parent_category_id == c.id):
        raise BusinessRuleError("Cannot delete category that has subcategories")

    repo.delete(c)
    db.session.commit()
    return True


def get_category_hierarchy(*, org_id: uuid.UUID) -> list[dict]:
    """
    Category forest for the organization: roots with nested `children`.
    Built from a single query; orphans whose parent is deleted become roots.
    """
    categories = _repo(org_id).get_all(order_by=Category.name.asc())
    counts = _product_counts(org_id, [c.id for c in categories])
    known = {c.id for c in categories}

    nodes = {}
    for c in categories:
        node = c.to_dict()
        node["product_count"] = counts.get(c.id, 0)
        node["children"] = []
        nodes[c.id] = node

    roots = []
    for c in categories:
        if c.parent_category_id is not None and c.parent_category_id in known:
            nodes[c.parent_category_id]["children"].append(nodes[c.id])
        else:
            roots.append(nodes[c.id])
    return roots
