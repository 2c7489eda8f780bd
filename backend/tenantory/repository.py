# Overview: Generic repositories with soft-delete filtering and tenant scoping.

"""
Persistence layer.

`Repository` wraps a model with the read/write vocabulary services use and
always hides soft-deleted rows (unless explicitly built with
include_deleted=True, e.g. for uniqueness checks that must see reserved keys).

`TenantRepository` adds the organization predicate to the one base query every
read goes through, and refuses writes of rows stamped with another tenant.
MULTI-TENANT: this is the single place tenant filtering is applied; services
must not add their own org_id predicates on top.

Criteria are plain SQLAlchemy expressions:

    repo = TenantRepository(Product, org_id)
    repo.find(Product.status == "Active")
    repo.get_paged(2, 10, Product.name.ilike("%bolt%"), order_by=Product.name)
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from .extensions import db
from .errors import TenantAccessError

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def to_dict(self, serializer: Callable[[T], Any] = lambda item: item.to_dict()) -> dict:
        return {
            "items": [serializer(item) for item in self.items],
            "total_count": self.total_count,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


class Repository(Generic[T]):
    def __init__(self, model: type[T], *, include_deleted: bool = False, session=None):
        self.model = model
        self.include_deleted = include_deleted
        self.session = session or db.session

    # -- reads -------------------------------------------------------------

    def query(self):
        """Base query every read starts from."""
        q = self.session.query(self.model)
        if not self.include_deleted and hasattr(self.model, "is_deleted"):
            q = q.filter(self.model.is_deleted.is_(False))
        return q

    def get_by_id(self, entity_id: uuid.UUID | Any) -> Optional[T]:
        if entity_id is None:
            return None
        return self.query().filter(self.model.id == entity_id).first()

    def get_all(self, order_by: Any = None) -> list[T]:
        q = self.query()
        if order_by is not None:
            q = q.order_by(order_by)
        return q.all()

    def find(self, *criteria, order_by: Any = None) -> list[T]:
        q = self.query().filter(*criteria)
        if order_by is not None:
            q = q.order_by(order_by)
        return q.all()

    def first_or_none(self, *criteria) -> Optional[T]:
        return self.query().filter(*criteria).first()

    def exists(self, *criteria) -> bool:
        return self.session.query(self.query().filter(*criteria).exists()).scalar()

    def count(self, *criteria) -> int:
        return self.query().filter(*criteria).count()

    def get_paged(self, page: int, page_size: int, *criteria, order_by: Any = None) -> Page[T]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        q = self.query().filter(*criteria)
        total = q.count()
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)
        items = q.offset((page - 1) * page_size).limit(page_size).all()
        return Page(items=items, total_count=total, page=page, page_size=page_size)

    # -- writes (flushed/committed by the caller) --------------------------

    def _check_writable(self, entity: T) -> None:
        return None

    def add(self, entity: T) -> T:
        self._check_writable(entity)
        self.session.add(entity)
        return entity

    def add_range(self, entities: Iterable[T]) -> list[T]:
        entities = list(entities)
        for entity in entities:
            self.add(entity)
        return entities

    def update(self, entity: T) -> T:
        self._check_writable(entity)
        self.session.add(entity)
        return entity

    def delete(self, entity_or_id: T | uuid.UUID) -> bool:
        """
        Delete by entity or id. Soft-delete models are flagged rather than
        removed (see lifecycle.py). Returns False when nothing matched.
        """
        entity = entity_or_id
        if not isinstance(entity_or_id, self.model):
            entity = self.get_by_id(entity_or_id)
            if entity is None:
                return False
        self._check_writable(entity)
        self.session.delete(entity)
        return True

    def delete_range(self, entities: Iterable[T]) -> int:
        deleted = 0
        for entity in entities:
            if self.delete(entity):
                deleted += 1
        return deleted


class TenantRepository(Repository[T]):
    """
    Repository bound to one organization.

    SECURITY: reads never see other tenants' rows, so a foreign id behaves
    exactly like a missing id. Writes of a foreign row raise TenantAccessError.
    """

    def __init__(self, model: type[T], org_id: uuid.UUID, *, include_deleted: bool = False, session=None):
        if org_id is None:
            raise TenantAccessError("Tenant context not established")
        if not hasattr(model, "org_id"):
            raise TypeError(f"{model.__name__} is not tenant-scoped")
        super().__init__(model, include_deleted=include_deleted, session=session)
        self.org_id = org_id

    def query(self):
        return super().query().filter(self.model.org_id == self.org_id)

    def _check_writable(self, entity: T) -> None:
        current = getattr(entity, "org_id", None)
        if current is None:
            entity.org_id = self.org_id
        elif current != self.org_id:
            raise TenantAccessError(
                f"{self.model.__name__} belongs to another organization"
            )
