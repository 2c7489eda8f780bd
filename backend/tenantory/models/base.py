# Overview: Shared column mixins for identity, audit, soft delete and tenant scoping.

from __future__ import annotations

import uuid

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import to_utc_z


class UUIDPrimaryKeyMixin:
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)


class AuditMixin:
    """
    Who/when columns. Values are stamped by the before_flush hook in
    lifecycle.py; services never set them by hand.
    """
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.String(255), nullable=True)

    def audit_dict(self) -> dict:
        return {
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "updated_by": self.updated_by,
        }


class SoftDeleteMixin:
    """
    Rows are never physically removed: session.delete() is rewritten into an
    update of these columns, and repositories filter is_deleted rows out.
    """
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(255), nullable=True)


class TenantScopedMixin:
    """
    MULTI-TENANT: Row belongs to exactly one organization.
    org_id is stamped from the request context on insert when left empty.
    """

    @declared_attr
    def org_id(cls):
        return db.Column(
            db.Uuid,
            db.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )


class BaseEntity(UUIDPrimaryKeyMixin, AuditMixin, SoftDeleteMixin):
    pass


class TenantEntity(BaseEntity, TenantScopedMixin):
    pass
