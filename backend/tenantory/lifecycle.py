# Overview: Session hooks that stamp audit/tenant columns and turn deletes into soft deletes.

"""
Entity lifecycle hooks.

A single `before_flush` listener runs inside every flush, so the stamping
below is part of the same transaction as the mutation it describes:

1. Audit: new rows get created_at/created_by, dirty rows updated_at/updated_by.
2. Tenant stamping: new tenant-scoped rows with an empty org_id take the
   request's org_id. A non-empty org_id is never overwritten.
3. Soft delete: soft-delete rows passed to session.delete() are put back into
   the session as updates that set is_deleted/deleted_at/deleted_by.

Actor and tenant come from the per-request context (flask.g) populated by
require_auth; outside a request (CLI, webhooks) the actor is None.
"""
from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session

from .errors import TenantContextError
from .models.base import AuditMixin, SoftDeleteMixin, TenantScopedMixin
from .services.tenant_service import get_current_actor, get_current_org_id
from .time_utils import utcnow


def _stamp_new(obj, now, actor) -> None:
    if isinstance(obj, AuditMixin):
        obj.created_at = now
        obj.created_by = actor

    if isinstance(obj, TenantScopedMixin) and obj.org_id is None:
        org_id = get_current_org_id(required=False)
        if org_id is None:
            raise TenantContextError(
                f"Cannot create {type(obj).__name__} without an organization"
            )
        obj.org_id = org_id


def _stamp_modified(session: Session, obj, now, actor) -> None:
    if isinstance(obj, AuditMixin) and session.is_modified(obj, include_collections=False):
        obj.updated_at = now
        obj.updated_by = actor


def _soft_delete(session: Session, obj, now, actor) -> None:
    obj.is_deleted = True
    obj.deleted_at = now
    obj.deleted_by = actor
    if isinstance(obj, AuditMixin):
        obj.updated_at = now
        obj.updated_by = actor
    # Re-adding a pending-delete instance cancels the DELETE; the flag
    # changes above are flushed as an UPDATE instead.
    session.add(obj)


def before_flush(session: Session, flush_context, instances) -> None:
    now = utcnow()
    actor = get_current_actor()

    for obj in list(session.new):
        _stamp_new(obj, now, actor)

    for obj in list(session.deleted):
        if isinstance(obj, SoftDeleteMixin):
            _soft_delete(session, obj, now, actor)

    for obj in list(session.dirty):
        _stamp_modified(session, obj, now, actor)


def register_lifecycle_hooks() -> None:
    if not event.contains(Session, "before_flush", before_flush):
        event.listen(Session, "before_flush", before_flush)
