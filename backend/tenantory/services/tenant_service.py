"""
Multi-Tenant Service: request tenant context and organization resolution

WHY: Centralize how a request's tenant is determined and read, so that the
repository layer and the lifecycle hooks agree on a single org_id.

SECURITY INVARIANTS:
1. g.org_id always holds the internal Organization UUID, never a provider id
2. The external -> internal mapping is a read-only lookup (no writes during auth)
3. A token without an organization claim falls back to the user's single
   active membership
4. Repositories bound to g.org_id are the only tenant filter

USAGE:
    from tenantory.services.tenant_service import tenant_repository

    products = tenant_repository(Product).find(Product.status == "Active")
"""
from __future__ import annotations

import uuid

from flask import g, has_app_context

from ..errors import TenantContextError
from ..extensions import db
from ..models import ApplicationUser, Membership, Organization
from ..repository import TenantRepository


def get_current_org_id(required: bool = True) -> uuid.UUID | None:
    """
    Get current tenant's org_id from Flask g context.

    SECURITY: Raises TenantContextError if org_id not set and required.
    """
    org_id = g.get("org_id") if has_app_context() else None
    if org_id is None and required:
        raise TenantContextError("Tenant context not established")
    return org_id


def get_current_actor() -> str | None:
    """External id of the caller, used for created_by/updated_by/deleted_by."""
    if not has_app_context():
        return None
    return g.get("actor_id")


def get_current_user() -> ApplicationUser | None:
    return g.get("current_user") if has_app_context() else None


def tenant_repository(model, org_id: uuid.UUID | None = None, **kwargs) -> TenantRepository:
    """Repository bound to the given org (defaults to the request tenant)."""
    if org_id is None:
        org_id = get_current_org_id()
    return TenantRepository(model, org_id, **kwargs)


def find_organization_by_external_id(external_id: str | None) -> Organization | None:
    if not external_id:
        return None
    return (
        db.session.query(Organization)
        .filter(Organization.external_id == external_id, Organization.is_deleted.is_(False))
        .first()
    )


def get_active_membership(user_id: uuid.UUID) -> Membership | None:
    return (
        db.session.query(Membership)
        .join(Organization, Organization.id == Membership.org_id)
        .filter(
            Membership.user_id == user_id,
            Membership.is_active.is_(True),
            Organization.is_deleted.is_(False),
        )
        .first()
    )


def resolve_request_org_id(
    *,
    org_external_id: str | None,
    user: ApplicationUser | None,
) -> uuid.UUID | None:
    """
    Map the caller to an internal organization id.

    1. Organization claim -> lookup by external id (active orgs only)
    2. Otherwise the user's active membership
    3. Otherwise None ("no tenant"; endpoints that need one reject later)

    Read-only: unknown organizations are NOT created here. Creating local
    organizations happens through organization_service.sync_organization
    (webhook or POST /api/organizations/sync).
    """
    if org_external_id:
        org = find_organization_by_external_id(org_external_id)
        if org is not None and org.is_active:
            return org.id
        return None

    if user is not None:
        membership = get_active_membership(user.id)
        if membership is not None and membership.organization.is_active:
            return membership.org_id

    return None
