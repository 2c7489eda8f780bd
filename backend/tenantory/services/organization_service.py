# Overview: Service-layer operations for organizations (tenants) and memberships.

"""
Organization Service

WHY: Organizations are the tenant boundary. They come into existence either
from the identity provider (webhook or explicit sync) or from a signed-in user
creating one in-app; both paths end in the same rows.

DESIGN:
- sync_organization() is the ONLY provider-driven upsert path. The identity
  webhook and POST /api/organizations/sync both call it; authentication never
  writes organizations.
- Multi-step creation (organization + owner membership + trial subscription)
  commits once, so a failure leaves nothing behind.
- Switching the active organization is deactivate-all, flush, activate-one;
  the partial unique index on memberships(user_id) WHERE is_active backs it.
"""
from __future__ import annotations

import json
import logging
import re
import uuid

from ..errors import BusinessRuleError
from ..extensions import db
from ..models import ApplicationUser, Membership, Organization
from ..models.enums import MembershipRole
from ..repository import Repository, TenantRepository
from ..time_utils import utcnow
from ..validation import ConflictError
from .subscription_service import build_trial_subscription, get_or_create_for_org

logger = logging.getLogger(__name__)

ORGANIZATION_MUTABLE_FIELDS = {
    "name",
    "slug",
    "description",
    "industry",
    "website",
    "email",
    "phone",
    "address",
    "image_url",
    "tax_id",
    "default_currency",
    "time_zone",
}


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:200] or "organization"


def _org_repo(include_deleted: bool = False) -> Repository:
    return Repository(Organization, include_deleted=include_deleted)


def get_organization(*, org_id: uuid.UUID) -> Organization | None:
    return _org_repo().get_by_id(org_id)


def apply_organization_patch(org: Organization, patch: dict) -> None:
    for k, v in patch.items():
        if k in ORGANIZATION_MUTABLE_FIELDS:
            setattr(org, k, v)
    if "settings" in patch:
        settings = patch["settings"]
        org.settings = json.dumps(settings) if settings is not None else None


# =============================================================================
# MEMBERSHIPS
# =============================================================================

def get_membership(*, org_id: uuid.UUID, user_id: uuid.UUID) -> Membership | None:
    return TenantRepository(Membership, org_id).first_or_none(Membership.user_id == user_id)


def _deactivate_all(user_id: uuid.UUID) -> None:
    (
        db.session.query(Membership)
        .filter(Membership.user_id == user_id, Membership.is_active.is_(True))
        .update({Membership.is_active: False}, synchronize_session="fetch")
    )
    db.session.flush()


def add_member(
    *,
    org_id: uuid.UUID,
    user: ApplicationUser,
    role: str = MembershipRole.USER.value,
    activate: bool = False,
) -> Membership:
    """
    Add (or re-role) a user in an organization. Caller commits.

    A user's first membership becomes their active one so that tokens
    without an organization claim still resolve a tenant.
    """
    membership = get_membership(org_id=org_id, user_id=user.id)
    if membership is None:
        has_active = (
            db.session.query(Membership)
            .filter(Membership.user_id == user.id, Membership.is_active.is_(True))
            .first()
            is not None
        ) if user.id is not None else False
        membership = Membership(user=user, org_id=org_id, role=role, joined_at=utcnow(), is_active=False)
        TenantRepository(Membership, org_id).add(membership)
        if not has_active and not activate:
            membership.is_active = True
    else:
        membership.role = role

    if activate and not membership.is_active:
        if user.id is not None:
            _deactivate_all(user.id)
        membership.is_active = True
    return membership


def activate_membership(*, user: ApplicationUser, org_id: uuid.UUID) -> Membership | None:
    """Make `org_id` the user's active organization. None if not a member."""
    membership = get_membership(org_id=org_id, user_id=user.id)
    if membership is None:
        return None
    if not membership.is_active:
        _deactivate_all(user.id)
        membership.is_active = True
    db.session.commit()
    return membership


def list_user_organizations(*, user: ApplicationUser) -> list[Membership]:
    return (
        db.session.query(Membership)
        .join(Organization, Organization.id == Membership.org_id)
        .filter(Membership.user_id == user.id, Organization.is_deleted.is_(False))
        .order_by(Organization.name.asc())
        .all()
    )


def _owner_count(org_id: uuid.UUID) -> int:
    return TenantRepository(Membership, org_id).count(Membership.role == MembershipRole.OWNER.value)


def ensure_not_last_owner(membership: Membership, new_role: str | None = None) -> None:
    if membership.role != MembershipRole.OWNER.value:
        return
    if new_role == MembershipRole.OWNER.value:
        return
    if _owner_count(membership.org_id) <= 1:
        raise BusinessRuleError("An organization must keep at least one owner")


def remove_member(*, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """Hard delete of the join row (memberships are not soft-deleted)."""
    repo = TenantRepository(Membership, org_id)
    membership = repo.first_or_none(Membership.user_id == user_id)
    if membership is None:
        return False
    ensure_not_last_owner(membership)
    repo.delete(membership)
    db.session.commit()
    return True


# =============================================================================
# ORGANIZATION LIFECYCLE
# =============================================================================

def sync_organization(
    *,
    external_id: str,
    name: str,
    slug: str | None = None,
    image_url: str | None = None,
    created_by_external_id: str | None = None,
) -> tuple[Organization, bool]:
    """
    Idempotent upsert of a provider organization, keyed by external id.

    On first sight the organization gets a trial subscription and, when the
    creating user is already known locally, an Owner membership, all in one
    commit. Re-delivery converges: the same input yields the same row.

    Returns:
        (organization, created)
    """
    org = _org_repo(include_deleted=True).first_or_none(Organization.external_id == external_id)
    created = org is None

    if created:
        org = Organization(external_id=external_id, name=name, is_active=True)
        db.session.add(org)
    elif org.is_deleted:
        org.is_deleted = False
        org.deleted_at = None
        org.deleted_by = None
        org.is_active = True

    org.name = name or org.name
    org.slug = slug or org.slug or slugify(org.name)
    if image_url is not None:
        org.image_url = image_url
    db.session.flush()

    get_or_create_for_org(org.id)

    if created_by_external_id:
        creator = (
            db.session.query(ApplicationUser)
            .filter(ApplicationUser.external_id == created_by_external_id, ApplicationUser.is_deleted.is_(False))
            .first()
        )
        if creator is not None and get_membership(org_id=org.id, user_id=creator.id) is None:
            add_member(org_id=org.id, user=creator, role=MembershipRole.OWNER.value)

    db.session.commit()
    logger.info("Organization synced external_id=%s created=%s", external_id, created)
    return org, created


def create_organization_for_user(*, user: ApplicationUser, patch: dict) -> Organization:
    """
    Create an organization owned by `user` and make it their active one.
    Organization, Owner membership and trial subscription commit together.
    """
    slug = patch.get("slug") or slugify(patch["name"])
    if _org_repo().exists(Organization.slug == slug):
        slug = f"{slug[:190]}-{uuid.uuid4().hex[:6]}"

    org = Organization(is_active=True)
    apply_organization_patch(org, {**patch, "slug": slug})
    db.session.add(org)
    db.session.flush()

    add_member(org_id=org.id, user=user, role=MembershipRole.OWNER.value, activate=True)
    db.session.add(build_trial_subscription(org.id))

    db.session.commit()
    logger.info("Organization created id=%s owner=%s", org.id, user.external_id)
    return org


def update_organization(*, org_id: uuid.UUID, patch: dict) -> Organization | None:
    org = get_organization(org_id=org_id)
    if org is None:
        return None
    if "slug" in patch and patch["slug"] and patch["slug"] != org.slug:
        if _org_repo().exists(Organization.slug == patch["slug"], Organization.id != org.id):
            raise ConflictError(f"Slug already in use: {patch['slug']}")
    apply_organization_patch(org, patch)
    db.session.commit()
    return org


def complete_setup(*, org_id: uuid.UUID, patch: dict) -> Organization | None:
    """Apply onboarding details and mark setup complete (repeatable)."""
    org = get_organization(org_id=org_id)
    if org is None:
        return None
    apply_organization_patch(org, patch)
    if not org.has_completed_setup:
        org.has_completed_setup = True
        org.setup_completed_at = utcnow()
    db.session.commit()
    return org


def deactivate_organization(*, org_id: uuid.UUID) -> Organization | None:
    org = get_organization(org_id=org_id)
    if org is None:
        return None
    org.is_active = False
    db.session.commit()
    return org


def get_member_role(*, org_id: uuid.UUID, user_id: uuid.UUID) -> str | None:
    membership = get_membership(org_id=org_id, user_id=user_id)
    return membership.role if membership is not None else None


def create_organization(*, name: str, external_id: str | None = None) -> Organization:
    """Operator-side creation (CLI): provider-linked when external_id is given, otherwise local only."""
    if external_id:
        org, _ = sync_organization(external_id=external_id, name=name)
        return org

    slug = slugify(name)
    if _org_repo().exists(Organization.slug == slug):
        slug = f"{slug[:190]}-{uuid.uuid4().hex[:6]}"
    org = Organization(name=name, slug=slug, is_active=True)
    db.session.add(org)
    db.session.flush()
    db.session.add(build_trial_subscription(org.id))
    db.session.commit()
    logger.info("Organization created id=%s (operator)", org.id)
    return org
