"""
User Service

Users are global rows mirrored from the identity provider; what a user may
see is decided by memberships. sync_user() is the single provider-driven
upsert path (identity webhook and POST /api/users/sync).

MULTI-TENANT: member listing/lookup is scoped through
TenantRepository(Membership, org_id); a user who is not a member of the
caller's organization is reported as not found.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import or_, select

from ..extensions import db
from ..models import ApplicationUser, Membership
from ..models.enums import MembershipRole
from ..repository import Page, Repository, TenantRepository
from ..time_utils import to_utc_z, utcnow
from ..validation import ConflictError, ValidationError
from . import organization_service

logger = logging.getLogger(__name__)

# External id placeholder for invited users who have not signed up yet
PENDING_PREFIX = "pending_"

USER_PROFILE_FIELDS = {"email", "first_name", "last_name", "username", "image_url", "phone"}


def _users(include_deleted: bool = False) -> Repository:
    return Repository(ApplicationUser, include_deleted=include_deleted)


def get_user_by_external_id(external_id: str | None) -> ApplicationUser | None:
    if not external_id:
        return None
    return _users().first_or_none(ApplicationUser.external_id == external_id)


def get_user(user_id: uuid.UUID) -> ApplicationUser | None:
    return _users().get_by_id(user_id)


def sync_user(
    *,
    external_id: str,
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
    username: str | None = None,
    image_url: str | None = None,
    phone: str | None = None,
) -> tuple[ApplicationUser, bool]:
    """
    Idempotent upsert of a provider user keyed by external id.

    An invited (pending) user with the same email is claimed instead of
    creating a second row. Callers pass only provider-verified emails.
    Returns (user, created).
    """
    if not external_id:
        raise ValidationError("external_id is required")
    if not email:
        raise ValidationError("email is required")

    user = _users(include_deleted=True).first_or_none(ApplicationUser.external_id == external_id)
    created = False

    if user is None:
        user = _users().first_or_none(
            ApplicationUser.email == email,
            ApplicationUser.external_id.startswith(PENDING_PREFIX),
        )
        if user is not None:
            user.external_id = external_id
            logger.info("Claimed pending invite for %s", email)

    if user is None:
        user = ApplicationUser(external_id=external_id, email=email, is_active=True)
        db.session.add(user)
        created = True
    elif user.is_deleted:
        user.is_deleted = False
        user.deleted_at = None
        user.deleted_by = None

    user.email = email
    for field, value in (
        ("first_name", first_name),
        ("last_name", last_name),
        ("username", username),
        ("image_url", image_url),
        ("phone", phone),
    ):
        if value is not None:
            setattr(user, field, value)
    user.last_seen_at = utcnow()

    db.session.commit()
    return user, created


def member_dict(m: Membership) -> dict:
    return {
        **m.user.to_dict(),
        "membership_id": str(m.id),
        "role": m.role,
        "is_active_membership": m.is_active,
        "joined_at": to_utc_z(m.joined_at),
    }


def list_members(
    *,
    org_id: uuid.UUID,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> Page[Membership]:
    user_filter = select(ApplicationUser.id).where(ApplicationUser.is_deleted.is_(False))
    if search and search.strip():
        term = f"%{search.strip()}%"
        user_filter = user_filter.where(or_(
            ApplicationUser.email.ilike(term),
            ApplicationUser.first_name.ilike(term),
            ApplicationUser.last_name.ilike(term),
        ))
    return TenantRepository(Membership, org_id).get_paged(
        page,
        page_size,
        Membership.user_id.in_(user_filter),
        order_by=(Membership.joined_at.asc(), Membership.id.asc()),
    )


def get_member(*, org_id: uuid.UUID, user_id: uuid.UUID) -> Membership | None:
    membership = organization_service.get_membership(org_id=org_id, user_id=user_id)
    if membership is None or membership.user.is_deleted:
        return None
    return membership


def invite_member(
    *,
    org_id: uuid.UUID,
    email: str,
    role: str = MembershipRole.USER.value,
    first_name: str | None = None,
    last_name: str | None = None,
) -> Membership:
    """
    Add a user to the organization by email, creating a pending user when
    nobody with that email has signed up yet.

    Raises:
        ConflictError: already a member
    """
    user = _users().first_or_none(ApplicationUser.email == email)
    if user is None:
        user = ApplicationUser(
            external_id=f"{PENDING_PREFIX}{uuid.uuid4().hex}",
            email=email,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        db.session.add(user)
        db.session.flush()
    elif organization_service.get_membership(org_id=org_id, user_id=user.id) is not None:
        raise ConflictError(f"User is already a member of this organization: {email}")

    membership = organization_service.add_member(org_id=org_id, user=user, role=role)
    db.session.commit()
    logger.info("Member invited org=%s email=%s role=%s", org_id, email, role)
    return membership


def update_member(*, org_id: uuid.UUID, user_id: uuid.UUID, patch: dict) -> Membership | None:
    """Change a member's role within the organization."""
    membership = get_member(org_id=org_id, user_id=user_id)
    if membership is None:
        return None

    if "role" in patch and patch["role"] != membership.role:
        organization_service.ensure_not_last_owner(membership, new_role=patch["role"])
        membership.role = patch["role"]

    db.session.commit()
    return membership


def update_profile(*, user: ApplicationUser, patch: dict) -> ApplicationUser:
    for k, v in patch.items():
        if k in USER_PROFILE_FIELDS:
            setattr(user, k, v)
    db.session.commit()
    return user


def remove_member(*, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    return organization_service.remove_member(org_id=org_id, user_id=user_id)
