# Overview: Flask API routes for the caller's profile and organization members.

"""
User routes.

/sync and /me act on the caller; everything else manages the members of the
caller's organization (MULTI-TENANT: scoped through memberships of g.org_id).
Inviting, editing and removing members requires Owner or Admin.
"""
import uuid

from flask import Blueprint, current_app, request, g

from ..claims import resolve_org_role
from ..decorators import require_auth, require_tenant, require_role, enforce_plan_limit, current_role
from ..models.enums import LimitType, MembershipRole
from ..services import organization_service, user_service
from ..extensions import db
from ..validation import EMAIL_RE, ValidationError, parse_paging

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

ROLE_VALUES = [r.value for r in MembershipRole]
MEMBER_UPDATE_FIELDS = {"role"}


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _optional_str(payload: dict, field: str, max_len: int, errors: list[str]) -> None:
    value = payload.get(field)
    if value is None:
        return
    if not isinstance(value, str):
        errors.append(f"{field} must be a string")
    elif len(value) > max_len:
        errors.append(f"{field} must be at most {max_len} characters")


def _validate_role(role, errors: list[str]) -> None:
    if role not in ROLE_VALUES:
        errors.append(f"role must be one of: {', '.join(ROLE_VALUES)}")


@users_bp.post("/sync")
@require_auth
def sync_current_user():
    """
    Create or refresh the caller's local user from the token (plus optional
    body fields first_name, last_name, username, image_url, phone).

    The email always comes from the token's email claim; a body email is
    accepted only when it matches. Pending invites are claimed by that email.

    When the token names an organization that exists locally and the caller
    is not yet a member, the membership is created with the token's role.
    """
    payload = _json_object()
    errors: list[str] = []
    email = g.get("email")
    body_email = payload.get("email")
    if not email or not isinstance(email, str) or not EMAIL_RE.match(email):
        errors.append("email claim is required and must be a valid email address")
    elif body_email is not None and (
        not isinstance(body_email, str) or body_email.strip().lower() != email.lower()
    ):
        errors.append("email must match the signed-in account")
    for field, max_len in (("first_name", 100), ("last_name", 100), ("username", 100), ("image_url", 500), ("phone", 20)):
        _optional_str(payload, field, max_len, errors)
    if errors:
        raise ValidationError(errors)

    user, created = user_service.sync_user(
        external_id=g.actor_id,
        email=email,
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        username=payload.get("username"),
        image_url=payload.get("image_url"),
        phone=payload.get("phone"),
    )

    org_id = g.get("org_id")
    if org_id is not None and organization_service.get_membership(org_id=org_id, user_id=user.id) is None:
        role = resolve_org_role(g.claims) or MembershipRole.USER.value
        organization_service.add_member(org_id=org_id, user=user, role=role)
        db.session.commit()
        current_app.logger.info("Added %s to organization %s as %s on sync", user.external_id, org_id, role)

    return user.to_dict(), 201 if created else 200


@users_bp.get("/me")
@require_auth
def get_me():
    user = g.get("current_user")
    if user is None:
        return {"error": "User not found"}, 404
    memberships = organization_service.list_user_organizations(user=user)
    return {
        **user.to_dict(),
        "organization_id": str(g.org_id) if g.get("org_id") else None,
        "role": current_role(),
        "memberships": [m.to_dict() for m in memberships],
    }


@users_bp.put("/me")
@require_auth
def update_me():
    user = g.get("current_user")
    if user is None:
        return {"error": "User not found"}, 404
    payload = _json_object()
    errors: list[str] = []
    unknown = sorted(set(payload) - user_service.USER_PROFILE_FIELDS - {"email"})
    errors.extend(f"Field not allowed: {k}" for k in unknown)
    if "email" in payload:
        errors.append("email is managed by the identity provider")
    for field, max_len in (("first_name", 100), ("last_name", 100), ("username", 100), ("image_url", 500), ("phone", 20)):
        _optional_str(payload, field, max_len, errors)
    if errors:
        raise ValidationError(errors)
    return user_service.update_profile(user=user, patch=payload).to_dict()


@users_bp.get("")
@require_auth
@require_tenant
def list_members():
    page, page_size = parse_paging(request.args, default_page_size=20)
    result = user_service.list_members(
        org_id=g.org_id,
        search=request.args.get("search"),
        page=page,
        page_size=page_size,
    )
    return result.to_dict(serializer=user_service.member_dict)


@users_bp.get("/<uuid:user_id>")
@require_auth
@require_tenant
def get_member(user_id: uuid.UUID):
    membership = user_service.get_member(org_id=g.org_id, user_id=user_id)
    if membership is None:
        return {"error": "User not found"}, 404
    return user_service.member_dict(membership)


@users_bp.post("")
@require_auth
@require_tenant
@require_role(MembershipRole.OWNER, MembershipRole.ADMIN)
@enforce_plan_limit(LimitType.USERS)
def invite_member():
    """
    Add a user to the organization by email.

    Body: email (required), role (default User), first_name, last_name.
    """
    payload = _json_object()
    errors: list[str] = []
    email = payload.get("email")
    if not email or not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        errors.append("email is required and must be a valid email address")
    role = payload.get("role", MembershipRole.USER.value)
    _validate_role(role, errors)
    _optional_str(payload, "first_name", 100, errors)
    _optional_str(payload, "last_name", 100, errors)
    if errors:
        raise ValidationError(errors)

    membership = user_service.invite_member(
        org_id=g.org_id,
        email=email.strip(),
        role=role,
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
    )
    return user_service.member_dict(membership), 201


@users_bp.put("/<uuid:user_id>")
@require_auth
@require_tenant
@require_role(MembershipRole.OWNER, MembershipRole.ADMIN)
def update_member(user_id: uuid.UUID):
    """
    Body: role.

    Only the membership in this organization changes. Names and the account
    active flag belong to the user (PUT /me) and the identity provider.
    """
    payload = _json_object()
    errors: list[str] = [f"Field not allowed: {k}" for k in sorted(set(payload) - MEMBER_UPDATE_FIELDS)]
    if "role" in payload:
        _validate_role(payload["role"], errors)
    if errors:
        raise ValidationError(errors)

    membership = user_service.update_member(org_id=g.org_id, user_id=user_id, patch=payload)
    if membership is None:
        return {"error": "User not found"}, 404
    return user_service.member_dict(membership)


@users_bp.delete("/<uuid:user_id>")
@require_auth
@require_tenant
@require_role(MembershipRole.OWNER, MembershipRole.ADMIN)
def remove_member(user_id: uuid.UUID):
    """Remove the membership; the user row itself is kept."""
    if not user_service.remove_member(org_id=g.org_id, user_id=user_id):
        return {"error": "User not found"}, 404
    return "", 204
