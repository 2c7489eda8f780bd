# Overview: Flask API routes for organizations (tenants) and the caller's memberships.

"""
Organization routes.

Two ways an organization comes to exist locally:
- POST /api/organizations/sync  mirror the caller's identity-provider org
- POST /api/organizations       create one in-app; the caller becomes Owner

Both go through organization_service; authentication itself never writes.
"""
import uuid

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth, require_tenant, require_role
from ..errors import BusinessRuleError
from ..models import Organization
from ..models.enums import MembershipRole
from ..services import organization_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_organization,
)

ORGANIZATION_POLICY = ModelValidationPolicy(
    writable_fields=set(organization_service.ORGANIZATION_MUTABLE_FIELDS),
    required_on_create={"name"},
)

organizations_bp = Blueprint("organizations", __name__, url_prefix="/api/organizations")


def _split_settings(payload) -> tuple[dict, object]:
    """`settings` is a free-form JSON object, validated apart from the columns."""
    if not isinstance(payload, dict):
        return payload, None
    payload = dict(payload)
    settings = payload.pop("settings", None)
    if settings is not None and not isinstance(settings, dict):
        raise ValidationError("settings must be an object")
    return payload, settings


def _validated_patch(payload, *, partial: bool) -> dict:
    payload, settings = _split_settings(payload)
    patch = validate_payload(model=Organization, payload=payload, policy=ORGANIZATION_POLICY, partial=partial)
    enforce_rules_organization(patch)
    if settings is not None:
        patch["settings"] = settings
    return patch


def _require_local_user():
    user = g.get("current_user")
    if user is None:
        raise BusinessRuleError("User profile not synced; call POST /api/users/sync first")
    return user


@organizations_bp.get("/current")
@require_auth
@require_tenant
def get_current_organization():
    org = organization_service.get_organization(org_id=g.org_id)
    if org is None:
        return {"error": "Organization not found"}, 404
    return org.to_dict()


@organizations_bp.put("/current")
@require_auth
@require_tenant
@require_role(MembershipRole.OWNER, MembershipRole.ADMIN)
def update_current_organization():
    patch = _validated_patch(request.get_json(silent=True), partial=True)
    org = organization_service.update_organization(org_id=g.org_id, patch=patch)
    if org is None:
        return {"error": "Organization not found"}, 404
    return org.to_dict()


@organizations_bp.post("/sync")
@require_auth
def sync_organization():
    """
    Mirror the caller's identity-provider organization locally.

    The organization is the one named by the token's organization claim.
    Body: name (required), slug, image_url. Safe to call repeatedly.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    external_id = g.get("org_external_id")
    if not external_id:
        raise ValidationError("Token carries no organization to sync")

    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 200:
        raise ValidationError("name must be at most 200 characters")

    org, created = organization_service.sync_organization(
        external_id=external_id,
        name=name,
        slug=payload.get("slug"),
        image_url=payload.get("image_url"),
        created_by_external_id=g.actor_id,
    )
    current_app.logger.info("Organization sync by %s: %s (created=%s)", g.actor_id, external_id, created)
    return org.to_dict(), 201 if created else 200


@organizations_bp.post("")
@require_auth
def create_organization():
    """Create an organization owned by the caller and make it their active one."""
    user = _require_local_user()
    patch = _validated_patch(request.get_json(silent=True), partial=False)
    org = organization_service.create_organization_for_user(user=user, patch=patch)
    return org.to_dict(), 201


@organizations_bp.post("/complete-setup")
@require_auth
@require_tenant
@require_role(MembershipRole.OWNER, MembershipRole.ADMIN)
def complete_setup():
    patch = _validated_patch(request.get_json(silent=True), partial=True)
    org = organization_service.complete_setup(org_id=g.org_id, patch=patch)
    if org is None:
        return {"error": "Organization not found"}, 404
    return org.to_dict()


@organizations_bp.get("/mine")
@require_auth
def my_organizations():
    """Organizations the caller belongs to, with role and active flag."""
    user = g.get("current_user")
    if user is None:
        return {"items": []}
    memberships = organization_service.list_user_organizations(user=user)
    return {
        "items": [
            {**m.organization.to_dict(), "role": m.role, "is_active_membership": m.is_active}
            for m in memberships
        ]
    }


@organizations_bp.post("/<uuid:org_id>/activate")
@require_auth
def activate_organization(org_id: uuid.UUID):
    """Switch the caller's active organization (used when tokens carry no org claim)."""
    user = _require_local_user()
    membership = organization_service.activate_membership(user=user, org_id=org_id)
    if membership is None:
        return {"error": "Organization not found"}, 404
    return membership.to_dict()
