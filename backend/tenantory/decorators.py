# Overview: Request decorators for authentication, tenant context, roles and plan limits.

from functools import wraps

from flask import current_app, g, jsonify, request
from jose import JWTError

from .claims import resolve_email, resolve_org_external_id, resolve_org_role, resolve_subject
from .models import ApplicationUser, Membership
from .models.enums import LimitType, MembershipRole
from .services import auth_service, subscription_service, tenant_service
from .extensions import db


def _is_authenticated() -> bool:
    return g.get("actor_id") is not None


def require_auth(f):
    """
    Require a valid bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.claims: Verified token claims
    - g.actor_id: Caller's external (provider) user id, used for audit stamps
    - g.email: Email claim, when present
    - g.current_user: Local ApplicationUser, or None if not synced yet
    - g.org_external_id: Provider organization id from the claims, if any
    - g.org_id: Internal Organization UUID, or None ("no tenant")
    - g.claim_role: Role asserted by the provider for that organization

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - Token without a subject
    - Local user account deactivated

    Never writes: an unknown organization or user simply resolves to None.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = auth_service.extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        try:
            claims = auth_service.decode_bearer_token(token)
        except JWTError as e:
            current_app.logger.info("Rejected bearer token on %s: %s", request.path, e)
            return jsonify({"error": "Invalid or expired token"}), 401

        subject = resolve_subject(claims)
        if subject is None:
            return jsonify({"error": "Invalid token: missing subject"}), 401

        user = (
            db.session.query(ApplicationUser)
            .filter(ApplicationUser.external_id == subject, ApplicationUser.is_deleted.is_(False))
            .first()
        )
        if user is not None and not user.is_active:
            return jsonify({"error": "User account is deactivated"}), 401

        org_external_id = resolve_org_external_id(claims)

        g.claims = claims
        g.actor_id = subject
        g.email = resolve_email(claims)
        g.current_user = user
        g.org_external_id = org_external_id
        g.claim_role = resolve_org_role(claims)
        g.org_id = tenant_service.resolve_request_org_id(org_external_id=org_external_id, user=user)

        return f(*args, **kwargs)

    return decorated_function


def require_tenant(f):
    """
    Require a resolved organization (use after @require_auth).

    Returns 400 "Organization context required" when the caller has neither an
    organization claim nor an active membership.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if g.get("org_id") is None:
            return jsonify({"error": "Organization context required"}), 400
        return f(*args, **kwargs)

    return decorated_function


def current_role() -> str | None:
    """
    Caller's role in the request organization.

    Local membership wins; the provider's org_role claim is used for users
    whose membership has not been synced yet.
    """
    user = g.get("current_user")
    org_id = g.get("org_id")
    if user is not None and org_id is not None:
        membership = (
            db.session.query(Membership)
            .filter(Membership.user_id == user.id, Membership.org_id == org_id)
            .first()
        )
        if membership is not None:
            return membership.role
    return g.get("claim_role")


def require_role(*roles: MembershipRole):
    """
    Require one of the given membership roles in the request organization.
    Use after @require_auth and @require_tenant.
    """
    allowed = [r.value for r in roles]

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            role = current_role()
            if role not in allowed:
                current_app.logger.warning(
                    "Role check failed on %s %s: actor=%s role=%s required=%s",
                    request.method, request.path, g.get("actor_id"), role, allowed,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": allowed,
                    "message": f"Requires one of: {', '.join(allowed)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def enforce_plan_limit(limit_type: LimitType):
    """
    Refuse the write with 402 when the tenant is already at its plan limit
    for `limit_type`. Use after @require_tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            subscription_service.ensure_within_limit(org_id=g.org_id, limit_type=limit_type)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
