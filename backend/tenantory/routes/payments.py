# Overview: Flask API routes for Stripe checkout, billing portal and provider subscription management.

"""
Payment routes.

MULTI-TENANT: every route acts on the payment-provider customer/subscription
linked to g.org_id's Subscription row; provider ids are never taken from the
URL. Paid activation itself arrives through the Stripe webhook.

SECURITY: Owner or Admin only. Provider failures surface as 502.
"""
from flask import Blueprint, current_app, request, g

from ..decorators import require_auth, require_tenant, require_role
from ..errors import BusinessRuleError
from ..models.enums import MembershipRole
from ..services import organization_service, stripe_service, subscription_service
from ..validation import EMAIL_RE, ValidationError

BILLING_ROLES = (MembershipRole.OWNER, MembershipRole.ADMIN)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _resolve_price_id(payload: dict) -> str:
    """price_id wins; otherwise plan_id (+ is_annual) from the catalog."""
    price_id = payload.get("price_id")
    if price_id:
        if not isinstance(price_id, str):
            raise ValidationError("price_id must be a string")
        return price_id
    plan = subscription_service.get_plan(payload.get("plan_id"))
    if plan is None or plan is subscription_service.TRIAL_PLAN:
        raise ValidationError("price_id or a valid plan_id is required")
    is_annual = payload.get("is_annual", False)
    if not isinstance(is_annual, bool):
        raise ValidationError("is_annual must be true or false")
    return plan.price_id(is_annual)


def _provider_subscription_id() -> str:
    sub = subscription_service.get_current_subscription(org_id=g.org_id)
    if not sub.stripe_subscription_id:
        raise BusinessRuleError("Organization has no payment provider subscription")
    return sub.stripe_subscription_id


@payments_bp.post("/create-checkout-session")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def create_checkout_session():
    """
    Body: price_id or plan_id (+ is_annual); optional success_url, cancel_url, trial_days.
    Returns {session_id, url}.
    """
    payload = _json_object()
    price_id = _resolve_price_id(payload)
    trial_days = payload.get("trial_days")
    if trial_days is not None and (isinstance(trial_days, bool) or not isinstance(trial_days, int) or trial_days < 1):
        raise ValidationError("trial_days must be a positive integer")
    sub = subscription_service.get_current_subscription(org_id=g.org_id)

    session = stripe_service.create_checkout_session(
        org_id=str(g.org_id),
        price_id=price_id,
        customer_id=sub.stripe_customer_id,
        customer_email=g.get("email"),
        success_url=payload.get("success_url"),
        cancel_url=payload.get("cancel_url"),
        trial_days=trial_days,
    )
    current_app.logger.info("Checkout session created org=%s price=%s", g.org_id, price_id)
    return session


@payments_bp.post("/create-portal-session")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def create_portal_session():
    payload = _json_object()
    sub = subscription_service.get_current_subscription(org_id=g.org_id)
    if not sub.stripe_customer_id:
        raise BusinessRuleError("Organization has no billing customer yet")
    return stripe_service.create_portal_session(
        customer_id=sub.stripe_customer_id, return_url=payload.get("return_url")
    )


@payments_bp.post("/create-customer")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def create_customer():
    """
    Create (or reuse by email) the organization's billing customer.
    Body: optional email and name; defaults come from the organization.
    """
    payload = _json_object()
    org = organization_service.get_organization(org_id=g.org_id)
    email = payload.get("email") or (org.email if org else None) or g.get("email")
    if not email or not isinstance(email, str) or not EMAIL_RE.match(email):
        raise ValidationError("email is required and must be a valid email address")

    customer = stripe_service.create_customer(
        email=email,
        name=payload.get("name") or (org.name if org else None),
        org_id=str(g.org_id),
    )
    subscription_service.link_provider_customer(org_id=g.org_id, customer_id=customer["customer_id"])
    return customer, 201


@payments_bp.get("/prices")
@require_auth
def list_prices():
    return {"items": stripe_service.list_prices()}


@payments_bp.get("/subscription")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def get_provider_subscription():
    return stripe_service.get_provider_subscription(_provider_subscription_id())


@payments_bp.post("/subscription/cancel")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def cancel_provider_subscription():
    """Body: {"immediately": bool}. Local state follows the provider's answer."""
    payload = _json_object()
    immediately = payload.get("immediately", False)
    if not isinstance(immediately, bool):
        raise ValidationError("immediately must be true or false")

    provider_sub = stripe_service.cancel_provider_subscription(
        _provider_subscription_id(), immediately=immediately
    )
    sub = subscription_service.sync_from_provider(
        org_id=g.org_id,
        provider_sub=provider_sub,
        status=stripe_service.local_status(provider_sub.get("status")),
    )
    return {"provider": provider_sub, "subscription": sub.to_dict()}


@payments_bp.put("/subscription")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def update_provider_subscription():
    """
    Switch the provider subscription to another plan.
    Body: plan_id (required), is_annual. Refused when usage exceeds the plan.
    """
    payload = _json_object()
    _provider_subscription_id()
    plan_id = payload.get("plan_id")
    if not plan_id or not isinstance(plan_id, str):
        raise ValidationError("plan_id is required")
    is_annual = payload.get("is_annual", False)
    if not isinstance(is_annual, bool):
        raise ValidationError("is_annual must be true or false")

    sub = subscription_service.change_plan(org_id=g.org_id, plan_id=plan_id, is_annual=is_annual)
    return sub.to_dict()
