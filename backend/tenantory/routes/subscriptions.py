# Overview: Flask API routes for plans, the tenant's subscription, limits and usage.

"""
Subscription routes.

MULTI-TENANT: every route acts on the subscription of g.org_id; the first
read creates the organization's trial. Billing writes require Owner or Admin.
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_tenant, require_role
from ..models import Subscription
from ..models.enums import LimitType, MembershipRole, SubscriptionStatus
from ..services import subscription_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

SUBSCRIPTION_POLICY = ModelValidationPolicy(
    writable_fields=set(subscription_service.SUBSCRIPTION_MUTABLE_FIELDS),
    choices={"status": SubscriptionStatus},
)

BILLING_ROLES = (MembershipRole.OWNER, MembershipRole.ADMIN)

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _bool_field(payload: dict, field: str, default: bool = False) -> bool:
    value = payload.get(field, default)
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def _limit_type(raw) -> LimitType:
    try:
        return LimitType(raw)
    except ValueError:
        raise ValidationError(f"limit_type must be one of: {', '.join(lt.value for lt in LimitType)}")


@subscriptions_bp.get("/plans")
@require_auth
def list_plans():
    return {"items": [plan.to_dict() for plan in subscription_service.get_plans()]}


@subscriptions_bp.get("/current")
@require_auth
@require_tenant
def current_subscription():
    return subscription_service.get_current_subscription(org_id=g.org_id).to_dict()


@subscriptions_bp.get("/limits")
@require_auth
@require_tenant
def limits():
    return subscription_service.get_limits(org_id=g.org_id)


@subscriptions_bp.get("/usage")
@require_auth
@require_tenant
def usage():
    """Current consumption per tracked resource, with percentage and limit flags."""
    metrics = subscription_service.get_usage(org_id=g.org_id)
    return {resource: metric.to_dict() for resource, metric in metrics.items()}


@subscriptions_bp.post("/check-limit")
@require_auth
@require_tenant
def check_limit():
    """Body: {"limit_type": "Users" | "Products" | "Orders" | "Warehouses"}."""
    payload = _json_object()
    limit_type = _limit_type(payload.get("limit_type"))
    metric = subscription_service.get_usage(org_id=g.org_id)[limit_type.value]
    return {
        "limit_type": limit_type.value,
        "allowed": not metric.is_at_limit,
        "current": metric.current,
        "limit": metric.limit,
    }


@subscriptions_bp.post("/trial")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def start_trial():
    payload = _json_object()
    trial_days = payload.get("trial_days")
    if trial_days is not None and (isinstance(trial_days, bool) or not isinstance(trial_days, int) or trial_days < 1):
        raise ValidationError("trial_days must be a positive integer")
    sub = subscription_service.create_trial_subscription(org_id=g.org_id, trial_days=trial_days)
    return sub.to_dict(), 201


@subscriptions_bp.post("/paid")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def set_paid_subscription():
    """
    Record a paid plan for the organization.

    Body: plan_id (required), is_annual, stripe_customer_id, stripe_subscription_id.
    """
    payload = _json_object()
    plan_id = payload.get("plan_id")
    if not plan_id or not isinstance(plan_id, str):
        raise ValidationError("plan_id is required")
    sub = subscription_service.create_or_update_paid_subscription(
        org_id=g.org_id,
        plan_id=plan_id,
        is_annual=_bool_field(payload, "is_annual"),
        stripe_customer_id=payload.get("stripe_customer_id"),
        stripe_subscription_id=payload.get("stripe_subscription_id"),
    )
    return sub.to_dict()


@subscriptions_bp.put("/current")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def update_current_subscription():
    patch = validate_payload(
        model=Subscription, payload=request.get_json(silent=True), policy=SUBSCRIPTION_POLICY, partial=True
    )
    sub = subscription_service.update_subscription(org_id=g.org_id, patch=patch)
    if sub is None:
        return {"error": "Subscription not found"}, 404
    return sub.to_dict()


@subscriptions_bp.post("/cancel")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def cancel_subscription():
    """Body: {"immediately": bool}. Default cancels at the end of the period."""
    payload = _json_object()
    sub = subscription_service.cancel_subscription(
        org_id=g.org_id, immediately=_bool_field(payload, "immediately")
    )
    if sub is None:
        return {"error": "Subscription not found"}, 404
    return sub.to_dict()


@subscriptions_bp.post("/reactivate")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def reactivate_subscription():
    sub = subscription_service.reactivate_subscription(org_id=g.org_id)
    if sub is None:
        return {"error": "Subscription not found"}, 404
    return sub.to_dict()


@subscriptions_bp.get("/can-change/<plan_id>")
@require_auth
@require_tenant
def can_change(plan_id: str):
    allowed, reasons = subscription_service.can_change_to_plan(org_id=g.org_id, plan_id=plan_id)
    return {"plan_id": plan_id, "can_change": allowed, "reasons": reasons}


@subscriptions_bp.post("/change-plan")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def change_plan():
    """Body: plan_id (required), is_annual. 400 when usage exceeds the target plan."""
    payload = _json_object()
    plan_id = payload.get("plan_id")
    if not plan_id or not isinstance(plan_id, str):
        raise ValidationError("plan_id is required")
    sub = subscription_service.change_plan(
        org_id=g.org_id, plan_id=plan_id, is_annual=_bool_field(payload, "is_annual")
    )
    return sub.to_dict()


@subscriptions_bp.post("/upgrade")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def upgrade():
    payload = _json_object()
    sub = subscription_service.upgrade(org_id=g.org_id, is_annual=_bool_field(payload, "is_annual"))
    return sub.to_dict()


@subscriptions_bp.post("/downgrade")
@require_auth
@require_tenant
@require_role(*BILLING_ROLES)
def downgrade():
    return subscription_service.downgrade(org_id=g.org_id).to_dict()


@subscriptions_bp.get("/recommendations")
@require_auth
@require_tenant
def recommendations():
    return {"items": subscription_service.get_upgrade_recommendations(org_id=g.org_id)}
