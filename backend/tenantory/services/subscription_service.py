# Overview: Service-layer operations for subscriptions, plan limits and usage.

"""
Subscription Service

WHY: Every organization trades on a plan whose limits gate how many users,
products, orders and warehouses it may hold. This module owns the plan
catalog, the per-tenant Subscription row, usage counting and plan changes.

DESIGN PRINCIPLES:
- One subscription per organization; the first lookup creates a trial
- Limits are copied onto the subscription row when a plan is applied
- Plan changes are refused (row untouched) when current usage would not fit
- The payment provider is the source of truth for paid status; webhook
  events land here through apply_provider_state()
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy import select

from ..errors import BusinessRuleError, SubscriptionLimitError
from ..extensions import db
from ..models import ApplicationUser, Membership, Order, Product, Subscription, Warehouse
from ..models.enums import LimitType, SubscriptionStatus
from ..repository import Repository, TenantRepository
from ..time_utils import from_unix_timestamp, start_of_month, utcnow
from ..validation import ConflictError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# PLAN CATALOG
# =============================================================================

UNLIMITED = 2_147_483_647
DEFAULT_TRIAL_DAYS = 14
NEAR_LIMIT_PERCENT = 80
REACTIVATION_PERIOD = timedelta(days=30)


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    description: str
    monthly_price: Decimal
    annual_price: Decimal
    max_users: int
    max_products: int
    max_orders: int
    max_warehouses: int
    has_reporting: bool
    has_advanced_reporting: bool
    has_invoicing: bool
    is_popular: bool = False

    def price_id(self, is_annual: bool = False) -> str:
        return f"price_{self.id}_{'annual' if is_annual else 'monthly'}"

    def limit_for(self, limit_type: LimitType) -> int:
        return {
            LimitType.USERS: self.max_users,
            LimitType.PRODUCTS: self.max_products,
            LimitType.ORDERS: self.max_orders,
            LimitType.WAREHOUSES: self.max_warehouses,
        }[limit_type]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "monthly_price": float(self.monthly_price),
            "annual_price": float(self.annual_price),
            "stripe_price_id_monthly": self.price_id(False),
            "stripe_price_id_annual": self.price_id(True),
            "max_users": self.max_users,
            "max_products": self.max_products,
            "max_orders": self.max_orders,
            "max_warehouses": self.max_warehouses,
            "has_reporting": self.has_reporting,
            "has_advanced_reporting": self.has_advanced_reporting,
            "has_invoicing": self.has_invoicing,
            "is_popular": self.is_popular,
        }


TRIAL_PLAN = Plan(
    id="trial",
    name="Trial",
    description="Try the essentials free for 14 days",
    monthly_price=Decimal("0"),
    annual_price=Decimal("0"),
    max_users=3,
    max_products=50,
    max_orders=100,
    max_warehouses=1,
    has_reporting=True,
    has_advanced_reporting=False,
    has_invoicing=False,
)

PLANS: dict[str, Plan] = {
    "starter": Plan(
        id="starter",
        name="Starter",
        description="For small teams getting organized",
        monthly_price=Decimal("29"),
        annual_price=Decimal("290"),
        max_users=5,
        max_products=500,
        max_orders=1000,
        max_warehouses=2,
        has_reporting=True,
        has_advanced_reporting=False,
        has_invoicing=False,
    ),
    "professional": Plan(
        id="professional",
        name="Professional",
        description="For growing businesses with multiple locations",
        monthly_price=Decimal("79"),
        annual_price=Decimal("790"),
        max_users=15,
        max_products=2000,
        max_orders=5000,
        max_warehouses=5,
        has_reporting=True,
        has_advanced_reporting=True,
        has_invoicing=True,
        is_popular=True,
    ),
    "enterprise": Plan(
        id="enterprise",
        name="Enterprise",
        description="Unlimited scale with every feature",
        monthly_price=Decimal("199"),
        annual_price=Decimal("1990"),
        max_users=UNLIMITED,
        max_products=UNLIMITED,
        max_orders=UNLIMITED,
        max_warehouses=UNLIMITED,
        has_reporting=True,
        has_advanced_reporting=True,
        has_invoicing=True,
    ),
}

# Upgrade path used for recommendations
PLAN_ORDER = ["starter", "professional", "enterprise"]


def get_plans() -> list[Plan]:
    return [PLANS[plan_id] for plan_id in PLAN_ORDER]


def get_plan(plan_id: str | None) -> Plan | None:
    if not plan_id:
        return None
    key = plan_id.strip().lower()
    if key == TRIAL_PLAN.id:
        return TRIAL_PLAN
    return PLANS.get(key)


def plan_for_price_id(price_id: str | None) -> tuple[Plan | None, bool]:
    """
    Map a provider price id to (plan, is_annual).

    Exact catalog ids first; otherwise fall back to the plan key appearing in
    the id (dashboard-created prices like "price_1Pxyz_professional").
    """
    if not price_id:
        return None, False
    for plan in PLANS.values():
        if price_id == plan.price_id(False):
            return plan, False
        if price_id == plan.price_id(True):
            return plan, True
    lowered = price_id.lower()
    is_annual = "annual" in lowered or "year" in lowered
    for plan_id in PLAN_ORDER:
        if plan_id in lowered:
            return PLANS[plan_id], is_annual
    return None, False


# =============================================================================
# USAGE METRICS
# =============================================================================

@dataclass(frozen=True)
class UsageMetric:
    resource: str
    current: int
    limit: int

    @property
    def percentage(self) -> float:
        if self.limit <= 0:
            return 0.0
        return round(self.current / self.limit * 100, 2)

    @property
    def is_at_limit(self) -> bool:
        return self.current >= self.limit

    @property
    def is_near_limit(self) -> bool:
        return self.percentage >= NEAR_LIMIT_PERCENT

    @property
    def is_unlimited(self) -> bool:
        return self.limit >= UNLIMITED

    def to_dict(self) -> dict:
        return {
            "resource": self.resource,
            "current": self.current,
            "limit": self.limit,
            "percentage": self.percentage,
            "is_at_limit": self.is_at_limit,
            "is_near_limit": self.is_near_limit,
            "is_unlimited": self.is_unlimited,
        }


def count_usage(org_id: uuid.UUID, limit_type: LimitType) -> int:
    """
    Current consumption of a tracked resource.

    - Users: memberships whose user is active and not deleted
    - Products / Warehouses: non-deleted rows
    - Orders: orders dated in the current calendar month (UTC)
    """
    if limit_type == LimitType.USERS:
        active_users = select(ApplicationUser.id).where(
            ApplicationUser.is_active.is_(True),
            ApplicationUser.is_deleted.is_(False),
        )
        return TenantRepository(Membership, org_id).count(Membership.user_id.in_(active_users))
    if limit_type == LimitType.PRODUCTS:
        return TenantRepository(Product, org_id).count()
    if limit_type == LimitType.ORDERS:
        return TenantRepository(Order, org_id).count(Order.order_date >= start_of_month(utcnow()))
    if limit_type == LimitType.WAREHOUSES:
        return TenantRepository(Warehouse, org_id).count()
    raise ValueError(f"Unknown limit type: {limit_type}")


def _limit_on(sub: Subscription, limit_type: LimitType) -> int:
    return {
        LimitType.USERS: sub.max_users,
        LimitType.PRODUCTS: sub.max_products,
        LimitType.ORDERS: sub.max_orders,
        LimitType.WAREHOUSES: sub.max_warehouses,
    }[limit_type]


def get_usage(*, org_id: uuid.UUID) -> dict[str, UsageMetric]:
    sub = get_current_subscription(org_id=org_id)
    return {
        lt.value: UsageMetric(resource=lt.value, current=count_usage(org_id, lt), limit=_limit_on(sub, lt))
        for lt in LimitType
    }


def check_limit(*, org_id: uuid.UUID, limit_type: LimitType) -> bool:
    """True when one more unit of `limit_type` still fits the plan."""
    sub = get_current_subscription(org_id=org_id)
    return count_usage(org_id, limit_type) < _limit_on(sub, limit_type)


def ensure_within_limit(*, org_id: uuid.UUID, limit_type: LimitType) -> None:
    """
    Raises:
        SubscriptionLimitError: tenant is already at its allowance

    Read-only: a tenant without a subscription row is measured against the
    trial plan, and the row is created later on first real access.
    """
    sub = get_subscription(org_id=org_id)
    limit = _limit_on(sub, limit_type) if sub is not None else TRIAL_PLAN.limit_for(limit_type)
    current = count_usage(org_id, limit_type)
    if current >= limit:
        logger.info(
            "Subscription limit reached org=%s type=%s current=%s limit=%s",
            org_id, limit_type.value, current, limit,
        )
        raise SubscriptionLimitError(limit_type.value, current=current, limit=limit)


# =============================================================================
# SUBSCRIPTION LIFECYCLE
# =============================================================================

def _trial_days() -> int:
    if has_app_context():
        return int(current_app.config.get("TRIAL_DAYS", DEFAULT_TRIAL_DAYS))
    return DEFAULT_TRIAL_DAYS


def _repo(org_id: uuid.UUID) -> TenantRepository:
    return TenantRepository(Subscription, org_id)


def _apply_plan(sub: Subscription, plan: Plan, *, is_annual: bool = False) -> None:
    sub.plan_name = plan.name
    sub.max_users = plan.max_users
    sub.max_products = plan.max_products
    sub.max_orders = plan.max_orders
    sub.max_warehouses = plan.max_warehouses
    sub.has_reporting = plan.has_reporting
    sub.has_advanced_reporting = plan.has_advanced_reporting
    sub.has_invoicing = plan.has_invoicing
    if is_annual:
        sub.monthly_price = (plan.annual_price / 12).quantize(Decimal("0.01"))
    else:
        sub.monthly_price = plan.monthly_price


def current_plan(sub: Subscription) -> Plan | None:
    return get_plan(sub.plan_name)


def get_subscription(*, org_id: uuid.UUID) -> Subscription | None:
    return _repo(org_id).first_or_none()


def build_trial_subscription(org_id: uuid.UUID, trial_days: int | None = None) -> Subscription:
    """New (unsaved) trial row. Callers add it within their own transaction."""
    days = trial_days if trial_days is not None else _trial_days()
    now = utcnow()
    sub = Subscription(
        org_id=org_id,
        status=SubscriptionStatus.TRIAL.value,
        start_date=now,
        trial_end_date=now + timedelta(days=days),
        end_date=now + timedelta(days=days),
    )
    _apply_plan(sub, TRIAL_PLAN)
    return sub


def create_trial_subscription(*, org_id: uuid.UUID, trial_days: int | None = None) -> Subscription:
    """
    Raises:
        ConflictError: organization already has a subscription
    """
    repo = _repo(org_id)
    if repo.exists():
        raise ConflictError("Organization already has a subscription")
    sub = repo.add(build_trial_subscription(org_id, trial_days))
    db.session.commit()
    logger.info("Trial subscription created org=%s until=%s", org_id, sub.trial_end_date)
    return sub


def get_current_subscription(*, org_id: uuid.UUID) -> Subscription:
    """Tenant's subscription, creating the trial on first access."""
    sub = get_subscription(org_id=org_id)
    if sub is not None:
        return sub
    sub = _repo(org_id).add(build_trial_subscription(org_id))
    db.session.commit()
    logger.info("Auto-created trial subscription org=%s", org_id)
    return sub


def create_or_update_paid_subscription(
    *,
    org_id: uuid.UUID,
    plan_id: str,
    stripe_customer_id: str | None = None,
    stripe_subscription_id: str | None = None,
    is_annual: bool = False,
    start_date=None,
    end_date=None,
) -> Subscription:
    plan = get_plan(plan_id)
    if plan is None or plan is TRIAL_PLAN:
        raise ValidationError(f"Unknown plan: {plan_id}")

    repo = _repo(org_id)
    sub = repo.first_or_none()
    if sub is None:
        sub = repo.add(Subscription(org_id=org_id))

    _apply_plan(sub, plan, is_annual=is_annual)
    sub.status = SubscriptionStatus.ACTIVE.value
    sub.stripe_price_id = plan.price_id(is_annual)
    if stripe_customer_id:
        sub.stripe_customer_id = stripe_customer_id
    if stripe_subscription_id:
        sub.stripe_subscription_id = stripe_subscription_id
    sub.start_date = start_date or utcnow()
    sub.end_date = end_date or (sub.start_date + timedelta(days=365 if is_annual else 30))
    sub.trial_end_date = None
    sub.cancel_at_period_end = False

    db.session.commit()
    logger.info("Paid subscription set org=%s plan=%s annual=%s", org_id, plan.name, is_annual)
    return sub


SUBSCRIPTION_MUTABLE_FIELDS = {
    "status",
    "end_date",
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_price_id",
    "cancel_at_period_end",
}


def update_subscription(*, org_id: uuid.UUID, patch: dict) -> Subscription | None:
    """Partial update of billing fields. Returns None when the tenant has no subscription."""
    sub = get_subscription(org_id=org_id)
    if sub is None:
        return None
    for k, v in patch.items():
        if k in SUBSCRIPTION_MUTABLE_FIELDS:
            setattr(sub, k, v)
    db.session.commit()
    return sub


def cancel_subscription(*, org_id: uuid.UUID, immediately: bool = False) -> Subscription | None:
    """
    Immediate: status Cancelled and access ends now.
    End of period: cancel_at_period_end is set and the current period runs out.
    """
    sub = get_subscription(org_id=org_id)
    if sub is None:
        return None
    if sub.status == SubscriptionStatus.CANCELLED.value:
        raise BusinessRuleError("Subscription is already cancelled")

    if immediately:
        sub.status = SubscriptionStatus.CANCELLED.value
        sub.end_date = utcnow()
        sub.cancel_at_period_end = False
    else:
        sub.cancel_at_period_end = True

    db.session.commit()
    logger.info("Subscription cancelled org=%s immediately=%s", org_id, immediately)
    return sub


def reactivate_subscription(*, org_id: uuid.UUID) -> Subscription | None:
    sub = get_subscription(org_id=org_id)
    if sub is None:
        return None
    if sub.status == SubscriptionStatus.ACTIVE.value and not sub.cancel_at_period_end:
        raise BusinessRuleError("Subscription is already active")

    sub.status = SubscriptionStatus.ACTIVE.value
    sub.cancel_at_period_end = False
    sub.end_date = utcnow() + REACTIVATION_PERIOD
    db.session.commit()
    logger.info("Subscription reactivated org=%s", org_id)
    return sub


def get_limits(*, org_id: uuid.UUID) -> dict:
    sub = get_current_subscription(org_id=org_id)
    return {"plan_name": sub.plan_name, "status": sub.status, **sub.limits_dict()}


# =============================================================================
# PLAN CHANGES
# =============================================================================

def can_change_to_plan(*, org_id: uuid.UUID, plan_id: str) -> tuple[bool, list[str]]:
    """
    Whether current usage fits the target plan.
    Returns (allowed, reasons) where reasons name each exceeded resource.
    """
    plan = get_plan(plan_id)
    if plan is None:
        raise ValidationError(f"Unknown plan: {plan_id}")

    reasons = []
    for lt in LimitType:
        current = count_usage(org_id, lt)
        limit = plan.limit_for(lt)
        if current > limit:
            reasons.append(f"{lt.value}: {current} in use, {plan.name} allows {limit}")
    return not reasons, reasons


def change_plan(
    *,
    org_id: uuid.UUID,
    plan_id: str,
    is_annual: bool = False,
    over_limit_message: str | None = None,
) -> Subscription:
    """
    Move the tenant to another plan.

    The usage check runs first; when it fails nothing (local row or provider
    subscription) is modified. With a provider subscription the price change
    is pushed to the provider before the local row is updated.

    Raises:
        ValidationError: unknown plan
        BusinessRuleError: usage exceeds the target plan's limits
        PaymentGatewayError: provider rejected the price change
    """
    from . import stripe_service

    plan = get_plan(plan_id)
    if plan is None or plan is TRIAL_PLAN:
        raise ValidationError(f"Unknown plan: {plan_id}")

    sub = get_current_subscription(org_id=org_id)

    allowed, reasons = can_change_to_plan(org_id=org_id, plan_id=plan.id)
    if not allowed:
        message = over_limit_message or (
            f"Current usage exceeds {plan.name} plan limits: {'; '.join(reasons)}"
        )
        raise BusinessRuleError(message)

    price_id = plan.price_id(is_annual)
    if sub.stripe_subscription_id:
        stripe_service.change_provider_subscription_price(
            subscription_id=sub.stripe_subscription_id,
            price_id=price_id,
        )

    _apply_plan(sub, plan, is_annual=is_annual)
    sub.stripe_price_id = price_id
    db.session.commit()
    logger.info("Plan changed org=%s plan=%s annual=%s", org_id, plan.name, is_annual)
    return sub


def upgrade(*, org_id: uuid.UUID, is_annual: bool = False) -> Subscription:
    return change_plan(org_id=org_id, plan_id="professional", is_annual=is_annual)


def downgrade(*, org_id: uuid.UUID) -> Subscription:
    return change_plan(
        org_id=org_id,
        plan_id="starter",
        over_limit_message=(
            "Current usage exceeds Starter plan limits. "
            "Please reduce usage before downgrading."
        ),
    )


def get_upgrade_recommendations(*, org_id: uuid.UUID) -> list[dict]:
    """
    For every resource that is near or at its limit, the cheapest catalog
    plan that leaves headroom for it.
    """
    sub = get_current_subscription(org_id=org_id)
    usage = get_usage(org_id=org_id)
    plan = current_plan(sub)
    current_index = PLAN_ORDER.index(plan.id) if plan is not None and plan.id in PLANS else -1

    recommendations = []
    for metric in usage.values():
        if not (metric.is_near_limit or metric.is_at_limit):
            continue
        for plan_id in PLAN_ORDER[current_index + 1:]:
            plan = PLANS[plan_id]
            if metric.current < plan.limit_for(LimitType(metric.resource)):
                recommendations.append({
                    "resource": metric.resource,
                    "current": metric.current,
                    "limit": metric.limit,
                    "recommended_plan": plan.to_dict(),
                    "reason": (
                        f"You are using {metric.current} of {metric.limit} "
                        f"{metric.resource.lower()}"
                    ),
                })
                break
    return recommendations


# =============================================================================
# PROVIDER SYNC (webhooks)
# =============================================================================

def find_by_provider_subscription_id(subscription_id: str | None) -> Subscription | None:
    """System-context lookup across tenants (webhooks carry no tenant token)."""
    if not subscription_id:
        return None
    return Repository(Subscription).first_or_none(Subscription.stripe_subscription_id == subscription_id)


def find_by_provider_customer_id(customer_id: str | None) -> Subscription | None:
    if not customer_id:
        return None
    return Repository(Subscription).first_or_none(Subscription.stripe_customer_id == customer_id)


def get_or_create_for_org(org_id: uuid.UUID) -> Subscription:
    """Unsaved-safe variant of get_current_subscription for webhook transactions."""
    repo = _repo(org_id)
    sub = repo.first_or_none()
    if sub is None:
        sub = repo.add(build_trial_subscription(org_id))
    return sub


def apply_provider_state(
    sub: Subscription,
    *,
    status: str | None = None,
    price_id: str | None = None,
    unit_amount: int | None = None,
    interval: str | None = None,
    period_start=None,
    period_end=None,
    trial_end=None,
    cancel_at_period_end: bool | None = None,
    customer_id: str | None = None,
    subscription_id: str | None = None,
) -> Subscription:
    """
    Overwrite local billing fields with the provider's view.

    Every field is set to an absolute value, so re-applying the same event
    converges to the same row. Caller commits.
    """
    if customer_id:
        sub.stripe_customer_id = customer_id
    if subscription_id:
        sub.stripe_subscription_id = subscription_id
    if status:
        sub.status = status
    if price_id:
        sub.stripe_price_id = price_id
        plan, is_annual = plan_for_price_id(price_id)
        if plan is not None:
            _apply_plan(sub, plan, is_annual=is_annual)
        else:
            logger.warning("Unrecognized provider price id %s; keeping plan %s", price_id, sub.plan_name)
    if unit_amount is not None:
        amount = Decimal(unit_amount) / 100
        if interval == "year":
            amount = amount / 12
        sub.monthly_price = amount.quantize(Decimal("0.01"))
    if period_start is not None:
        sub.start_date = period_start
    if period_end is not None:
        sub.end_date = period_end
    if trial_end is not None or status == SubscriptionStatus.ACTIVE.value:
        sub.trial_end_date = trial_end
    if cancel_at_period_end is not None:
        sub.cancel_at_period_end = cancel_at_period_end
    return sub


def link_provider_customer(*, org_id: uuid.UUID, customer_id: str) -> Subscription:
    sub = get_current_subscription(org_id=org_id)
    sub.stripe_customer_id = customer_id
    db.session.commit()
    return sub


def sync_from_provider(*, org_id: uuid.UUID, provider_sub: dict, status: str | None) -> Subscription:
    """Apply a provider subscription snapshot (see stripe_service._subscription_dict) and commit."""
    sub = get_current_subscription(org_id=org_id)
    apply_provider_state(
        sub,
        status=status,
        price_id=provider_sub.get("price_id"),
        period_start=from_unix_timestamp(provider_sub.get("current_period_start")),
        period_end=from_unix_timestamp(provider_sub.get("current_period_end")),
        cancel_at_period_end=provider_sub.get("cancel_at_period_end"),
        customer_id=provider_sub.get("customer_id"),
        subscription_id=provider_sub.get("id"),
    )
    db.session.commit()
    return sub
