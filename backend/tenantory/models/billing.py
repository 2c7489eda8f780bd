from __future__ import annotations

import math

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import TenantEntity
from .enums import SubscriptionStatus
from .inventory import _money


class Subscription(TenantEntity, db.Model):
    """
    Billing plan of one organization (1:1).

    Limits and feature flags are copied from the plan catalog when the plan
    is chosen, so later catalog edits never change an existing tenant's
    allowance until its plan changes.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_subscriptions_org"),
        db.UniqueConstraint("stripe_subscription_id", name="uq_subscriptions_stripe_subscription"),
        db.Index("ix_subscriptions_stripe_customer", "stripe_customer_id"),
    )

    plan_name = db.Column(db.String(50), nullable=False)
    stripe_customer_id = db.Column(db.String(255), nullable=True)
    stripe_subscription_id = db.Column(db.String(255), nullable=True)
    stripe_price_id = db.Column(db.String(255), nullable=True)
    monthly_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default=SubscriptionStatus.TRIAL.value, index=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)

    max_users = db.Column(db.Integer, nullable=False, default=0)
    max_products = db.Column(db.Integer, nullable=False, default=0)
    max_orders = db.Column(db.Integer, nullable=False, default=0)
    max_warehouses = db.Column(db.Integer, nullable=False, default=0)

    has_reporting = db.Column(db.Boolean, nullable=False, default=False)
    has_advanced_reporting = db.Column(db.Boolean, nullable=False, default=False)
    has_invoicing = db.Column(db.Boolean, nullable=False, default=False)

    organization = db.relationship("Organization")

    def __repr__(self) -> str:
        return f"<Subscription org_id={self.org_id} plan={self.plan_name!r} status={self.status}>"

    @property
    def is_trial_active(self) -> bool:
        return (
            self.status == SubscriptionStatus.TRIAL.value
            and self.trial_end_date is not None
            and self.trial_end_date > utcnow()
        )

    @property
    def is_expired(self) -> bool:
        return self.end_date is not None and self.end_date < utcnow()

    @property
    def days_remaining(self) -> int:
        end = self.trial_end_date if self.status == SubscriptionStatus.TRIAL.value else self.end_date
        if end is None:
            return 0
        seconds = (end - utcnow()).total_seconds()
        return max(0, math.ceil(seconds / 86400))

    def limits_dict(self) -> dict:
        return {
            "max_users": self.max_users,
            "max_products": self.max_products,
            "max_orders": self.max_orders,
            "max_warehouses": self.max_warehouses,
            "has_reporting": self.has_reporting,
            "has_advanced_reporting": self.has_advanced_reporting,
            "has_invoicing": self.has_invoicing,
        }

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "plan_name": self.plan_name,
            "status": self.status,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "stripe_price_id": self.stripe_price_id,
            "monthly_price": _money(self.monthly_price),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "trial_end_date": to_utc_z(self.trial_end_date),
            "cancel_at_period_end": self.cancel_at_period_end,
            "is_trial_active": self.is_trial_active,
            "days_remaining": self.days_remaining,
            "is_expired": self.is_expired,
            **self.limits_dict(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WebhookEvent(db.Model):
    """
    Inbound webhook delivery log (one row per provider event id).

    Used to acknowledge re-deliveries without re-running side effects.
    Not audited or soft-deleted: rows are written by the system, not users.
    """
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False)
    event_id = db.Column(db.String(255), nullable=False)
    event_type = db.Column(db.String(100), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "received_at": to_utc_z(self.received_at),
        }
