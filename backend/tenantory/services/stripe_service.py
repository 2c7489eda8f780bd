# Overview: Thin gateway over the Stripe SDK for checkout, portal, customers and subscriptions.

"""
Stripe gateway.

All outbound payment-provider calls go through this module so routes and
services never import the SDK directly. SDK failures are logged and raised as
PaymentGatewayError; there are no in-process retries.

Webhook signatures are verified with the SDK's own verifier
(stripe.WebhookSignature.verify_header) using the configured tolerance.
"""
from __future__ import annotations

import logging
from typing import Any

import stripe
from flask import current_app

from ..errors import PaymentGatewayError, WebhookVerificationError
from ..models.enums import SubscriptionStatus

logger = logging.getLogger(__name__)


# Provider subscription status -> local status
STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIAL.value,
    "active": SubscriptionStatus.ACTIVE.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "unpaid": SubscriptionStatus.PAST_DUE.value,
    "incomplete": SubscriptionStatus.PAST_DUE.value,
    "incomplete_expired": SubscriptionStatus.CANCELLED.value,
    "canceled": SubscriptionStatus.CANCELLED.value,
    "paused": SubscriptionStatus.SUSPENDED.value,
}


def local_status(provider_status: str | None) -> str | None:
    return STATUS_MAP.get(provider_status) if provider_status else None


def _configure() -> None:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise PaymentGatewayError("Payment provider is not configured")
    stripe.api_key = key


def _call(action: str, fn, *args, **kwargs):
    _configure()
    try:
        return fn(*args, **kwargs)
    except stripe.StripeError as e:
        logger.error("Stripe %s failed: %s", action, getattr(e, "user_message", None) or e)
        raise PaymentGatewayError(f"Payment provider error during {action}") from e


def _get(obj: Any, key: str, default=None):
    """Field access that works for SDK objects and plain dicts."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    # StripeObject: item access avoids clashes such as `items` with dict.items
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, default)


# =============================================================================
# CHECKOUT / PORTAL
# =============================================================================

def create_checkout_session(
    *,
    org_id: str,
    price_id: str,
    customer_id: str | None = None,
    customer_email: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
    trial_days: int | None = None,
) -> dict:
    """
    Start a subscription checkout. organization_id travels in metadata so the
    checkout.session.completed webhook can find the tenant.
    """
    cfg = current_app.config
    params: dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url or cfg["STRIPE_SUCCESS_URL"],
        "cancel_url": cancel_url or cfg["STRIPE_CANCEL_URL"],
        "client_reference_id": org_id,
        "metadata": {"organization_id": org_id},
        "subscription_data": {"metadata": {"organization_id": org_id}},
        "allow_promotion_codes": True,
    }
    if trial_days:
        params["subscription_data"]["trial_period_days"] = trial_days
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email

    session = _call("checkout session creation", stripe.checkout.Session.create, **params)
    return {"session_id": _get(session, "id"), "url": _get(session, "url")}


def create_portal_session(*, customer_id: str, return_url: str | None = None) -> dict:
    session = _call(
        "portal session creation",
        stripe.billing_portal.Session.create,
        customer=customer_id,
        return_url=return_url or current_app.config["STRIPE_PORTAL_RETURN_URL"],
    )
    return {"url": _get(session, "url")}


# =============================================================================
# CUSTOMERS / PRICES
# =============================================================================

def create_customer(*, email: str, name: str | None = None, org_id: str | None = None) -> dict:
    """Create a customer, or return the existing one with the same email."""
    existing = _call("customer lookup", stripe.Customer.list, email=email, limit=1)
    data = _get(existing, "data") or []
    if data:
        customer = data[0]
    else:
        metadata = {"organization_id": org_id} if org_id else {}
        customer = _call("customer creation", stripe.Customer.create, email=email, name=name, metadata=metadata)
    return {"customer_id": _get(customer, "id"), "email": _get(customer, "email")}


def list_prices() -> list[dict]:
    prices = _call(
        "price listing",
        stripe.Price.list,
        active=True,
        type="recurring",
        limit=100,
        expand=["data.product"],
    )
    result = []
    for price in _get(prices, "data") or []:
        product = _get(price, "product")
        recurring = _get(price, "recurring")
        unit_amount = _get(price, "unit_amount")
        result.append({
            "id": _get(price, "id"),
            "product_id": _get(product, "id") if not isinstance(product, str) else product,
            "product_name": _get(product, "name") if not isinstance(product, str) else None,
            "unit_amount": unit_amount,
            "amount": unit_amount / 100 if unit_amount is not None else None,
            "currency": _get(price, "currency"),
            "interval": _get(recurring, "interval"),
        })
    return result


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

def _subscription_dict(sub: Any) -> dict:
    items = _get(_get(sub, "items"), "data") or []
    price = _get(items[0], "price") if items else None
    return {
        "id": _get(sub, "id"),
        "customer_id": _get(sub, "customer"),
        "status": _get(sub, "status"),
        "price_id": _get(price, "id"),
        "current_period_start": _get(sub, "current_period_start"),
        "current_period_end": _get(sub, "current_period_end"),
        "cancel_at_period_end": _get(sub, "cancel_at_period_end"),
    }


def get_provider_subscription(subscription_id: str) -> dict:
    sub = _call("subscription retrieval", stripe.Subscription.retrieve, subscription_id)
    return _subscription_dict(sub)


def cancel_provider_subscription(subscription_id: str, *, immediately: bool = False) -> dict:
    if immediately:
        sub = _call("subscription cancellation", stripe.Subscription.cancel, subscription_id)
    else:
        sub = _call(
            "subscription cancellation",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
        )
    return _subscription_dict(sub)


def change_provider_subscription_price(*, subscription_id: str, price_id: str, prorate: bool = True) -> dict:
    current = _call("subscription retrieval", stripe.Subscription.retrieve, subscription_id)
    items = _get(_get(current, "items"), "data") or []
    if not items:
        raise PaymentGatewayError("Provider subscription has no items")
    sub = _call(
        "subscription update",
        stripe.Subscription.modify,
        subscription_id,
        items=[{"id": _get(items[0], "id"), "price": price_id}],
        proration_behavior="create_prorations" if prorate else "none",
    )
    return _subscription_dict(sub)


# =============================================================================
# WEBHOOKS
# =============================================================================

def verify_webhook(payload: str, signature_header: str | None) -> None:
    """
    Raises:
        WebhookVerificationError: secret not configured, or bad/expired signature
    """
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise WebhookVerificationError("Stripe webhook secret is not configured")
    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature_header or "",
            secret,
            tolerance=current_app.config.get("WEBHOOK_TOLERANCE_SECONDS", 300),
        )
    except stripe.SignatureVerificationError as e:
        raise WebhookVerificationError(f"Stripe signature check failed: {e}") from e
