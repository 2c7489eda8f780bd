# Overview: Signature verification and event handling for identity and payment webhooks.

"""
Webhook Service

Two intake points, both unauthenticated at the HTTP layer and therefore
verified before anything is mutated:

Identity provider (Svix-style signing):
    headers   svix-id, svix-timestamp, svix-signature
    secret    "whsec_<base64 key>"
    signature base64(HMAC-SHA256(key, f"{id}.{timestamp}.{body}")), sent as a
              space-separated list of "v1,<sig>" entries (key rotation)
    freshness |now - timestamp| <= WEBHOOK_TOLERANCE_SECONDS (default 300)
    no secret configured -> accepted only when APP_ENV == "development"

Payment provider (Stripe): verified by the Stripe SDK, see stripe_service.

IDEMPOTENCY: every handled delivery is recorded in webhook_events keyed by
(provider, event id); a re-delivery is acknowledged without re-running side
effects. Independently, each handler upserts by external id and writes
absolute values, so replays and out-of-order deliveries converge.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..claims import map_provider_role
from ..errors import WebhookVerificationError
from ..extensions import db
from ..models import ApplicationUser, WebhookEvent
from ..models.enums import MembershipRole, SubscriptionStatus
from ..repository import Repository
from ..time_utils import from_unix_timestamp, utcnow
from ..validation import ValidationError
from . import organization_service, stripe_service, subscription_service, tenant_service, user_service

logger = logging.getLogger(__name__)

PROVIDER_IDENTITY = "identity"
PROVIDER_STRIPE = "stripe"
SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1"


@dataclass
class WebhookResult:
    event_type: str
    event_id: str | None
    processed: bool
    message: str

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "processed": self.processed,
            "message": self.message,
        }


# =============================================================================
# PAYLOAD SHAPE
# =============================================================================

def _object(value: Any, name: str) -> dict:
    """`value` as a dict; missing becomes {}, any other type is a 400."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object")
    return value


def _list(value: Any, name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list")
    return value


# =============================================================================
# DELIVERY LEDGER
# =============================================================================

def already_processed(provider: str, event_id: str | None) -> bool:
    if not event_id:
        return False
    return Repository(WebhookEvent).exists(
        WebhookEvent.provider == provider,
        WebhookEvent.event_id == event_id,
    )


def _record(provider: str, event_id: str | None, event_type: str) -> None:
    """Add the ledger row to the current transaction (caller commits)."""
    if not event_id:
        return
    db.session.add(WebhookEvent(
        provider=provider,
        event_id=event_id,
        event_type=event_type,
        received_at=utcnow(),
    ))


def _commit_delivery() -> bool:
    """
    Commit handler changes and ledger row together. A concurrent duplicate
    delivery loses on the ledger's unique key; its changes are rolled back
    and it is reported as a duplicate.
    """
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True


# =============================================================================
# IDENTITY PROVIDER
# =============================================================================

def _decode_secret(secret: str) -> bytes:
    raw = secret[len(SECRET_PREFIX):] if secret.startswith(SECRET_PREFIX) else secret
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise WebhookVerificationError("Webhook secret is not valid base64") from e


def sign_identity_payload(secret: str, msg_id: str, timestamp: str, body: str) -> str:
    """`v1,<base64 signature>` for the given delivery (also used by tests/tools)."""
    key = _decode_secret(secret)
    digest = hmac.new(key, f"{msg_id}.{timestamp}.{body}".encode("utf-8"), hashlib.sha256).digest()
    return f"{SIGNATURE_VERSION},{base64.b64encode(digest).decode('ascii')}"


def verify_identity_signature(
    *,
    headers: Any,
    body: str,
    secret: str | None,
    tolerance_seconds: int,
    allow_unsigned: bool,
    now: float | None = None,
) -> None:
    """
    Raises:
        WebhookVerificationError: missing headers/secret, stale timestamp, or
            no signature entry matching the expected HMAC
    """
    if not secret:
        if allow_unsigned:
            logger.warning("Identity webhook secret not configured; accepting unsigned delivery (development)")
            return
        raise WebhookVerificationError("Webhook secret not configured")

    msg_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")
    if not msg_id or not timestamp or not signature_header:
        raise WebhookVerificationError("Missing webhook signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError as e:
        raise WebhookVerificationError("Invalid webhook timestamp") from e

    now = time.time() if now is None else now
    if abs(now - sent_at) > tolerance_seconds:
        raise WebhookVerificationError("Webhook timestamp outside tolerance")

    expected = sign_identity_payload(secret, msg_id, timestamp, body).split(",", 1)[1]
    for entry in signature_header.split(" "):
        version, _, signature = entry.partition(",")
        if version != SIGNATURE_VERSION or not signature:
            continue
        if hmac.compare_digest(signature.encode("ascii", "ignore"), expected.encode("ascii")):
            return
    raise WebhookVerificationError("Webhook signature mismatch")


def _primary_email(data: dict) -> str | None:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for entry in addresses:
        if isinstance(entry, dict) and primary_id and entry.get("id") == primary_id:
            return entry.get("email_address")
    for entry in addresses:
        if isinstance(entry, dict) and entry.get("email_address"):
            return entry["email_address"]
    return data.get("email")


def _primary_phone(data: dict) -> str | None:
    numbers = data.get("phone_numbers") or []
    for entry in numbers:
        if isinstance(entry, dict) and entry.get("phone_number"):
            return entry["phone_number"][:20]
    return None


def _handle_user_upsert(data: dict) -> str:
    external_id = data.get("id")
    email = _primary_email(data)
    if not external_id or not email:
        raise ValidationError("User event without id or email")
    user, created = user_service.sync_user(
        external_id=external_id,
        email=email,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        username=data.get("username"),
        image_url=data.get("image_url"),
        phone=_primary_phone(data),
    )
    return f"User {'created' if created else 'updated'}: {user.external_id}"


def _handle_user_deleted(data: dict) -> str:
    user = user_service.get_user_by_external_id(data.get("id"))
    if user is None:
        return "User not found; nothing to delete"
    user.is_active = False
    Repository(ApplicationUser).delete(user)
    return f"User deleted: {data.get('id')}"


def _handle_organization_upsert(data: dict) -> str:
    external_id = data.get("id")
    name = data.get("name")
    if not external_id or not name:
        raise ValidationError("Organization event without id or name")
    org, created = organization_service.sync_organization(
        external_id=external_id,
        name=name,
        slug=data.get("slug"),
        image_url=data.get("image_url"),
        created_by_external_id=data.get("created_by"),
    )
    return f"Organization {'created' if created else 'updated'}: {org.external_id}"


def _membership_parties(data: dict):
    org_data = _object(data.get("organization"), "data.organization")
    user_data = _object(data.get("public_user_data"), "data.public_user_data")
    org = tenant_service.find_organization_by_external_id(org_data.get("id"))
    user = user_service.get_user_by_external_id(user_data.get("user_id"))
    return org, user


def _handle_membership_created(data: dict) -> str:
    org, user = _membership_parties(data)
    if org is None or user is None:
        return "Organization or user not synced yet; membership skipped"
    role = map_provider_role(data.get("role")) or MembershipRole.USER.value
    organization_service.add_member(org_id=org.id, user=user, role=role)
    return f"Membership upserted: {user.external_id} in {org.external_id}"


def _handle_membership_deleted(data: dict) -> str:
    org, user = _membership_parties(data)
    if org is None or user is None:
        return "Membership not found; nothing to delete"
    membership = organization_service.get_membership(org_id=org.id, user_id=user.id)
    if membership is None:
        return "Membership not found; nothing to delete"
    db.session.delete(membership)
    return f"Membership removed: {user.external_id} from {org.external_id}"


IDENTITY_HANDLERS: dict[str, Callable[[dict], str]] = {
    "user.created": _handle_user_upsert,
    "user.updated": _handle_user_upsert,
    "user.deleted": _handle_user_deleted,
    "organization.created": _handle_organization_upsert,
    "organization.updated": _handle_organization_upsert,
    "organizationMembership.created": _handle_membership_created,
    "organizationMembership.updated": _handle_membership_created,
    "organizationMembership.deleted": _handle_membership_deleted,
}


def handle_identity_event(event: dict, *, event_id: str | None = None) -> WebhookResult:
    """
    Dispatch a verified identity event. Unknown types are acknowledged.

    Raises:
        ValidationError: event payload missing required fields
    """
    event_type = event.get("type") or "unknown"
    data = _object(event.get("data"), "Event data")

    if already_processed(PROVIDER_IDENTITY, event_id):
        return WebhookResult(event_type, event_id, True, "Duplicate delivery ignored")

    handler = IDENTITY_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Ignoring identity event type %s", event_type)
        message = f"Event type {event_type} ignored"
    else:
        message = handler(data)

    _record(PROVIDER_IDENTITY, event_id, event_type)
    if not _commit_delivery():
        return WebhookResult(event_type, event_id, True, "Duplicate delivery ignored")
    logger.info("Identity event %s processed: %s", event_type, message)
    return WebhookResult(event_type, event_id, True, message)


# =============================================================================
# PAYMENT PROVIDER (STRIPE)
# =============================================================================

def _org_id_from_metadata(obj: dict):
    raw = _object(obj.get("metadata"), "metadata").get("organization_id") or obj.get("client_reference_id")
    if not raw:
        return None
    try:
        org_id = uuid.UUID(str(raw))
    except ValueError:
        logger.warning("Stripe object %s carries invalid organization_id %r", obj.get("id"), raw)
        return None
    if organization_service.get_organization(org_id=org_id) is None:
        logger.warning("Stripe object %s references unknown organization %s", obj.get("id"), org_id)
        return None
    return org_id


def _locate_subscription(obj: dict, *, subscription_id: str | None, customer_id: str | None):
    sub = subscription_service.find_by_provider_subscription_id(subscription_id)
    if sub is None:
        org_id = _org_id_from_metadata(obj)
        if org_id is not None:
            sub = subscription_service.get_or_create_for_org(org_id)
    if sub is None:
        sub = subscription_service.find_by_provider_customer_id(customer_id)
    return sub


def _first_item(subscription_obj: dict) -> dict:
    items = _list(_object(subscription_obj.get("items"), "items").get("data"), "items.data")
    return _object(items[0], "items.data[0]") if items else {}


def _first_price(subscription_obj: dict) -> dict:
    item = _first_item(subscription_obj)
    return _object(item.get("price"), "items.data.price")


def _handle_checkout_completed(obj: dict) -> str:
    subscription_id = obj.get("subscription")
    customer_id = obj.get("customer")
    sub = _locate_subscription(obj, subscription_id=subscription_id, customer_id=customer_id)
    if sub is None:
        return "No organization for checkout session"
    subscription_service.apply_provider_state(
        sub,
        customer_id=customer_id,
        subscription_id=subscription_id,
        status=SubscriptionStatus.ACTIVE.value if obj.get("payment_status") in ("paid", "no_payment_required") else None,
    )
    return f"Checkout linked to organization {sub.org_id}"


def _handle_subscription_changed(obj: dict) -> str:
    sub = _locate_subscription(obj, subscription_id=obj.get("id"), customer_id=obj.get("customer"))
    if sub is None:
        return "No local subscription for provider subscription"
    price = _first_price(obj)
    recurring = _object(price.get("recurring"), "price.recurring")
    # Newer API versions carry the period on the subscription item
    item = _first_item(obj)
    subscription_service.apply_provider_state(
        sub,
        customer_id=obj.get("customer"),
        subscription_id=obj.get("id"),
        status=stripe_service.local_status(obj.get("status")),
        price_id=price.get("id"),
        unit_amount=price.get("unit_amount"),
        interval=recurring.get("interval"),
        period_start=from_unix_timestamp(obj.get("current_period_start") or item.get("current_period_start")),
        period_end=from_unix_timestamp(obj.get("current_period_end") or item.get("current_period_end")),
        trial_end=from_unix_timestamp(obj.get("trial_end")),
        cancel_at_period_end=obj.get("cancel_at_period_end"),
    )
    return f"Subscription {obj.get('id')} synced ({sub.status})"


def _handle_subscription_deleted(obj: dict) -> str:
    sub = _locate_subscription(obj, subscription_id=obj.get("id"), customer_id=obj.get("customer"))
    if sub is None:
        return "No local subscription for provider subscription"
    subscription_service.apply_provider_state(
        sub,
        status=SubscriptionStatus.CANCELLED.value,
        period_end=from_unix_timestamp(obj.get("ended_at")) or utcnow(),
        cancel_at_period_end=False,
    )
    return f"Subscription {obj.get('id')} cancelled"


def _invoice_subscription_id(obj: dict) -> str | None:
    if obj.get("subscription"):
        return obj["subscription"]
    # Newer API versions nest it under parent.subscription_details
    parent = _object(obj.get("parent"), "parent")
    details = _object(parent.get("subscription_details"), "parent.subscription_details")
    return details.get("subscription")


def _handle_invoice_paid(obj: dict) -> str:
    sub = _locate_subscription(obj, subscription_id=_invoice_subscription_id(obj), customer_id=obj.get("customer"))
    if sub is None:
        return "No local subscription for invoice"
    lines = _list(_object(obj.get("lines"), "lines").get("data"), "lines.data")
    line = _object(lines[0], "lines.data[0]") if lines else {}
    period = _object(line.get("period"), "lines.data[0].period")
    subscription_service.apply_provider_state(
        sub,
        status=SubscriptionStatus.ACTIVE.value,
        period_end=from_unix_timestamp(period.get("end")),
    )
    return f"Invoice paid for organization {sub.org_id}"


def _handle_invoice_failed(obj: dict) -> str:
    sub = _locate_subscription(obj, subscription_id=_invoice_subscription_id(obj), customer_id=obj.get("customer"))
    if sub is None:
        return "No local subscription for invoice"
    subscription_service.apply_provider_state(sub, status=SubscriptionStatus.PAST_DUE.value)
    return f"Invoice payment failed for organization {sub.org_id}"


STRIPE_HANDLERS: dict[str, Callable[[dict], str]] = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.created": _handle_subscription_changed,
    "customer.subscription.updated": _handle_subscription_changed,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_succeeded": _handle_invoice_paid,
    "invoice.paid": _handle_invoice_paid,
    "invoice.payment_failed": _handle_invoice_failed,
}


def handle_stripe_event(event: dict) -> WebhookResult:
    """Dispatch a verified Stripe event. Unhandled types are recorded as processed."""
    event_type = event.get("type") or "unknown"
    event_id = event.get("id")
    obj = _object(_object(event.get("data"), "Event data").get("object"), "Event data.object")

    if already_processed(PROVIDER_STRIPE, event_id):
        return WebhookResult(event_type, event_id, True, "Duplicate delivery ignored")

    handler = STRIPE_HANDLERS.get(event_type)
    if handler is None:
        message = f"Event type {event_type} acknowledged without changes"
    else:
        message = handler(obj)

    _record(PROVIDER_STRIPE, event_id, event_type)
    if not _commit_delivery():
        return WebhookResult(event_type, event_id, True, "Duplicate delivery ignored")
    logger.info("Stripe event %s (%s) processed: %s", event_type, event_id, message)
    return WebhookResult(event_type, event_id, True, message)


def parse_json_body(body: str) -> dict:
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise ValidationError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return payload


def identity_verification_settings() -> dict:
    cfg = current_app.config
    return {
        "secret": cfg.get("IDENTITY_WEBHOOK_SECRET"),
        "tolerance_seconds": cfg.get("WEBHOOK_TOLERANCE_SECONDS", 300),
        "allow_unsigned": cfg.get("APP_ENV") == "development",
    }
