# Overview: Inbound webhook endpoints for the identity provider and Stripe.

"""
Webhook routes.

No bearer token: each request is authenticated by its provider signature
before any state changes. Verification failures return 400 and are logged;
handled, duplicate and ignored events all return 200 so providers stop
retrying.
"""
from flask import Blueprint, current_app, request

from ..services import stripe_service, webhook_service
from ..time_utils import to_utc_z, utcnow

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/identity")
def identity_webhook():
    """
    Identity-provider events (user.*, organization.*, organizationMembership.*).

    Headers: svix-id, svix-timestamp, svix-signature.
    """
    body = request.get_data(as_text=True)
    webhook_service.verify_identity_signature(
        headers=request.headers,
        body=body,
        **webhook_service.identity_verification_settings(),
    )

    event = webhook_service.parse_json_body(body)
    result = webhook_service.handle_identity_event(event, event_id=request.headers.get("svix-id"))
    return result.to_dict()


@webhooks_bp.post("/stripe")
def stripe_webhook():
    """Stripe events, verified against the Stripe-Signature header by the SDK."""
    body = request.get_data(as_text=True)
    stripe_service.verify_webhook(body, request.headers.get("Stripe-Signature"))

    event = webhook_service.parse_json_body(body)
    result = webhook_service.handle_stripe_event(event)
    return result.to_dict()


@webhooks_bp.get("/health")
def webhooks_health():
    cfg = current_app.config
    return {
        "status": "healthy",
        "identity_secret_configured": bool(cfg.get("IDENTITY_WEBHOOK_SECRET")),
        "stripe_secret_configured": bool(cfg.get("STRIPE_WEBHOOK_SECRET")),
        "timestamp": to_utc_z(utcnow()),
    }
