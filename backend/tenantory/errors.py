# Overview: Error taxonomy for services and its translation to JSON responses.

"""
Error handling for the API.

Services raise the exceptions below; routes never catch them just to pick a
status code. `register_error_handlers` is the single place where an exception
type becomes an HTTP status, and the generic fallback keeps internals out of
500 responses.

NOTE: ValidationError and ConflictError live in validation.py next to the
payload validator and are re-exported here.
"""
from __future__ import annotations

from flask import Flask, current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .validation import ValidationError, ConflictError

UPGRADE_URL = "/billing/upgrade"


class BusinessRuleError(ValueError):
    """400-level rule violation (category in use, usage over target plan, ...)."""


class NotFoundError(LookupError):
    """404: entity absent for the given id within the caller's tenant."""


class AuthenticationError(Exception):
    """401: missing, malformed or expired bearer token."""


class TenantContextError(Exception):
    """Request or write needs a tenant and none could be resolved."""


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""


class PermissionDeniedError(Exception):
    """403: caller's membership role does not allow the operation."""

    def __init__(self, message: str, required_roles: list[str] | None = None):
        super().__init__(message)
        self.required_roles = required_roles or []


class SubscriptionLimitError(Exception):
    """402: a write would exceed the tenant's plan allowance."""

    def __init__(self, limit_type: str, current: int | None = None, limit: int | None = None):
        self.limit_type = limit_type
        self.current = current
        self.limit = limit
        super().__init__(
            f"You have reached your subscription limit for {limit_type.lower()}. "
            "Please upgrade your plan to continue."
        )


class PaymentGatewayError(Exception):
    """Payment provider call failed."""


class WebhookVerificationError(Exception):
    """400: webhook signature, timestamp or secret check failed."""


__all__ = [
    "ValidationError",
    "ConflictError",
    "BusinessRuleError",
    "NotFoundError",
    "AuthenticationError",
    "TenantContextError",
    "TenantAccessError",
    "PermissionDeniedError",
    "SubscriptionLimitError",
    "PaymentGatewayError",
    "WebhookVerificationError",
    "register_error_handlers",
]


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(e: ValidationError):
        return {"error": "Validation failed", "errors": e.errors}, 400

    @app.errorhandler(ConflictError)
    @app.errorhandler(BusinessRuleError)
    def handle_business_rule(e: Exception):
        return {"error": str(e)}, 400

    @app.errorhandler(IntegrityError)
    def handle_integrity(e: IntegrityError):
        # Loser of a race on a unique index (SKU, order number, membership).
        from .extensions import db
        db.session.rollback()
        current_app.logger.warning("Integrity error: %s", e.orig)
        return {"error": "A record with the same unique value already exists"}, 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e: NotFoundError):
        return {"error": str(e) or "Resource not found"}, 404

    @app.errorhandler(TenantAccessError)
    def handle_tenant_access(e: TenantAccessError):
        # Do not reveal that the row exists in another tenant
        current_app.logger.warning("Cross-tenant access denied: %s", e)
        return {"error": "Resource not found"}, 404

    @app.errorhandler(AuthenticationError)
    def handle_authentication(e: AuthenticationError):
        return {"error": str(e) or "Authentication required"}, 401

    @app.errorhandler(TenantContextError)
    def handle_tenant_context(e: TenantContextError):
        return {"error": "Organization context required"}, 400

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(e: PermissionDeniedError):
        return {
            "error": "Permission denied",
            "required_roles": e.required_roles,
            "message": str(e),
        }, 403

    @app.errorhandler(SubscriptionLimitError)
    def handle_limit(e: SubscriptionLimitError):
        return {
            "error": "Subscription limit exceeded",
            "limit_type": e.limit_type,
            "message": str(e),
            "upgrade_url": UPGRADE_URL,
        }, 402

    @app.errorhandler(PaymentGatewayError)
    def handle_payment_gateway(e: PaymentGatewayError):
        return {"error": str(e)}, 502

    @app.errorhandler(WebhookVerificationError)
    def handle_webhook_verification(e: WebhookVerificationError):
        current_app.logger.warning("Webhook rejected: %s", e)
        return {"error": "Invalid webhook signature"}, 400

    @app.errorhandler(HTTPException)
    def handle_http(e: HTTPException):
        return {"error": e.description}, e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        current_app.logger.exception("Unhandled error")
        return {"error": "An error occurred while processing your request"}, 500
