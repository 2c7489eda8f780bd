# backend/tenantory/config.py
from __future__ import annotations
import os


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tenantory.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tenantory.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "development" relaxes webhook verification when no secret is configured
    APP_ENV = os.environ.get("APP_ENV", "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bearer tokens issued by the identity provider.
    # AUTH_JWT_KEY is a shared secret (HS*) or a PEM public key (RS*).
    AUTH_JWT_KEY = os.environ.get("AUTH_JWT_KEY", "dev-jwt-key-change-me")
    AUTH_JWT_ALGORITHMS = _csv(os.environ.get("AUTH_JWT_ALGORITHMS")) or ["RS256"]
    AUTH_AUDIENCE = os.environ.get("AUTH_AUDIENCE") or None
    AUTH_ISSUER = os.environ.get("AUTH_ISSUER") or None

    IDENTITY_WEBHOOK_SECRET = os.environ.get("IDENTITY_WEBHOOK_SECRET") or None
    WEBHOOK_TOLERANCE_SECONDS = int(os.environ.get("WEBHOOK_TOLERANCE_SECONDS", "300"))

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY") or None
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET") or None
    STRIPE_SUCCESS_URL = os.environ.get(
        "STRIPE_SUCCESS_URL", "http://localhost:5173/billing/success?session_id={CHECKOUT_SESSION_ID}"
    )
    STRIPE_CANCEL_URL = os.environ.get("STRIPE_CANCEL_URL", "http://localhost:5173/billing/cancel")
    STRIPE_PORTAL_RETURN_URL = os.environ.get("STRIPE_PORTAL_RETURN_URL", "http://localhost:5173/billing")

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get("CORS_ALLOWED_ORIGINS")) or [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", "14"))


class TestingConfig(Config):
    TESTING = True
    APP_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

    AUTH_JWT_KEY = "test-signing-key"
    AUTH_JWT_ALGORITHMS = ["HS256"]
    AUTH_AUDIENCE = None
    AUTH_ISSUER = None

    IDENTITY_WEBHOOK_SECRET = "whsec_dGVzdC1pZGVudGl0eS13ZWJob29rLXNlY3JldA=="
    STRIPE_SECRET_KEY = "sk_test_placeholder"
    STRIPE_WEBHOOK_SECRET = "whsec_test_stripe_secret"
