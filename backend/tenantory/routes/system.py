# backend/tenantory/routes/system.py
"""
System health and connectivity endpoints.

/health is the load-balancer health check; the /api/test routes let a frontend
verify that it can reach the API and that its bearer token is accepted.
"""

import time
from flask import Blueprint, current_app, g, request
from sqlalchemy import text

from ..decorators import require_auth
from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial round trip.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "environment": current_app.config.get("APP_ENV"),
        "checks": {"database": database_health},
    }, 200 if healthy else 503


@system_bp.get("/api/test/ping")
def ping():
    return {"message": "pong", "timestamp": to_utc_z(utcnow())}


@system_bp.post("/api/test/echo")
def echo():
    """Echo the JSON body back (connectivity check for the frontend)."""
    payload = request.get_json(silent=True)
    return {"received": payload, "timestamp": to_utc_z(utcnow())}


@system_bp.get("/api/test/auth-test")
@require_auth
def auth_test():
    """Show what the API resolved from the caller's token."""
    user = g.get("current_user")
    return {
        "authenticated": True,
        "user_id": g.actor_id,
        "email": g.get("email"),
        "local_user_id": str(user.id) if user is not None else None,
        "organization_external_id": g.get("org_external_id"),
        "organization_id": str(g.org_id) if g.get("org_id") else None,
        "timestamp": to_utc_z(utcnow()),
    }
