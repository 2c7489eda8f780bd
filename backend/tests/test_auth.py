"""
Authentication and tenant-context tests.

Verifies:
- Protected endpoints return 401 without a valid bearer token
- Tokens naming an unknown organization resolve to "no tenant" (400)
- Tokens without an organization claim fall back to the active membership
- Role checks return 403 with the required roles
- Public system endpoints stay open
"""

import time

import pytest
from jose import jwt

from tenantory.config import TestingConfig
from tenantory.models import Organization


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/categories"),
            ("GET", "/api/orders"),
            ("GET", "/api/warehouses"),
            ("GET", "/api/organizations/current"),
            ("POST", "/api/organizations"),
            ("GET", "/api/users/me"),
            ("POST", "/api/users/sync"),
            ("GET", "/api/subscriptions/current"),
            ("GET", "/api/subscriptions/usage"),
            ("POST", "/api/payments/create-checkout-session"),
            ("GET", "/api/test/auth-test"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_bad_signature(self, client, db_session):
        token = jwt.encode({"sub": "user_x"}, "some-other-key", algorithm="HS256")
        resp = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_expired_token(self, client, db_session):
        token = jwt.encode(
            {"sub": "user_x", "exp": int(time.time()) - 60},
            TestingConfig.AUTH_JWT_KEY,
            algorithm="HS256",
        )
        resp = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_token_without_subject(self, client, db_session):
        token = jwt.encode({"email": "a@b.co"}, TestingConfig.AUTH_JWT_KEY, algorithm="HS256")
        resp = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_deactivated_user(self, client, db_session, owner_a, owner_a_headers):
        owner_a.is_active = False
        db_session.commit()
        resp = client.get("/api/products", headers=owner_a_headers)
        assert resp.status_code == 401


# =============================================================================
# TENANT RESOLUTION
# =============================================================================


class TestTenantResolution:
    def test_unknown_org_claim_is_no_tenant(self, client, db_session, owner_a, headers_for):
        headers = headers_for(owner_a.external_id, org_id="org_never_synced")
        resp = client.get("/api/products", headers=headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Organization context required"
        # Read-only resolution: nothing was created
        assert db_session.query(Organization).filter_by(external_id="org_never_synced").count() == 0

    def test_falls_back_to_active_membership(self, client, db_session, owner_a, org_a, headers_for):
        resp = client.get("/api/test/auth-test", headers=headers_for(owner_a.external_id))
        assert resp.status_code == 200
        assert resp.json["organization_id"] == str(org_a.id)
        assert resp.json["organization_external_id"] is None

    def test_unknown_user_without_org(self, client, db_session, headers_for):
        resp = client.get("/api/products", headers=headers_for("user_stranger"))
        assert resp.status_code == 400

    def test_inactive_org_is_no_tenant(self, client, db_session, org_a, owner_a_headers):
        org_a.is_active = False
        db_session.commit()
        resp = client.get("/api/products", headers=owner_a_headers)
        assert resp.status_code == 400

    def test_nested_org_claim(self, client, db_session, owner_a, org_a, headers_for):
        headers = headers_for(owner_a.external_id, o={"id": org_a.external_id, "rol": "admin"})
        resp = client.get("/api/test/auth-test", headers=headers)
        assert resp.json["organization_id"] == str(org_a.id)


# =============================================================================
# ROLE CHECKS (403)
# =============================================================================


class TestRoleChecks:
    def test_viewer_cannot_update_organization(self, client, db_session, viewer_a_headers):
        resp = client.put("/api/organizations/current", json={"name": "Hijacked"}, headers=viewer_a_headers)
        assert resp.status_code == 403
        assert set(resp.json["required_roles"]) == {"Owner", "Admin"}

    def test_viewer_cannot_invite(self, client, db_session, viewer_a_headers):
        resp = client.post("/api/users", json={"email": "new@acme.com"}, headers=viewer_a_headers)
        assert resp.status_code == 403

    def test_local_membership_role_beats_claim(self, client, db_session, viewer_a, org_a, headers_for):
        headers = headers_for(viewer_a.external_id, org_id=org_a.external_id, org_role="org:admin")
        resp = client.put("/api/organizations/current", json={"name": "Nope"}, headers=headers)
        assert resp.status_code == 403

    def test_claim_role_used_before_membership_sync(self, client, db_session, org_a, headers_for):
        headers = headers_for("user_unsynced", org_id=org_a.external_id, org_role="org:admin")
        resp = client.put("/api/organizations/current", json={"name": "Renamed Co"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json["name"] == "Renamed Co"


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================


class TestPublicEndpoints:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_ping(self, client, db_session):
        resp = client.get("/api/test/ping")
        assert resp.status_code == 200
        assert resp.json["message"] == "pong"

    def test_echo(self, client, db_session):
        resp = client.post("/api/test/echo", json={"hello": "world"})
        assert resp.json["received"] == {"hello": "world"}

    def test_auth_test_reports_identity(self, client, db_session, owner_a, org_a, owner_a_headers):
        resp = client.get("/api/test/auth-test", headers=owner_a_headers)
        assert resp.status_code == 200
        assert resp.json["authenticated"] is True
        assert resp.json["user_id"] == owner_a.external_id
        assert resp.json["local_user_id"] == str(owner_a.id)
        assert resp.json["organization_external_id"] == org_a.external_id

    def test_cors_header_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/test/ping", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_no_cors_header_for_unknown_origin(self, client, db_session):
        resp = client.get("/api/test/ping", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
