# Overview: Pytest coverage for subscriptions, usage metering and plan changes.

"""
Subscription tests.

Verifies:
1. First access creates a trial with trial-plan limits
2. Usage counts follow tenant data
3. Plan changes are refused (row untouched) when usage would not fit
4. Cancel / reactivate transitions and billing role checks
"""

import pytest

from tenantory.models import ApplicationUser, Membership, Subscription
from tenantory.models.enums import MembershipRole
from tenantory.services import subscription_service
from tenantory.time_utils import utcnow


def _add_members(session, org, count):
    for i in range(count):
        user = ApplicationUser(external_id=f"user_extra_{i}", email=f"extra{i}@acme.com", is_active=True)
        session.add(user)
        session.flush()
        session.add(Membership(
            user=user, org_id=org.id, role=MembershipRole.USER.value, is_active=True, joined_at=utcnow()
        ))
    session.commit()


class TestTrial:
    def test_first_access_creates_trial(self, client, db_session, org_a, owner_a_headers):
        assert db_session.query(Subscription).filter_by(org_id=org_a.id).count() == 0

        resp = client.get("/api/subscriptions/current", headers=owner_a_headers)
        assert resp.status_code == 200
        sub = resp.json
        assert sub["plan_name"] == "Trial"
        assert sub["status"] == "Trial"
        assert sub["is_trial_active"] is True
        assert sub["max_users"] == 3
        assert sub["max_products"] == 50
        assert sub["max_warehouses"] == 1
        assert 13 <= sub["days_remaining"] <= 14

        client.get("/api/subscriptions/current", headers=owner_a_headers)
        assert db_session.query(Subscription).filter_by(org_id=org_a.id).count() == 1

    def test_explicit_trial_conflicts_with_existing(self, client, db_session, owner_a_headers):
        client.get("/api/subscriptions/current", headers=owner_a_headers)
        resp = client.post("/api/subscriptions/trial", json={"trial_days": 7}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_plans_catalog(self, client, db_session, owner_a_headers):
        plans = client.get("/api/subscriptions/plans", headers=owner_a_headers).json["items"]
        assert [p["id"] for p in plans] == ["starter", "professional", "enterprise"]
        assert [p for p in plans if p["is_popular"]][0]["id"] == "professional"


class TestUsage:
    def test_usage_counts_tenant_rows(self, client, db_session, owner_a_headers, owner_b_headers):
        for sku in ("A-1", "A-2"):
            client.post("/api/products", json={"sku": sku, "name": sku}, headers=owner_a_headers)
        client.post("/api/products", json={"sku": "B-1", "name": "B-1"}, headers=owner_b_headers)

        usage = client.get("/api/subscriptions/usage", headers=owner_a_headers).json
        assert usage["Products"]["current"] == 2
        assert usage["Products"]["limit"] == 50
        assert usage["Products"]["percentage"] == 4.0
        assert usage["Users"]["current"] == 1
        assert usage["Warehouses"]["is_at_limit"] is False

    @pytest.mark.parametrize(
        "current,at_limit,near_limit",
        [(50, True, True), (40, False, True), (39, False, False), (0, False, False)],
    )
    def test_metric_thresholds(self, current, at_limit, near_limit):
        metric = subscription_service.UsageMetric(resource="Products", current=current, limit=50)
        assert metric.is_at_limit is at_limit
        assert metric.is_near_limit is near_limit

    def test_check_limit(self, client, db_session, owner_a_headers):
        resp = client.post("/api/subscriptions/check-limit", json={"limit_type": "Users"}, headers=owner_a_headers)
        assert resp.json == {"limit_type": "Users", "allowed": True, "current": 1, "limit": 3}

    def test_check_limit_unknown_type(self, client, db_session, owner_a_headers):
        resp = client.post("/api/subscriptions/check-limit", json={"limit_type": "Spaceships"}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_inactive_users_do_not_count(self, db_session, org_a, owner_a):
        _add_members(db_session, org_a, 2)
        extra = db_session.query(ApplicationUser).filter_by(external_id="user_extra_0").one()
        extra.is_active = False
        db_session.commit()
        assert subscription_service.count_usage(org_a.id, subscription_service.LimitType.USERS) == 2

    def test_recommendation_when_at_limit(self, client, db_session, org_a, owner_a_headers):
        client.get("/api/subscriptions/current", headers=owner_a_headers)
        sub = db_session.query(Subscription).filter_by(org_id=org_a.id).one()
        sub.max_products = 1
        db_session.commit()
        client.post("/api/products", json={"sku": "R-1", "name": "R-1"}, headers=owner_a_headers)

        items = client.get("/api/subscriptions/recommendations", headers=owner_a_headers).json["items"]
        assert [r["resource"] for r in items] == ["Products"]
        assert items[0]["recommended_plan"]["id"] == "starter"


class TestPlanChanges:
    def test_upgrade_applies_limits(self, client, db_session, owner_a_headers):
        resp = client.post("/api/subscriptions/upgrade", json={}, headers=owner_a_headers)
        assert resp.status_code == 200
        sub = resp.json
        assert sub["plan_name"] == "Professional"
        assert sub["max_users"] == 15
        assert sub["monthly_price"] == 79.0
        assert sub["stripe_price_id"] == "price_professional_monthly"

    def test_annual_price_is_monthly_equivalent(self, client, db_session, owner_a_headers):
        resp = client.post(
            "/api/subscriptions/change-plan",
            json={"plan_id": "starter", "is_annual": True},
            headers=owner_a_headers,
        )
        assert resp.json["monthly_price"] == 24.17
        assert resp.json["stripe_price_id"] == "price_starter_annual"

    def test_downgrade_blocked_by_usage(self, client, db_session, org_a, owner_a_headers):
        client.post("/api/subscriptions/upgrade", json={}, headers=owner_a_headers)
        _add_members(db_session, org_a, 9)

        check = client.get("/api/subscriptions/can-change/starter", headers=owner_a_headers).json
        assert check["can_change"] is False
        assert check["reasons"] == ["Users: 10 in use, Starter allows 5"]

        resp = client.post("/api/subscriptions/downgrade", headers=owner_a_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == (
            "Current usage exceeds Starter plan limits. Please reduce usage before downgrading."
        )
        sub = client.get("/api/subscriptions/current", headers=owner_a_headers).json
        assert sub["plan_name"] == "Professional"
        assert sub["max_users"] == 15

    def test_unknown_plan(self, client, db_session, owner_a_headers):
        resp = client.post("/api/subscriptions/change-plan", json={"plan_id": "galactic"}, headers=owner_a_headers)
        assert resp.status_code == 400
        assert client.get("/api/subscriptions/can-change/galactic", headers=owner_a_headers).status_code == 400

    def test_paid_subscription(self, client, db_session, owner_a_headers):
        resp = client.post(
            "/api/subscriptions/paid",
            json={"plan_id": "enterprise", "stripe_customer_id": "cus_123"},
            headers=owner_a_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "Active"
        assert resp.json["stripe_customer_id"] == "cus_123"
        assert resp.json["trial_end_date"] is None


class TestCancelReactivate:
    def test_cancel_at_period_end_then_reactivate(self, client, db_session, owner_a_headers):
        client.get("/api/subscriptions/current", headers=owner_a_headers)

        resp = client.post("/api/subscriptions/cancel", json={}, headers=owner_a_headers)
        assert resp.json["cancel_at_period_end"] is True
        assert resp.json["status"] == "Trial"

        resp = client.post("/api/subscriptions/reactivate", headers=owner_a_headers)
        assert resp.json["status"] == "Active"
        assert resp.json["cancel_at_period_end"] is False

    def test_cancel_immediately(self, client, db_session, owner_a_headers):
        client.get("/api/subscriptions/current", headers=owner_a_headers)
        resp = client.post("/api/subscriptions/cancel", json={"immediately": True}, headers=owner_a_headers)
        assert resp.json["status"] == "Cancelled"

        again = client.post("/api/subscriptions/cancel", json={"immediately": True}, headers=owner_a_headers)
        assert again.status_code == 400

    def test_reactivate_active_subscription(self, client, db_session, owner_a_headers):
        client.post("/api/subscriptions/upgrade", json={}, headers=owner_a_headers)
        client.post("/api/subscriptions/reactivate", headers=owner_a_headers)
        resp = client.post("/api/subscriptions/reactivate", headers=owner_a_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/subscriptions/cancel"),
            ("POST", "/api/subscriptions/upgrade"),
            ("POST", "/api/subscriptions/downgrade"),
            ("PUT", "/api/subscriptions/current"),
        ],
    )
    def test_billing_requires_owner_or_admin(self, client, db_session, viewer_a_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=viewer_a_headers)
        assert resp.status_code == 403
