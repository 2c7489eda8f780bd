"""
Organization and membership tests.

Covers in-app organization creation (Owner + trial in one commit), provider
sync, switching the active organization, member management and the
last-owner rule.
"""

import uuid

from tenantory.models import ApplicationUser, Membership, Organization, Subscription


class TestCreateOrganization:
    def test_create_makes_owner_and_trial(self, client, db_session, owner_a, headers_for):
        headers = headers_for(owner_a.external_id)
        resp = client.post("/api/organizations", json={"name": "Second Shop"}, headers=headers)
        assert resp.status_code == 201
        org = resp.json
        assert org["slug"] == "second-shop"
        assert org["plan_name"] == "Trial"

        membership = db_session.query(Membership).filter_by(org_id=uuid.UUID(org["id"])).one()
        assert membership.role == "Owner"
        assert membership.is_active is True

        # Exactly one active membership per user
        active = db_session.query(Membership).filter_by(user_id=owner_a.id, is_active=True).all()
        assert len(active) == 1

    def test_unsynced_user_cannot_create(self, client, db_session, headers_for):
        resp = client.post("/api/organizations", json={"name": "Ghost"}, headers=headers_for("user_ghost"))
        assert resp.status_code == 400
        assert "POST /api/users/sync" in resp.json["error"]

    def test_invalid_payload(self, client, db_session, owner_a, headers_for):
        resp = client.post(
            "/api/organizations",
            json={"name": "X", "email": "not-an-email", "settings": []},
            headers=headers_for(owner_a.external_id),
        )
        assert resp.status_code == 400


class TestSyncOrganization:
    def test_sync_is_idempotent(self, client, db_session, owner_a, headers_for):
        headers = headers_for(owner_a.external_id, org_id="org_new")
        first = client.post("/api/organizations/sync", json={"name": "New Co"}, headers=headers)
        assert first.status_code == 201
        second = client.post("/api/organizations/sync", json={"name": "New Co Renamed"}, headers=headers)
        assert second.status_code == 200
        assert second.json["id"] == first.json["id"]
        assert second.json["name"] == "New Co Renamed"

        org = db_session.query(Organization).filter_by(external_id="org_new").one()
        assert db_session.query(Subscription).filter_by(org_id=org.id).count() == 1
        creator = db_session.query(Membership).filter_by(org_id=org.id, user_id=owner_a.id).one()
        assert creator.role == "Owner"

    def test_sync_requires_org_claim(self, client, db_session, owner_a, headers_for):
        resp = client.post(
            "/api/organizations/sync", json={"name": "Nope"}, headers=headers_for(owner_a.external_id)
        )
        assert resp.status_code == 400


class TestCurrentOrganization:
    def test_get_and_update(self, client, db_session, org_a, owner_a_headers):
        resp = client.get("/api/organizations/current", headers=owner_a_headers)
        assert resp.json["id"] == str(org_a.id)

        resp = client.put(
            "/api/organizations/current",
            json={"website": "https://acme.example", "settings": {"low_stock_alerts": True}},
            headers=owner_a_headers,
        )
        assert resp.status_code == 200
        assert resp.json["settings"] == {"low_stock_alerts": True}

    def test_complete_setup(self, client, db_session, owner_a_headers):
        resp = client.post(
            "/api/organizations/complete-setup", json={"industry": "Retail"}, headers=owner_a_headers
        )
        assert resp.json["has_completed_setup"] is True
        assert resp.json["setup_completed_at"] is not None


class TestActiveOrganization:
    def test_mine_and_activate(self, client, db_session, owner_a, org_a, org_b, headers_for):
        headers = headers_for(owner_a.external_id)
        other_id = client.post("/api/organizations", json={"name": "Shop Two"}, headers=headers).json["id"]

        mine = client.get("/api/organizations/mine", headers=headers).json["items"]
        by_id = {o["id"]: o for o in mine}
        assert by_id[other_id]["is_active_membership"] is True
        assert by_id[str(org_a.id)]["is_active_membership"] is False

        resp = client.post(f"/api/organizations/{org_a.id}/activate", headers=headers)
        assert resp.status_code == 200
        assert resp.json["is_active"] is True
        assert client.get("/api/test/auth-test", headers=headers).json["organization_id"] == str(org_a.id)

        # Not a member of B
        assert client.post(f"/api/organizations/{org_b.id}/activate", headers=headers).status_code == 404


class TestUsers:
    def test_sync_creates_user_and_membership(self, client, db_session, org_a, headers_for):
        headers = headers_for("user_new", org_id=org_a.external_id, email="new@acme.com", org_role="org:member")
        resp = client.post("/api/users/sync", json={"first_name": "Nia"}, headers=headers)
        assert resp.status_code == 201
        assert resp.json["email"] == "new@acme.com"

        user = db_session.query(ApplicationUser).filter_by(external_id="user_new").one()
        membership = db_session.query(Membership).filter_by(user_id=user.id, org_id=org_a.id).one()
        assert membership.role == "User"

        again = client.post("/api/users/sync", json={}, headers=headers)
        assert again.status_code == 200

    def test_sync_requires_email(self, client, db_session, headers_for):
        resp = client.post("/api/users/sync", json={}, headers=headers_for("user_no_email"))
        assert resp.status_code == 400

    def test_me(self, client, db_session, owner_a, org_a, owner_a_headers):
        resp = client.get("/api/users/me", headers=owner_a_headers)
        assert resp.json["external_id"] == owner_a.external_id
        assert resp.json["role"] == "Owner"
        assert resp.json["organization_id"] == str(org_a.id)
        assert len(resp.json["memberships"]) == 1

    def test_update_me_rejects_email(self, client, db_session, owner_a_headers):
        resp = client.put("/api/users/me", json={"email": "x@y.co"}, headers=owner_a_headers)
        assert resp.status_code == 400
        resp = client.put("/api/users/me", json={"first_name": "Ada"}, headers=owner_a_headers)
        assert resp.json["first_name"] == "Ada"

    def test_invite_update_remove(self, client, db_session, owner_a_headers, owner_b_headers):
        resp = client.post(
            "/api/users", json={"email": "pending@acme.com", "role": "Manager"}, headers=owner_a_headers
        )
        assert resp.status_code == 201
        user_id = resp.json["id"]
        assert resp.json["role"] == "Manager"

        dup = client.post("/api/users", json={"email": "pending@acme.com"}, headers=owner_a_headers)
        assert dup.status_code == 400

        members = client.get("/api/users", headers=owner_a_headers).json
        assert members["total_count"] == 2
        assert client.get(f"/api/users/{user_id}", headers=owner_b_headers).status_code == 404

        resp = client.put(f"/api/users/{user_id}", json={"role": "Admin"}, headers=owner_a_headers)
        assert resp.json["role"] == "Admin"

        assert client.delete(f"/api/users/{user_id}", headers=owner_a_headers).status_code == 204
        assert client.get("/api/users", headers=owner_a_headers).json["total_count"] == 1

    def test_invited_user_claimed_on_sync(self, client, db_session, org_a, owner_a_headers, headers_for):
        client.post("/api/users", json={"email": "later@acme.com"}, headers=owner_a_headers)
        headers = headers_for("user_later", org_id=org_a.external_id, email="later@acme.com")
        resp = client.post("/api/users/sync", json={}, headers=headers)
        assert resp.status_code == 200
        assert db_session.query(ApplicationUser).filter_by(email="later@acme.com").count() == 1

    def test_sync_cannot_claim_invite_with_body_email(
        self, client, db_session, org_a, owner_a_headers, headers_for
    ):
        client.post("/api/users", json={"email": "victim@acme.com", "role": "Admin"}, headers=owner_a_headers)
        headers = headers_for("user_attacker", email="attacker@evil.com")

        resp = client.post("/api/users/sync", json={"email": "victim@acme.com"}, headers=headers)
        assert resp.status_code == 400

        invited = db_session.query(ApplicationUser).filter_by(email="victim@acme.com").one()
        assert invited.external_id.startswith("pending_")
        assert db_session.query(ApplicationUser).filter_by(external_id="user_attacker").count() == 0
        assert client.get("/api/users/me", headers=headers).status_code == 404

    def test_sync_accepts_matching_body_email(self, client, db_session, headers_for):
        headers = headers_for("user_case", email="Case@acme.com")
        resp = client.post("/api/users/sync", json={"email": "case@ACME.com"}, headers=headers)
        assert resp.status_code == 201
        assert resp.json["email"] == "Case@acme.com"

    def test_sync_rejects_body_email_without_token_email(self, client, db_session, owner_a_headers, headers_for):
        client.post("/api/users", json={"email": "victim@acme.com"}, headers=owner_a_headers)
        resp = client.post(
            "/api/users/sync", json={"email": "victim@acme.com"}, headers=headers_for("user_no_email")
        )
        assert resp.status_code == 400
        assert db_session.query(ApplicationUser).filter_by(external_id="user_no_email").count() == 0

    def test_member_update_changes_role_only(
        self, client, db_session, owner_a_headers, owner_b, owner_b_headers
    ):
        resp = client.post("/api/users", json={"email": owner_b.email}, headers=owner_a_headers)
        assert resp.status_code == 201
        member_id = resp.json["id"]
        assert member_id == str(owner_b.id)

        for patch in ({"is_active": False}, {"first_name": "Mallory"}, {"last_name": "X"}):
            resp = client.put(f"/api/users/{member_id}", json=patch, headers=owner_a_headers)
            assert resp.status_code == 400

        resp = client.put(f"/api/users/{member_id}", json={"role": "Manager"}, headers=owner_a_headers)
        assert resp.status_code == 200
        assert resp.json["role"] == "Manager"

        db_session.refresh(owner_b)
        assert owner_b.is_active is True
        assert owner_b.first_name is None
        assert client.get("/api/products", headers=owner_b_headers).status_code == 200

    def test_invite_respects_user_limit(self, client, db_session, owner_a_headers):
        for i in range(2):
            client.post("/api/users", json={"email": f"m{i}@acme.com"}, headers=owner_a_headers)
        resp = client.post("/api/users", json={"email": "m9@acme.com"}, headers=owner_a_headers)
        assert resp.status_code == 402
        assert resp.json["limit_type"] == "Users"

    def test_last_owner_cannot_leave(self, client, db_session, owner_a, owner_a_headers):
        resp = client.delete(f"/api/users/{owner_a.id}", headers=owner_a_headers)
        assert resp.status_code == 400
        resp = client.put(f"/api/users/{owner_a.id}", json={"role": "User"}, headers=owner_a_headers)
        assert resp.status_code == 400
