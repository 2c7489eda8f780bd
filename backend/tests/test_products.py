# Overview: Pytest coverage for product, category and warehouse endpoints.

"""
Inventory API tests.

Covers product CRUD with per-tenant SKU uniqueness, stock movements,
category rules, warehouse CRUD, cross-tenant 404s and the plan limit (402).
"""

import uuid

import pytest

from tenantory.models import Product, Subscription
from tenantory.repository import TenantRepository


def _create_product(client, headers, **overrides):
    body = {"sku": "WIDGET-1", "name": "Widget", "price": "12.50", "stock_quantity": 5}
    body.update(overrides)
    return client.post("/api/products", json=body, headers=headers)


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductCrud:
    def test_create_and_get(self, client, db_session, owner_a, owner_a_headers):
        resp = _create_product(client, owner_a_headers)
        assert resp.status_code == 201
        product = resp.json
        assert product["sku"] == "WIDGET-1"
        assert product["price"] == 12.5
        assert product["status"] == "Active"
        assert product["created_by"] == owner_a.external_id

        resp = client.get(f"/api/products/{product['id']}", headers=owner_a_headers)
        assert resp.status_code == 200
        assert resp.json["name"] == "Widget"

    def test_missing_required_fields_reported_together(self, client, db_session, owner_a_headers):
        resp = client.post("/api/products", json={"price": 1}, headers=owner_a_headers)
        assert resp.status_code == 400
        assert "name is required" in resp.json["errors"]
        assert "sku is required" in resp.json["errors"]

    def test_unknown_field_rejected(self, client, db_session, owner_a_headers):
        resp = _create_product(client, owner_a_headers, org_id=str(uuid.uuid4()))
        assert resp.status_code == 400
        assert "Field not allowed: org_id" in resp.json["errors"]

    @pytest.mark.parametrize(
        "field,value",
        [("price", -1), ("stock_quantity", -3), ("price", "abc"), ("stock_quantity", 1.5), ("status", "Bogus")],
    )
    def test_invalid_values(self, client, db_session, owner_a_headers, field, value):
        resp = _create_product(client, owner_a_headers, **{field: value})
        assert resp.status_code == 400

    def test_min_cannot_exceed_max(self, client, db_session, owner_a_headers):
        resp = _create_product(client, owner_a_headers, min_stock_level=10, max_stock_level=5)
        assert resp.status_code == 400
        assert "min_stock_level cannot exceed max_stock_level" in resp.json["errors"]

    def test_duplicate_sku_in_same_org(self, client, db_session, owner_a_headers):
        assert _create_product(client, owner_a_headers).status_code == 201
        resp = _create_product(client, owner_a_headers, name="Other")
        assert resp.status_code == 400
        assert resp.json["error"] == "SKU already exists in your organization: WIDGET-1"

    def test_same_sku_in_other_org(self, client, db_session, owner_a_headers, owner_b_headers):
        assert _create_product(client, owner_a_headers).status_code == 201
        assert _create_product(client, owner_b_headers).status_code == 201

    def test_deleted_sku_stays_reserved(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        assert client.delete(f"/api/products/{product_id}", headers=owner_a_headers).status_code == 204
        assert client.get(f"/api/products/{product_id}", headers=owner_a_headers).status_code == 404

        resp = client.get("/api/products/check-sku?sku=WIDGET-1", headers=owner_a_headers)
        assert resp.json == {"sku": "WIDGET-1", "available": False}
        assert _create_product(client, owner_a_headers).status_code == 400

    def test_update_partial(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers, max_stock_level=20).json["id"]
        resp = client.put(f"/api/products/{product_id}", json={"min_stock_level": 8}, headers=owner_a_headers)
        assert resp.status_code == 200
        assert resp.json["min_stock_level"] == 8
        assert resp.json["name"] == "Widget"

        resp = client.put(f"/api/products/{product_id}", json={"min_stock_level": 30}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_update_to_taken_sku(self, client, db_session, owner_a_headers):
        _create_product(client, owner_a_headers)
        other_id = _create_product(client, owner_a_headers, sku="WIDGET-2").json["id"]
        resp = client.put(f"/api/products/{other_id}", json={"sku": "WIDGET-1"}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_check_sku_excludes_self(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        resp = client.get(
            f"/api/products/check-sku?sku=WIDGET-1&exclude_id={product_id}", headers=owner_a_headers
        )
        assert resp.json["available"] is True

    def test_missing_product(self, client, db_session, owner_a_headers):
        missing = uuid.uuid4()
        assert client.get(f"/api/products/{missing}", headers=owner_a_headers).status_code == 404
        assert client.put(f"/api/products/{missing}", json={"name": "x"}, headers=owner_a_headers).status_code == 404
        assert client.delete(f"/api/products/{missing}", headers=owner_a_headers).status_code == 404


class TestProductListing:
    def test_search_status_and_paging(self, client, db_session, owner_a_headers):
        for i in range(12):
            _create_product(client, owner_a_headers, sku=f"BOLT-{i:02d}", name=f"Bolt {i:02d}")
        _create_product(client, owner_a_headers, sku="NUT-1", name="Nut", status="Discontinued")

        resp = client.get("/api/products?search=bolt&page=2&page_size=5", headers=owner_a_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["total_count"] == 12
        assert body["total_pages"] == 3
        assert body["page"] == 2
        assert [p["sku"] for p in body["items"]] == [f"BOLT-{i:02d}" for i in range(5, 10)]

        resp = client.get("/api/products?status=Discontinued", headers=owner_a_headers)
        assert [p["sku"] for p in resp.json["items"]] == ["NUT-1"]

    @pytest.mark.parametrize("query", ["page=0", "page_size=500", "status=Nope", "category_id=not-a-uuid"])
    def test_bad_query(self, client, db_session, owner_a_headers, query):
        assert client.get(f"/api/products?{query}", headers=owner_a_headers).status_code == 400


class TestProductIsolation:
    def test_other_tenant_sees_404(self, client, db_session, owner_a_headers, owner_b_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]

        assert client.get(f"/api/products/{product_id}", headers=owner_b_headers).status_code == 404
        assert client.put(
            f"/api/products/{product_id}", json={"name": "Stolen"}, headers=owner_b_headers
        ).status_code == 404
        assert client.delete(f"/api/products/{product_id}", headers=owner_b_headers).status_code == 404
        assert client.get("/api/products", headers=owner_b_headers).json["total_count"] == 0

        # Untouched in its own tenant
        assert client.get(f"/api/products/{product_id}", headers=owner_a_headers).json["name"] == "Widget"


class TestPlanLimit:
    def test_product_limit_returns_402(self, client, db_session, org_a, owner_a_headers):
        _create_product(client, owner_a_headers)
        client.get("/api/subscriptions/current", headers=owner_a_headers)
        sub = db_session.query(Subscription).filter_by(org_id=org_a.id).one()
        sub.max_products = 1
        db_session.commit()

        resp = _create_product(client, owner_a_headers, sku="WIDGET-2")
        assert resp.status_code == 402
        assert resp.json["error"] == "Subscription limit exceeded"
        assert resp.json["limit_type"] == "Products"
        assert resp.json["upgrade_url"] == "/billing/upgrade"
        assert TenantRepository(Product, org_a.id).count() == 1

    def test_invalid_payload_writes_nothing(self, client, db_session, org_a, owner_a_headers):
        resp = _create_product(client, owner_a_headers, price=-1)
        assert resp.status_code == 400
        assert db_session.query(Subscription).filter_by(org_id=org_a.id).count() == 0

    def test_trial_limits_apply_before_first_subscription_access(self, client, db_session, org_a, owner_a_headers):
        assert client.post("/api/warehouses", json={"name": "Main"}, headers=owner_a_headers).status_code == 201
        resp = client.post("/api/warehouses", json={"name": "Overflow"}, headers=owner_a_headers)
        assert resp.status_code == 402
        assert db_session.query(Subscription).filter_by(org_id=org_a.id).count() == 0


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================


class TestStockMovements:
    def test_movements_adjust_stock(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        url = f"/api/products/{product_id}/movements"

        resp = client.post(url, json={"movement_type": "StockIn", "quantity": 10}, headers=owner_a_headers)
        assert resp.status_code == 201
        resp = client.post(url, json={"movement_type": "StockOut", "quantity": 15}, headers=owner_a_headers)
        assert resp.status_code == 201

        product = client.get(f"/api/products/{product_id}", headers=owner_a_headers).json
        assert product["stock_quantity"] == 0
        assert product["status"] == "OutOfStock"

        history = client.get(url, headers=owner_a_headers).json
        assert history["total_count"] == 2

    def test_cannot_go_below_zero(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        resp = client.post(
            f"/api/products/{product_id}/movements",
            json={"movement_type": "Damage", "quantity": 6},
            headers=owner_a_headers,
        )
        assert resp.status_code == 400
        assert "Insufficient stock" in resp.json["error"]

    @pytest.mark.parametrize(
        "body",
        [
            {"movement_type": "Teleport", "quantity": 1},
            {"movement_type": "StockIn", "quantity": 0},
            {"movement_type": "StockIn", "quantity": -2},
            {"movement_type": "StockIn", "quantity": 1, "warehouse_id": "nope"},
        ],
    )
    def test_invalid_movement(self, client, db_session, owner_a_headers, body):
        product_id = _create_product(client, owner_a_headers).json["id"]
        resp = client.post(f"/api/products/{product_id}/movements", json=body, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_signed_adjustment(self, client, db_session, owner_a_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        resp = client.post(
            f"/api/products/{product_id}/movements",
            json={"movement_type": "Adjustment", "quantity": -2},
            headers=owner_a_headers,
        )
        assert resp.status_code == 201
        assert client.get(f"/api/products/{product_id}", headers=owner_a_headers).json["stock_quantity"] == 3

    def test_movement_on_foreign_product(self, client, db_session, owner_a_headers, owner_b_headers):
        product_id = _create_product(client, owner_a_headers).json["id"]
        resp = client.post(
            f"/api/products/{product_id}/movements",
            json={"movement_type": "StockIn", "quantity": 1},
            headers=owner_b_headers,
        )
        assert resp.status_code == 404


# =============================================================================
# CATEGORIES
# =============================================================================


class TestCategories:
    def test_create_and_list_with_counts(self, client, db_session, owner_a_headers):
        cat = client.post("/api/categories", json={"name": "Hardware"}, headers=owner_a_headers)
        assert cat.status_code == 201
        _create_product(client, owner_a_headers, category_id=cat.json["id"])

        listing = client.get("/api/categories", headers=owner_a_headers).json
        assert listing["total_count"] == 1
        assert listing["items"][0]["name"] == "Hardware"

        product = client.get("/api/products", headers=owner_a_headers).json["items"][0]
        assert product["category_name"] == "Hardware"

    def test_duplicate_name(self, client, db_session, owner_a_headers):
        client.post("/api/categories", json={"name": "Hardware"}, headers=owner_a_headers)
        resp = client.post("/api/categories", json={"name": "Hardware"}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_cannot_delete_category_with_products(self, client, db_session, owner_a_headers):
        cat_id = client.post("/api/categories", json={"name": "Hardware"}, headers=owner_a_headers).json["id"]
        _create_product(client, owner_a_headers, category_id=cat_id)
        resp = client.delete(f"/api/categories/{cat_id}", headers=owner_a_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot delete category that contains products"

    def test_cannot_be_own_parent(self, client, db_session, owner_a_headers):
        cat_id = client.post("/api/categories", json={"name": "Tools"}, headers=owner_a_headers).json["id"]
        resp = client.put(
            f"/api/categories/{cat_id}", json={"parent_category_id": cat_id}, headers=owner_a_headers
        )
        assert resp.status_code == 400

    def test_hierarchy(self, client, db_session, owner_a_headers):
        parent_id = client.post("/api/categories", json={"name": "Tools"}, headers=owner_a_headers).json["id"]
        client.post(
            "/api/categories", json={"name": "Hammers", "parent_category_id": parent_id}, headers=owner_a_headers
        )
        roots = client.get("/api/categories/hierarchy", headers=owner_a_headers).json["items"]
        assert [r["name"] for r in roots] == ["Tools"]

    def test_parent_cycle_rejected(self, client, db_session, owner_a_headers):
        tools = client.post("/api/categories", json={"name": "Tools"}, headers=owner_a_headers).json["id"]
        hammers = client.post(
            "/api/categories", json={"name": "Hammers", "parent_category_id": tools}, headers=owner_a_headers
        ).json["id"]

        resp = client.put(
            f"/api/categories/{tools}", json={"parent_category_id": hammers}, headers=owner_a_headers
        )
        assert resp.status_code == 400

        roots = client.get("/api/categories/hierarchy", headers=owner_a_headers).json["items"]
        assert [r["name"] for r in roots] == ["Tools"]
        assert [c["name"] for c in roots[0]["children"]] == ["Hammers"]

    def test_product_with_foreign_category(self, client, db_session, owner_a_headers, owner_b_headers):
        cat_id = client.post("/api/categories", json={"name": "Secret"}, headers=owner_b_headers).json["id"]
        resp = _create_product(client, owner_a_headers, category_id=cat_id)
        assert resp.status_code == 400

    def test_delete_empty_category(self, client, db_session, owner_a_headers):
        cat_id = client.post("/api/categories", json={"name": "Empty"}, headers=owner_a_headers).json["id"]
        assert client.delete(f"/api/categories/{cat_id}", headers=owner_a_headers).status_code == 204
        assert client.get(f"/api/categories/{cat_id}", headers=owner_a_headers).status_code == 404


# =============================================================================
# WAREHOUSES
# =============================================================================


class TestWarehouses:
    def test_crud(self, client, db_session, owner_a_headers, owner_b_headers):
        resp = client.post("/api/warehouses", json={"name": "Main", "city": "Austin"}, headers=owner_a_headers)
        assert resp.status_code == 201
        wh_id = resp.json["id"]

        resp = client.put(f"/api/warehouses/{wh_id}", json={"city": "Dallas"}, headers=owner_a_headers)
        assert resp.json["city"] == "Dallas"
        assert client.get(f"/api/warehouses/{wh_id}", headers=owner_b_headers).status_code == 404
        assert client.delete(f"/api/warehouses/{wh_id}", headers=owner_a_headers).status_code == 204
        assert client.get("/api/warehouses", headers=owner_a_headers).json["total_count"] == 0

    def test_trial_allows_one_warehouse(self, client, db_session, owner_a_headers):
        assert client.post("/api/warehouses", json={"name": "One"}, headers=owner_a_headers).status_code == 201
        resp = client.post("/api/warehouses", json={"name": "Two"}, headers=owner_a_headers)
        assert resp.status_code == 402
        assert resp.json["limit_type"] == "Warehouses"
