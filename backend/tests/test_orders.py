"""
Order API tests.

Covers totals derivation, generated order numbers, item validation,
terminal statuses and tenant isolation of referenced products.
"""

import uuid

import pytest

from tenantory.services.orders_service import next_order_number
from tenantory.time_utils import utcnow


@pytest.fixture
def product_id(client, owner_a_headers):
    resp = client.post(
        "/api/products",
        json={"sku": "WIDGET-1", "name": "Widget", "price": "12.50"},
        headers=owner_a_headers,
    )
    return resp.json["id"]


def _order(client, headers, items, **fields):
    return client.post("/api/orders", json={"items": items, **fields}, headers=headers)


class TestCreateOrder:
    def test_totals_and_generated_number(self, client, db_session, owner_a_headers, product_id):
        resp = _order(
            client,
            owner_a_headers,
            [
                {"product_id": product_id, "quantity": 2},
                {"product_id": product_id, "quantity": 1, "unit_price": "3.00"},
            ],
            tax_amount="2.24",
            shipping_amount=5,
            discount_amount="1.24",
        )
        assert resp.status_code == 201
        order = resp.json
        assert order["subtotal"] == 28.0
        assert order["total_amount"] == 34.0
        assert order["status"] == "Draft"
        assert order["order_type"] == "Sale"
        assert order["order_number"] == f"ORD-{utcnow():%Y%m%d}-0001"
        assert sorted(i["total_price"] for i in order["items"]) == [3.0, 25.0]

        second = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1}])
        assert second.json["order_number"] == f"ORD-{utcnow():%Y%m%d}-0002"

    def test_explicit_number_must_be_unique(self, client, db_session, owner_a_headers, product_id):
        items = [{"product_id": product_id, "quantity": 1}]
        assert _order(client, owner_a_headers, items, order_number="PO-1").status_code == 201
        resp = _order(client, owner_a_headers, items, order_number="PO-1")
        assert resp.status_code == 400

    def test_field_and_item_errors_reported_together(self, client, db_session, owner_a_headers):
        resp = _order(
            client,
            owner_a_headers,
            [{"product_id": "nope", "quantity": 1}, {"product_id": str(uuid.uuid4()), "quantity": 0}],
            status="Bogus",
        )
        assert resp.status_code == 400
        errors = resp.json["errors"]
        assert any(e.startswith("status must be one of") for e in errors)
        assert "items[0].product_id must be a valid id" in errors
        assert "items[1].quantity must be a positive integer" in errors

    @pytest.mark.parametrize("items", [None, [], "x"])
    def test_items_required(self, client, db_session, owner_a_headers, items):
        resp = client.post("/api/orders", json={"items": items}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_negative_unit_price(self, client, db_session, owner_a_headers, product_id):
        resp = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1, "unit_price": -1}])
        assert resp.status_code == 400

    def test_discount_cannot_exceed_total(self, client, db_session, owner_a_headers, product_id):
        resp = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1}], discount_amount=100)
        assert resp.status_code == 400

    def test_foreign_product_is_unknown(self, client, db_session, owner_b_headers, product_id):
        resp = _order(client, owner_b_headers, [{"product_id": product_id, "quantity": 1}])
        assert resp.status_code == 400
        assert resp.json["errors"] == [f"Product not found: {product_id}"]


class TestOrderStatus:
    def test_terminal_status_is_final(self, client, db_session, owner_a_headers, product_id):
        order_id = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1}]).json["id"]
        url = f"/api/orders/{order_id}/status"

        resp = client.put(url, json={"status": "Completed"}, headers=owner_a_headers)
        assert resp.status_code == 200
        assert resp.json["completed_date"] is not None

        resp = client.put(url, json={"status": "Pending"}, headers=owner_a_headers)
        assert resp.status_code == 400

    def test_invalid_status(self, client, db_session, owner_a_headers, product_id):
        order_id = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1}]).json["id"]
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "Lost"}, headers=owner_a_headers)
        assert resp.status_code == 400


class TestOrderListing:
    def test_list_filter_and_delete(self, client, db_session, owner_a_headers, owner_b_headers, product_id):
        items = [{"product_id": product_id, "quantity": 1}]
        _order(client, owner_a_headers, items, order_type="Purchase")
        sale_id = _order(client, owner_a_headers, items).json["id"]

        resp = client.get("/api/orders?order_type=Sale", headers=owner_a_headers)
        assert resp.json["total_count"] == 1
        assert "items" not in resp.json["items"][0]

        assert client.get(f"/api/orders/{sale_id}", headers=owner_b_headers).status_code == 404
        assert client.delete(f"/api/orders/{sale_id}", headers=owner_a_headers).status_code == 204
        assert client.get("/api/orders", headers=owner_a_headers).json["total_count"] == 1


class TestOrderNumbers:
    def test_numbering_counts_deleted_orders(self, client, db_session, org_a, owner_a_headers, product_id):
        order_id = _order(client, owner_a_headers, [{"product_id": product_id, "quantity": 1}]).json["id"]
        client.delete(f"/api/orders/{order_id}", headers=owner_a_headers)
        assert next_order_number(org_a.id).endswith("-0002")
