"""Tests for the order endpoints."""

import pytest

from conftest import auth_headers, order_count, stock_of

ADDRESS = {"address": "1 Main St", "city": "Springfield", "postalCode": "12345", "country": "US"}


def _order_body(items, items_price, tax_price, shipping_price, total_price=None):
    if total_price is None:
        total_price = round(items_price + tax_price + shipping_price, 2)
    return {
        "orderItems": [{"product": pid, "quantity": qty} for pid, qty in items],
        "shippingAddress": ADDRESS,
        "paymentMethod": "stripe",
        "itemsPrice": items_price,
        "taxPrice": tax_price,
        "shippingPrice": shipping_price,
        "totalPrice": total_price,
    }


@pytest.fixture
def place_order(client):
    def _place(user, items, items_price=20.0, tax_price=1.4, shipping_price=10.0):
        response = client.post(
            "/orders", json=_order_body(items, items_price, tax_price, shipping_price), headers=auth_headers(user)
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _place


class TestCreateOrder:
    def test_creates_order_and_decrements_stock(self, client, session_factory, user, make_product):
        product = make_product(name="Lamp", price=10.0, stock=5, image_url="https://img/lamp.png")

        response = client.post("/orders", json=_order_body([(product.id, 2)], 20.0, 1.4, 10.0), headers=auth_headers(user))

        assert response.status_code == 201
        order = response.json()["data"]
        assert order["status"] == "pending"
        assert order["isPaid"] is False
        assert order["totalPrice"] == 31.4
        assert order["shippingAddress"] == ADDRESS
        assert order["items"] == [{
            "product": product.id, "name": "Lamp", "quantity": 2, "price": 10.0,
            "image": "https://img/lamp.png", "lineTotal": 20.0,
        }]
        assert stock_of(session_factory, product.id) == (3, 0)

    def test_all_or_nothing_when_one_item_is_short(self, client, session_factory, user, make_product):
        valid = make_product(name="Valid", stock=5)
        short = make_product(name="Short", stock=1)

        response = client.post(
            "/orders", json=_order_body([(valid.id, 2), (short.id, 3)], 20.0, 1.4, 10.0), headers=auth_headers(user)
        )

        assert response.status_code == 400
        assert "Short" in response.json()["error"]
        assert stock_of(session_factory, valid.id) == (5, 0)
        assert stock_of(session_factory, short.id) == (1, 0)
        assert order_count(session_factory) == 0

    def test_unknown_product_rolls_back(self, client, session_factory, user, make_product):
        valid = make_product(stock=5)
        response = client.post(
            "/orders", json=_order_body([(valid.id, 1), (999, 1)], 10.0, 0.7, 10.0), headers=auth_headers(user)
        )
        assert response.status_code == 404
        assert stock_of(session_factory, valid.id) == (5, 0)

    def test_no_items(self, client, user):
        response = client.post("/orders", json=_order_body([], 0, 0, 0), headers=auth_headers(user))
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No order items"}

    def test_inconsistent_totals_rejected(self, client, session_factory, user, make_product):
        product = make_product(stock=5)
        body = _order_body([(product.id, 1)], 10.0, 0.7, 10.0, total_price=5.0)
        response = client.post("/orders", json=body, headers=auth_headers(user))
        assert response.status_code == 400
        assert stock_of(session_factory, product.id) == (5, 0)

    def test_missing_shipping_address(self, client, user, make_product):
        product = make_product(stock=5)
        body = _order_body([(product.id, 1)], 10.0, 0.7, 10.0)
        del body["shippingAddress"]
        response = client.post("/orders", json=body, headers=auth_headers(user))
        assert response.status_code == 400
        assert "shippingAddress" in response.json()["error"]


class TestReadOrders:
    def test_owner_and_admin_can_read(self, client, user, admin, make_user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        stranger = make_user(email="stranger@example.com")

        assert client.get(f"/orders/{order['id']}", headers=auth_headers(user)).status_code == 200
        assert client.get(f"/orders/{order['id']}", headers=auth_headers(admin)).status_code == 200

        response = client.get(f"/orders/{order['id']}", headers=auth_headers(stranger))
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Not authorized to access this order"}

    def test_missing_order(self, client, user):
        response = client.get("/orders/4242", headers=auth_headers(user))
        assert response.status_code == 404

    def test_my_orders(self, client, user, make_user, make_product, place_order):
        product = make_product(stock=10)
        other = make_user(email="other@example.com")
        place_order(user, [(product.id, 1)])
        place_order(user, [(product.id, 1)])
        place_order(other, [(product.id, 1)])

        body = client.get("/orders/myorders", headers=auth_headers(user)).json()
        assert body["success"] is True
        assert body["count"] == 2
        assert {o["userId"] for o in body["data"]} == {user.id}

    def test_admin_list_with_pagination(self, client, user, admin, make_product, place_order):
        product = make_product(stock=10)
        for _ in range(3):
            place_order(user, [(product.id, 1)])

        body = client.get("/orders?page=2&limit=2", headers=auth_headers(admin)).json()
        assert body["count"] == 1
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_list_requires_admin(self, client, user):
        assert client.get("/orders", headers=auth_headers(user)).status_code == 403


class TestPaid:
    def test_mark_paid_is_idempotent(self, client, session_factory, user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        result = {"id": "txn_1", "status": "COMPLETED", "updateTime": "2026-10-19T10:00:00Z", "emailAddress": "buyer@example.com"}

        first = client.put(f"/orders/{order['id']}/pay", json=result, headers=auth_headers(user)).json()["data"]
        assert first["isPaid"] is True
        assert first["status"] == "processing"
        assert first["paymentResult"]["id"] == "txn_1"

        second = client.put(f"/orders/{order['id']}/pay", json=result, headers=auth_headers(user)).json()["data"]
        assert second["paidAt"] == first["paidAt"]
        assert stock_of(session_factory, product.id) == (4, 0)

    def test_different_transaction_on_paid_order_rejected(self, client, user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        client.put(f"/orders/{order['id']}/pay", json={"id": "txn_1"}, headers=auth_headers(user))

        response = client.put(f"/orders/{order['id']}/pay", json={"id": "txn_2"}, headers=auth_headers(user))
        assert response.status_code == 400

    def test_stranger_cannot_pay(self, client, user, make_user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        stranger = make_user(email="stranger@example.com")
        response = client.put(f"/orders/{order['id']}/pay", json={"id": "txn_1"}, headers=auth_headers(stranger))
        assert response.status_code == 403


class TestStatus:
    def _pay(self, client, user, order_id):
        client.put(f"/orders/{order_id}/pay", json={"id": f"txn_{order_id}"}, headers=auth_headers(user))

    def test_full_lifecycle(self, client, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        self._pay(client, user, order["id"])

        shipped = client.put(f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=auth_headers(admin))
        assert shipped.json()["data"]["status"] == "shipped"

        delivered = client.put(f"/orders/{order['id']}/status", json={"status": "delivered"}, headers=auth_headers(admin))
        data = delivered.json()["data"]
        assert data["status"] == "delivered"
        assert data["isDelivered"] is True
        assert data["deliveredAt"] is not None

    def test_illegal_transition(self, client, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        response = client.put(f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot change status from pending to shipped"

    def test_unknown_status(self, client, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        response = client.put(f"/orders/{order['id']}/status", json={"status": "lost"}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_deliver_requires_payment_unless_waived(self, client, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        client.put(f"/orders/{order['id']}/status", json={"status": "processing"}, headers=auth_headers(admin))

        response = client.put(f"/orders/{order['id']}/deliver", headers=auth_headers(admin))
        assert response.status_code == 400

        response = client.put(f"/orders/{order['id']}/deliver", json={"waivePayment": True}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["isDelivered"] is True

    def test_deliver_requires_admin(self, client, user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        assert client.put(f"/orders/{order['id']}/deliver", headers=auth_headers(user)).status_code == 403

    def test_cancel_restores_stock_once(self, client, session_factory, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 2)])
        assert stock_of(session_factory, product.id) == (3, 0)

        response = client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"}, headers=auth_headers(admin))
        assert response.json()["data"]["status"] == "cancelled"
        assert stock_of(session_factory, product.id) == (5, 0)

        # Deleting the cancelled order gives nothing back a second time
        client.delete(f"/orders/{order['id']}", headers=auth_headers(admin))
        assert stock_of(session_factory, product.id) == (5, 0)


class TestDelete:
    def test_delete_pending_order_restores_stock(self, client, session_factory, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 2)])

        response = client.delete(f"/orders/{order['id']}", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {}}
        assert order_count(session_factory) == 0
        assert stock_of(session_factory, product.id) == (5, 0)

    def test_delete_shipped_order_keeps_stock(self, client, session_factory, user, admin, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 2)])
        client.put(f"/orders/{order['id']}/pay", json={"id": "txn_x"}, headers=auth_headers(user))
        client.put(f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=auth_headers(admin))

        client.delete(f"/orders/{order['id']}", headers=auth_headers(admin))
        assert stock_of(session_factory, product.id) == (3, 0)

    def test_delete_requires_admin(self, client, user, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(user, [(product.id, 1)])
        assert client.delete(f"/orders/{order['id']}", headers=auth_headers(user)).status_code == 403
