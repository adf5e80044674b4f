"""
Tests for the orders HTTP endpoints: status codes, roles and restaurant scoping.
"""

import json

import pytest

from shared.config.constants import OrderStatus, PaymentStatus, TableStatus


ORDER_BODY = {
    "restaurant_id": 1,
    "table_id": 1,
    "guest_name": "Ana",
    "items": [
        {"menu_item_id": 1, "quantity": 1, "modifiers": [{"name": "Size", "options": ["Large"]}]},
        {"menu_item_id": 2, "quantity": 2},
    ],
}


def _create(client, body=None):
    response = client.post("/api/orders", json=body or ORDER_BODY)
    assert response.status_code in (200, 201), response.json()
    return response.json()["order"]


class TestCustomerEndpoints:
    def test_create_order_201(self, client, seeded):
        response = client.post("/api/orders", json=ORDER_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["merged"] is False
        order = data["order"]
        assert order["order_number"] == "ORD00001"
        assert order["guest_name"] == "Ana"
        assert order["subtotal_cents"] == 1400 + 900
        assert order["total_cents"] == 2300
        assert order["items"][0]["modifiers"] == [
            {"name": "Size", "options": [{"name": "Large", "price_adjustment_cents": 200}]}
        ]

    def test_second_submission_merges_200(self, client, seeded):
        first = _create(client)
        response = client.post("/api/orders", json={
            "restaurant_id": 1, "table_id": 1, "items": [{"menu_item_id": 3, "quantity": 1}],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["merged"] is True
        assert data["order"]["id"] == first["id"]
        assert len(data["order"]["items"]) == 3
        assert data["order"]["total_cents"] == 2600

    def test_new_order_published_to_waiters(self, client, seeded, redis_client):
        _create(client)

        redis_client.publish.assert_awaited()
        channel, message = redis_client.publish.await_args.args
        assert channel == "restaurant:1:waiter"
        event = json.loads(message)
        assert event["type"] == "order:new"
        assert event["restaurant_id"] == 1
        assert event["entity"]["order_number"] == "ORD00001"

    def test_empty_items_400(self, client, seeded):
        response = client.post("/api/orders", json={"restaurant_id": 1, "table_id": 1, "items": []})
        assert response.status_code == 400

    def test_quantity_out_of_range_422(self, client, seeded):
        body = {"restaurant_id": 1, "table_id": 1, "items": [{"menu_item_id": 2, "quantity": 100}]}
        assert client.post("/api/orders", json=body).status_code == 422

    def test_unavailable_item_404(self, client, seeded):
        body = {"restaurant_id": 1, "table_id": 1, "items": [{"menu_item_id": 4, "quantity": 1}]}
        assert client.post("/api/orders", json=body).status_code == 404

    def test_get_order(self, client, seeded):
        order = _create(client)
        response = client.get(f"/api/orders/{order['id']}")
        assert response.status_code == 200
        assert response.json()["order_number"] == order["order_number"]

    def test_get_unknown_order(self, client, seeded):
        assert client.get("/api/orders/999").status_code == 404

    def test_request_cash_payment(self, client, seeded):
        order = _create(client)
        response = client.post(f"/api/orders/{order['id']}/request-cash-payment")
        assert response.status_code == 200
        assert response.json()["payment_status"] == PaymentStatus.PENDING_CASH
        assert response.json()["payment_method"] == "cash"


class TestStaffEndpoints:
    def test_list_requires_token(self, client, seeded):
        assert client.get("/api/orders").status_code == 401

    def test_list_orders(self, client, seeded, kitchen_headers):
        _create(client)
        _create(client, {**ORDER_BODY, "table_id": 2})

        response = client.get("/api/orders", headers=kitchen_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert len(data["items"]) == 2

        response = client.get("/api/orders?table_id=2&status=pending", headers=kitchen_headers)
        assert response.json()["total"] == 1

    def test_list_other_restaurant_forbidden(self, client, seeded, waiter_headers):
        assert client.get("/api/orders?restaurant_id=2", headers=waiter_headers).status_code == 403

    def test_accept_and_progress(self, client, seeded, waiter_headers, kitchen_headers):
        order = _create(client)

        response = client.patch(f"/api/orders/{order['id']}/accept", headers=waiter_headers)
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.ACCEPTED
        assert response.json()["waiter_id"] == 2

        response = client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "preparing"}, headers=kitchen_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PREPARING
        assert response.json()["preparing_at"] is not None

    def test_kitchen_cannot_accept(self, client, seeded, kitchen_headers):
        order = _create(client)
        assert client.patch(f"/api/orders/{order['id']}/accept", headers=kitchen_headers).status_code == 403

    def test_accept_twice_409(self, client, seeded, waiter_headers):
        order = _create(client)
        client.patch(f"/api/orders/{order['id']}/accept", headers=waiter_headers)
        assert client.patch(f"/api/orders/{order['id']}/accept", headers=waiter_headers).status_code == 409

    def test_invalid_transition_409(self, client, seeded, waiter_headers):
        order = _create(client)
        response = client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "served"}, headers=waiter_headers,
        )
        assert response.status_code == 409

    def test_unknown_status_422(self, client, seeded, waiter_headers):
        order = _create(client)
        response = client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "lost"}, headers=waiter_headers,
        )
        assert response.status_code == 422

    @pytest.mark.parametrize("headers_fixture,expected", [
        ("waiter_headers", 403),
        ("admin_headers", 200),
    ])
    def test_only_admin_cancels(self, client, seeded, request, headers_fixture, expected):
        order = _create(client)
        headers = request.getfixturevalue(headers_fixture)
        response = client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=headers,
        )
        assert response.status_code == expected

    def test_reject_partial(self, client, seeded, waiter_headers, db_session):
        from qrdine_api.models import Order
        from shared.config.constants import ItemStatus

        order = _create(client)
        stored = db_session.get(Order, order["id"])
        stored.items[0].status = ItemStatus.PREPARING
        db_session.commit()

        response = client.patch(
            f"/api/orders/{order['id']}/reject", json={"reason": "Out of fries"}, headers=waiter_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["partial"] is True
        assert [item["name"] for item in data["rejected_items"]] == ["Fries"]
        assert data["order"]["status"] == OrderStatus.SERVED
        assert data["order"]["total_cents"] == 1400

    def test_reject_requires_reason(self, client, seeded, waiter_headers):
        order = _create(client)
        response = client.patch(f"/api/orders/{order['id']}/reject", json={"reason": ""}, headers=waiter_headers)
        assert response.status_code == 422

    def test_other_restaurant_order_forbidden(self, client, seeded, foreign_admin_headers):
        order = _create(client)
        response = client.patch(f"/api/orders/{order['id']}/accept", headers=foreign_admin_headers)
        assert response.status_code == 403

    def test_confirm_cash(self, client, seeded, waiter_headers):
        order = _create(client)
        response = client.post(
            f"/api/orders/{order['id']}/confirm-cash-payment",
            json={"amount_received_cents": 2500, "tip_cents": 200},
            headers=waiter_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["payment_status"] == PaymentStatus.PAID
        assert data["amount_received_cents"] == 2500
        assert data["tip_cents"] == 200
        assert data["status"] == OrderStatus.PENDING

    def test_confirm_cash_twice_409(self, client, seeded, waiter_headers):
        order = _create(client)
        url = f"/api/orders/{order['id']}/confirm-cash-payment"
        client.post(url, json={}, headers=waiter_headers)
        assert client.post(url, json={}, headers=waiter_headers).status_code == 409

    def test_delete_admin_only(self, client, seeded, waiter_headers, admin_headers, db_session):
        from qrdine_api.models import Table

        order = _create(client)
        assert client.delete(f"/api/orders/{order['id']}", headers=waiter_headers).status_code == 403
        assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/orders/{order['id']}").status_code == 404

        db_session.expire_all()
        assert db_session.get(Table, 1).status == TableStatus.ACTIVE
