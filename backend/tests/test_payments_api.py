"""
Tests for the card payment endpoints and the provider webhook.
"""

import json
import time

from qrdine_api.services.payments import compute_webhook_signature
from shared.config.constants import OrderStatus, PaymentStatus
from shared.utils.exceptions import PaymentProviderError


def _order(client, table_id=1):
    response = client.post("/api/orders", json={
        "restaurant_id": 1,
        "table_id": table_id,
        "items": [{"menu_item_id": 2, "quantity": 2}],
    })
    return response.json()["order"]


def _intent(client, order_id):
    response = client.post("/api/payments/create-intent", json={"order_id": order_id})
    assert response.status_code == 200, response.json()
    return response.json()


class TestCardPaymentEndpoints:
    def test_create_intent(self, client, seeded, gateway):
        order = _order(client)
        data = _intent(client, order["id"])

        assert data["amount_cents"] == 900
        assert data["currency"] == "usd"
        assert data["client_secret"]
        assert data["payment_intent_id"] in gateway.intents

    def test_create_intent_unknown_order(self, client, seeded):
        assert client.post("/api/payments/create-intent", json={"order_id": 999}).status_code == 404

    def test_provider_down_503(self, client, seeded, gateway, redis_client):
        order = _order(client)
        redis_client.publish.reset_mock()
        gateway.error = PaymentProviderError("Payment provider unreachable", is_unavailable=True, retry_after=30)

        response = client.post("/api/payments/create-intent", json={"order_id": order["id"]})

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        published = [json.loads(call.args[1])["type"] for call in redis_client.publish.await_args_list]
        assert "payment:failed" in published

    def test_confirm_succeeded(self, client, seeded, gateway):
        order = _order(client)
        intent = _intent(client, order["id"])
        gateway.set_status(intent["payment_intent_id"], "succeeded")

        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent["payment_intent_id"]})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["order"]["payment_status"] == PaymentStatus.PAID
        assert data["order"]["status"] == OrderStatus.COMPLETED

    def test_confirm_declined_402(self, client, seeded, gateway):
        order = _order(client)
        intent = _intent(client, order["id"])
        gateway.set_status(intent["payment_intent_id"], "requires_payment_method", "Your card was declined.")

        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent["payment_intent_id"]})

        assert response.status_code == 402
        assert response.json()["detail"] == "Your card was declined."
        status = client.get(f"/api/payments/status/{order['id']}").json()
        assert status["payment_status"] == PaymentStatus.FAILED

    def test_status(self, client, seeded, gateway):
        order = _order(client)
        intent = _intent(client, order["id"])

        response = client.get(f"/api/payments/status/{order['id']}")
        assert response.status_code == 200
        data = response.json()
        assert data["payment_intent_id"] == intent["payment_intent_id"]
        assert data["payment_method"] == "card"
        assert data["provider_status"] == "requires_payment_method"


class TestWebhookEndpoint:
    def _post(self, client, event, secret="whsec_test_secret"):
        payload = json.dumps(event).encode()
        timestamp = int(time.time())
        signature = compute_webhook_signature(payload, timestamp, secret)
        return client.post(
            "/api/payments/webhook",
            content=payload,
            headers={"Content-Type": "application/json", "Stripe-Signature": f"t={timestamp},v1={signature}"},
        )

    def test_succeeded(self, client, seeded, gateway):
        order = _order(client)
        intent = _intent(client, order["id"])

        response = self._post(client, {
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": intent["payment_intent_id"], "amount_received": 900}},
        })

        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True}
        assert client.get(f"/api/orders/{order['id']}").json()["payment_status"] == PaymentStatus.PAID

    def test_wrong_secret_400(self, client, seeded):
        response = self._post(client, {"type": "payment_intent.succeeded"}, secret="whsec_forged")
        assert response.status_code == 400

    def test_unknown_event_acknowledged(self, client, seeded):
        response = self._post(client, {"type": "customer.created", "data": {"object": {"id": "cus_1"}}})
        assert response.status_code == 200
        assert response.json()["handled"] is False


class TestRefundEndpoint:
    def _paid(self, client, gateway):
        order = _order(client)
        intent = _intent(client, order["id"])
        gateway.set_status(intent["payment_intent_id"], "succeeded")
        client.post("/api/payments/confirm", json={"payment_intent_id": intent["payment_intent_id"]})
        return order

    def test_admin_refund(self, client, seeded, gateway, admin_headers):
        order = self._paid(client, gateway)

        response = client.post(
            "/api/payments/refund", json={"order_id": order["id"], "amount_cents": 400}, headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["amount_cents"] == 400
        assert data["payment_status"] == PaymentStatus.REFUNDED

    def test_waiter_cannot_refund(self, client, seeded, gateway, waiter_headers):
        order = self._paid(client, gateway)
        response = client.post("/api/payments/refund", json={"order_id": order["id"]}, headers=waiter_headers)
        assert response.status_code == 403

    def test_refund_unpaid_409(self, client, seeded, admin_headers):
        order = _order(client)
        response = client.post("/api/payments/refund", json={"order_id": order["id"]}, headers=admin_headers)
        assert response.status_code == 409
