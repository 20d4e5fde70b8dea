"""
Integration tests for the payment webhook endpoint.
"""

import uuid

from fastapi import status

WEBHOOK_URL = "/api/v1/payments/webhook"


async def place_order(async_client, add_variant, customer, headers_for) -> dict:
    variant = await add_variant(stock=5)
    response = await async_client.post(
        "/api/v1/orders",
        json={
            "items": [{"variant_id": str(variant.variant_id), "quantity": 1}],
            "shipping_address": "1 Harbour Road, Leith",
            "payment_method": "card",
        },
        headers=headers_for(customer),
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


class TestPaymentWebhook:
    """Test POST /payments/webhook."""

    async def test_payment_succeeded(self, async_client, add_variant, customer, headers_for):
        order = await place_order(async_client, add_variant, customer, headers_for)

        response = await async_client.post(
            WEBHOOK_URL,
            json={
                "id": "evt_1",
                "type": "payment.succeeded",
                "order_id": order["id"],
                "transaction_id": "txn_1",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["processed"] is True
        assert data["event_id"] == "evt_1"
        assert data["result"]["status"] == "PAID"

    async def test_payment_failed(self, async_client, add_variant, customer, headers_for):
        order = await place_order(async_client, add_variant, customer, headers_for)

        response = await async_client.post(
            WEBHOOK_URL,
            json={
                "id": "evt_2",
                "type": "payment.failed",
                "order_id": order["id"],
                "reason": "insufficient funds",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["result"]["payment_status"] == "FAILED"

    async def test_success_without_transaction_id(self, async_client):
        response = await async_client.post(
            WEBHOOK_URL,
            json={"id": "evt_3", "type": "payment.succeeded", "order_id": str(uuid.uuid4())},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_unknown_order(self, async_client):
        response = await async_client.post(
            WEBHOOK_URL,
            json={
                "id": "evt_4",
                "type": "payment.succeeded",
                "order_id": str(uuid.uuid4()),
                "transaction_id": "txn_4",
            },
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
