"""Integration tests for the PayOS webhook endpoint."""

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from services.store_service.models import Order, OrderStatus
from services.store_service.payos_client import provider_order_code
from services.store_service.services.inventory import get_stock
from sqlalchemy import select
from tests.factories import OrderRequestFactory, ProductFactory, signed_webhook


@pytest_asyncio.fixture
async def pending_order(store_client, db_session):
    """A guest bank-transfer order for 2 of 5 units: (order_id, order_code, product_id)."""
    product = ProductFactory.create(stock_quantity=5, unit_price=Decimal("100000"))
    db_session.add(product)
    await db_session.commit()
    product_id = product.id

    body = OrderRequestFactory.create([(product_id, 2)]).model_dump(
        mode="json", exclude_none=True
    )
    response = await store_client.post("/orders", json=body)
    assert response.status_code == 201, response.text
    data = response.json()
    return uuid.UUID(data["id"]), data["order_code"], product_id


async def _status(db, order_id) -> OrderStatus:
    return await db.scalar(select(Order.status).where(Order.id == order_id))


def _data(order_code, **overrides):
    data = {
        "orderCode": provider_order_code(order_code),
        "amount": 200000,
        "description": order_code,
        "reference": "FT24123456789",
        "paymentLinkId": "plink-1",
        "code": "00",
        "desc": "success",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("method", ["GET", "HEAD"])
async def test_webhook_url_probe(store_client, method):
    response = await store_client.request(method, "/payos/callback")

    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_paid_webhook_confirms_order(store_client, db_session, pending_order):
    """POST /payos/callback: signed PAID confirms; a replay is acknowledged and ignored."""
    order_id, order_code, product_id = pending_order
    payload = signed_webhook(_data(order_code))

    first = await store_client.post("/payos/callback", json=payload)
    replay = await store_client.post("/payos/callback", json=payload)

    assert first.status_code == 200
    assert first.json() == {"received": True}
    assert replay.status_code == 200
    assert await _status(db_session, order_id) == OrderStatus.CONFIRMED
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_expired_webhook_fails_order_and_restores_stock(
    store_client, db_session, pending_order
):
    order_id, order_code, product_id = pending_order

    response = await store_client.post(
        "/payos/callback", json=signed_webhook(_data(order_code, status="EXPIRED"))
    )

    assert response.status_code == 200
    assert await _status(db_session, order_id) == OrderStatus.PAYMENT_FAILED
    assert await get_stock(db_session, product_id) == 5


@pytest.mark.asyncio
@pytest.mark.integration
async def test_forged_webhook_is_acknowledged_but_ignored(
    store_client, db_session, pending_order
):
    order_id, order_code, product_id = pending_order
    payload = signed_webhook(_data(order_code))
    payload["signature"] = "0" * 64

    response = await store_client.post("/payos/callback", json=payload)

    assert response.status_code == 200
    assert await _status(db_session, order_id) == OrderStatus.PENDING
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_malformed_body_is_acknowledged(store_client):
    response = await store_client.post(
        "/payos/callback",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
