"""Unit tests for store background tasks."""

from datetime import timedelta
from decimal import Decimal

import pytest
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from services.store_service import tasks
from services.store_service.models import ActorRole, Order, OrderStatus, PaymentMethod
from services.store_service.payos_client import PaymentLink
from services.store_service.services import lifecycle
from services.store_service.services.inventory import get_stock
from sqlalchemy import select
from tests.factories import OrderRequestFactory, ProductFactory


async def _silent(db, user_id, notification_type, content):
    return None


async def _place(session_factory, product_id, payment_method=PaymentMethod.BANK):
    async with session_factory() as db:
        result = await lifecycle.create_order(
            db,
            OrderRequestFactory.create([(product_id, 2)], payment_method=payment_method),
            actor_id=None,
            actor_role=ActorRole.CUSTOMER,
            notifier=_silent,
        )
        return result.value.id


async def _status(session_factory, order_id):
    async with session_factory() as db:
        return await db.scalar(select(Order.status).where(Order.id == order_id))


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_stale_pending_orders_fails_only_old_bank_orders(session_factory):
    """Unpaid bank orders past the TTL fail and give stock back; COD is untouched."""
    async with session_factory() as db:
        product = ProductFactory.create(stock_quantity=10, unit_price=Decimal("100000"))
        db.add(product)
        await db.commit()
        product_id = product.id

    bank_id = await _place(session_factory, product_id)
    cod_id = await _place(session_factory, product_id, PaymentMethod.COD)

    ttl = get_settings().PENDING_ORDER_TTL_MINUTES
    later = utc_now() + timedelta(minutes=ttl + 1)

    # Nothing is old enough yet
    assert await tasks.expire_stale_pending_orders(session_factory) == 0

    assert await tasks.expire_stale_pending_orders(session_factory, now=later) == 1
    assert await _status(session_factory, bank_id) == OrderStatus.PAYMENT_FAILED
    assert await _status(session_factory, cod_id) == OrderStatus.PENDING
    async with session_factory() as db:
        assert await get_stock(db, product_id) == 8

    # Second sweep finds nothing left to do
    assert await tasks.expire_stale_pending_orders(session_factory, now=later) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_request_payment_link_task(session_factory, monkeypatch):
    async with session_factory() as db:
        product = ProductFactory.create()
        db.add(product)
        await db.commit()
        product_id = product.id

    order_id = await _place(session_factory, product_id)

    class StubClient:
        async def create_payment_link(self, order_code, amount, description=None):
            return PaymentLink(
                checkout_url="https://pay.payos.vn/web/xyz",
                payment_link_id="xyz",
                order_code=order_code,
                amount=int(amount),
            )

    monkeypatch.setattr(lifecycle, "PayOSClient", StubClient)

    assert await tasks.request_payment_link(order_id, session_factory) is True
    async with session_factory() as db:
        link = await db.scalar(select(Order.payment_link).where(Order.id == order_id))
    assert link == "https://pay.payos.vn/web/xyz"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_request_payment_link_task_reports_failure(session_factory):
    async with session_factory() as db:
        product = ProductFactory.create()
        db.add(product)
        await db.commit()
        product_id = product.id

    order_id = await _place(session_factory, product_id, PaymentMethod.COD)

    assert await tasks.request_payment_link(order_id, session_factory) is False
