"""Background tasks for the store service."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.store_service.models import ActorRole, Order, OrderStatus, PaymentMethod
from services.store_service.services import lifecycle
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

EXPIRE_BATCH_SIZE = 200


async def expire_stale_pending_orders(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    now: datetime | None = None,
) -> int:
    """Fail bank-transfer orders that stayed unpaid past the TTL.

    Goes through the lifecycle engine, so stock comes back exactly once even
    if a webhook or another worker touches the same order meanwhile.
    Returns how many orders were moved to payment_failed.
    """
    ttl = timedelta(minutes=get_settings().PENDING_ORDER_TTL_MINUTES)
    cutoff = (now or utc_now()) - ttl
    expired = 0

    async with (session_factory or AsyncSessionLocal)() as db:
        result = await db.execute(
            select(Order.id, Order.order_code)
            .where(
                Order.status == OrderStatus.PENDING,
                Order.payment_method == PaymentMethod.BANK,
                Order.created_at <= cutoff,
            )
            .order_by(Order.created_at.asc())
            .limit(EXPIRE_BATCH_SIZE)
        )
        stale = result.all()

        for order_id, order_code in stale:
            outcome = await lifecycle.mark_payment_failed(
                db, order_id, actor_role=ActorRole.SYSTEM
            )
            if outcome.ok:
                expired += 1
            else:
                logger.info(
                    "Skipped expiring order %s: %s", order_code, outcome.error.message
                )

    if stale:
        logger.info("Expired %d of %d stale pending orders", expired, len(stale))
    return expired


async def request_payment_link(
    order_id: uuid.UUID,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    """Create and store the payment link for an order. Returns True on success."""
    async with (session_factory or AsyncSessionLocal)() as db:
        result = await lifecycle.attach_payment_link(db, order_id)
    if not result.ok:
        logger.warning(
            "Payment link for order %s not created: %s", order_id, result.error.message
        )
        return False
    return True
