"""Order persistence. No business rules live here; callers validate."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.models import Order, OrderStatus
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ORDER_CODE_ATTEMPTS = 5


class OrderCodeExhausted(Exception):
    """No free order code was found within ORDER_CODE_ATTEMPTS tries."""


async def order_code_exists(db: AsyncSession, order_code: str) -> bool:
    result = await db.execute(select(Order.id).where(Order.order_code == order_code))
    return result.first() is not None


async def allocate_order_code(db: AsyncSession) -> str:
    """Pick an order code that is not in use yet.

    The unique index on ``order_code`` is still the final guard; a race
    between two creators surfaces as IntegrityError at flush.
    """
    for _ in range(ORDER_CODE_ATTEMPTS):
        code = Order.generate_order_code()
        if not await order_code_exists(db, code):
            return code
        logger.warning("Order code collision on %s, retrying", code)
    raise OrderCodeExhausted(f"No free order code after {ORDER_CODE_ATTEMPTS} attempts")


async def create_order(db: AsyncSession, order: Order) -> Order:
    """Assign a fresh order code and stage the order (flush, no commit)."""
    order.order_code = await allocate_order_code(db)
    db.add(order)
    await db.flush()
    return order


async def get_order_by_id(
    db: AsyncSession, order_id: uuid.UUID, *, for_update: bool = False
) -> Optional[Order]:
    query = select(Order).where(Order.id == order_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_order_by_code(
    db: AsyncSession, order_code: str, *, for_update: bool = False
) -> Optional[Order]:
    query = select(Order).where(Order.order_code == order_code)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    *,
    user_id: Optional[uuid.UUID] = None,
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    query = select(Order)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if status is not None:
        query = query.where(Order.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)


async def update_order(db: AsyncSession, order: Order) -> Order:
    """Write the whole order back and commit."""
    order = await db.merge(order)
    await db.commit()
    return order


async def delete_order(db: AsyncSession, order_id: uuid.UUID) -> bool:
    order = await get_order_by_id(db, order_id)
    if order is None:
        return False
    await db.delete(order)
    await db.commit()
    return True
