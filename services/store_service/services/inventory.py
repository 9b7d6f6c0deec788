"""Inventory ledger: atomic per-product stock reservation and release.

Stock is only ever changed with a single conditional UPDATE, so the
read-check-write for one product cannot interleave with another caller's:

    UPDATE store_products
       SET stock_quantity = stock_quantity - :qty
     WHERE id = :product_id AND is_active AND stock_quantity >= :qty

Zero affected rows means the reservation lost (missing product or not enough
stock) and nothing was changed. Every successful mutation writes an
InventoryMovement row in the caller's transaction.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common.logging import get_logger
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import (
    InventoryMovement,
    InventoryMovementType,
    Product,
)
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class Reservation:
    """A committed stock decrement for one product."""

    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal


async def try_reserve(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    reference_id: Optional[uuid.UUID] = None,
) -> ServiceResult[Reservation]:
    """Reserve ``quantity`` units of a product.

    Fails without touching stock when the quantity is not positive, the
    product is missing or inactive, or there is not enough stock.
    Does not commit; the caller owns the transaction.
    """
    if quantity <= 0:
        return ServiceResult.failure(
            ErrorKind.VALIDATION,
            "Quantity must be greater than 0",
            product_id=str(product_id),
            quantity=quantity,
        )

    product = await db.get(Product, product_id)
    if product is None or not product.is_active:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND,
            f"Product {product_id} not found",
            product_id=str(product_id),
        )
    product_name = product.name
    unit_price = product.unit_price

    result = await db.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock_quantity >= quantity,
        )
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = await get_stock(db, product_id)
        logger.info(
            "Reservation refused for product %s: requested=%d available=%s",
            product_id,
            quantity,
            available,
        )
        return ServiceResult.failure(
            ErrorKind.INSUFFICIENT_STOCK,
            f"Not enough stock for {product_name}",
            product_id=str(product_id),
            requested=quantity,
            available=available,
        )

    db.add(
        InventoryMovement(
            product_id=product_id,
            movement_type=InventoryMovementType.RESERVATION,
            quantity=quantity,
            reference_type="order" if reference_id else None,
            reference_id=reference_id,
        )
    )
    return ServiceResult.success(
        Reservation(
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
        )
    )


async def release(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    reference_id: Optional[uuid.UUID] = None,
    notes: Optional[str] = None,
) -> None:
    """Return ``quantity`` units to stock.

    Always succeeds. Callers guarantee it runs at most once per reservation.
    """
    await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    db.add(
        InventoryMovement(
            product_id=product_id,
            movement_type=InventoryMovementType.RELEASE,
            quantity=quantity,
            reference_type="order" if reference_id else None,
            reference_id=reference_id,
            notes=notes,
        )
    )


async def get_stock(db: AsyncSession, product_id: uuid.UUID) -> Optional[int]:
    """Current stock straight from the database (bypasses the identity map)."""
    result = await db.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    )
    return result.scalar_one_or_none()


async def reserved_quantity(
    db: AsyncSession, product_id: uuid.UUID, reference_id: uuid.UUID
) -> int:
    """Units still held for one reference: reservations minus releases."""
    result = await db.execute(
        select(InventoryMovement.movement_type, func.sum(InventoryMovement.quantity))
        .where(
            InventoryMovement.product_id == product_id,
            InventoryMovement.reference_id == reference_id,
        )
        .group_by(InventoryMovement.movement_type)
    )
    totals = {movement_type: int(total or 0) for movement_type, total in result.all()}
    return totals.get(InventoryMovementType.RESERVATION, 0) - totals.get(
        InventoryMovementType.RELEASE, 0
    )
