"""Pricing and discount resolution for order creation."""

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from libs.common.logging import get_logger
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import VoucherUsage
from services.store_service.services import inventory
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class LineRequest:
    product_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PricedBatch:
    lines: list[PricedLine]
    subtotal: Decimal


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return money(unit_price * quantity)


def apply_discount(subtotal: Decimal, discount_amount: Optional[Decimal]) -> Decimal:
    """Subtract a discount from a subtotal, never going below zero."""
    total = subtotal - (discount_amount or ZERO)
    return money(max(total, ZERO))


async def reserve_and_price(
    db: AsyncSession,
    lines: Sequence[LineRequest],
    *,
    reference_id: Optional[uuid.UUID] = None,
) -> ServiceResult[PricedBatch]:
    """Reserve stock for every line and price it at the current unit price.

    All or nothing: when a line fails, the reservations already made for
    earlier lines in the batch are released before returning the failure,
    which names the offending product.
    """
    if not lines:
        return ServiceResult.failure(
            ErrorKind.VALIDATION, "Order must contain at least one item"
        )

    reservations: list[inventory.Reservation] = []
    for index, line in enumerate(lines):
        result = await inventory.try_reserve(
            db, line.product_id, line.quantity, reference_id=reference_id
        )
        if not result.ok:
            for done in reversed(reservations):
                await inventory.release(
                    db,
                    done.product_id,
                    done.quantity,
                    reference_id=reference_id,
                    notes="batch rollback",
                )
            logger.info(
                "Pricing batch failed at line %d (%s): %s",
                index + 1,
                line.product_id,
                result.error.message,
            )
            return ServiceResult.from_error(result.error)
        reservations.append(result.value)

    priced = [
        PricedLine(
            product_id=r.product_id,
            product_name=r.product_name,
            quantity=r.quantity,
            unit_price=money(r.unit_price),
            total_price=line_total(r.unit_price, r.quantity),
        )
        for r in reservations
    ]
    subtotal = money(sum((line.total_price for line in priced), ZERO))
    return ServiceResult.success(PricedBatch(lines=priced, subtotal=subtotal))


async def resolve_total(
    db: AsyncSession,
    subtotal: Decimal,
    voucher_usage_id: Optional[uuid.UUID],
) -> ServiceResult[tuple[Decimal, Decimal]]:
    """Return ``(discount, total)`` for a subtotal and an optional VoucherUsage.

    A usage only applies to the subtotal it was computed against; any other
    subtotal is a validation error.
    """
    if voucher_usage_id is None:
        return ServiceResult.success((ZERO, money(subtotal)))

    usage = await db.get(VoucherUsage, voucher_usage_id)
    if usage is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND,
            f"Voucher usage {voucher_usage_id} not found",
            voucher_usage_id=str(voucher_usage_id),
        )
    if money(usage.base_amount) != money(subtotal):
        return ServiceResult.failure(
            ErrorKind.VALIDATION,
            f"Voucher usage was computed for a subtotal of {money(usage.base_amount)}, "
            f"not {money(subtotal)}",
            voucher_usage_id=str(voucher_usage_id),
            base_amount=str(money(usage.base_amount)),
            subtotal=str(money(subtotal)),
        )
    discount = money(usage.discount_amount)
    return ServiceResult.success((discount, apply_discount(subtotal, discount)))
