"""Voucher store: admin CRUD and atomic voucher usage creation."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import Voucher, VoucherType, VoucherUsage
from services.store_service.services.pricing import ZERO, money
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PERCENT_MIN = Decimal("1")
PERCENT_MAX = Decimal("100")


def validate_voucher_fields(
    *,
    code: Optional[str],
    name: Optional[str],
    voucher_type: VoucherType,
    value: Decimal,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
) -> Optional[str]:
    """Return an error message for invalid voucher fields, None when valid."""
    if code is not None and not code.strip():
        return "Voucher code is required"
    if name is not None and not name.strip():
        return "Voucher name is required"
    if start_date and end_date and as_utc(start_date) >= as_utc(end_date):
        return "Start date must be before end date"
    if voucher_type == VoucherType.PERCENTAGE and not (
        PERCENT_MIN <= value <= PERCENT_MAX
    ):
        return "Percentage voucher value must be between 1 and 100"
    if voucher_type == VoucherType.FIXED_AMOUNT and value <= 0:
        return "Fixed amount voucher value must be greater than 0"
    return None


async def _code_taken(
    db: AsyncSession, code: str, exclude_id: Optional[uuid.UUID] = None
) -> bool:
    query = select(Voucher.id).where(func.upper(Voucher.code) == code.upper())
    if exclude_id is not None:
        query = query.where(Voucher.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def create_voucher(db: AsyncSession, data: dict[str, Any]) -> ServiceResult[Voucher]:
    error = validate_voucher_fields(
        code=data["code"],
        name=data["name"],
        voucher_type=data["type"],
        value=data["value"],
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
    )
    if error:
        return ServiceResult.failure(ErrorKind.VALIDATION, error)

    code = data["code"].strip().upper()
    if await _code_taken(db, code):
        return ServiceResult.failure(
            ErrorKind.CONFLICT, f"Voucher code {code} already exists", code=code
        )

    voucher = Voucher(**{**data, "code": code})
    db.add(voucher)
    await db.commit()
    await db.refresh(voucher)
    logger.info("Created voucher %s (%s %s)", voucher.code, voucher.type.value, voucher.value)
    return ServiceResult.success(voucher)


async def list_vouchers(
    db: AsyncSession, *, active_only: bool = False
) -> list[Voucher]:
    query = select(Voucher).order_by(Voucher.created_at.desc())
    if active_only:
        query = query.where(Voucher.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_voucher(db: AsyncSession, voucher_id: uuid.UUID) -> ServiceResult[Voucher]:
    voucher = await db.get(Voucher, voucher_id)
    if voucher is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Voucher not found", voucher_id=str(voucher_id)
        )
    return ServiceResult.success(voucher)


async def update_voucher(
    db: AsyncSession, voucher_id: uuid.UUID, changes: dict[str, Any]
) -> ServiceResult[Voucher]:
    voucher = await db.get(Voucher, voucher_id)
    if voucher is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Voucher not found", voucher_id=str(voucher_id)
        )

    merged = {
        "code": changes.get("code", voucher.code),
        "name": changes.get("name", voucher.name),
        "type": changes.get("type", voucher.type),
        "value": changes.get("value", voucher.value),
        "start_date": changes.get("start_date", voucher.start_date),
        "end_date": changes.get("end_date", voucher.end_date),
    }
    error = validate_voucher_fields(
        code=merged["code"],
        name=merged["name"],
        voucher_type=merged["type"],
        value=merged["value"],
        start_date=merged["start_date"],
        end_date=merged["end_date"],
    )
    if error:
        return ServiceResult.failure(ErrorKind.VALIDATION, error)

    if "code" in changes:
        changes = {**changes, "code": changes["code"].strip().upper()}
        if await _code_taken(db, changes["code"], exclude_id=voucher.id):
            return ServiceResult.failure(
                ErrorKind.CONFLICT,
                f"Voucher code {changes['code']} already exists",
                code=changes["code"],
            )

    for field, value in changes.items():
        setattr(voucher, field, value)
    await db.commit()
    await db.refresh(voucher)
    return ServiceResult.success(voucher)


async def delete_voucher(db: AsyncSession, voucher_id: uuid.UUID) -> ServiceResult[Voucher]:
    voucher = await db.get(Voucher, voucher_id)
    if voucher is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Voucher not found", voucher_id=str(voucher_id)
        )
    if voucher.used_count > 0:
        return ServiceResult.failure(
            ErrorKind.CONFLICT,
            "A voucher that has been used cannot be deleted",
            voucher_id=str(voucher_id),
            used_count=voucher.used_count,
        )
    await db.delete(voucher)
    await db.commit()
    return ServiceResult.success(voucher)


# ---------------------------------------------------------------------------
# Voucher usage
# ---------------------------------------------------------------------------


def voucher_discount(voucher: Voucher, subtotal: Decimal) -> Decimal:
    """Discount one voucher grants on a subtotal."""
    if voucher.type == VoucherType.PERCENTAGE:
        return money(subtotal * Decimal(voucher.value) / PERCENT_MAX)
    return money(voucher.value)


def _unusable_reason(voucher: Voucher, now: datetime) -> Optional[str]:
    if not voucher.is_active:
        return f"Voucher {voucher.code} is no longer active"
    if voucher.usage_limit is not None and voucher.used_count >= voucher.usage_limit:
        return f"Voucher {voucher.code} has reached its usage limit"
    start, end = as_utc(voucher.start_date), as_utc(voucher.end_date)
    if (start and now < start) or (end and now > end):
        return f"Voucher {voucher.code} is outside its validity period"
    return None


async def create_voucher_usage(
    db: AsyncSession,
    voucher_ids: Sequence[uuid.UUID],
    subtotal: Decimal,
    *,
    commit: bool = False,
) -> ServiceResult[VoucherUsage]:
    """Consume vouchers against a subtotal and record the resulting discount.

    Every voucher's ``used_count`` is bumped with a conditional UPDATE that
    re-checks the usage limit, so two callers racing for the last use cannot
    both win. Runs inside the caller's transaction unless ``commit`` is set.
    """
    if not voucher_ids:
        return ServiceResult.failure(ErrorKind.VALIDATION, "No vouchers supplied")
    if len(set(voucher_ids)) != len(voucher_ids):
        return ServiceResult.failure(
            ErrorKind.VALIDATION, "The same voucher cannot be applied twice"
        )
    if subtotal < 0:
        return ServiceResult.failure(ErrorKind.VALIDATION, "Subtotal cannot be negative")

    result = await db.execute(
        select(Voucher)
        .where(Voucher.id.in_(voucher_ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    found = {voucher.id: voucher for voucher in result.scalars().all()}

    now = utc_now()
    vouchers: list[Voucher] = []
    for voucher_id in voucher_ids:
        voucher = found.get(voucher_id)
        if voucher is None:
            return ServiceResult.failure(
                ErrorKind.NOT_FOUND,
                f"Voucher {voucher_id} not found",
                voucher_id=str(voucher_id),
            )
        reason = _unusable_reason(voucher, now)
        if reason:
            return ServiceResult.failure(
                ErrorKind.VALIDATION, reason, voucher_id=str(voucher_id)
            )
        vouchers.append(voucher)

    if len(vouchers) > 1 and not all(v.can_stack for v in vouchers):
        return ServiceResult.failure(
            ErrorKind.VALIDATION,
            "These vouchers cannot be combined",
            voucher_ids=[str(v.id) for v in vouchers],
        )

    for voucher in vouchers:
        bumped = await db.execute(
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.is_active.is_(True),
                or_(
                    Voucher.usage_limit.is_(None),
                    Voucher.used_count < Voucher.usage_limit,
                ),
            )
            .values(used_count=Voucher.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            if commit:
                await db.rollback()
            return ServiceResult.failure(
                ErrorKind.CONFLICT,
                f"Voucher {voucher.code} has reached its usage limit",
                voucher_id=str(voucher.id),
            )

    discount = money(sum((voucher_discount(v, subtotal) for v in vouchers), ZERO))
    usage = VoucherUsage(
        voucher_ids=[str(v.id) for v in vouchers],
        discount_amount=discount,
        base_amount=money(subtotal),
    )
    db.add(usage)
    await db.flush()

    if commit:
        await db.commit()

    logger.info(
        "Voucher usage %s created: vouchers=%s discount=%s",
        usage.id,
        [v.code for v in vouchers],
        discount,
    )
    return ServiceResult.success(usage)


async def get_voucher_usage(
    db: AsyncSession, usage_id: uuid.UUID
) -> ServiceResult[VoucherUsage]:
    usage = await db.get(VoucherUsage, usage_id)
    if usage is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Voucher usage not found", voucher_usage_id=str(usage_id)
        )
    return ServiceResult.success(usage)


async def list_voucher_usages(
    db: AsyncSession, *, skip: int = 0, limit: int = 50
) -> list[VoucherUsage]:
    result = await db.execute(
        select(VoucherUsage)
        .order_by(VoucherUsage.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())
