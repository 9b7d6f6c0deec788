"""Admin voucher management and voucher usages."""

import uuid

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.routers._helpers import unwrap
from services.store_service.schemas import (
    VoucherCreate,
    VoucherResponse,
    VoucherUpdate,
    VoucherUsageCreate,
    VoucherUsageResponse,
)
from services.store_service.services import vouchers as voucher_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/admin", tags=["admin-vouchers"])


# ============================================================================
# VOUCHERS
# ============================================================================


@router.get("/vouchers", response_model=list[VoucherResponse])
async def list_vouchers(
    active_only: bool = False,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await voucher_service.list_vouchers(db, active_only=active_only)


@router.post("/vouchers", response_model=VoucherResponse, status_code=201)
async def create_voucher(
    voucher_in: VoucherCreate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return unwrap(await voucher_service.create_voucher(db, voucher_in.model_dump()))


@router.get("/vouchers/{voucher_id}", response_model=VoucherResponse)
async def get_voucher(
    voucher_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return unwrap(await voucher_service.get_voucher(db, voucher_id))


@router.patch("/vouchers/{voucher_id}", response_model=VoucherResponse)
async def update_voucher(
    voucher_id: uuid.UUID,
    voucher_in: VoucherUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    changes = voucher_in.model_dump(exclude_unset=True)
    return unwrap(await voucher_service.update_voucher(db, voucher_id, changes))


@router.delete("/vouchers/{voucher_id}", status_code=204)
async def delete_voucher(
    voucher_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Delete a voucher that has never been used."""
    unwrap(await voucher_service.delete_voucher(db, voucher_id))


# ============================================================================
# VOUCHER USAGES
# ============================================================================


@router.get("/voucher-usages", response_model=list[VoucherUsageResponse])
async def list_voucher_usages(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Most recent voucher usages first."""
    return await voucher_service.list_voucher_usages(
        db, skip=(page - 1) * page_size, limit=page_size
    )


@router.post("/voucher-usages", response_model=VoucherUsageResponse, status_code=201)
async def create_voucher_usage(
    usage_in: VoucherUsageCreate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Consume vouchers against a subtotal; the usage can then be attached to an order."""
    return unwrap(
        await voucher_service.create_voucher_usage(
            db, usage_in.voucher_ids, usage_in.subtotal, commit=True
        )
    )


@router.get("/voucher-usages/{usage_id}", response_model=VoucherUsageResponse)
async def get_voucher_usage(
    usage_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return unwrap(await voucher_service.get_voucher_usage(db, usage_id))
