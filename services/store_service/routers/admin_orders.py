"""Admin order management: listing, status changes, notes and deletion."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import ActorRole, OrderStatus
from services.store_service.routers._helpers import unwrap
from services.store_service.schemas import (
    OrderListResponse,
    OrderNotesUpdate,
    OrderResponse,
    OrderStatusUpdate,
)
from services.store_service.services import lifecycle, order_store
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status: Optional[OrderStatus] = None,
    user_id: Optional[uuid.UUID] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """List all orders with optional filters."""
    orders, total = await order_store.list_orders(
        db, user_id=user_id, status=status, page=page, limit=page_size
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_store.get_order_by_id(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    update_in: OrderStatusUpdate,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Move an order along its lifecycle. Illegal moves return 409."""
    return unwrap(
        await lifecycle.transition(
            db,
            order_id,
            update_in.status,
            actor_id=admin.user_id,
            actor_role=ActorRole.ADMIN,
            reason=update_in.reason,
        )
    )


@router.patch("/{order_id}", response_model=OrderResponse)
async def update_order_notes(
    order_id: uuid.UUID,
    update_in: OrderNotesUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return unwrap(
        await lifecycle.update_order_notes(
            db, order_id, update_in.notes, actor_role=ActorRole.ADMIN
        )
    )


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Hard-delete a delivered, cancelled or failed order."""
    unwrap(await lifecycle.delete_order(db, order_id, actor_role=ActorRole.ADMIN))
