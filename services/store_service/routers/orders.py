"""Store orders router: checkout, order history, cancellation and payment links."""

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import order_create_limit
from libs.db.session import get_async_db, get_session_factory
from services.store_service.models import PaymentMethod
from services.store_service.routers._helpers import actor_id, actor_role, unwrap
from services.store_service.schemas import (
    OrderCancelRequest,
    OrderCreateRequest,
    OrderListResponse,
    OrderResponse,
)
from services.store_service.services import lifecycle, order_store
from services.store_service.tasks import request_payment_link
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

router = APIRouter(prefix="/orders", tags=["orders"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("", response_model=OrderResponse, status_code=201)
@order_create_limit
async def create_order(
    request: Request,
    order_in: OrderCreateRequest,
    background_tasks: BackgroundTasks,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Place an order. Guests may check out without signing in."""
    order = unwrap(
        await lifecycle.create_order(
            db,
            order_in,
            actor_id=actor_id(current_user),
            actor_role=actor_role(current_user),
        )
    )

    if order.payment_method == PaymentMethod.BANK:
        background_tasks.add_task(request_payment_link, order.id, session_factory)
    return order


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("/me", response_model=OrderListResponse)
async def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's orders, newest first."""
    orders, total = await order_store.list_orders(
        db, user_id=current_user.user_id, page=page, limit=page_size
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{order_code}", response_model=OrderResponse)
async def get_order(
    order_code: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get one order by its code (owner or admin)."""
    order = await order_store.get_order_by_code(db, order_code)
    # Someone else's order looks the same as a missing one
    if not order or (not current_user.is_admin and order.user_id != current_user.user_id):
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# ============================================================================
# CUSTOMER ACTIONS
# ============================================================================


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    body: Optional[OrderCancelRequest] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel a pending or confirmed order and give its stock back."""
    return unwrap(
        await lifecycle.cancel_order(
            db,
            order_id,
            reason=body.reason if body else None,
            actor_id=current_user.user_id,
            actor_role=actor_role(current_user),
        )
    )


@router.post("/{order_id}/payment-link", response_model=OrderResponse)
async def create_payment_link(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """(Re)request the payment link for a pending bank-transfer order."""
    return unwrap(
        await lifecycle.attach_payment_link(
            db,
            order_id,
            actor_id=current_user.user_id,
            actor_role=actor_role(current_user),
        )
    )
