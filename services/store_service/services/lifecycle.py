"""
Order lifecycle engine.

Drives an order through its states and runs the side effects each transition
owns. Every status change loads the order with ``SELECT ... FOR UPDATE`` and
holds the row lock until commit, so two concurrent transitions on the same
order are applied one after the other and the loser sees the winner's state.

    pending -> confirmed -> processing -> shipping -> delivered
    pending | confirmed -> cancelled
    pending -> payment_failed

Stock is released when an order reaches ``cancelled`` or ``payment_failed``.
Both states are terminal, so the release runs at most once per order; asking
for the same terminal state again is a no-op.

Notifications and e-mails are sent after the commit and never undo it.
"""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.email import send_order_confirmation
from libs.common.logging import get_logger
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import (
    ActorRole,
    NotificationType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
)
from services.store_service.payos_client import PayOSClient, PayOSError
from services.store_service.schemas import OrderCreateRequest
from services.store_service.services import inventory, order_store, pricing, users
from services.store_service.services import vouchers
from services.store_service.services.notifications import Notifier, emit_notification
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ORDER_CREATE_ATTEMPTS = 3

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.PAYMENT_FAILED}
    ),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPING}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.PAYMENT_FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.PAYMENT_FAILED}
)
# Reaching one of these gives the order's stock back
COMPENSATING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.PAYMENT_FAILED})

STATUS_NOTIFICATIONS: dict[OrderStatus, tuple[NotificationType, str]] = {
    OrderStatus.PENDING: (
        NotificationType.ORDER_REQUESTED,
        "Order {order_code} has been placed",
    ),
    OrderStatus.CONFIRMED: (
        NotificationType.ORDER_CONFIRMED,
        "Order {order_code} has been confirmed",
    ),
    OrderStatus.PROCESSING: (
        NotificationType.ORDER_PROCESSING,
        "Order {order_code} is being processed",
    ),
    OrderStatus.SHIPPING: (
        NotificationType.ORDER_SHIPPING,
        "Order {order_code} is on its way",
    ),
    OrderStatus.DELIVERED: (
        NotificationType.ORDER_DELIVERED,
        "Order {order_code} has been delivered",
    ),
    OrderStatus.CANCELLED: (
        NotificationType.ORDER_REQUESTED,
        "Order {order_code} has been cancelled",
    ),
    OrderStatus.PAYMENT_FAILED: (
        NotificationType.ORDER_REQUESTED,
        "Payment for order {order_code} was not completed and the order has been closed",
    ),
}

STAFF_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SYSTEM})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _permission_error(
    order_user_id: Optional[uuid.UUID],
    target: OrderStatus,
    actor_id: Optional[uuid.UUID],
    actor_role: ActorRole,
) -> Optional[str]:
    if actor_role in STAFF_ROLES:
        return None
    if target == OrderStatus.CANCELLED:
        if actor_id is not None and order_user_id == actor_id:
            return None
        return "You can only cancel your own orders"
    return f"Only staff can move an order to {target.value}"


# ============================================================================
# NOTIFICATIONS
# ============================================================================


async def _notify(
    db: AsyncSession,
    order: Order,
    notifier: Optional[Notifier],
    extra: Optional[str] = None,
) -> None:
    """Tell the owning user about the order's current status. Never raises."""
    if order.user_id is None:
        return

    notification_type, template = STATUS_NOTIFICATIONS[order.status]
    content = template.format(order_code=order.order_code)
    if extra:
        content = f"{content}: {extra}"
    order_code = order.order_code

    try:
        await (notifier or emit_notification)(
            db, order.user_id, notification_type, content
        )
    except Exception:
        logger.exception(
            "Failed to emit %s notification for order %s",
            notification_type.value,
            order_code,
        )
        try:
            await db.rollback()
            await db.refresh(order)
        except Exception:
            logger.exception(
                "Could not reload order %s after a failed notification", order_code
            )


async def _send_confirmation_email(order: Order) -> None:
    if not order.customer_email:
        return
    try:
        await send_order_confirmation(
            to_email=order.customer_email,
            customer_name=order.customer_name,
            order_code=order.order_code,
            total_amount=order.total_amount,
        )
    except Exception:
        logger.exception("Failed to send confirmation email for order %s", order.order_code)


# ============================================================================
# CREATION
# ============================================================================


def _validate_create_request(request: OrderCreateRequest) -> Optional[str]:
    if not request.customer_name or not request.customer_name.strip():
        return "Customer name is required"
    if not request.customer_phone or not request.customer_phone.strip():
        return "Customer phone is required"
    if not request.shipping_address or not request.shipping_address.strip():
        return "Shipping address is required"
    if not request.items:
        return "Order must contain at least one item"
    for item in request.items:
        if item.quantity <= 0:
            return f"Quantity for product {item.product_id} must be greater than 0"
    if request.voucher_ids and request.voucher_usage_id:
        return "Send either voucher_ids or voucher_usage_id, not both"
    return None


def _constraint_name(error: IntegrityError) -> str:
    """Best-effort name of the constraint behind an IntegrityError."""
    diag = getattr(error.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name
    # SQLite reports "UNIQUE constraint failed: table.column"
    message = str(error.orig)
    if "constraint failed:" in message:
        return message.split("constraint failed:", 1)[1].strip()
    return "a unique constraint"


async def _usage_attached(db: AsyncSession, voucher_usage_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(Order.id).where(Order.voucher_usage_id == voucher_usage_id)
    )
    return result.first() is not None


async def _create_order_once(
    db: AsyncSession, request: OrderCreateRequest, owner_id: Optional[uuid.UUID]
) -> ServiceResult[Order]:
    """One attempt at the creation unit. Leaves the transaction open on failure."""
    # Known before the insert so stock movements can point at the order
    order_id = uuid.uuid4()

    priced = await pricing.reserve_and_price(
        db,
        [pricing.LineRequest(item.product_id, item.quantity) for item in request.items],
        reference_id=order_id,
    )
    if not priced.ok:
        return ServiceResult.from_error(priced.error)
    batch = priced.value

    voucher_usage_id = request.voucher_usage_id
    if request.voucher_ids:
        usage = await vouchers.create_voucher_usage(
            db, request.voucher_ids, batch.subtotal
        )
        if not usage.ok:
            return ServiceResult.from_error(usage.error)
        voucher_usage_id = usage.value.id
    elif voucher_usage_id is not None and await _usage_attached(db, voucher_usage_id):
        return ServiceResult.failure(
            ErrorKind.CONFLICT,
            "Voucher usage is already attached to another order",
            voucher_usage_id=str(voucher_usage_id),
        )

    totals = await pricing.resolve_total(db, batch.subtotal, voucher_usage_id)
    if not totals.ok:
        return ServiceResult.from_error(totals.error)
    discount, total = totals.value

    order = Order(
        id=order_id,
        user_id=owner_id,
        customer_name=request.customer_name.strip(),
        customer_phone=request.customer_phone.strip(),
        customer_email=request.customer_email,
        shipping_address=request.shipping_address.strip(),
        payment_method=request.payment_method,
        notes=request.notes,
        subtotal_amount=batch.subtotal,
        discount_amount=discount,
        total_amount=total,
        voucher_usage_id=voucher_usage_id,
        status=OrderStatus.PENDING,
        items=[
            OrderItem(
                product_id=line.product_id,
                position=position,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
            )
            for position, line in enumerate(batch.lines)
        ],
    )
    await order_store.create_order(db, order)
    await db.commit()
    return ServiceResult.success(order)


async def create_order(
    db: AsyncSession,
    request: OrderCreateRequest,
    *,
    actor_id: Optional[uuid.UUID],
    actor_role: ActorRole,
    notifier: Optional[Notifier] = None,
) -> ServiceResult[Order]:
    """
    Create a pending order.

    Stock reservation, pricing, voucher usage and the insert are one
    transaction: any failure rolls all of it back. Customers order for
    themselves (or as guests when ``actor_id`` is None); staff may order on
    behalf of ``request.user_id``.
    """
    error = _validate_create_request(request)
    if error:
        return ServiceResult.failure(ErrorKind.VALIDATION, error)

    owner_id = request.user_id
    if actor_role not in STAFF_ROLES:
        if owner_id is not None and owner_id != actor_id:
            return ServiceResult.failure(
                ErrorKind.FORBIDDEN,
                "Customers can only place orders for themselves",
                user_id=str(owner_id),
            )
        owner_id = actor_id

    if owner_id is not None and await users.get_user_by_id(db, owner_id) is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, f"User {owner_id} not found", user_id=str(owner_id)
        )

    violation = None
    for attempt in range(1, ORDER_CREATE_ATTEMPTS + 1):
        try:
            result = await _create_order_once(db, request, owner_id)
        except IntegrityError as e:
            await db.rollback()
            violation = _constraint_name(e)
            logger.warning(
                "Order insert violated %s (attempt %d/%d), retrying",
                violation,
                attempt,
                ORDER_CREATE_ATTEMPTS,
            )
            continue
        except order_store.OrderCodeExhausted as e:
            await db.rollback()
            return ServiceResult.failure(ErrorKind.CONFLICT, str(e))

        if not result.ok:
            await db.rollback()
            return result
        break
    else:
        return ServiceResult.failure(
            ErrorKind.CONFLICT,
            f"Could not create the order: {violation} kept failing, please retry",
            attempts=ORDER_CREATE_ATTEMPTS,
            constraint=violation,
        )

    order = result.value
    logger.info(
        "Created order %s: total=%s lines=%d user=%s",
        order.order_code,
        order.total_amount,
        len(order.items),
        owner_id or "guest",
        extra={
            "extra_fields": {
                "order_id": str(order.id),
                "payment_method": order.payment_method.value,
            }
        },
    )
    await _notify(db, order, notifier)
    return ServiceResult.success(order)


# ============================================================================
# TRANSITIONS
# ============================================================================


async def transition(
    db: AsyncSession,
    order_id: uuid.UUID,
    target: OrderStatus,
    *,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: ActorRole = ActorRole.SYSTEM,
    reason: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> ServiceResult[Order]:
    """
    Move an order to ``target``.

    Returns ``invalid_transition`` (with current and requested status in the
    context) when the table does not allow the move, ``forbidden`` when the
    actor may not make it, and ``not_found`` for unknown orders. None of these
    change anything.
    """
    order = await order_store.get_order_by_id(db, order_id, for_update=True)
    if order is None:
        await db.rollback()
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Order not found", order_id=str(order_id)
        )

    current = order.status
    order_code = order.order_code

    denied = _permission_error(order.user_id, target, actor_id, actor_role)
    if denied:
        await db.rollback()
        return ServiceResult.failure(
            ErrorKind.FORBIDDEN, denied, order_code=order_code
        )

    if current == target and target in COMPENSATING_STATUSES:
        # Nothing pending: commit only ends the transaction and drops the lock
        await db.commit()
        logger.info("Order %s is already %s, nothing to do", order_code, current.value)
        return ServiceResult.success(order)

    if not can_transition(current, target):
        await db.rollback()
        return ServiceResult.failure(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot move order {order_code} from {current.value} to {target.value}",
            order_code=order_code,
            current_status=current.value,
            requested_status=target.value,
        )

    now = utc_now()
    order.status = target
    if target == OrderStatus.CONFIRMED:
        order.paid_at = now
    elif target == OrderStatus.DELIVERED:
        order.delivered_at = now
    elif target in COMPENSATING_STATUSES:
        order.cancelled_at = now
        if target == OrderStatus.CANCELLED:
            order.cancellation_reason = reason
        for item in order.items:
            await inventory.release(
                db,
                item.product_id,
                item.quantity,
                reference_id=order.id,
                notes=f"order {target.value}",
            )

    await db.commit()
    logger.info(
        "Order %s moved %s -> %s by %s",
        order_code,
        current.value,
        target.value,
        actor_role.value,
        extra={"extra_fields": {"order_id": str(order_id), "actor_id": str(actor_id)}},
    )

    await _notify(
        db, order, notifier, extra=reason if target == OrderStatus.CANCELLED else None
    )
    if target == OrderStatus.CONFIRMED:
        await _send_confirmation_email(order)
    return ServiceResult.success(order)


async def mark_confirmed(db: AsyncSession, order_id: uuid.UUID, **kwargs) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.CONFIRMED, **kwargs)


async def mark_processing(db: AsyncSession, order_id: uuid.UUID, **kwargs) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.PROCESSING, **kwargs)


async def mark_shipping(db: AsyncSession, order_id: uuid.UUID, **kwargs) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.SHIPPING, **kwargs)


async def mark_delivered(db: AsyncSession, order_id: uuid.UUID, **kwargs) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.DELIVERED, **kwargs)


async def cancel_order(
    db: AsyncSession, order_id: uuid.UUID, *, reason: Optional[str] = None, **kwargs
) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.CANCELLED, reason=reason, **kwargs)


async def mark_payment_failed(db: AsyncSession, order_id: uuid.UUID, **kwargs) -> ServiceResult[Order]:
    return await transition(db, order_id, OrderStatus.PAYMENT_FAILED, **kwargs)


# ============================================================================
# OTHER ORDER OPERATIONS
# ============================================================================


async def attach_payment_link(
    db: AsyncSession,
    order_id: uuid.UUID,
    *,
    gateway: Optional[PayOSClient] = None,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: ActorRole = ActorRole.SYSTEM,
) -> ServiceResult[Order]:
    """Request a payment link for a pending bank-transfer order and store it."""
    order = await order_store.get_order_by_id(db, order_id)
    if order is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Order not found", order_id=str(order_id)
        )
    if actor_role not in STAFF_ROLES and order.user_id != actor_id:
        return ServiceResult.failure(
            ErrorKind.FORBIDDEN, "You can only pay for your own orders"
        )
    if order.payment_method != PaymentMethod.BANK:
        return ServiceResult.failure(
            ErrorKind.VALIDATION,
            "Cash on delivery orders are paid on delivery",
            order_code=order.order_code,
        )
    if order.status != OrderStatus.PENDING:
        return ServiceResult.failure(
            ErrorKind.CONFLICT,
            f"Order {order.order_code} is {order.status.value} and cannot be paid",
            order_code=order.order_code,
            current_status=order.status.value,
        )
    if order.payment_link:
        return ServiceResult.success(order)

    order_code = order.order_code
    try:
        gateway = gateway or PayOSClient()
        link = await gateway.create_payment_link(
            order_code, order.total_amount, description=order_code
        )
    except PayOSError as e:
        logger.error("Payment link request failed for order %s: %s", order_code, e.message)
        return ServiceResult.failure(
            ErrorKind.EXTERNAL,
            "Could not create a payment link, please try again later",
            order_code=order_code,
        )

    order.payment_link = link.checkout_url
    order.payment_link_id = link.payment_link_id
    await db.commit()
    logger.info("Payment link attached to order %s", order_code)
    return ServiceResult.success(order)


async def update_order_notes(
    db: AsyncSession,
    order_id: uuid.UUID,
    notes: Optional[str],
    *,
    actor_role: ActorRole,
) -> ServiceResult[Order]:
    if actor_role not in STAFF_ROLES:
        return ServiceResult.failure(ErrorKind.FORBIDDEN, "Only staff can edit orders")
    order = await order_store.get_order_by_id(db, order_id)
    if order is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Order not found", order_id=str(order_id)
        )
    order.notes = notes
    order = await order_store.update_order(db, order)
    return ServiceResult.success(order)


async def delete_order(
    db: AsyncSession, order_id: uuid.UUID, *, actor_role: ActorRole
) -> ServiceResult[None]:
    """Administrative hard delete. Only orders in a terminal state qualify."""
    if actor_role != ActorRole.ADMIN:
        return ServiceResult.failure(ErrorKind.FORBIDDEN, "Only admins can delete orders")
    order = await order_store.get_order_by_id(db, order_id)
    if order is None:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND, "Order not found", order_id=str(order_id)
        )
    if order.status not in TERMINAL_STATUSES:
        return ServiceResult.failure(
            ErrorKind.CONFLICT,
            f"Order {order.order_code} is {order.status.value}; only finished orders can be deleted",
            order_code=order.order_code,
            current_status=order.status.value,
        )
    order_code = order.order_code
    await order_store.delete_order(db, order_id)
    logger.info("Deleted order %s", order_code)
    return ServiceResult.success(None)
