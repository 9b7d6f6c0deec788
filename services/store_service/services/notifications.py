"""Notification sink for order status changes."""

import uuid
from typing import Awaitable, Callable

from libs.common.logging import get_logger
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import Notification, NotificationType
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# (db, user_id, type, content) -> None
Notifier = Callable[[AsyncSession, uuid.UUID, NotificationType, str], Awaitable[None]]


async def emit_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    content: str,
) -> None:
    """Persist a notification and commit it on its own."""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        content=content,
    )
    db.add(notification)
    await db.commit()
    logger.info(
        "Emitted %s notification to user %s",
        notification_type.value,
        user_id,
        extra={"extra_fields": {"notification_id": str(notification.id)}},
    )


async def list_user_notifications(
    db: AsyncSession, user_id: uuid.UUID, *, page: int = 1, limit: int = 20
) -> tuple[list[Notification], int]:
    base = select(Notification).where(Notification.user_id == user_id)
    total = await db.scalar(
        select(func.count()).select_from(base.subquery())
    )
    result = await db.execute(
        base.order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)


async def mark_notification_read(
    db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID
) -> ServiceResult[Notification]:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        return ServiceResult.failure(
            ErrorKind.NOT_FOUND,
            "Notification not found",
            notification_id=str(notification_id),
        )
    notification.is_read = True
    await db.commit()
    return ServiceResult.success(notification)
