"""ARQ worker for expiring unpaid orders and payment link retries."""

import uuid
from urllib.parse import urlparse

from arq import cron
from arq.connections import RedisSettings
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


def get_redis_settings() -> RedisSettings:
    """Parse REDIS_URL from application settings into ARQ RedisSettings."""
    parsed = urlparse(get_settings().REDIS_URL)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or "0"),
        password=parsed.password,
    )


async def task_expire_stale_pending_orders(ctx: dict):
    from services.store_service.tasks import expire_stale_pending_orders

    logger.info("Running: expire_stale_pending_orders")
    await expire_stale_pending_orders()


async def task_request_payment_link(ctx: dict, order_id: str):
    from services.store_service.tasks import request_payment_link

    logger.info("Running: request_payment_link for %s", order_id)
    await request_payment_link(uuid.UUID(order_id))


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_expire_stale_pending_orders,
        task_request_payment_link,
    ]

    cron_jobs = [
        cron(
            task_expire_stale_pending_orders,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
            run_at_startup=True,
        ),
    ]
