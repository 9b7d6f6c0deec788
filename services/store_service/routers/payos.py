"""PayOS webhook handler."""

import json

from fastapi import APIRouter, Depends, Request
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.store_service.services.reconciliation import handle_callback
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payos", tags=["payments"])
logger = get_logger(__name__)


@router.api_route("/callback", methods=["GET", "HEAD"])
async def payos_callback_probe():
    """PayOS checks the webhook URL with a plain request when it is registered."""
    return {"received": True}


@router.post("/callback")
async def payos_callback(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """
    PayOS webhook endpoint (no auth; verified by the payload signature).

    Always answers 200: PayOS resends anything else, and a resend cannot fix
    a bad signature or an unknown order.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, ValueError):
        logger.warning("PayOS callback body is not valid JSON (%d bytes)", len(raw))
        return {"received": True}

    outcome = await handle_callback(db, payload)
    logger.info(
        "PayOS callback handled: %s",
        outcome.value,
        extra={"extra_fields": {"outcome": outcome.value}},
    )
    return {"received": True}
