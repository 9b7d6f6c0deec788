"""
Payment reconciliation for PayOS webhooks.

The provider resends any callback that does not get a success response, so
``handle_callback`` never raises: every path, including unexpected errors,
ends in an outcome the router acknowledges with 200. Only the order state is
protected. A callback that fails verification or does not match the order
changes nothing, and replays are absorbed by the lifecycle engine's
idempotent transitions.
"""

import enum
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.result import ErrorKind
from services.store_service.models import ORDER_CODE_PREFIX, ActorRole, OrderStatus
from services.store_service.payos_client import payable_amount, verify_signature
from services.store_service.services import lifecycle, order_store
from services.store_service.services.notifications import Notifier
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

SUCCESS_STATUSES = frozenset({"PAID"})
FAILURE_STATUSES = frozenset({"CANCELLED", "EXPIRED"})


class ReconciliationOutcome(str, enum.Enum):
    IGNORED = "ignored"
    INVALID_SIGNATURE = "invalid_signature"
    ORDER_NOT_FOUND = "order_not_found"
    CONFIRMED = "confirmed"
    PAYMENT_FAILED = "payment_failed"
    ALREADY_APPLIED = "already_applied"
    AMOUNT_MISMATCH = "amount_mismatch"
    UNSUPPORTED_STATUS = "unsupported_status"
    REJECTED = "rejected"
    ERROR = "error"


def extract_order_code(data: dict[str, Any]) -> Optional[str]:
    """Our order code from the callback data. PayOS echoes it back numeric."""
    raw = data.get("orderCode")
    if raw is None or isinstance(raw, bool):
        return None
    code = str(raw).strip()
    if not code:
        return None
    if code.isdigit():
        code = f"{ORDER_CODE_PREFIX}{code}"
    return code


def payment_status(payload: dict[str, Any], data: dict[str, Any]) -> Optional[str]:
    status = data.get("status")
    if status:
        return str(status).strip().upper()
    # Payment webhooks carry no status, only the "00" success code
    if str(payload.get("code", "")) == "00":
        return "PAID"
    return None


def _amount_matches(raw_amount: Any, expected: Decimal) -> bool:
    try:
        return Decimal(str(raw_amount)) == payable_amount(expected)
    except (InvalidOperation, ValueError):
        return False


async def handle_callback(
    db: AsyncSession,
    payload: Any,
    *,
    checksum_key: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> ReconciliationOutcome:
    """Apply one provider callback. Always returns; never raises."""
    try:
        return await _reconcile(db, payload, checksum_key, notifier)
    except Exception:
        logger.exception("Unhandled error while reconciling payment callback")
        try:
            await db.rollback()
        except Exception:
            logger.exception("Rollback after failed payment callback also failed")
        return ReconciliationOutcome.ERROR


async def _reconcile(
    db: AsyncSession,
    payload: Any,
    checksum_key: Optional[str],
    notifier: Optional[Notifier],
) -> ReconciliationOutcome:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        logger.info("Payment callback without data, treating as ping")
        return ReconciliationOutcome.IGNORED

    order_code = extract_order_code(data)
    if order_code is None:
        logger.info("Payment callback without orderCode, treating as ping")
        return ReconciliationOutcome.IGNORED

    signature = payload.get("signature") or data.get("signature")
    key = checksum_key if checksum_key is not None else get_settings().PAYOS_CHECKSUM_KEY
    if not verify_signature(data, signature, key):
        logger.warning(
            "Rejected payment callback for %s: invalid or missing signature",
            order_code,
        )
        return ReconciliationOutcome.INVALID_SIGNATURE

    order = await order_store.get_order_by_code(db, order_code)
    if order is None:
        logger.warning("Payment callback for unknown order %s", order_code)
        return ReconciliationOutcome.ORDER_NOT_FOUND

    order_id: uuid.UUID = order.id
    status = payment_status(payload, data)
    if status in SUCCESS_STATUSES:
        target = OrderStatus.CONFIRMED
    elif status in FAILURE_STATUSES:
        target = OrderStatus.PAYMENT_FAILED
    else:
        logger.info("Payment callback for %s has unhandled status %s", order_code, status)
        return ReconciliationOutcome.UNSUPPORTED_STATUS

    amount = data.get("amount")
    if (
        target == OrderStatus.CONFIRMED
        and amount is not None
        and not _amount_matches(amount, order.total_amount)
    ):
        logger.error(
            "Payment amount mismatch for order %s: expected %s, got %s",
            order_code,
            order.total_amount,
            amount,
        )
        return ReconciliationOutcome.AMOUNT_MISMATCH

    if order.status == target:
        logger.info("Payment callback for %s already applied (%s)", order_code, target.value)
        return ReconciliationOutcome.ALREADY_APPLIED

    result = await lifecycle.transition(
        db, order_id, target, actor_role=ActorRole.SYSTEM, notifier=notifier
    )
    if not result.ok:
        error = result.error
        if (
            error.kind == ErrorKind.INVALID_TRANSITION
            and error.context.get("current_status") == target.value
        ):
            # A concurrent delivery of the same callback got there first
            return ReconciliationOutcome.ALREADY_APPLIED
        logger.warning(
            "Payment callback for %s not applied: %s",
            order_code,
            error.message,
            extra={"extra_fields": error.context},
        )
        return ReconciliationOutcome.REJECTED

    logger.info("Order %s reconciled to %s", order_code, target.value)
    if target == OrderStatus.CONFIRMED:
        return ReconciliationOutcome.CONFIRMED
    return ReconciliationOutcome.PAYMENT_FAILED
