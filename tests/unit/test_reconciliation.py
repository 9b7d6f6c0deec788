"""Unit tests for PayOS callback reconciliation."""

import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from libs.common.config import get_settings
from services.store_service.models import ActorRole, Order, OrderStatus, VoucherType
from services.store_service.payos_client import PayOSClient, provider_order_code
from services.store_service.services import lifecycle
from services.store_service.services.inventory import get_stock
from services.store_service.services.reconciliation import (
    ReconciliationOutcome,
    extract_order_code,
    handle_callback,
    payment_status,
)
from sqlalchemy import select
from tests.factories import (
    OrderRequestFactory,
    ProductFactory,
    UserFactory,
    VoucherFactory,
    signed_webhook,
)


async def _noop_notifier(db, user_id, notification_type, content):
    return None


async def _status(db, order_id) -> OrderStatus:
    return await db.scalar(select(Order.status).where(Order.id == order_id))


def _payment_data(order_code: str, amount: int = 200000, **overrides) -> dict:
    data = {
        "orderCode": provider_order_code(order_code),
        "amount": amount,
        "description": order_code,
        "accountNumber": "12345678",
        "reference": "FT24123456789",
        "transactionDateTime": "2026-10-19 10:15:00",
        "currency": "VND",
        "paymentLinkId": "plink-1",
        "code": "00",
        "desc": "success",
        "counterAccountBankId": None,
        "counterAccountName": None,
    }
    data.update(overrides)
    return data


@pytest_asyncio.fixture
async def placed_order(db_session):
    """A pending bank order for 2 units of a stock-5 product: (order_id, code, product_id)."""
    user = UserFactory.create()
    product = ProductFactory.create(stock_quantity=5, unit_price=Decimal("100000"))
    db_session.add_all([user, product])
    await db_session.commit()
    product_id = product.id

    result = await lifecycle.create_order(
        db_session,
        OrderRequestFactory.create([(product_id, 2)]),
        actor_id=user.id,
        actor_role=ActorRole.CUSTOMER,
        notifier=_noop_notifier,
    )
    order = result.value
    return order.id, order.order_code, product_id


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw, expected",
    [
        (17000000001234, "ORD17000000001234"),
        ("17000000001234", "ORD17000000001234"),
        ("ORD17000000001234", "ORD17000000001234"),
        (None, None),
        ("", None),
    ],
)
def test_extract_order_code(raw, expected):
    assert extract_order_code({"orderCode": raw}) == expected


@pytest.mark.unit
def test_payment_status_defaults_to_paid_on_success_code():
    """Payment webhooks carry only the top-level "00" code."""
    assert payment_status({"code": "00"}, {}) == "PAID"
    assert payment_status({"code": "01"}, {}) is None
    assert payment_status({"code": "00"}, {"status": "expired"}) == "EXPIRED"


# ---------------------------------------------------------------------------
# handle_callback
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paid_callback_confirms_order_and_replay_is_absorbed(db_session, placed_order):
    """PAID confirms; the identical replay changes nothing and stock stays reserved."""
    order_id, order_code, product_id = placed_order
    payload = signed_webhook(_payment_data(order_code))

    first = await handle_callback(db_session, payload, notifier=_noop_notifier)
    assert first == ReconciliationOutcome.CONFIRMED
    assert await _status(db_session, order_id) == OrderStatus.CONFIRMED
    assert await get_stock(db_session, product_id) == 3

    replay = await handle_callback(db_session, payload, notifier=_noop_notifier)
    assert replay == ReconciliationOutcome.ALREADY_APPLIED
    assert await _status(db_session, order_id) == OrderStatus.CONFIRMED
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("provider_status", ["EXPIRED", "CANCELLED"])
async def test_failed_payment_releases_stock(db_session, placed_order, provider_status):
    order_id, order_code, product_id = placed_order
    payload = signed_webhook(_payment_data(order_code, status=provider_status))

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.PAYMENT_FAILED
    assert await _status(db_session, order_id) == OrderStatus.PAYMENT_FAILED
    assert await get_stock(db_session, product_id) == 5

    again = await handle_callback(db_session, payload, notifier=_noop_notifier)
    assert again == ReconciliationOutcome.ALREADY_APPLIED
    assert await get_stock(db_session, product_id) == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unsigned_callback_changes_nothing(db_session, placed_order):
    order_id, order_code, product_id = placed_order
    payload = signed_webhook(_payment_data(order_code))
    del payload["signature"]

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.INVALID_SIGNATURE
    assert await _status(db_session, order_id) == OrderStatus.PENDING
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tampered_callback_is_rejected(db_session, placed_order):
    """Changing a signed field after signing invalidates the callback."""
    order_id, order_code, _ = placed_order
    payload = signed_webhook(_payment_data(order_code, status="EXPIRED"))
    payload["data"]["status"] = "PAID"

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.INVALID_SIGNATURE
    assert await _status(db_session, order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_callback_signed_with_other_key_is_rejected(db_session, placed_order):
    order_id, order_code, _ = placed_order
    payload = signed_webhook(_payment_data(order_code), checksum_key="someone-else")

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.INVALID_SIGNATURE
    assert await _status(db_session, order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_missing_checksum_key_fails_closed(db_session, placed_order):
    order_id, order_code, _ = placed_order
    payload = signed_webhook(_payment_data(order_code))

    outcome = await handle_callback(
        db_session, payload, checksum_key="", notifier=_noop_notifier
    )

    assert outcome == ReconciliationOutcome.INVALID_SIGNATURE
    assert await _status(db_session, order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"code": "00", "desc": "success"},
        {"code": "00", "data": {"description": "webhook test"}},
        ["not", "an", "object"],
    ],
)
async def test_pings_are_ignored(db_session, payload):
    """Provider test calls carry no order code and are acknowledged as-is."""
    assert await handle_callback(db_session, payload) == ReconciliationOutcome.IGNORED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_order_code(db_session):
    payload = signed_webhook(_payment_data("ORD17000000009999"))

    outcome = await handle_callback(db_session, payload)

    assert outcome == ReconciliationOutcome.ORDER_NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.unit
async def test_amount_mismatch_blocks_confirmation(db_session, placed_order):
    order_id, order_code, product_id = placed_order
    payload = signed_webhook(_payment_data(order_code, amount=2000))

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.AMOUNT_MISMATCH
    assert await _status(db_session, order_id) == OrderStatus.PENDING
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unsupported_status_is_left_alone(db_session, placed_order):
    order_id, order_code, _ = placed_order
    payload = signed_webhook(_payment_data(order_code, status="PENDING"))

    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.UNSUPPORTED_STATUS
    assert await _status(db_session, order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failure_after_confirmation_is_rejected(db_session, placed_order):
    """An expiry arriving after the order was paid cannot undo the payment."""
    order_id, order_code, product_id = placed_order
    await lifecycle.mark_confirmed(db_session, order_id, notifier=_noop_notifier)

    payload = signed_webhook(_payment_data(order_code, status="EXPIRED"))
    outcome = await handle_callback(db_session, payload, notifier=_noop_notifier)

    assert outcome == ReconciliationOutcome.REJECTED
    assert await _status(db_session, order_id) == OrderStatus.CONFIRMED
    assert await get_stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paid_callback_for_cancelled_order_is_rejected(db_session, placed_order):
    order_id, order_code, product_id = placed_order
    await lifecycle.cancel_order(
        db_session, order_id, actor_role=ActorRole.ADMIN, notifier=_noop_notifier
    )

    outcome = await handle_callback(
        db_session, signed_webhook(_payment_data(order_code)), notifier=_noop_notifier
    )

    assert outcome == ReconciliationOutcome.REJECTED
    assert await _status(db_session, order_id) == OrderStatus.CANCELLED
    assert await get_stock(db_session, product_id) == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unexpected_error_is_reported_not_raised(db_session, placed_order, monkeypatch):
    order_id, order_code, _ = placed_order

    async def exploding_transition(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(lifecycle, "transition", exploding_transition)

    outcome = await handle_callback(
        db_session, signed_webhook(_payment_data(order_code)), notifier=_noop_notifier
    )

    assert outcome == ReconciliationOutcome.ERROR
    assert await _status(db_session, order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paid_amount_in_whole_dong_confirms_order_with_fractional_total(db_session):
    """15% off 333,333 leaves 283,333.05; PayOS charges and echoes 283,333."""
    user = UserFactory.create()
    product = ProductFactory.create(stock_quantity=5, unit_price=Decimal("333333"))
    voucher = VoucherFactory.create(type=VoucherType.PERCENTAGE, value=Decimal("15"))
    db_session.add_all([user, product, voucher])
    await db_session.commit()

    created = await lifecycle.create_order(
        db_session,
        OrderRequestFactory.create([(product.id, 1)], voucher_ids=[voucher.id]),
        actor_id=user.id,
        actor_role=ActorRole.CUSTOMER,
        notifier=_noop_notifier,
    )
    order = created.value
    order_id, order_code = order.id, order.order_code
    assert order.total_amount == Decimal("283333.05")

    sent = {}

    def handler(request):
        sent.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "code": "00",
                "desc": "success",
                "data": {"checkoutUrl": "https://pay.payos.vn/web/x", "paymentLinkId": "x"},
            },
        )

    gateway = PayOSClient(
        client_id="client-id",
        api_key="api-key",
        checksum_key=get_settings().PAYOS_CHECKSUM_KEY,
        base_url="https://payos.test",
        transport=httpx.MockTransport(handler),
    )
    linked = await lifecycle.attach_payment_link(db_session, order_id, gateway=gateway)
    assert linked.ok
    assert sent["amount"] == 283333

    outcome = await handle_callback(
        db_session,
        signed_webhook(_payment_data(order_code, amount=sent["amount"])),
        notifier=_noop_notifier,
    )

    assert outcome == ReconciliationOutcome.CONFIRMED
    assert await _status(db_session, order_id) == OrderStatus.CONFIRMED
