"""Unit tests for the inventory ledger.

Tests call the ledger functions directly with the db_session fixture.
Stock is always re-read from the database because reservations update
rows without touching already-loaded instances.
"""

import asyncio
import uuid

import pytest
from libs.common.result import ErrorKind
from services.store_service.models import InventoryMovement, InventoryMovementType
from services.store_service.services.inventory import (
    get_stock,
    release,
    reserved_quantity,
    try_reserve,
)
from sqlalchemy import select
from tests.factories import ProductFactory


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product.id


# ---------------------------------------------------------------------------
# try_reserve
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_decrements_stock_and_records_movement(db_session):
    """A successful reservation takes stock and writes a reservation movement."""
    product_id = await _make_product(db_session, stock_quantity=5)
    order_id = uuid.uuid4()

    result = await try_reserve(db_session, product_id, 2, reference_id=order_id)
    await db_session.commit()

    assert result.ok
    assert result.value.quantity == 2
    assert await get_stock(db_session, product_id) == 3
    assert await reserved_quantity(db_session, product_id, order_id) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_whole_stock_is_allowed(db_session):
    """Reserving exactly what is left empties the shelf without going negative."""
    product_id = await _make_product(db_session, stock_quantity=3)

    result = await try_reserve(db_session, product_id, 3)
    await db_session.commit()

    assert result.ok
    assert await get_stock(db_session, product_id) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_more_than_stock_fails_without_mutation(db_session):
    """Insufficient stock is reported with the available count and nothing changes."""
    product_id = await _make_product(db_session, stock_quantity=1)

    result = await try_reserve(db_session, product_id, 2)

    assert not result.ok
    assert result.error.kind == ErrorKind.INSUFFICIENT_STOCK
    assert result.error.context["available"] == 1
    assert result.error.context["product_id"] == str(product_id)
    assert await get_stock(db_session, product_id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("quantity", [0, -3])
async def test_reserve_rejects_non_positive_quantity(db_session, quantity):
    """Zero or negative quantities are validation errors."""
    product_id = await _make_product(db_session, stock_quantity=5)

    result = await try_reserve(db_session, product_id, quantity)

    assert result.error.kind == ErrorKind.VALIDATION
    assert await get_stock(db_session, product_id) == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_unknown_product_is_not_found(db_session):
    result = await try_reserve(db_session, uuid.uuid4(), 1)

    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_inactive_product_is_not_found(db_session):
    """Inactive products cannot be sold."""
    product_id = await _make_product(db_session, stock_quantity=5, is_active=False)

    result = await try_reserve(db_session, product_id, 1)

    assert result.error.kind == ErrorKind.NOT_FOUND
    assert await get_stock(db_session, product_id) == 5


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.postgres
async def test_concurrent_reservations_cannot_oversell(session_factory):
    """Two callers racing for the same stock: only the ones that fit succeed."""
    async with session_factory() as setup:
        product_id = await _make_product(setup, stock_quantity=3)

    async def reserve_two():
        async with session_factory() as db:
            result = await try_reserve(db, product_id, 2)
            await db.commit()
            return result.ok

    outcomes = await asyncio.gather(reserve_two(), reserve_two())

    assert sorted(outcomes) == [False, True]
    async with session_factory() as check:
        assert await get_stock(check, product_id) == 1


# ---------------------------------------------------------------------------
# release
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_release_returns_stock_and_balances_reference(db_session):
    """Release undoes a reservation for the same reference."""
    product_id = await _make_product(db_session, stock_quantity=5)
    order_id = uuid.uuid4()

    await try_reserve(db_session, product_id, 4, reference_id=order_id)
    await release(db_session, product_id, 4, reference_id=order_id, notes="cancelled")
    await db_session.commit()

    assert await get_stock(db_session, product_id) == 5
    assert await reserved_quantity(db_session, product_id, order_id) == 0

    result = await db_session.execute(
        select(InventoryMovement.movement_type).where(
            InventoryMovement.reference_id == order_id
        )
    )
    assert sorted(m.value for m in result.scalars().all()) == [
        InventoryMovementType.RELEASE.value,
        InventoryMovementType.RESERVATION.value,
    ]
