"""Integration tests for admin voucher usage endpoints."""

import uuid
from decimal import Decimal

import pytest
from tests.factories import VoucherFactory, auth_headers


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_creates_and_lists_voucher_usages(store_client, db_session):
    voucher = VoucherFactory.create(value=Decimal("50000"))
    db_session.add(voucher)
    await db_session.commit()
    voucher_id = str(voucher.id)
    admin = auth_headers(uuid.uuid4(), role="admin")

    created = await store_client.post(
        "/admin/voucher-usages",
        json={"voucher_ids": [voucher_id], "subtotal": "200000"},
        headers=admin,
    )
    assert created.status_code == 201, created.text

    listed = await store_client.get("/admin/voucher-usages", headers=admin)

    assert listed.status_code == 200
    usages = listed.json()
    assert [u["id"] for u in usages] == [created.json()["id"]]
    assert usages[0]["voucher_ids"] == [voucher_id]
    assert Decimal(usages[0]["discount_amount"]) == Decimal("50000")
    assert Decimal(usages[0]["base_amount"]) == Decimal("200000")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_voucher_usages_are_admin_only(store_client):
    response = await store_client.get(
        "/admin/voucher-usages", headers=auth_headers(uuid.uuid4())
    )

    assert response.status_code == 403
