"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance (or a
request schema). Override any field via kwargs.

Usage:
    product = ProductFactory.create(stock_quantity=5)
    db_session.add(product)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from jose import jwt

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex[:8]}@test.com"


def make_token(user_id: uuid.UUID, role: str = "customer") -> str:
    """HS256 bearer token signed with the test secret."""
    from libs.common.config import get_settings

    settings = get_settings()
    return jwt.encode(
        {"sub": str(user_id), "role": role, "email": _unique_email()},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth_headers(user_id: uuid.UUID, role: str = "customer") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


def signed_webhook(data: dict, checksum_key: str = None, **top_level) -> dict:
    """PayOS-style webhook body with a valid signature over ``data``."""
    from libs.common.config import get_settings
    from services.store_service.payos_client import sign_data

    key = checksum_key or get_settings().PAYOS_CHECKSUM_KEY
    payload = {"code": "00", "desc": "success", "success": True, "data": data}
    payload.update(top_level)
    payload["signature"] = sign_data(data, key)
    return payload


# ---------------------------------------------------------------------------
# Store Service
# ---------------------------------------------------------------------------


class UserFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import UserRef

        defaults = {
            "id": _uuid(),
            "email": _unique_email(),
            "full_name": "Test Customer",
            "is_active": True,
        }
        defaults.update(overrides)
        return UserRef(**defaults)


class ProductFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Product

        defaults = {
            "id": _uuid(),
            "name": f"Linen Shirt {uuid.uuid4().hex[:4]}",
            "description": "Test product",
            "unit_price": Decimal("100000.00"),
            "stock_quantity": 5,
            "is_active": True,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Product(**defaults)


class VoucherFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Voucher, VoucherType

        defaults = {
            "id": _uuid(),
            "code": f"SALE{uuid.uuid4().hex[:6].upper()}",
            "name": "Test voucher",
            "type": VoucherType.FIXED_AMOUNT,
            "value": Decimal("50000.00"),
            "usage_limit": None,
            "used_count": 0,
            "can_stack": False,
            "start_date": _now() - timedelta(days=1),
            "end_date": _now() + timedelta(days=30),
            "is_active": True,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Voucher(**defaults)


class OrderRequestFactory:
    @staticmethod
    def create(lines=(), **overrides):
        """``lines`` is a sequence of (product_id, quantity) pairs."""
        from services.store_service.models import PaymentMethod
        from services.store_service.schemas import OrderCreateRequest, OrderItemRequest

        defaults = {
            "customer_name": "Nguyen Van A",
            "customer_phone": "0901234567",
            "customer_email": "buyer@test.com",
            "shipping_address": "12 Le Loi, District 1, Ho Chi Minh City",
            "payment_method": PaymentMethod.BANK,
            "items": [
                OrderItemRequest(product_id=product_id, quantity=quantity)
                for product_id, quantity in lines
            ],
        }
        defaults.update(overrides)
        return OrderCreateRequest(**defaults)
