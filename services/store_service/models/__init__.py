"""Store Service models package."""

from services.store_service.models.catalog import Product, UserRef
from services.store_service.models.commerce import (
    ORDER_CODE_PREFIX,
    Order,
    OrderItem,
    Voucher,
    VoucherUsage,
)
from services.store_service.models.enums import (
    ActorRole,
    InventoryMovementType,
    NotificationType,
    OrderStatus,
    PaymentMethod,
    VoucherType,
)
from services.store_service.models.inventory import InventoryMovement
from services.store_service.models.notifications import Notification

__all__ = [
    "ORDER_CODE_PREFIX",
    "ActorRole",
    "InventoryMovement",
    "InventoryMovementType",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "Product",
    "UserRef",
    "Voucher",
    "VoucherType",
    "VoucherUsage",
]
