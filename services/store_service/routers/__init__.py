"""Store service routers package."""

from services.store_service.routers.admin_orders import router as admin_orders_router
from services.store_service.routers.notifications import router as notifications_router
from services.store_service.routers.orders import router as orders_router
from services.store_service.routers.payos import router as payos_router
from services.store_service.routers.vouchers import router as vouchers_router

__all__ = [
    "admin_orders_router",
    "notifications_router",
    "orders_router",
    "payos_router",
    "vouchers_router",
]
