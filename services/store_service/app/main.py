"""FastAPI application for the Store Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.store_service.routers import (
    admin_orders_router,
    notifications_router,
    orders_router,
    payos_router,
    vouchers_router,
)
from slowapi.errors import RateLimitExceeded


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="SoNice Store Service",
        version="0.1.0",
        description="Orders, vouchers, payment reconciliation and order notifications.",
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Customer routes
    app.include_router(orders_router)
    app.include_router(notifications_router)

    # Provider webhook
    app.include_router(payos_router)

    # Admin routes
    app.include_router(admin_orders_router)
    app.include_router(vouchers_router)

    return app


app = create_app()
