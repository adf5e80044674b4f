"""
Order API main application.
Entry point for the FastAPI server.
"""

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.config.settings import settings
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from qrdine_api.core import configure_cors, lifespan, register_middlewares
from qrdine_api.routers import cart_router, health_router, orders_router, payments_router


app = FastAPI(
    title="QR Dine Order API",
    description="Dine-in ordering, kitchen workflow and payment reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

configure_cors(app)
register_middlewares(app)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(orders_router)
app.include_router(cart_router)
app.include_router(payments_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qrdine_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
