"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.logging import api_logger as logger, setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, engine
from shared.infrastructure.events import close_redis_pool
from qrdine_api.models import Base
from qrdine_api.services.domain import CartService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: logging, configuration checks, schema, expired cart purge.
    Shutdown: Redis pool.
    """
    setup_logging()

    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        logger.warning("Running with insecure defaults (acceptable for development only)")

    logger.info("Starting order API", port=settings.api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    with SessionLocal() as db:
        CartService(db).purge_expired()

    yield

    logger.info("Shutting down order API")
    await close_redis_pool()
    logger.info("Redis connection pool closed")
