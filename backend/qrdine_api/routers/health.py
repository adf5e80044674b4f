"""
Health check router.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from shared.config.logging import api_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.infrastructure.events import events_breaker, get_redis_client
from shared.utils.schemas import HealthResponse
from qrdine_api.services.payments import get_breaker_stats


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check(response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """
    Verify PostgreSQL and Redis connectivity.

    Returns 503 with status=degraded when either dependency is down, plus the
    state of the payment and event circuit breakers.
    """
    healthy = True

    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error("Health check: database unreachable", error=str(e))
        database = "unreachable"
        healthy = False

    try:
        redis = await get_redis_client()
        await redis.ping()
        redis_status = "ok"
    except Exception as e:
        logger.error("Health check: redis unreachable", error=str(e))
        redis_status = "unreachable"
        healthy = False

    breakers = get_breaker_stats()
    breakers["redis_events"] = events_breaker.get_stats()

    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="ok" if healthy else "degraded",
        environment=settings.environment,
        database=database,
        redis=redis_status,
        circuit_breakers=breakers,
    )
