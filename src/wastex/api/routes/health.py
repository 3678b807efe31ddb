"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from wastex import __version__
from wastex.config import get_settings
from wastex.infrastructure.database.engine import get_engine
from wastex.infrastructure.redis_client import get_redis
from wastex.logging_config import get_logger
from wastex.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check() -> HealthResponse:
    db_status = "unknown"
    redis_status = "unknown"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    # Redis only guards the sweep lock; its absence degrades, never fails.
    try:
        await get_redis().ping()
        redis_status = "healthy"
    except Exception as exc:
        redis_status = f"unhealthy: {exc}"
        logger.warning("health.redis_check_failed", error=str(exc))

    settings = get_settings()
    overall = "ok" if db_status == "healthy" and redis_status == "healthy" else "degraded"
    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        redis=redis_status,
        ledger_mode=settings.ledger_mode,
        gateway_mode=settings.gateway_mode,
    )
