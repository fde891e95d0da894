"""Health check endpoint.

Verifies that the Ledger Store answers and Redis responds, returns
structured status. Used by Docker healthchecks, load balancers, and
monitoring systems.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from midnight_markets.api.deps import get_engine, get_idempotency_registry
from midnight_markets.logging_config import get_logger
from midnight_markets.schemas.api import HealthResponse

if TYPE_CHECKING:
    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry
    from midnight_markets.services.marketplace_engine import MarketplaceEngine

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(
    engine: MarketplaceEngine = Depends(get_engine),
    registry: IdempotencyRegistry | None = Depends(get_idempotency_registry),
) -> HealthResponse:
    """Check the Ledger Store and Redis."""
    ledger_status = "unknown"
    redis_status = "disabled"

    try:
        await engine.store.snapshot()
        ledger_status = "healthy"
    except (SQLAlchemyError, RuntimeError) as exc:
        ledger_status = f"unhealthy: {exc}"
        logger.error("health.ledger_check_failed", error=str(exc))

    if registry is not None:
        try:
            await registry.ping()
            redis_status = "healthy"
        except RedisError as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    healthy = ledger_status == "healthy" and not redis_status.startswith("unhealthy")
    overall = "ok" if healthy else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        ledger=ledger_status,
        redis=redis_status,
    )
