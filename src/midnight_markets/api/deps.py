"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the marketplace
engine, the idempotency registry and the caller headers. The engine and the
registry live on ``app.state``; they are built once per process by the
lifespan (or handed to ``create_app`` directly in tests).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Header, Request

if TYPE_CHECKING:
    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry
    from midnight_markets.services.marketplace_engine import MarketplaceEngine


def get_engine(request: Request) -> MarketplaceEngine:
    """Provide the process-wide MarketplaceEngine."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Marketplace engine not initialized.")
    return engine


def get_idempotency_registry(request: Request) -> IdempotencyRegistry | None:
    """Provide the Redis idempotency registry, or None when Redis is unavailable."""
    return getattr(request.app.state, "idempotency", None)


def get_caller_identity(
    x_caller_identity: str | None = Header(default=None),
) -> str | None:
    """Acting identity handed over by the wallet/session layer."""
    return x_caller_identity or None


def get_idempotency_key(
    idempotency_key: str | None = Header(default=None),
) -> str | None:
    return idempotency_key or None
