"""FastAPI application entry point for Midnight Markets.

Lifecycle:
    1. Startup: Initialize logging, build the Ledger Store and engine, connect Redis.
    2. Running: Serve REST API + MCP tools on a single Uvicorn process.
    3. Shutdown: Close the Ledger Store and Redis connections gracefully.

The MCP server is mounted at /mcp so agents can discover tools alongside
the REST API at /api/v1/*.

Run with:
    uvicorn midnight_markets.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from midnight_markets.config import get_settings
from midnight_markets.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry
    from midnight_markets.services.marketplace_engine import MarketplaceEngine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=settings.json_logs,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        ledger_backend=settings.ledger_backend,
    )

    # 2. Build the engine over the configured Ledger Store
    from midnight_markets.mcp_server.tools import bind_engine
    from midnight_markets.services.marketplace_engine import MarketplaceEngine

    owns_engine = getattr(app.state, "engine", None) is None
    if owns_engine:
        app.state.engine = await MarketplaceEngine.create(settings)
    bind_engine(app.state.engine)

    # 3. Connect Redis for idempotency keys
    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry

    owns_registry = getattr(app.state, "idempotency", None) is None
    if owns_registry:
        try:
            app.state.idempotency = await IdempotencyRegistry.connect(
                settings.redis_url,
                ttl_seconds=settings.redis_idempotency_ttl_seconds,
            )
        except (RedisError, OSError) as exc:
            logger.warning("app.redis_unavailable", error=str(exc))
            app.state.idempotency = None

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    bind_engine(None)
    if owns_engine:
        await app.state.engine.close()
    if owns_registry and app.state.idempotency is not None:
        await app.state.idempotency.close()
    logger.info("app.stopped")


def create_app(
    engine: MarketplaceEngine | None = None,
    idempotency: IdempotencyRegistry | None = None,
) -> FastAPI:
    """Application factory: creates and configures the FastAPI app.

    Args:
        engine: A ready MarketplaceEngine. When omitted the lifespan builds
            one from settings.
        idempotency: A ready IdempotencyRegistry. When omitted the lifespan
            connects to the configured Redis.
    """
    settings = get_settings()

    app = FastAPI(
        title="Midnight Markets",
        description="Escrow and moderation engine for a peer-to-peer marketplace.",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.engine = engine
    app.state.idempotency = idempotency

    # --- Middleware ---
    from midnight_markets.api.middleware import setup_middleware

    setup_middleware(app, settings)

    # --- REST API Routes ---
    from midnight_markets.api.routes.health import router as health_router
    from midnight_markets.api.routes.operations import router as operations_router

    app.include_router(health_router)
    app.include_router(operations_router)

    # --- MCP Server (mounted as sub-application) ---
    from midnight_markets.mcp_server.tools import bind_engine, mcp

    if engine is not None:
        bind_engine(engine)
    app.mount("/mcp", mcp.sse_app())

    return app


# The app instance used by Uvicorn
app = create_app()
