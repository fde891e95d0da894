"""Marketplace operation REST API routes.

These endpoints are the HTTP face of ``callOperation`` and ``getState``.
The MCP tools in mcp_server/tools.py call the same engine, ensuring
consistency.

Routes:
    POST   /api/v1/operations/{name}    Run an operation with positional params
    POST   /api/v1/operations           Run a typed operation (body carries "operation")
    GET    /api/v1/state                Point-in-time ledger snapshot
    GET    /api/v1/events               Audit trail
    GET    /api/v1/names/quote          Name hash and price preview

Every operation response body is an OperationResult. The status code is
derived from its error code (see api/middleware.py).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, Depends, Query
from redis.exceptions import RedisError

from midnight_markets.api.deps import (
    get_caller_identity,
    get_engine,
    get_idempotency_key,
    get_idempotency_registry,
)
from midnight_markets.api.middleware import result_response
from midnight_markets.domain.exceptions import DuplicateOperationError, MarketplaceError
from midnight_markets.logging_config import get_logger
from midnight_markets.schemas.api import PositionalOperationRequest
from midnight_markets.schemas.operations import validate_request
from midnight_markets.schemas.results import (
    LedgerEventView,
    NameQuoteResponse,
    OperationResult,
    StateSnapshot,
)
from midnight_markets.services.name_pricing import quote_name

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse

    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry
    from midnight_markets.services.marketplace_engine import MarketplaceEngine

router = APIRouter(prefix="/api/v1", tags=["Operations"])
logger = get_logger(__name__)


async def _run_once(
    action: Callable[[], Awaitable[OperationResult]],
    idempotency_key: str | None,
    registry: IdempotencyRegistry | None,
) -> JSONResponse:
    """Run a mutation at most once per Idempotency-Key.

    A failed operation applied nothing, so its key is released for retry.
    """
    claimed = False
    if idempotency_key and registry is not None:
        try:
            if not await registry.claim(idempotency_key):
                raise DuplicateOperationError(idempotency_key)
            claimed = True
        except RedisError as exc:
            logger.warning("idempotency.unavailable", error=str(exc))

    result = await action()

    if claimed and not result.success:
        try:
            await registry.release(idempotency_key)
        except RedisError as exc:
            logger.warning("idempotency.release_failed", error=str(exc))
    return result_response(result)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@router.post(
    "/operations/{name}",
    response_model=OperationResult,
    summary="Run a named operation with positional parameters",
)
async def call_operation(
    name: str,
    request: PositionalOperationRequest,
    engine: MarketplaceEngine = Depends(get_engine),
    caller: str | None = Depends(get_caller_identity),
    idempotency_key: str | None = Depends(get_idempotency_key),
    registry: IdempotencyRegistry | None = Depends(get_idempotency_registry),
) -> JSONResponse:
    """Equivalent of ``callOperation(name, params)``."""
    acting = caller or request.caller
    return await _run_once(
        lambda: engine.call_operation(name, request.params, caller=acting),
        idempotency_key,
        registry,
    )


@router.post(
    "/operations",
    response_model=OperationResult,
    summary="Run a typed operation",
)
async def execute_operation(
    payload: dict[str, Any] = Body(
        ...,
        examples=[
            {
                "operation": "releaseFunds",
                "offerId": 101,
                "sheriffId": "sheriffA",
                "marketId": 1,
            }
        ],
    ),
    engine: MarketplaceEngine = Depends(get_engine),
    caller: str | None = Depends(get_caller_identity),
    idempotency_key: str | None = Depends(get_idempotency_key),
    registry: IdempotencyRegistry | None = Depends(get_idempotency_registry),
) -> JSONResponse:
    """Body is one member of the operation union, tagged by ``operation``."""

    async def action() -> OperationResult:
        try:
            operation = validate_request(payload)
        except MarketplaceError as exc:
            return OperationResult.failure(exc)
        return await engine.execute(operation, caller=caller)

    return await _run_once(action, idempotency_key, registry)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get(
    "/state",
    response_model=StateSnapshot,
    summary="Ledger snapshot",
)
async def get_state(engine: MarketplaceEngine = Depends(get_engine)) -> StateSnapshot:
    """Read-only copy of platform, markets, offers, escrow, names and payouts."""
    return await engine.get_state()


@router.get(
    "/events",
    response_model=list[LedgerEventView],
    summary="Audit trail",
)
async def list_events(
    offer_id: int | None = Query(default=None, alias="offerId"),
    market_id: int | None = Query(default=None, alias="marketId"),
    engine: MarketplaceEngine = Depends(get_engine),
) -> list[LedgerEventView]:
    """Committed ledger events, oldest first."""
    events = await engine.events(offer_id=offer_id, market_id=market_id)
    return [LedgerEventView.model_validate(event) for event in events]


@router.get(
    "/names/quote",
    response_model=NameQuoteResponse,
    summary="Preview a name's hash and price",
)
async def quote(name: str = Query(..., min_length=1, max_length=256)) -> NameQuoteResponse:
    """Deterministic hash and tiered price for a market/sheriff name."""
    return NameQuoteResponse.model_validate(quote_name(name))
