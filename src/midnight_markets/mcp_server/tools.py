"""MCP Tool definitions for Midnight Markets.

These tools expose the marketplace contract via the Model Context Protocol,
allowing agents to discover and call them programmatically.

Tools:
    - call_operation: Run any contract operation with positional parameters
    - get_state: Read the current ledger snapshot
    - quote_name: Preview a name's hash and registration price

The MCP server is mounted into FastAPI at /mcp via app.mount(). Tools share
the process-wide MarketplaceEngine registered with bind_engine().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from midnight_markets.logging_config import get_logger
from midnight_markets.schemas.results import NameQuoteResponse
from midnight_markets.services.name_pricing import quote_name as compute_quote

if TYPE_CHECKING:
    from midnight_markets.services.marketplace_engine import MarketplaceEngine

logger = get_logger(__name__)

# Initialize the MCP server
# This will be mounted into the FastAPI app in main.py
mcp = FastMCP(
    "Midnight Markets",
    json_response=True,
)

_engine: MarketplaceEngine | None = None


def bind_engine(engine: MarketplaceEngine | None) -> None:
    """Register the engine the tools operate on (None unbinds it)."""
    global _engine
    _engine = engine


def _get_engine() -> MarketplaceEngine:
    if _engine is None:
        raise RuntimeError("Marketplace engine not bound. Call bind_engine() first.")
    return _engine


@mcp.tool()
async def call_operation(
    name: str,
    params: list[Any],
    caller: str | None = None,
) -> dict:
    """Run a marketplace contract operation.

    Args:
        name: Operation name, e.g. 'createMarket', 'postOffer', 'acceptOffer',
            'submitProof', 'releaseFunds', 'setPlatformFee', 'cancelOfferBySheriff',
            'cancelOfferBySeller', 'setMarketHidden', 'setOfferHidden',
            'setOfferHiddenBySheriff', 'buyerRefundTimeout', 'sellerRefundTimeout',
            'registerName'.
        params: Ordered parameter list, e.g. [1, "sheriffA", "Electronics", 100]
            for createMarket(marketId, sheriffId, name, sheriffFeeBps).
        caller: Your identity. When given, it must match the identity the
            operation acts as.

    Returns:
        {"success": bool, "message": str, "data": {...}}. On failure data.error
        holds the error code (NOT_FOUND, UNAUTHORIZED, WRONG_STATE, ...).
    """
    result = await _get_engine().call_operation(name, params, caller=caller)
    logger.info("mcp.call_operation", operation=name, success=result.success)
    return result.model_dump(mode="json")


@mcp.tool()
async def get_state() -> dict:
    """Get the current marketplace state.

    Returns:
        ownerId, platformFeeRate, markets, offers, escrowBalances,
        nameRegistry and payouts.
    """
    snapshot = await _get_engine().get_state()
    return snapshot.model_dump(mode="json", by_alias=True)


@mcp.tool()
async def quote_name(name: str) -> dict:
    """Preview the hash and registration price of a market or sheriff name.

    Args:
        name: The human-readable name.

    Returns:
        {"name", "nameHash", "price"}. Pass nameHash and price to registerName.
    """
    try:
        quote = compute_quote(name)
    except ValueError as exc:
        return {"error": str(exc)}
    return NameQuoteResponse.model_validate(quote).model_dump(by_alias=True)
