"""Marketplace Engine: the single entry point for every operation.

Both REST routes and MCP tools call into this engine, ensuring a single
source of truth for dispatch, error reporting and change notification:

    engine = await MarketplaceEngine.create(settings)
    result = await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])
    state = await engine.get_state()

Domain errors never cross this boundary. They come back as
``OperationResult(success=False, data={"error": CODE, ...})``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, assert_never

from midnight_markets.config import Settings, get_settings
from midnight_markets.domain.exceptions import MarketplaceError, UnauthorizedError
from midnight_markets.domain.models import PlatformState, utcnow
from midnight_markets.infrastructure.ledger_store import InMemoryLedgerStore
from midnight_markets.logging_config import get_logger, operation_context
from midnight_markets.schemas.operations import (
    AcceptOffer,
    BuyerRefundTimeout,
    CancelOfferBySeller,
    CancelOfferBySheriff,
    CreateMarket,
    PostOffer,
    RegisterName,
    ReleaseFunds,
    SellerRefundTimeout,
    SetMarketHidden,
    SetOfferHidden,
    SetOfferHiddenBySheriff,
    SetPlatformFee,
    SubmitProof,
    parse_operation,
    validate_request,
)
from midnight_markets.schemas.results import OperationResult, StateSnapshot
from midnight_markets.services.base import Clock, OperationOutcome
from midnight_markets.services.change_feed import ChangeFeed
from midnight_markets.services.markets import MarketService
from midnight_markets.services.moderation import ModerationService
from midnight_markets.services.naming import NamingService
from midnight_markets.services.offer_lifecycle import OfferLifecycleService

if TYPE_CHECKING:
    import asyncio

    from midnight_markets.domain.models import LedgerEvent
    from midnight_markets.infrastructure.ledger_store import LedgerStore
    from midnight_markets.schemas.operations import OperationRequest

logger = get_logger(__name__)


def build_ledger_store(settings: Settings) -> LedgerStore:
    """Construct the configured Ledger Store backend."""
    if settings.ledger_backend == "sql":
        from midnight_markets.infrastructure.database.sql_store import SqlLedgerStore

        return SqlLedgerStore(settings.database_url, echo=settings.db_echo_sql)
    return InMemoryLedgerStore()


class MarketplaceEngine:
    """Dispatches operations to the component services over one injected store."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._feed = ChangeFeed(maxsize=self._settings.change_feed_queue_size)
        self.markets = MarketService(store, clock)
        self.offers = OfferLifecycleService(store, clock, timeout=self._settings.offer_timeout)
        self.moderation = ModerationService(store, clock)
        self.naming = NamingService(store, clock)

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        store: LedgerStore | None = None,
        clock: Clock = utcnow,
    ) -> MarketplaceEngine:
        """Build the store from settings (unless given) and run genesis."""
        settings = settings or get_settings()
        engine = cls(store or build_ledger_store(settings), settings=settings, clock=clock)
        await engine.initialize()
        return engine

    @property
    def store(self) -> LedgerStore:
        return self._store

    async def initialize(self) -> PlatformState:
        genesis = PlatformState(
            owner_id=self._settings.platform_owner_id,
            platform_fee_bps=self._settings.platform_fee_bps,
        )
        return await self._store.initialize(genesis)

    async def close(self) -> None:
        await self._store.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def call_operation(
        self,
        name: str,
        params: list[Any] | tuple[Any, ...] | Mapping[str, Any] | None = None,
        caller: str | int | None = None,
    ) -> OperationResult:
        """Run an operation given by name with positional (or keyword) parameters."""
        try:
            if isinstance(params, Mapping):
                request = validate_request({**params, "operation": name})
            else:
                request = parse_operation(name, [] if params is None else params)
        except MarketplaceError as exc:
            return self._reject(exc, str(name))
        return await self.execute(request, caller=caller)

    async def execute(
        self,
        request: OperationRequest,
        caller: str | int | None = None,
    ) -> OperationResult:
        """Run a typed operation request.

        Args:
            request: A member of the OperationRequest union.
            caller: Identity supplied by the wallet/session collaborator. When
                present it must match the identity the request acts as.
        """
        with operation_context(request.operation, request.actor):
            try:
                if caller is not None and str(caller) != request.actor:
                    raise UnauthorizedError(
                        request.operation,
                        str(caller),
                        f"caller does not match declared identity {request.actor}",
                    )
                outcome = await self._dispatch(request)
            except MarketplaceError as exc:
                return self._reject(exc, request.operation)
            except Exception:
                logger.exception("operation.failed")
                return OperationResult(
                    success=False,
                    message=f"Internal error while running {request.operation}",
                    data={"error": "INTERNAL_ERROR"},
                )

        self._feed.publish(outcome.events)
        return OperationResult.ok(outcome.message, outcome.data)

    async def _dispatch(self, request: OperationRequest) -> OperationOutcome:
        match request:
            case CreateMarket():
                return await self.markets.create_market(request)
            case SetPlatformFee():
                return await self.markets.set_platform_fee(request)
            case PostOffer():
                return await self.offers.post_offer(request)
            case AcceptOffer():
                return await self.offers.accept_offer(request)
            case SubmitProof():
                return await self.offers.submit_proof(request)
            case ReleaseFunds():
                return await self.offers.release_funds(request)
            case CancelOfferBySheriff():
                return await self.offers.cancel_by_sheriff(request)
            case CancelOfferBySeller():
                return await self.offers.cancel_by_seller(request)
            case BuyerRefundTimeout():
                return await self.offers.buyer_refund_timeout(request)
            case SellerRefundTimeout():
                return await self.offers.seller_refund_timeout(request)
            case SetMarketHidden():
                return await self.moderation.set_market_hidden(request)
            case SetOfferHidden():
                return await self.moderation.set_offer_hidden(request)
            case SetOfferHiddenBySheriff():
                return await self.moderation.set_offer_hidden_by_sheriff(request)
            case RegisterName():
                return await self.naming.register_name(request)
            case _:
                assert_never(request)

    @staticmethod
    def _reject(error: MarketplaceError, operation: str) -> OperationResult:
        logger.warning(
            "operation.rejected",
            operation=operation,
            code=error.code,
            reason=error.message,
        )
        return OperationResult.failure(error)

    # ------------------------------------------------------------------
    # Reads & notifications
    # ------------------------------------------------------------------

    async def get_state(self) -> StateSnapshot:
        return StateSnapshot.from_ledger(await self._store.snapshot())

    async def events(
        self,
        offer_id: int | None = None,
        market_id: int | None = None,
    ) -> list[LedgerEvent]:
        return await self._store.events(offer_id=offer_id, market_id=market_id)

    def subscribe(self) -> asyncio.Queue[LedgerEvent]:
        return self._feed.subscribe()

    def unsubscribe(self, queue: asyncio.Queue[LedgerEvent]) -> None:
        self._feed.unsubscribe(queue)
