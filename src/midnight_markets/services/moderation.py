"""Moderation Layer.

Hiding is a reversible visibility flag. It never touches status, amounts or
escrow; hidden markets reject new offers and hidden offers reject accept and
release until they are unhidden.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from midnight_markets.domain.authorization import require
from midnight_markets.domain.enums import EntityType, EventType, OperationName
from midnight_markets.infrastructure.ledger_store import market_key
from midnight_markets.logging_config import get_logger
from midnight_markets.services.base import LedgerService, OperationOutcome

if TYPE_CHECKING:
    from midnight_markets.domain.models import LedgerEvent, Offer
    from midnight_markets.infrastructure.ledger_store import LedgerTransaction
    from midnight_markets.schemas.operations import (
        SetMarketHidden,
        SetOfferHidden,
        SetOfferHiddenBySheriff,
    )

logger = get_logger(__name__)


class ModerationService(LedgerService):
    """Owner and sheriff visibility controls."""

    async def set_market_hidden(self, request: SetMarketHidden) -> OperationOutcome:
        operation = OperationName.SET_MARKET_HIDDEN
        async with self._store.transaction(market_key(request.market_id)) as tx:
            market = await self._get_market_or_raise(tx, request.market_id)
            platform = await self._platform(tx)
            require(operation, request.caller_id, platform=platform, market=market)

            await tx.write(EntityType.MARKET, market.id, replace(market, hidden=request.hidden))
            event = self._record(
                tx,
                operation,
                request.caller_id,
                event_type=EventType.MARKET_VISIBILITY_CHANGED,
                market_id=market.id,
                data={"hidden": request.hidden, "previous": market.hidden},
            )

        logger.info("market.visibility_changed", market_id=market.id, hidden=request.hidden)
        return OperationOutcome(
            message=f"Market {market.id} {'hidden' if request.hidden else 'unhidden'}",
            data={"marketId": market.id, "hidden": request.hidden},
            events=(event,),
        )

    async def set_offer_hidden(self, request: SetOfferHidden) -> OperationOutcome:
        operation = OperationName.SET_OFFER_HIDDEN
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            platform = await self._platform(tx)
            require(operation, request.caller_id, platform=platform, offer=offer)
            event = await self._apply(tx, operation, offer, request.hidden, request.caller_id)

        return self._offer_outcome(offer, request.hidden, event)

    async def set_offer_hidden_by_sheriff(
        self, request: SetOfferHiddenBySheriff
    ) -> OperationOutcome:
        operation = OperationName.SET_OFFER_HIDDEN_BY_SHERIFF
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            market = await self._get_market_or_raise(tx, offer.market_id)
            platform = await self._platform(tx)
            require(
                operation,
                request.sheriff_id,
                platform=platform,
                market=market,
                offer=offer,
                declared_market_id=request.market_id,
            )
            event = await self._apply(tx, operation, offer, request.hidden, request.sheriff_id)

        return self._offer_outcome(offer, request.hidden, event)

    async def _apply(
        self,
        tx: LedgerTransaction,
        operation: OperationName,
        offer: Offer,
        hidden: bool,
        actor: str,
    ) -> LedgerEvent:
        await tx.write(EntityType.OFFER, offer.id, replace(offer, hidden=hidden))
        event = self._record(
            tx,
            operation,
            actor,
            event_type=EventType.OFFER_VISIBILITY_CHANGED,
            market_id=offer.market_id,
            offer_id=offer.id,
            data={"hidden": hidden, "previous": offer.hidden},
        )
        logger.info(
            "offer.visibility_changed",
            offer_id=offer.id,
            market_id=offer.market_id,
            hidden=hidden,
            by=operation.value,
        )
        return event

    @staticmethod
    def _offer_outcome(offer: Offer, hidden: bool, event: LedgerEvent) -> OperationOutcome:
        return OperationOutcome(
            message=f"Offer {offer.id} {'hidden' if hidden else 'unhidden'}",
            data={
                "offerId": offer.id,
                "marketId": offer.market_id,
                "hidden": hidden,
                "status": offer.status.value,
            },
            events=(event,),
        )
