"""Market & Fee Engine.

Markets are created once per id with an immutable sheriff fee rate. The
platform fee is global and owner-controlled. A rate pair whose sum exceeds
100% is rejected here, at creation or fee-update time, so a release can
never compute a negative seller net.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from midnight_markets.domain.authorization import require
from midnight_markets.domain.enums import EntityType, EventType, OperationName
from midnight_markets.domain.exceptions import AlreadyExistsError, InvalidAmountError
from midnight_markets.domain.fees import validate_combined_rate, validate_fee_rate
from midnight_markets.domain.models import PLATFORM_KEY, EscrowBalance, Market
from midnight_markets.infrastructure.ledger_store import PLATFORM_LOCK, market_key
from midnight_markets.logging_config import get_logger
from midnight_markets.services.base import LedgerService, OperationOutcome

if TYPE_CHECKING:
    from midnight_markets.schemas.operations import CreateMarket, SetPlatformFee

logger = get_logger(__name__)


class MarketService(LedgerService):
    """Market creation and fee-rate configuration."""

    async def create_market(self, request: CreateMarket) -> OperationOutcome:
        operation = OperationName.CREATE_MARKET
        # The platform lock keeps the combined-rate check consistent with setPlatformFee.
        async with self._store.transaction(market_key(request.market_id), PLATFORM_LOCK) as tx:
            if await tx.read(EntityType.MARKET, request.market_id) is not None:
                raise AlreadyExistsError("market", request.market_id)

            platform = await self._platform(tx)
            validate_fee_rate(request.sheriff_fee_bps, "Sheriff fee")
            validate_combined_rate(request.sheriff_fee_bps, platform.platform_fee_bps)

            market = Market(
                id=request.market_id,
                sheriff_id=request.sheriff_id,
                name=request.name,
                sheriff_fee_bps=request.sheriff_fee_bps,
            )
            await tx.write(EntityType.MARKET, market.id, market)
            await tx.write(EntityType.ESCROW, market.id, EscrowBalance(market_id=market.id))
            event = self._record(
                tx,
                operation,
                request.sheriff_id,
                event_type=EventType.MARKET_CREATED,
                market_id=market.id,
                data={"name": market.name, "sheriffFeeBps": market.sheriff_fee_bps},
            )

        logger.info(
            "market.created",
            market_id=market.id,
            sheriff_id=market.sheriff_id,
            sheriff_fee_bps=market.sheriff_fee_bps,
        )
        return OperationOutcome(
            message=f"Market {market.id} created",
            data={
                "marketId": market.id,
                "sheriffId": market.sheriff_id,
                "name": market.name,
                "sheriffFeeRate": market.sheriff_fee_bps,
            },
            events=(event,),
        )

    async def set_platform_fee(self, request: SetPlatformFee) -> OperationOutcome:
        operation = OperationName.SET_PLATFORM_FEE
        async with self._store.transaction(PLATFORM_LOCK) as tx:
            platform = await self._platform(tx)
            require(operation, request.caller_id, platform=platform)

            validate_fee_rate(request.new_fee_bps, "Platform fee")
            for market in await tx.scan(EntityType.MARKET):
                try:
                    validate_combined_rate(market.sheriff_fee_bps, request.new_fee_bps)
                except InvalidAmountError as exc:
                    raise InvalidAmountError(f"{exc.message} (market {market.id})") from None

            old_fee = platform.platform_fee_bps
            updated = replace(platform, platform_fee_bps=request.new_fee_bps)
            await tx.write(EntityType.PLATFORM, PLATFORM_KEY, updated)
            event = self._record(
                tx,
                operation,
                request.caller_id,
                event_type=EventType.PLATFORM_FEE_CHANGED,
                data={"oldFeeBps": old_fee, "newFeeBps": request.new_fee_bps},
            )

        logger.info("platform.fee_changed", old_fee_bps=old_fee, new_fee_bps=request.new_fee_bps)
        return OperationOutcome(
            message=f"Platform fee set to {request.new_fee_bps} bps",
            data={"platformFeeRate": request.new_fee_bps, "previousFeeRate": old_fee},
            events=(event,),
        )
