"""Shared plumbing for the ledger services.

Every service works the same way: open a store transaction over the keys
it mutates, re-read the rows it needs, check preconditions in a fixed order
(existence, authorization, visibility, lifecycle state, amounts, escrow),
then stage writes and one audit event. Anything raised inside the block
rolls the whole transaction back.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from statemachine.exceptions import TransitionNotAllowed

from midnight_markets.domain.enums import EntityType
from midnight_markets.domain.exceptions import (
    InsufficientEscrowError,
    NotFoundError,
    WrongStateError,
)
from midnight_markets.domain.fees import validate_ledger_amount
from midnight_markets.domain.models import (
    PLATFORM_KEY,
    EscrowBalance,
    LedgerEvent,
    Market,
    Offer,
    PlatformState,
    utcnow,
)
from midnight_markets.domain.state_machine import OfferStateMachine, source_states
from midnight_markets.infrastructure.ledger_store import market_key, offer_key
from midnight_markets.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from midnight_markets.domain.enums import OfferStatus, OperationName
    from midnight_markets.infrastructure.ledger_store import LedgerStore, LedgerTransaction

logger = get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class OperationOutcome:
    """What a successful operation reports back, plus the events it committed."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)
    events: tuple[LedgerEvent, ...] = ()


class LedgerService:
    """Base class holding the store handle and the clock."""

    def __init__(self, store: LedgerStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _offer_transaction(
        self, offer_id: int, *extra_keys: str
    ) -> AsyncIterator[LedgerTransaction]:
        """Transaction locking an offer together with the market it belongs to.

        An offer's market never changes, so the unlocked lookup only picks
        the lock keys; every precondition is re-checked under the locks.
        """
        async with self._store.transaction() as lookup:
            offer = await lookup.read(EntityType.OFFER, offer_id)
        if offer is None:
            raise NotFoundError("offer", offer_id)
        async with self._store.transaction(
            offer_key(offer_id), market_key(offer.market_id), *extra_keys
        ) as tx:
            yield tx

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _platform(self, tx: LedgerTransaction) -> PlatformState:
        platform = await tx.read(EntityType.PLATFORM, PLATFORM_KEY)
        if platform is None:
            raise RuntimeError("Ledger not initialized. Call initialize() first.")
        return platform

    async def _get_market_or_raise(self, tx: LedgerTransaction, market_id: int) -> Market:
        market = await tx.read(EntityType.MARKET, market_id)
        if market is None:
            raise NotFoundError("market", market_id)
        return market

    async def _get_offer_or_raise(self, tx: LedgerTransaction, offer_id: int) -> Offer:
        offer = await tx.read(EntityType.OFFER, offer_id)
        if offer is None:
            raise NotFoundError("offer", offer_id)
        return offer

    async def _escrow(self, tx: LedgerTransaction, market_id: int) -> EscrowBalance:
        escrow = await tx.read(EntityType.ESCROW, market_id)
        return escrow if escrow is not None else EscrowBalance(market_id=market_id)

    # ------------------------------------------------------------------
    # Escrow arithmetic
    # ------------------------------------------------------------------

    async def _credit_escrow(
        self, tx: LedgerTransaction, market_id: int, amount: int
    ) -> EscrowBalance:
        escrow = await self._escrow(tx, market_id)
        validate_ledger_amount(escrow.balance + amount, f"Escrow balance of market {market_id}")
        updated = replace(escrow, balance=escrow.balance + amount)
        await tx.write(EntityType.ESCROW, market_id, updated)
        return updated

    async def _debit_escrow(
        self,
        tx: LedgerTransaction,
        operation: OperationName,
        market_id: int,
        amount: int,
    ) -> EscrowBalance:
        escrow = await self._escrow(tx, market_id)
        if escrow.balance < amount:
            logger.critical(
                "escrow.invariant_breach",
                operation=operation.value,
                market_id=market_id,
                required=amount,
                available=escrow.balance,
            )
            raise InsufficientEscrowError(market_id, amount, escrow.balance)
        updated = replace(escrow, balance=escrow.balance - amount)
        await tx.write(EntityType.ESCROW, market_id, updated)
        return updated

    # ------------------------------------------------------------------
    # Lifecycle guard & audit
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(operation: OperationName, offer: Offer, event: str) -> OfferStatus:
        """Fire a state machine event, translating a refusal into WrongStateError."""
        try:
            return OfferStateMachine(current_status=offer.status.value).fire(event)
        except TransitionNotAllowed:
            expected = [state.value for state in source_states(event)]
            raise WrongStateError(
                operation=operation.value,
                expected=expected[0] if len(expected) == 1 else expected,
                actual=offer.status.value,
            ) from None

    def _record(
        self,
        tx: LedgerTransaction,
        operation: OperationName,
        actor: str,
        **fields: Any,
    ) -> LedgerEvent:
        event = LedgerEvent(
            operation=operation.value,
            actor=actor,
            occurred_at=self._clock(),
            **fields,
        )
        tx.append_event(event)
        return event
