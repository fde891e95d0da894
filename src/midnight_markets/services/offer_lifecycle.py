"""Offer Lifecycle Engine: core business logic for offers and escrow.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Authorization (role resolution)
    - Ledger Store (offer, escrow and payout rows)
    - Event log (audit trail)

Escrow moves exactly twice per offer: in on acceptance, out on release,
refund or claim. Each move is written in the same transaction as the status
change it accompanies.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING

from midnight_markets.config import FOURTEEN_DAYS_SECONDS
from midnight_markets.domain.authorization import require
from midnight_markets.domain.enums import (
    EntityType,
    EventType,
    OfferStatus,
    OperationName,
    PayoutKind,
)
from midnight_markets.domain.exceptions import (
    AlreadyExistsError,
    EntityHiddenError,
    InvalidAmountError,
    NotFoundError,
    TimeoutNotElapsedError,
)
from midnight_markets.domain.fees import compute_fee_split, validate_ledger_amount
from midnight_markets.domain.models import Offer, Payout, utcnow
from midnight_markets.infrastructure.ledger_store import market_key, offer_key
from midnight_markets.logging_config import get_logger
from midnight_markets.services.base import Clock, LedgerService, OperationOutcome

if TYPE_CHECKING:
    from datetime import datetime

    from midnight_markets.domain.models import LedgerEvent
    from midnight_markets.infrastructure.ledger_store import LedgerStore, LedgerTransaction
    from midnight_markets.schemas.operations import (
        AcceptOffer,
        BuyerRefundTimeout,
        CancelOfferBySeller,
        CancelOfferBySheriff,
        PostOffer,
        ReleaseFunds,
        SellerRefundTimeout,
        SubmitProof,
    )

logger = get_logger(__name__)


def _offer_data(offer: Offer, **extra: object) -> dict:
    return {"offerId": offer.id, "marketId": offer.market_id, "status": offer.status.value, **extra}


class OfferLifecycleService(LedgerService):
    """Manages the offer lifecycle from posting to settlement."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock = utcnow,
        timeout: timedelta = timedelta(seconds=FOURTEEN_DAYS_SECONDS),
    ) -> None:
        super().__init__(store, clock)
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    async def post_offer(self, request: PostOffer) -> OperationOutcome:
        """Create an Open offer in a visible market."""
        operation = OperationName.POST_OFFER
        keys = (offer_key(request.offer_id), market_key(request.market_id))
        async with self._store.transaction(*keys) as tx:
            if await tx.read(EntityType.OFFER, request.offer_id) is not None:
                raise AlreadyExistsError("offer", request.offer_id)
            market = await self._get_market_or_raise(tx, request.market_id)

            if market.hidden:
                raise EntityHiddenError(operation.value, "market", market.id)
            if request.amount <= 0:
                raise InvalidAmountError(f"Offer amount must be positive, got {request.amount}")
            validate_ledger_amount(request.amount, "Offer amount")

            offer = Offer(
                id=request.offer_id,
                market_id=market.id,
                seller_id=request.seller_id,
                amount=request.amount,
                details_hash=request.details_hash,
                created_at=self._clock(),
            )
            await tx.write(EntityType.OFFER, offer.id, offer)
            event = self._record(
                tx,
                operation,
                request.seller_id,
                event_type=EventType.OFFER_POSTED,
                market_id=market.id,
                offer_id=offer.id,
                new_status=OfferStatus.OPEN,
                data={"amount": offer.amount, "detailsHash": offer.details_hash},
            )

        logger.info(
            "offer.posted",
            offer_id=offer.id,
            market_id=offer.market_id,
            seller_id=offer.seller_id,
            amount=offer.amount,
        )
        return OperationOutcome(
            message=f"Offer {offer.id} posted",
            data=_offer_data(offer, amount=offer.amount),
            events=(event,),
        )

    # ------------------------------------------------------------------
    # Acceptance (escrow in)
    # ------------------------------------------------------------------

    async def accept_offer(self, request: AcceptOffer) -> OperationOutcome:
        """Buyer deposits exactly the offer amount into the market's escrow."""
        operation = OperationName.ACCEPT_OFFER
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            if offer.market_id != request.market_id:
                raise NotFoundError(
                    "offer",
                    offer.id,
                    message=f"Offer {offer.id} not found in market {request.market_id}",
                )
            market = await self._get_market_or_raise(tx, offer.market_id)

            if offer.hidden:
                raise EntityHiddenError(operation.value, "offer", offer.id)
            if market.hidden:
                raise EntityHiddenError(operation.value, "market", market.id)
            new_status = self._transition(operation, offer, "accept")
            if request.deposited_amount != offer.amount:
                raise InvalidAmountError(
                    f"Deposit {request.deposited_amount} does not match "
                    f"offer amount {offer.amount}"
                )

            updated = replace(
                offer,
                status=new_status,
                buyer_id=request.buyer_id,
                accepted_at=self._clock(),
            )
            await tx.write(EntityType.OFFER, offer.id, updated)
            escrow = await self._credit_escrow(tx, market.id, offer.amount)
            event = self._record(
                tx,
                operation,
                request.buyer_id,
                event_type=EventType.OFFER_ACCEPTED,
                market_id=market.id,
                offer_id=offer.id,
                old_status=offer.status,
                new_status=new_status,
                data={"depositedAmount": request.deposited_amount},
            )

        logger.info(
            "offer.accepted",
            offer_id=offer.id,
            buyer_id=request.buyer_id,
            amount=offer.amount,
            escrow_balance=escrow.balance,
        )
        return OperationOutcome(
            message=f"Offer {offer.id} accepted",
            data=_offer_data(updated, buyerId=request.buyer_id, escrowBalance=escrow.balance),
            events=(event,),
        )

    # ------------------------------------------------------------------
    # Delivery proof
    # ------------------------------------------------------------------

    async def submit_proof(self, request: SubmitProof) -> OperationOutcome:
        operation = OperationName.SUBMIT_PROOF
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            platform = await self._platform(tx)
            require(operation, request.seller_id, platform=platform, offer=offer)

            new_status = self._transition(operation, offer, "submit_proof")
            updated = replace(
                offer,
                status=new_status,
                proof_hash=request.proof_hash,
                proof_submitted_at=self._clock(),
            )
            await tx.write(EntityType.OFFER, offer.id, updated)
            event = self._record(
                tx,
                operation,
                request.seller_id,
                event_type=EventType.PROOF_SUBMITTED,
                market_id=offer.market_id,
                offer_id=offer.id,
                old_status=offer.status,
                new_status=new_status,
                data={"proofHash": request.proof_hash},
            )

        logger.info("offer.proof_submitted", offer_id=offer.id, proof_hash=request.proof_hash)
        return OperationOutcome(
            message=f"Proof submitted for offer {offer.id}",
            data=_offer_data(updated, proofHash=request.proof_hash),
            events=(event,),
        )

    # ------------------------------------------------------------------
    # Settlement (escrow out)
    # ------------------------------------------------------------------

    async def release_funds(self, request: ReleaseFunds) -> OperationOutcome:
        """Sheriff releases escrow: fees to sheriff and platform, the rest to the seller."""
        operation = OperationName.RELEASE_FUNDS
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

            if offer.hidden:
                raise EntityHiddenError(operation.value, "offer", offer.id)
            new_status = self._transition(operation, offer, "release")
            split = compute_fee_split(
                offer.amount, market.sheriff_fee_bps, platform.platform_fee_bps
            )
            escrow = await self._debit_escrow(tx, operation, market.id, offer.amount)

            updated = replace(offer, status=new_status, closed_at=self._clock())
            await tx.write(EntityType.OFFER, offer.id, updated)
            await self._pay(tx, offer, offer.seller_id, split.seller_net, PayoutKind.SELLER)
            await self._pay(tx, offer, market.sheriff_id, split.sheriff_fee, PayoutKind.SHERIFF_FEE)
            await self._pay(
                tx, offer, platform.owner_id, split.platform_fee, PayoutKind.PLATFORM_FEE
            )
            split_data = {
                "amount": split.amount,
                "sheriffFee": split.sheriff_fee,
                "platformFee": split.platform_fee,
                "sellerNet": split.seller_net,
            }
            event = self._record(
                tx,
                operation,
                request.sheriff_id,
                event_type=EventType.FUNDS_RELEASED,
                market_id=market.id,
                offer_id=offer.id,
                old_status=offer.status,
                new_status=new_status,
                data=split_data,
            )

        logger.info(
            "escrow.released",
            offer_id=offer.id,
            market_id=market.id,
            sheriff_fee=split.sheriff_fee,
            platform_fee=split.platform_fee,
            seller_net=split.seller_net,
            escrow_balance=escrow.balance,
        )
        return OperationOutcome(
            message=f"Funds released for offer {offer.id}",
            data=_offer_data(updated, escrowBalance=escrow.balance, **split_data),
            events=(event,),
        )

    # ------------------------------------------------------------------
    # Cancellation (Open only)
    # ------------------------------------------------------------------

    async def cancel_by_sheriff(self, request: CancelOfferBySheriff) -> OperationOutcome:
        operation = OperationName.CANCEL_OFFER_BY_SHERIFF
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
            updated, event = await self._cancel(tx, operation, offer, request.sheriff_id, "sheriff")

        logger.info("offer.cancelled", offer_id=offer.id, cancelled_by="sheriff")
        return OperationOutcome(
            message=f"Offer {offer.id} cancelled by sheriff",
            data=_offer_data(updated, cancelledBy="sheriff"),
            events=(event,),
        )

    async def cancel_by_seller(self, request: CancelOfferBySeller) -> OperationOutcome:
        operation = OperationName.CANCEL_OFFER_BY_SELLER
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            platform = await self._platform(tx)
            require(operation, request.seller_id, platform=platform, offer=offer)
            updated, event = await self._cancel(tx, operation, offer, request.seller_id, "seller")

        logger.info("offer.cancelled", offer_id=offer.id, cancelled_by="seller")
        return OperationOutcome(
            message=f"Offer {offer.id} cancelled by seller",
            data=_offer_data(updated, cancelledBy="seller"),
            events=(event,),
        )

    async def _cancel(
        self,
        tx: LedgerTransaction,
        operation: OperationName,
        offer: Offer,
        actor: str,
        cancelled_by: str,
    ) -> tuple[Offer, LedgerEvent]:
        new_status = self._transition(operation, offer, "cancel")
        updated = replace(offer, status=new_status, closed_at=self._clock())
        await tx.write(EntityType.OFFER, offer.id, updated)
        event = self._record(
            tx,
            operation,
            actor,
            event_type=EventType.OFFER_CANCELLED,
            market_id=offer.market_id,
            offer_id=offer.id,
            old_status=offer.status,
            new_status=new_status,
            data={"cancelledBy": cancelled_by},
        )
        return updated, event

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    async def buyer_refund_timeout(self, request: BuyerRefundTimeout) -> OperationOutcome:
        """Buyer reclaims the deposit when no proof arrived within the timeout."""
        operation = OperationName.BUYER_REFUND_TIMEOUT
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            platform = await self._platform(tx)
            require(operation, request.buyer_id, platform=platform, offer=offer)

            new_status = self._transition(operation, offer, "buyer_refund_timeout")
            self._check_deadline(operation, offer, offer.accepted_at or offer.created_at)
            escrow = await self._debit_escrow(tx, operation, offer.market_id, offer.amount)

            updated = replace(offer, status=new_status, closed_at=self._clock())
            await tx.write(EntityType.OFFER, offer.id, updated)
            await self._pay(tx, offer, request.buyer_id, offer.amount, PayoutKind.BUYER_REFUND)
            event = self._record(
                tx,
                operation,
                request.buyer_id,
                event_type=EventType.BUYER_REFUNDED,
                market_id=offer.market_id,
                offer_id=offer.id,
                old_status=offer.status,
                new_status=new_status,
                data={"refund": offer.amount},
            )

        logger.info(
            "escrow.refunded",
            offer_id=offer.id,
            buyer_id=request.buyer_id,
            amount=offer.amount,
            escrow_balance=escrow.balance,
        )
        return OperationOutcome(
            message=f"Offer {offer.id} refunded to buyer after timeout",
            data=_offer_data(updated, refund=offer.amount, escrowBalance=escrow.balance),
            events=(event,),
        )

    async def seller_refund_timeout(self, request: SellerRefundTimeout) -> OperationOutcome:
        """Seller claims the full amount when the sheriff did not release in time."""
        operation = OperationName.SELLER_REFUND_TIMEOUT
        async with self._offer_transaction(request.offer_id) as tx:
            offer = await self._get_offer_or_raise(tx, request.offer_id)
            platform = await self._platform(tx)
            require(operation, request.seller_id, platform=platform, offer=offer)

            new_status = self._transition(operation, offer, "seller_claim_timeout")
            self._check_deadline(
                operation, offer, offer.proof_submitted_at or offer.accepted_at or offer.created_at
            )
            escrow = await self._debit_escrow(tx, operation, offer.market_id, offer.amount)

            updated = replace(offer, status=new_status, closed_at=self._clock())
            await tx.write(EntityType.OFFER, offer.id, updated)
            await self._pay(tx, offer, offer.seller_id, offer.amount, PayoutKind.SELLER)
            event = self._record(
                tx,
                operation,
                request.seller_id,
                event_type=EventType.SELLER_CLAIMED,
                market_id=offer.market_id,
                offer_id=offer.id,
                old_status=offer.status,
                new_status=new_status,
                data={"sellerNet": offer.amount},
            )

        logger.info(
            "escrow.claimed",
            offer_id=offer.id,
            seller_id=offer.seller_id,
            amount=offer.amount,
            escrow_balance=escrow.balance,
        )
        return OperationOutcome(
            message=f"Offer {offer.id} claimed by seller after timeout",
            data=_offer_data(updated, sellerNet=offer.amount, escrowBalance=escrow.balance),
            events=(event,),
        )

    def _check_deadline(self, operation: OperationName, offer: Offer, since: datetime) -> None:
        deadline = since + self._timeout
        if self._clock() < deadline:
            raise TimeoutNotElapsedError(operation.value, offer.status.value, deadline.isoformat())

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    async def _pay(
        self,
        tx: LedgerTransaction,
        offer: Offer,
        recipient: str,
        amount: int,
        kind: PayoutKind,
    ) -> None:
        if amount <= 0:
            return
        payout = Payout(
            offer_id=offer.id,
            market_id=offer.market_id,
            recipient=recipient,
            amount=amount,
            kind=kind,
        )
        await tx.write(EntityType.PAYOUT, payout.key, payout)
