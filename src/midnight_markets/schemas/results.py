"""Response schemas: the operation result envelope and the state snapshot.

Snapshot views serialize with camelCase aliases (``ownerId``,
``platformFeeRate``) and are built straight from the ledger dataclasses.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from midnight_markets.domain.enums import EventType, OfferStatus, PayoutKind

if TYPE_CHECKING:
    from midnight_markets.domain.exceptions import MarketplaceError
    from midnight_markets.domain.models import LedgerSnapshot


class OperationResult(BaseModel):
    """Result of a single callOperation."""

    success: bool
    message: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, message: str, data: dict[str, Any] | None = None) -> OperationResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: MarketplaceError) -> OperationResult:
        return cls(
            success=False,
            message=error.message,
            data={"error": error.code, **error.details},
        )

    @property
    def error_code(self) -> str | None:
        if self.success or not self.data:
            return None
        return self.data.get("error")


class _View(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )


class MarketView(_View):
    id: int
    sheriff_id: str
    name: str
    sheriff_fee_rate: int = Field(validation_alias="sheriff_fee_bps")
    hidden: bool


class OfferView(_View):
    id: int
    market_id: int
    seller_id: str
    buyer_id: str | None
    amount: int
    details_hash: str
    proof_hash: str | None
    status: OfferStatus
    hidden: bool
    created_at: datetime
    accepted_at: datetime | None
    proof_submitted_at: datetime | None
    closed_at: datetime | None


class EscrowBalanceView(_View):
    market_id: int
    balance: int


class NameRegistrationView(_View):
    name_hash: str
    owner_token: str
    price: int
    registered_at: datetime


class PayoutView(_View):
    offer_id: int
    market_id: int
    recipient: str
    amount: int
    kind: PayoutKind


class LedgerEventView(_View):
    event_id: str
    event_type: EventType
    operation: str
    actor: str
    market_id: int | None
    offer_id: int | None
    old_status: OfferStatus | None
    new_status: OfferStatus | None
    data: dict[str, Any]
    occurred_at: datetime


class StateSnapshot(_View):
    """Point-in-time copy of the whole ledger returned by getState."""

    owner_id: str
    platform_fee_rate: int
    markets: list[MarketView]
    offers: list[OfferView]
    escrow_balances: list[EscrowBalanceView]
    name_registry: list[NameRegistrationView]
    payouts: list[PayoutView]

    @classmethod
    def from_ledger(cls, snapshot: LedgerSnapshot) -> StateSnapshot:
        return cls(
            owner_id=snapshot.platform.owner_id,
            platform_fee_rate=snapshot.platform.platform_fee_bps,
            markets=[MarketView.model_validate(m) for m in snapshot.markets],
            offers=[OfferView.model_validate(o) for o in snapshot.offers],
            escrow_balances=[EscrowBalanceView.model_validate(e) for e in snapshot.escrow_balances],
            name_registry=[NameRegistrationView.model_validate(n) for n in snapshot.name_registry],
            payouts=[PayoutView.model_validate(p) for p in snapshot.payouts],
        )

    def escrow_balance(self, market_id: int) -> int:
        for escrow in self.escrow_balances:
            if escrow.market_id == market_id:
                return escrow.balance
        return 0

    def offer(self, offer_id: int) -> OfferView | None:
        return next((o for o in self.offers if o.id == offer_id), None)

    def market(self, market_id: int) -> MarketView | None:
        return next((m for m in self.markets if m.id == market_id), None)


class NameQuoteResponse(_View):
    name: str
    name_hash: str
    price: int
