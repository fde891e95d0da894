"""Ledger entities.

Plain frozen dataclasses: the Ledger Store owns every row and services
produce updated copies with ``dataclasses.replace`` inside a transaction.
Amounts are integers in the smallest currency unit; fee rates are basis
points.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from midnight_markets.domain.enums import EventType, OfferStatus, PayoutKind

PLATFORM_KEY = "platform"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class PlatformState:
    """Singleton platform configuration fixed at genesis."""

    owner_id: str
    platform_fee_bps: int = 0


@dataclass(frozen=True)
class Market:
    id: int
    sheriff_id: str
    name: str
    sheriff_fee_bps: int
    hidden: bool = False


@dataclass(frozen=True)
class Offer:
    """A seller's proposed trade inside one market.

    ``market_id`` is a non-owning reference back to the Market row.
    """

    id: int
    market_id: int
    seller_id: str
    amount: int
    details_hash: str
    status: OfferStatus = OfferStatus.OPEN
    buyer_id: str | None = None
    proof_hash: str | None = None
    hidden: bool = False
    created_at: datetime = field(default_factory=utcnow)
    accepted_at: datetime | None = None
    proof_submitted_at: datetime | None = None
    closed_at: datetime | None = None


@dataclass(frozen=True)
class EscrowBalance:
    market_id: int
    balance: int = 0


@dataclass(frozen=True)
class NameRegistration:
    """Write-once binding of a name hash to its claimant."""

    name_hash: str
    owner_token: str
    price: int
    registered_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Payout:
    """Funds distributed out of a market's escrow for one offer."""

    offer_id: int
    market_id: int
    recipient: str
    amount: int
    kind: PayoutKind

    @property
    def key(self) -> str:
        return payout_key(self.offer_id, self.kind)


def payout_key(offer_id: int, kind: PayoutKind) -> str:
    return f"{offer_id}:{kind.value}"


@dataclass(frozen=True)
class LedgerEvent:
    """Append-only audit record of one successful mutation."""

    event_type: EventType
    operation: str
    actor: str
    market_id: int | None = None
    offer_id: int | None = None
    old_status: OfferStatus | None = None
    new_status: OfferStatus | None = None
    data: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time, read-only copy of every table."""

    platform: PlatformState
    markets: tuple[Market, ...]
    offers: tuple[Offer, ...]
    escrow_balances: tuple[EscrowBalance, ...]
    name_registry: tuple[NameRegistration, ...]
    payouts: tuple[Payout, ...]
