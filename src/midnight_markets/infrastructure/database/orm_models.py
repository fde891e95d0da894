"""SQLAlchemy 2.0 ORM models for the Ledger Store.

Seven tables:
    1. platform_state        Singleton owner / platform fee row.
    2. markets               Markets with their sheriff and fee rate.
    3. offers                Offers and their lifecycle status.
    4. escrow_balances       Per-market escrow accumulator.
    5. name_registrations    Write-once name hash -> claimant bindings.
    6. payouts               Every distribution out of escrow.
    7. ledger_events         Append-only audit log of every mutation.

Design decisions:
    - Integer amounts in the smallest unit (no floating point, no rounding).
    - CHECK constraints mirror the domain invariants (non-negative escrow,
      fee rates within 0..10000 bps, valid status values).
    - Timestamps are stored timezone-aware and always read back as UTC.
    - Each row class converts to and from its frozen domain dataclass.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from midnight_markets.domain.enums import EventType, OfferStatus, PayoutKind
from midnight_markets.domain.models import (
    PLATFORM_KEY,
    EscrowBalance,
    LedgerEvent,
    Market,
    NameRegistration,
    Offer,
    Payout,
    PlatformState,
)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OfferStatus)
_PAYOUT_KINDS = ", ".join(f"'{k.value}'" for k in PayoutKind)


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC datetime.

    SQLite drops tzinfo on read; this re-attaches it.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. platform_state
# ---------------------------------------------------------------------------
class PlatformRow(Base):
    __tablename__ = "platform_state"

    id: Mapped[str] = mapped_column(String(16), primary_key=True, default=PLATFORM_KEY)
    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Platform owner identity, fixed at genesis",
    )
    platform_fee_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "platform_fee_bps >= 0 AND platform_fee_bps <= 10000",
            name="ck_platform_fee_range",
        ),
    )

    def to_entity(self) -> PlatformState:
        return PlatformState(owner_id=self.owner_id, platform_fee_bps=self.platform_fee_bps)

    @classmethod
    def from_entity(cls, entity: PlatformState) -> PlatformRow:
        return cls(
            id=PLATFORM_KEY,
            owner_id=entity.owner_id,
            platform_fee_bps=entity.platform_fee_bps,
        )


# ---------------------------------------------------------------------------
# 2. markets
# ---------------------------------------------------------------------------
class MarketRow(Base):
    """A market run by one sheriff."""

    __tablename__ = "markets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    sheriff_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    sheriff_fee_bps: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Sheriff fee in basis points (immutable after creation)",
    )
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "sheriff_fee_bps >= 0 AND sheriff_fee_bps <= 10000",
            name="ck_market_fee_range",
        ),
        Index("idx_market_sheriff", "sheriff_id"),
    )

    def to_entity(self) -> Market:
        return Market(
            id=self.id,
            sheriff_id=self.sheriff_id,
            name=self.name,
            sheriff_fee_bps=self.sheriff_fee_bps,
            hidden=self.hidden,
        )

    @classmethod
    def from_entity(cls, entity: Market) -> MarketRow:
        return cls(
            id=entity.id,
            sheriff_id=entity.sheriff_id,
            name=entity.name,
            sheriff_fee_bps=entity.sheriff_fee_bps,
            hidden=entity.hidden,
        )

    def __repr__(self) -> str:
        return f"<MarketRow id={self.id} sheriff={self.sheriff_id} hidden={self.hidden}>"


# ---------------------------------------------------------------------------
# 3. offers
# ---------------------------------------------------------------------------
class OfferRow(Base):
    """An offer and its position in the lifecycle."""

    __tablename__ = "offers"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    market_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("markets.id"),
        nullable=False,
    )
    seller_id: Mapped[str] = mapped_column(String(128), nullable=False)
    buyer_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="Set on acceptance",
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    details_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    proof_hash: Mapped[str | None] = mapped_column(String(256), nullable=True, default=None)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OfferStatus.OPEN.value,
        comment="Current lifecycle state (guarded by OfferStateMachine)",
    )
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    proof_submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_offer_valid_status"),
        CheckConstraint("amount > 0", name="ck_offer_positive_amount"),
        Index("idx_offer_market", "market_id"),
        Index("idx_offer_status", "status"),
        Index("idx_offer_seller", "seller_id"),
    )

    def to_entity(self) -> Offer:
        return Offer(
            id=self.id,
            market_id=self.market_id,
            seller_id=self.seller_id,
            amount=self.amount,
            details_hash=self.details_hash,
            status=OfferStatus(self.status),
            buyer_id=self.buyer_id,
            proof_hash=self.proof_hash,
            hidden=self.hidden,
            created_at=self.created_at,
            accepted_at=self.accepted_at,
            proof_submitted_at=self.proof_submitted_at,
            closed_at=self.closed_at,
        )

    @classmethod
    def from_entity(cls, entity: Offer) -> OfferRow:
        return cls(
            id=entity.id,
            market_id=entity.market_id,
            seller_id=entity.seller_id,
            buyer_id=entity.buyer_id,
            amount=entity.amount,
            details_hash=entity.details_hash,
            proof_hash=entity.proof_hash,
            status=entity.status.value,
            hidden=entity.hidden,
            created_at=entity.created_at,
            accepted_at=entity.accepted_at,
            proof_submitted_at=entity.proof_submitted_at,
            closed_at=entity.closed_at,
        )

    def __repr__(self) -> str:
        return f"<OfferRow id={self.id} market={self.market_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. escrow_balances
# ---------------------------------------------------------------------------
class EscrowBalanceRow(Base):
    __tablename__ = "escrow_balances"

    market_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("markets.id"),
        primary_key=True,
        autoincrement=False,
    )
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_escrow_non_negative"),)

    def to_entity(self) -> EscrowBalance:
        return EscrowBalance(market_id=self.market_id, balance=self.balance)

    @classmethod
    def from_entity(cls, entity: EscrowBalance) -> EscrowBalanceRow:
        return cls(market_id=entity.market_id, balance=entity.balance)


# ---------------------------------------------------------------------------
# 5. name_registrations
# ---------------------------------------------------------------------------
class NameRegistrationRow(Base):
    __tablename__ = "name_registrations"

    name_hash: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_token: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def to_entity(self) -> NameRegistration:
        return NameRegistration(
            name_hash=self.name_hash,
            owner_token=self.owner_token,
            price=self.price,
            registered_at=self.registered_at,
        )

    @classmethod
    def from_entity(cls, entity: NameRegistration) -> NameRegistrationRow:
        return cls(
            name_hash=entity.name_hash,
            owner_token=entity.owner_token,
            price=entity.price,
            registered_at=entity.registered_at,
        )


# ---------------------------------------------------------------------------
# 6. payouts
# ---------------------------------------------------------------------------
class PayoutRow(Base):
    __tablename__ = "payouts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, comment="offer_id:kind")
    offer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("offers.id"), nullable=False)
    market_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    recipient: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint(f"kind IN ({_PAYOUT_KINDS})", name="ck_payout_valid_kind"),
        CheckConstraint("amount >= 0", name="ck_payout_non_negative"),
        Index("idx_payout_recipient", "recipient"),
    )

    def to_entity(self) -> Payout:
        return Payout(
            offer_id=self.offer_id,
            market_id=self.market_id,
            recipient=self.recipient,
            amount=self.amount,
            kind=PayoutKind(self.kind),
        )

    @classmethod
    def from_entity(cls, entity: Payout) -> PayoutRow:
        return cls(
            id=entity.key,
            offer_id=entity.offer_id,
            market_id=entity.market_id,
            recipient=entity.recipient,
            amount=entity.amount,
            kind=entity.kind.value,
        )


# ---------------------------------------------------------------------------
# 7. ledger_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class LedgerEventRow(Base):
    """Immutable audit record of one committed mutation.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. The integer id gives commit order.
    """

    __tablename__ = "ledger_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    operation: Mapped[str] = mapped_column(String(40), nullable=False)
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    market_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    offer_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
        comment="Operation context: amounts, fee split, hashes",
    )
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("idx_event_offer", "offer_id"),
        Index("idx_event_market", "market_id"),
        Index("idx_event_type", "event_type"),
    )

    def to_entity(self) -> LedgerEvent:
        return LedgerEvent(
            event_type=EventType(self.event_type),
            operation=self.operation,
            actor=self.actor,
            market_id=self.market_id,
            offer_id=self.offer_id,
            old_status=OfferStatus(self.old_status) if self.old_status else None,
            new_status=OfferStatus(self.new_status) if self.new_status else None,
            data=dict(self.metadata_json or {}),
            event_id=self.event_id,
            occurred_at=self.occurred_at,
        )

    @classmethod
    def from_entity(cls, entity: LedgerEvent) -> LedgerEventRow:
        return cls(
            event_id=entity.event_id,
            event_type=entity.event_type.value,
            operation=entity.operation,
            actor=entity.actor,
            market_id=entity.market_id,
            offer_id=entity.offer_id,
            old_status=entity.old_status.value if entity.old_status else None,
            new_status=entity.new_status.value if entity.new_status else None,
            metadata_json=entity.data or None,
            occurred_at=entity.occurred_at,
        )

    def __repr__(self) -> str:
        return (
            f"<LedgerEventRow id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )
