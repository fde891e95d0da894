"""Domain enumerations for Midnight Markets.

These enums define the canonical states, operation names and record kinds
used throughout the system. They are framework-agnostic (no SQLAlchemy,
no FastAPI imports).
"""

import enum


class OfferStatus(enum.StrEnum):
    """Lifecycle states of an offer.

    Transitions are enforced by the OfferStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    OPEN = "Open"
    ACCEPTED = "Accepted"
    PROOF_SUBMITTED = "ProofSubmitted"
    FUNDS_RELEASED = "FundsReleased"
    CANCELLED = "Cancelled"

    @property
    def holds_escrow(self) -> bool:
        """True while the offer's deposit sits in its market's escrow."""
        return self in (OfferStatus.ACCEPTED, OfferStatus.PROOF_SUBMITTED)

    @property
    def is_terminal(self) -> bool:
        return self in (OfferStatus.FUNDS_RELEASED, OfferStatus.CANCELLED)


class OperationName(enum.StrEnum):
    """Every inbound operation the contract accepts.

    Legacy snake_case spellings (``create_market``) resolve to the same member.
    """

    CREATE_MARKET = "createMarket"
    POST_OFFER = "postOffer"
    ACCEPT_OFFER = "acceptOffer"
    SUBMIT_PROOF = "submitProof"
    RELEASE_FUNDS = "releaseFunds"
    SET_PLATFORM_FEE = "setPlatformFee"
    CANCEL_OFFER_BY_SHERIFF = "cancelOfferBySheriff"
    CANCEL_OFFER_BY_SELLER = "cancelOfferBySeller"
    SET_MARKET_HIDDEN = "setMarketHidden"
    SET_OFFER_HIDDEN = "setOfferHidden"
    SET_OFFER_HIDDEN_BY_SHERIFF = "setOfferHiddenBySheriff"
    BUYER_REFUND_TIMEOUT = "buyerRefundTimeout"
    SELLER_REFUND_TIMEOUT = "sellerRefundTimeout"
    REGISTER_NAME = "registerName"

    @classmethod
    def _missing_(cls, value: object) -> "OperationName | None":
        if isinstance(value, str):
            wanted = value.replace("_", "").lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return None


class EventType(enum.StrEnum):
    """Types of audit events recorded in the ledger event log.

    Every successful mutation MUST produce exactly one event.
    """

    # Market & fee events
    MARKET_CREATED = "MARKET_CREATED"
    PLATFORM_FEE_CHANGED = "PLATFORM_FEE_CHANGED"

    # Offer lifecycle events
    OFFER_POSTED = "OFFER_POSTED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    PROOF_SUBMITTED = "PROOF_SUBMITTED"
    FUNDS_RELEASED = "FUNDS_RELEASED"
    OFFER_CANCELLED = "OFFER_CANCELLED"

    # Timeout events
    BUYER_REFUNDED = "BUYER_REFUNDED"
    SELLER_CLAIMED = "SELLER_CLAIMED"

    # Moderation events
    MARKET_VISIBILITY_CHANGED = "MARKET_VISIBILITY_CHANGED"
    OFFER_VISIBILITY_CHANGED = "OFFER_VISIBILITY_CHANGED"

    # Naming events
    NAME_REGISTERED = "NAME_REGISTERED"


class PayoutKind(enum.StrEnum):
    """Destinations of funds leaving a market's escrow."""

    SELLER = "seller"
    SHERIFF_FEE = "sheriff_fee"
    PLATFORM_FEE = "platform_fee"
    BUYER_REFUND = "buyer_refund"


class EntityType(enum.StrEnum):
    """Tables held by the Ledger Store."""

    PLATFORM = "platform"
    MARKET = "market"
    OFFER = "offer"
    ESCROW = "escrow"
    NAME = "name"
    PAYOUT = "payout"
