"""Domain layer: pure business logic with zero framework dependencies."""

from midnight_markets.domain.authorization import (
    AuthorizationDecision,
    Role,
    RoleKind,
    authorize,
    resolve_roles,
)
from midnight_markets.domain.enums import (
    EntityType,
    EventType,
    OfferStatus,
    OperationName,
    PayoutKind,
)
from midnight_markets.domain.exceptions import (
    AlreadyExistsError,
    InsufficientEscrowError,
    InvalidAmountError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
    WrongStateError,
)
from midnight_markets.domain.fees import FeeSplit, compute_fee_split
from midnight_markets.domain.state_machine import (
    OfferStateMachine,
    validate_transition,
)

__all__ = [
    "AuthorizationDecision",
    "Role",
    "RoleKind",
    "authorize",
    "resolve_roles",
    "EntityType",
    "EventType",
    "OfferStatus",
    "OperationName",
    "PayoutKind",
    "AlreadyExistsError",
    "InsufficientEscrowError",
    "InvalidAmountError",
    "MarketplaceError",
    "NotFoundError",
    "UnauthorizedError",
    "WrongStateError",
    "FeeSplit",
    "compute_fee_split",
    "OfferStateMachine",
    "validate_transition",
]
