"""Authorization Module: capability resolution over explicit roles.

A caller's roles are resolved against the entities an operation targets:

    Owner               caller == platform.owner_id
    Sheriff(market_id)  caller == market.sheriff_id
    Seller(offer_id)    caller == offer.seller_id
    Buyer(offer_id)     caller == offer.buyer_id

Each operation names the single role it requires (or none, for operations
any caller may perform as the identity they declare). Existence checks
happen before authorization; a missing target is NotFound, not a denial.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from midnight_markets.domain.enums import OperationName
from midnight_markets.domain.exceptions import UnauthorizedError

if TYPE_CHECKING:
    from midnight_markets.domain.models import Market, Offer, PlatformState


class RoleKind(enum.StrEnum):
    OWNER = "Owner"
    SHERIFF = "Sheriff"
    SELLER = "Seller"
    BUYER = "Buyer"


@dataclass(frozen=True)
class Role:
    """A capability, scoped to a market (Sheriff) or an offer (Seller/Buyer)."""

    kind: RoleKind
    scope: int | None = None

    @classmethod
    def owner(cls) -> Role:
        return cls(RoleKind.OWNER)

    @classmethod
    def sheriff(cls, market_id: int) -> Role:
        return cls(RoleKind.SHERIFF, market_id)

    @classmethod
    def seller(cls, offer_id: int) -> Role:
        return cls(RoleKind.SELLER, offer_id)

    @classmethod
    def buyer(cls, offer_id: int) -> Role:
        return cls(RoleKind.BUYER, offer_id)

    def __str__(self) -> str:
        return self.kind.value if self.scope is None else f"{self.kind.value}({self.scope})"


REQUIRED_ROLES: dict[OperationName, RoleKind | None] = {
    OperationName.CREATE_MARKET: None,
    OperationName.POST_OFFER: None,
    OperationName.ACCEPT_OFFER: None,
    OperationName.SUBMIT_PROOF: RoleKind.SELLER,
    OperationName.RELEASE_FUNDS: RoleKind.SHERIFF,
    OperationName.SET_PLATFORM_FEE: RoleKind.OWNER,
    OperationName.CANCEL_OFFER_BY_SHERIFF: RoleKind.SHERIFF,
    OperationName.CANCEL_OFFER_BY_SELLER: RoleKind.SELLER,
    OperationName.SET_MARKET_HIDDEN: RoleKind.OWNER,
    OperationName.SET_OFFER_HIDDEN: RoleKind.OWNER,
    OperationName.SET_OFFER_HIDDEN_BY_SHERIFF: RoleKind.SHERIFF,
    OperationName.BUYER_REFUND_TIMEOUT: RoleKind.BUYER,
    OperationName.SELLER_REFUND_TIMEOUT: RoleKind.SELLER,
    OperationName.REGISTER_NAME: None,
}


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> AuthorizationDecision:
        return cls(allowed=True)

    @classmethod
    def denied(cls, reason: str) -> AuthorizationDecision:
        return cls(allowed=False, reason=reason)


def resolve_roles(
    caller: str,
    *,
    platform: PlatformState,
    market: Market | None = None,
    offer: Offer | None = None,
) -> frozenset[Role]:
    """Return every role ``caller`` holds over the given targets."""
    roles: set[Role] = set()
    if caller == platform.owner_id:
        roles.add(Role.owner())
    if market is not None and caller == market.sheriff_id:
        roles.add(Role.sheriff(market.id))
    if offer is not None:
        if caller == offer.seller_id:
            roles.add(Role.seller(offer.id))
        if offer.buyer_id is not None and caller == offer.buyer_id:
            roles.add(Role.buyer(offer.id))
    return frozenset(roles)


def _required_role(
    kind: RoleKind,
    market: Market | None,
    offer: Offer | None,
) -> Role:
    if kind is RoleKind.OWNER:
        return Role.owner()
    if kind is RoleKind.SHERIFF:
        if market is None:
            raise ValueError("Sheriff-scoped operations need a target market")
        return Role.sheriff(market.id)
    if offer is None:
        raise ValueError(f"{kind.value}-scoped operations need a target offer")
    if kind is RoleKind.SELLER:
        return Role.seller(offer.id)
    return Role.buyer(offer.id)


def authorize(
    operation: OperationName,
    caller: str,
    *,
    platform: PlatformState,
    market: Market | None = None,
    offer: Offer | None = None,
    declared_market_id: int | None = None,
) -> AuthorizationDecision:
    """Decide whether ``caller`` may perform ``operation`` on the targets.

    Args:
        operation: The operation being attempted.
        caller: The acting identity (trusted, supplied by the wallet collaborator).
        platform: Current platform state (for the owner check).
        market: The market the operation acts in, if any.
        offer: The offer the operation acts on, if any.
        declared_market_id: Market id the caller named; sheriff-scoped offer
            operations are denied when it differs from the offer's market.
    """
    kind = REQUIRED_ROLES[operation]
    if kind is None:
        return AuthorizationDecision.ok()

    if (
        kind is RoleKind.SHERIFF
        and offer is not None
        and declared_market_id is not None
        and offer.market_id != declared_market_id
    ):
        return AuthorizationDecision.denied(
            f"offer {offer.id} does not belong to market {declared_market_id}"
        )

    required = _required_role(kind, market, offer)
    if required in resolve_roles(caller, platform=platform, market=market, offer=offer):
        return AuthorizationDecision.ok()
    return AuthorizationDecision.denied(f"requires {required}")


def require(
    operation: OperationName,
    caller: str,
    *,
    platform: PlatformState,
    market: Market | None = None,
    offer: Offer | None = None,
    declared_market_id: int | None = None,
) -> None:
    """Like :func:`authorize` but raises UnauthorizedError on denial."""
    decision = authorize(
        operation,
        caller,
        platform=platform,
        market=market,
        offer=offer,
        declared_market_id=declared_market_id,
    )
    if not decision.allowed:
        raise UnauthorizedError(operation.value, caller, decision.reason or "denied")
