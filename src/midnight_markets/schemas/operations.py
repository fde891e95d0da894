"""Operation request types.

Every inbound operation is a member of the ``OperationRequest`` tagged union,
discriminated by its ``operation`` field. Positional calls
(``callOperation(name, [..])``) are mapped onto these models by field order,
so a wrong parameter count or type fails validation instead of silently
landing in the wrong slot.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from midnight_markets.domain.enums import OperationName
from midnight_markets.domain.exceptions import InvalidParamsError, UnknownOperationError
from midnight_markets.domain.fees import MAX_LEDGER_INT

LedgerId = Annotated[int, Field(ge=0, le=MAX_LEDGER_INT)]


class _Request(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        coerce_numbers_to_str=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @property
    def operation_name(self) -> OperationName:
        return OperationName(self.operation)  # type: ignore[attr-defined]

    @property
    def actor(self) -> str:
        """The identity the caller acts as (seller, buyer, sheriff, owner or claimant)."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Market & fee operations
# ---------------------------------------------------------------------------


class CreateMarket(_Request):
    operation: Literal["createMarket"] = "createMarket"
    market_id: LedgerId
    sheriff_id: str
    name: str = Field(..., min_length=1, max_length=256)
    sheriff_fee_bps: int

    @property
    def actor(self) -> str:
        return self.sheriff_id


class SetPlatformFee(_Request):
    operation: Literal["setPlatformFee"] = "setPlatformFee"
    new_fee_bps: int
    caller_id: str

    @property
    def actor(self) -> str:
        return self.caller_id


# ---------------------------------------------------------------------------
# Offer lifecycle operations
# ---------------------------------------------------------------------------


class PostOffer(_Request):
    operation: Literal["postOffer"] = "postOffer"
    offer_id: LedgerId
    market_id: LedgerId
    seller_id: str
    amount: int
    details_hash: str

    @property
    def actor(self) -> str:
        return self.seller_id


class AcceptOffer(_Request):
    operation: Literal["acceptOffer"] = "acceptOffer"
    offer_id: LedgerId
    buyer_id: str
    market_id: LedgerId
    deposited_amount: int

    @property
    def actor(self) -> str:
        return self.buyer_id


class SubmitProof(_Request):
    operation: Literal["submitProof"] = "submitProof"
    offer_id: LedgerId
    seller_id: str
    proof_hash: str = Field(..., min_length=1)

    @property
    def actor(self) -> str:
        return self.seller_id


class ReleaseFunds(_Request):
    operation: Literal["releaseFunds"] = "releaseFunds"
    offer_id: LedgerId
    sheriff_id: str
    market_id: LedgerId

    @property
    def actor(self) -> str:
        return self.sheriff_id


class CancelOfferBySheriff(_Request):
    operation: Literal["cancelOfferBySheriff"] = "cancelOfferBySheriff"
    offer_id: LedgerId
    sheriff_id: str
    market_id: LedgerId

    @property
    def actor(self) -> str:
        return self.sheriff_id


class CancelOfferBySeller(_Request):
    operation: Literal["cancelOfferBySeller"] = "cancelOfferBySeller"
    offer_id: LedgerId
    seller_id: str

    @property
    def actor(self) -> str:
        return self.seller_id


class BuyerRefundTimeout(_Request):
    operation: Literal["buyerRefundTimeout"] = "buyerRefundTimeout"
    offer_id: LedgerId
    buyer_id: str

    @property
    def actor(self) -> str:
        return self.buyer_id


class SellerRefundTimeout(_Request):
    operation: Literal["sellerRefundTimeout"] = "sellerRefundTimeout"
    offer_id: LedgerId
    seller_id: str

    @property
    def actor(self) -> str:
        return self.seller_id


# ---------------------------------------------------------------------------
# Moderation operations
# ---------------------------------------------------------------------------


class SetMarketHidden(_Request):
    operation: Literal["setMarketHidden"] = "setMarketHidden"
    market_id: LedgerId
    hidden: bool
    caller_id: str

    @property
    def actor(self) -> str:
        return self.caller_id


class SetOfferHidden(_Request):
    operation: Literal["setOfferHidden"] = "setOfferHidden"
    offer_id: LedgerId
    hidden: bool
    caller_id: str

    @property
    def actor(self) -> str:
        return self.caller_id


class SetOfferHiddenBySheriff(_Request):
    operation: Literal["setOfferHiddenBySheriff"] = "setOfferHiddenBySheriff"
    offer_id: LedgerId
    market_id: LedgerId
    hidden: bool
    sheriff_id: str

    @property
    def actor(self) -> str:
        return self.sheriff_id


# ---------------------------------------------------------------------------
# Naming operations
# ---------------------------------------------------------------------------


class RegisterName(_Request):
    operation: Literal["registerName"] = "registerName"
    name_hash: str = Field(..., min_length=1, max_length=128)
    claimant_token: str
    price: int

    @property
    def actor(self) -> str:
        return self.claimant_token


OperationRequest = Annotated[
    Union[
        CreateMarket,
        PostOffer,
        AcceptOffer,
        SubmitProof,
        ReleaseFunds,
        SetPlatformFee,
        CancelOfferBySheriff,
        CancelOfferBySeller,
        SetMarketHidden,
        SetOfferHidden,
        SetOfferHiddenBySheriff,
        BuyerRefundTimeout,
        SellerRefundTimeout,
        RegisterName,
    ],
    Field(discriminator="operation"),
]

OPERATION_ADAPTER: TypeAdapter[OperationRequest] = TypeAdapter(OperationRequest)

REQUEST_MODELS: dict[OperationName, type[_Request]] = {
    OperationName.CREATE_MARKET: CreateMarket,
    OperationName.POST_OFFER: PostOffer,
    OperationName.ACCEPT_OFFER: AcceptOffer,
    OperationName.SUBMIT_PROOF: SubmitProof,
    OperationName.RELEASE_FUNDS: ReleaseFunds,
    OperationName.SET_PLATFORM_FEE: SetPlatformFee,
    OperationName.CANCEL_OFFER_BY_SHERIFF: CancelOfferBySheriff,
    OperationName.CANCEL_OFFER_BY_SELLER: CancelOfferBySeller,
    OperationName.SET_MARKET_HIDDEN: SetMarketHidden,
    OperationName.SET_OFFER_HIDDEN: SetOfferHidden,
    OperationName.SET_OFFER_HIDDEN_BY_SHERIFF: SetOfferHiddenBySheriff,
    OperationName.BUYER_REFUND_TIMEOUT: BuyerRefundTimeout,
    OperationName.SELLER_REFUND_TIMEOUT: SellerRefundTimeout,
    OperationName.REGISTER_NAME: RegisterName,
}


def positional_fields(operation: OperationName) -> tuple[str, ...]:
    """Parameter names of an operation, in positional order."""
    model = REQUEST_MODELS[operation]
    return tuple(name for name in model.model_fields if name != "operation")


def resolve_operation(name: str | OperationName) -> OperationName:
    try:
        return OperationName(name)
    except ValueError:
        raise UnknownOperationError(str(name)) from None


def parse_operation(name: str | OperationName, params: list[Any] | tuple[Any, ...]) -> _Request:
    """Build a typed request from an operation name and positional parameters.

    Raises:
        UnknownOperationError: If the name is not an operation.
        InvalidParamsError: If the parameter count or any value is invalid.
    """
    operation = resolve_operation(name)
    if not isinstance(params, (list, tuple)):
        raise InvalidParamsError(
            operation.value,
            f"parameters must be a list, got {type(params).__name__}",
        )
    fields = positional_fields(operation)
    if len(params) != len(fields):
        raise InvalidParamsError(
            operation.value,
            f"expected {len(fields)} parameters ({', '.join(fields)}), got {len(params)}",
        )
    try:
        return REQUEST_MODELS[operation].model_validate(dict(zip(fields, params, strict=True)))
    except ValidationError as exc:
        raise InvalidParamsError(
            operation.value,
            "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()),
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


def validate_request(payload: dict[str, Any]) -> _Request:
    """Validate a keyword payload carrying its own ``operation`` tag."""
    operation = str(payload.get("operation", ""))
    resolved = resolve_operation(operation)
    try:
        return OPERATION_ADAPTER.validate_python({**payload, "operation": resolved.value})
    except ValidationError as exc:
        raise InvalidParamsError(
            resolved.value,
            "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()),
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
