"""Pydantic API schemas."""

from midnight_markets.schemas.api import HealthResponse, PositionalOperationRequest
from midnight_markets.schemas.operations import (
    OPERATION_ADAPTER,
    REQUEST_MODELS,
    OperationRequest,
    parse_operation,
    positional_fields,
    validate_request,
)
from midnight_markets.schemas.results import (
    LedgerEventView,
    NameQuoteResponse,
    OperationResult,
    StateSnapshot,
)

__all__ = [
    "HealthResponse",
    "PositionalOperationRequest",
    "OPERATION_ADAPTER",
    "REQUEST_MODELS",
    "OperationRequest",
    "parse_operation",
    "positional_fields",
    "validate_request",
    "LedgerEventView",
    "NameQuoteResponse",
    "OperationResult",
    "StateSnapshot",
]
