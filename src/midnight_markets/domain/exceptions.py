"""Domain exceptions for Midnight Markets.

These exceptions are framework-agnostic and represent business rule violations.
Services raise them; the MarketplaceEngine catches them at the operation
boundary and turns them into a failed OperationResult.
"""

from __future__ import annotations

from typing import Any


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)

    @property
    def details(self) -> dict[str, Any]:
        """Structured context reported alongside the error code."""
        return {}


# --- Lookup Errors ---


class NotFoundError(MarketplaceError):
    """Raised when a referenced market, offer or name does not exist."""

    def __init__(self, entity: str, key: object, message: str | None = None) -> None:
        super().__init__(
            message=message or f"{entity.capitalize()} not found: {key}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.key = key

    @property
    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "key": self.key}


class AlreadyExistsError(MarketplaceError):
    """Raised when a creation collides with an existing id or name hash."""

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(
            message=f"{entity.capitalize()} already exists: {key}",
            code="ALREADY_EXISTS",
        )
        self.entity = entity
        self.key = key

    @property
    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "key": self.key}


# --- Authorization Errors ---


class UnauthorizedError(MarketplaceError):
    """Raised when the caller does not hold the role an operation requires."""

    def __init__(self, operation: str, caller: str, reason: str) -> None:
        super().__init__(
            message=f"Unauthorized: {caller} may not {operation} ({reason})",
            code="UNAUTHORIZED",
        )
        self.operation = operation
        self.caller = caller
        self.reason = reason

    @property
    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "caller": self.caller, "reason": self.reason}


# --- State Errors ---


class WrongStateError(MarketplaceError):
    """Raised when an operation is invalid for the current lifecycle state.

    Example: releaseFunds on an offer that is still Open.
    """

    def __init__(
        self,
        operation: str,
        expected: str | list[str],
        actual: str,
        message: str | None = None,
    ) -> None:
        expected_text = expected if isinstance(expected, str) else " or ".join(expected)
        super().__init__(
            message=message
            or f"Wrong state for {operation}: expected {expected_text}, actual {actual}",
            code="WRONG_STATE",
        )
        self.operation = operation
        self.expected = expected
        self.actual = actual

    @property
    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "expected": self.expected, "actual": self.actual}


class EntityHiddenError(WrongStateError):
    """Raised when a moderated (hidden) market or offer blocks an operation."""

    def __init__(self, operation: str, entity: str, key: object) -> None:
        super().__init__(
            operation=operation,
            expected="visible",
            actual="hidden",
            message=f"{entity.capitalize()} {key} is hidden; {operation} is not allowed",
        )
        self.entity = entity
        self.key = key


class TimeoutNotElapsedError(WrongStateError):
    """Raised when a timeout refund/claim is attempted before its deadline."""

    def __init__(self, operation: str, status: str, deadline: str) -> None:
        super().__init__(
            operation=operation,
            expected=status,
            actual=status,
            message=f"Timeout for {operation} has not elapsed; available after {deadline}",
        )
        self.deadline = deadline

    @property
    def details(self) -> dict[str, Any]:
        return {**super().details, "deadline": self.deadline}


# --- Amount Errors ---


class InvalidAmountError(MarketplaceError):
    """Raised for deposit mismatches, out-of-range fees and non-positive amounts."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


class InsufficientEscrowError(MarketplaceError):
    """Raised when a payout exceeds the tracked escrow balance.

    This indicates a ledger invariant breach and is logged as critical.
    """

    def __init__(self, market_id: int, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient escrow in market {market_id}: "
                f"required {required}, available {available}"
            ),
            code="INSUFFICIENT_ESCROW",
        )
        self.market_id = market_id
        self.required = required
        self.available = available

    @property
    def details(self) -> dict[str, Any]:
        return {
            "marketId": self.market_id,
            "required": self.required,
            "available": self.available,
        }


# --- Request Errors ---


class InvalidParamsError(MarketplaceError):
    """Raised when positional parameters do not fit the named operation."""

    def __init__(self, operation: str, message: str, errors: list | None = None) -> None:
        super().__init__(
            message=f"Invalid parameters for {operation}: {message}",
            code="INVALID_PARAMS",
        )
        self.operation = operation
        self.errors = errors or []

    @property
    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "errors": self.errors}


class UnknownOperationError(MarketplaceError):
    """Raised when an operation name is not part of the contract."""

    def __init__(self, name: str) -> None:
        super().__init__(message=f"Unknown operation: {name}", code="UNKNOWN_OPERATION")
        self.name = name


# --- Idempotency Errors ---


class DuplicateOperationError(MarketplaceError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
