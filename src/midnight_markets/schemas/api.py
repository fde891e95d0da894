"""Pydantic schemas for the HTTP API.

These shapes wrap the operation schemas for transport. They are separate
from the ledger dataclasses to keep the API and storage layers apart.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PositionalOperationRequest(BaseModel):
    """Request body for ``POST /api/v1/operations/{name}``."""

    params: list[Any] = Field(
        default_factory=list,
        description="Ordered parameter list for the named operation",
        examples=[[1, "sheriffA", "Electronics", 100]],
    )
    caller: str | None = Field(
        default=None,
        description="Acting identity from the wallet/session; overridden by X-Caller-Identity",
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    ledger: str
    redis: str
