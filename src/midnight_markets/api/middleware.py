"""HTTP middleware and the result-to-status mapping.

Every operation endpoint answers with an OperationResult body; only the
status code varies with ``data.error``. The same mapping is used for
results returned by the engine and for domain errors that escape a route
(a reused Idempotency-Key, for instance).

Stack, outermost first:
    RequestContextMiddleware  request id + caller bound into the log context,
                              one ``http.request`` line per request
    ErrorHandlerMiddleware    MarketplaceError -> OperationResult JSON
    CORSMiddleware            browser marketplace UI
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from midnight_markets.domain.exceptions import MarketplaceError
from midnight_markets.logging_config import get_logger, request_context
from midnight_markets.schemas.results import OperationResult

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

    from midnight_markets.config import Settings

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CALLER_HEADER = "X-Caller-Identity"

STATUS_BY_CODE: dict[str, int] = {
    "NOT_FOUND": 404,
    "UNKNOWN_OPERATION": 404,
    "ALREADY_EXISTS": 409,
    "WRONG_STATE": 409,
    "DUPLICATE_OPERATION": 409,
    "UNAUTHORIZED": 403,
    "INVALID_AMOUNT": 422,
    "INVALID_PARAMS": 422,
    "INSUFFICIENT_ESCROW": 500,
    "INTERNAL_ERROR": 500,
}


def status_for(result: OperationResult) -> int:
    if result.success:
        return 200
    return STATUS_BY_CODE.get(result.error_code or "", 400)


def result_response(result: OperationResult) -> JSONResponse:
    return JSONResponse(status_code=status_for(result), content=result.model_dump(mode="json"))


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlate every log line of a request and echo the id back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        caller = request.headers.get(CALLER_HEADER)
        started = time.perf_counter()

        with request_context(request_id, caller=caller):
            response = await call_next(request)
            logger.info(
                "http.request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Render domain errors raised outside the engine as OperationResult bodies."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except MarketplaceError as exc:
            logger.warning("http.domain_error", code=exc.code, reason=exc.message)
            return result_response(OperationResult.failure(exc))
        except Exception:
            logger.exception("http.unhandled_error", path=request.url.path)
            return result_response(
                OperationResult(
                    success=False,
                    message="An unexpected error occurred",
                    data={"error": "INTERNAL_ERROR"},
                )
            )


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register the stack; the last middleware added runs outermost."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)
