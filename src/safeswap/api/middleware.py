"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — lets the browser frontend send its session cookie

Every error body has the same shape: {"error": <stable code>, "message": <text>}.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from safeswap.config import get_settings
from safeswap.domain.exceptions import (
    AlreadyCompletedError,
    AlreadyDisputedError,
    ChainUnavailableError,
    ConcurrentUpdateError,
    ConflictError,
    DuplicateOperationError,
    EscrowDisputedError,
    EscrowNotFoundError,
    ForbiddenError,
    InvalidCodeError,
    InvalidInputError,
    InvalidSessionError,
    InvalidStateTransitionError,
    InvalidTokenError,
    MissingWalletError,
    NotAuthenticatedError,
    SafeSwapError,
    UserNotFoundError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Anything not listed falls back to 400.
ERROR_STATUS: dict[type[SafeSwapError], int] = {
    NotAuthenticatedError: 401,
    InvalidTokenError: 401,
    InvalidSessionError: 401,
    ForbiddenError: 403,
    UserNotFoundError: 404,
    EscrowNotFoundError: 404,
    InvalidCodeError: 400,
    InvalidInputError: 400,
    AlreadyCompletedError: 409,
    AlreadyDisputedError: 409,
    EscrowDisputedError: 409,
    MissingWalletError: 409,
    ConflictError: 409,
    InvalidStateTransitionError: 409,
    ConcurrentUpdateError: 409,
    DuplicateOperationError: 409,
    ChainUnavailableError: 502,
}


def status_for(exc: SafeSwapError) -> int:
    """HTTP status for a domain error, honouring subclassing."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def error_body(exc: SafeSwapError) -> dict:
    body: dict = {"error": exc.code, "message": exc.message}
    if isinstance(exc, MissingWalletError):
        body["missing"] = exc.missing
    if isinstance(exc, InvalidInputError) and exc.field:
        body["field"] = exc.field
    return body


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except SafeSwapError as exc:
            status_code = status_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log("domain.error", code=exc.code, error=exc.message, status=status_code)
            return JSONResponse(status_code=status_code, content=error_body(exc))
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Schema violations use the same error envelope, with pydantic's details."""
    logger.info("request.validation_failed", path=request.url.path)
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    settings = get_settings()

    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # CORS (runs first). Credentials need an explicit origin, not "*".
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_public_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
