"""Translate ordering exceptions into HTTP responses.

Every error body has the shape ``{"error": <message or field map>, "code":
<error name>, ...details}``. Retryable upstream failures carry a
``Retry-After`` header.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from ordering.exceptions import (
    Conflict,
    Forbidden,
    InvalidAmount,
    InvalidTransition,
    OrderingError,
    Unauthorized,
    UnverifiedSignature,
    UpstreamUnavailable,
)

RETRY_AFTER_SECONDS = 5

_STATUS_CODES = {
    Unauthorized: 401,
    Forbidden: 403,
    InvalidTransition: 409,
    Conflict: 409,
    UnverifiedSignature: 400,
    UpstreamUnavailable: 503,
}


def status_code_for(exc: OrderingError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return 500


def _not_found_message(exc: ObjectNotFoundError) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return "; ".join(str(v) for v in messages.values())
    return str(messages or exc)


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)

    @app.exception_handler(OrderingError)
    async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if getattr(exc, "retryable", False) else None
        return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict(), headers=headers)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        code = "InvalidAmount" if isinstance(exc, InvalidAmount) else "ValidationError"
        return JSONResponse(status_code=400, content={"error": exc.messages, "code": code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": jsonable_encoder(exc.errors()), "code": "ValidationError"},
        )

    @app.exception_handler(ObjectNotFoundError)
    async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": _not_found_message(exc), "code": "NotFound"})
