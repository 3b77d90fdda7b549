"""
Error taxonomy and the handlers that turn every failure into the standard
``{success: false, error: {code, message, details?}}`` envelope.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from campaign_builder.utils import error_response, safe_error_detail

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Domain error carrying an API error code and HTTP status."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


AI_ERROR_STATUS = {
    "NO_API_KEY": 503,
    "PROVIDER_NOT_CONFIGURED": 503,
    "INVALID_PROVIDER": 400,
    "VALIDATION_ERROR": 400,
    "AUTH_ERROR": 401,
    "RATE_LIMIT": 429,
    "TIMEOUT": 408,
    "PARSE_ERROR": 502,
    "API_ERROR": 502,
    "UNKNOWN_ERROR": 502,
}


class AIServiceError(AppError):
    """Failure talking to, or interpreting, an external LLM provider."""

    def __init__(self, code: str, message: str, details: Any = None):
        super().__init__(message, code=code, status_code=AI_ERROR_STATUS.get(code, 500), details=details)


_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    408: "TIMEOUT",
    429: "RATE_LIMIT",
    503: "SERVICE_UNAVAILABLE",
}


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "BAD_REQUEST")
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.method} {request.url.path} not found"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    message = details[0]["message"] if details else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_response("VALIDATION_ERROR", message, details),
    )


class ErrorEnvelopeMiddleware(BaseHTTPMiddleware):
    """Last line of defence: unexpected exceptions become a generic 500 envelope."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            message = safe_error_detail(exc)
            return JSONResponse(status_code=500, content=error_response("INTERNAL_ERROR", message))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_middleware(ErrorEnvelopeMiddleware)
