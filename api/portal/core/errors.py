from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base error for failures that map onto a client-visible status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal_error"
    default_message = "internal server error"

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = list(errors or [])
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"
    default_message = "validation failed"


class AuthenticationError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "authentication_error"
    default_message = "authentication failed"


class AuthorizationError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "authorization_error"
    default_message = "access denied"


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"
    default_message = "resource not found"


class ConflictError(PortalError):
    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"
    default_message = "resource already exists"


class ServiceUnavailableError(PortalError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "service_unavailable"
    default_message = "service temporarily unavailable"


def error_body(kind: str, message: str, errors: list[str] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": kind, "detail": message}
    if errors:
        body["errors"] = errors
    return body


async def _portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request failed method=%s path=%s kind=%s detail=%s",
            request.method,
            request.url.path,
            exc.kind,
            exc.message,
        )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.kind, exc.message, exc.errors),
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationError.kind, "validation failed", format_validation_errors(exc.errors())),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(PortalError.kind, PortalError.default_message),
    )


def format_validation_errors(raw_errors: Any) -> list[str]:
    messages: list[str] = []
    for item in raw_errors:
        location = [str(part) for part in item.get("loc", ()) if part not in {"body", "query", "path"}]
        message = str(item.get("msg", "invalid value"))
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return messages


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, _portal_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
