"""Service error taxonomy and the JSON envelope handlers that render it."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .config import get_settings

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(ValidationError):
    """Raised when a room number is already taken."""


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class RemoteStorageError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, error: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


def format_validation_errors(errors: Sequence[Any]) -> str:
    parts = []
    for err in errors:
        location = ".".join(str(item) for item in err.get("loc", ()) if item not in ("body", "query", "path"))
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts)


async def service_error_handler(_: Request, exc: ServiceError) -> JSONResponse:
    error = exc.error
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        error = None
    return error_response(exc.status_code, exc.message, error)


async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, "Données invalides", format_validation_errors(exc.errors()))


async def unexpected_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    error = str(exc) if get_settings().expose_error_details else None
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Erreur interne du serveur", error)


def install_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{success: false, message, error?}``."""

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
