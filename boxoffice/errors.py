"""Error taxonomy shared by the ledger, order and issuance services."""

from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

logger = logging.getLogger(__name__)


class BoxOfficeError(Exception):
    """Base class for errors that carry a stable reason and an HTTP status."""

    reason = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidArgument(BoxOfficeError):
    """Malformed or logically inconsistent input."""

    reason = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BoxOfficeError):
    """Referenced entity does not exist."""

    reason = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(BoxOfficeError):
    """The actor may not act on this resource."""

    reason = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class Conflict(BoxOfficeError):
    """Operation is not valid for the current state."""

    reason = "conflict"
    status_code = status.HTTP_400_BAD_REQUEST


class OutOfStock(BoxOfficeError):
    """A reservation would exceed the remaining capacity."""

    reason = "out_of_stock"
    status_code = status.HTTP_400_BAD_REQUEST


class DependencyUnavailable(BoxOfficeError):
    """The datastore or an external service could not be reached."""

    reason = "dependency_unavailable"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


def _error_body(message: str, reason: str) -> dict[str, str]:
    return {"detail": message, "reason": reason}


async def box_office_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, BoxOfficeError) else DependencyUnavailable(str(exc))
    if error.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, error.message)
    return JSONResponse(status_code=error.status_code, content=_error_body(error.message, error.reason))


_HTTP_REASONS = {
    status.HTTP_401_UNAUTHORIZED: "unauthenticated",
    status.HTTP_403_FORBIDDEN: Forbidden.reason,
    status.HTTP_404_NOT_FOUND: NotFound.reason,
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
    status.HTTP_503_SERVICE_UNAVAILABLE: DependencyUnavailable.reason,
}


async def http_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        return await unhandled_error_handler(request, exc)
    reason = _HTTP_REASONS.get(exc.status_code, "error")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), reason),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(message, InvalidArgument.reason),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", DependencyUnavailable.reason),
    )


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    BoxOfficeError: box_office_error_handler,
    StarletteHTTPException: http_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
