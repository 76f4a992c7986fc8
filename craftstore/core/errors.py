import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from craftstore.core.config import get_settings

logger = logging.getLogger("craftstore.errors")


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context = context or {}

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized access", **kwargs: Any):
        super().__init__(message, **kwargs)


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Forbidden access", **kwargs: Any):
        super().__init__(message, **kwargs)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, context={"resource": resource, "identifier": identifier})


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class TooManyRequestsError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Too many requests", *, retry_after: float = 0.0):
        super().__init__(message, context={"retry_after": round(retry_after)})
        self.retry_after = retry_after


class OrderRejected(AppError):
    """Raised inside the order transaction when items cannot be fulfilled."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reasons: List[str]):
        super().__init__("Order could not be placed", context={"reasons": list(reasons)})
        self.reasons = list(reasons)


class InvalidStatusTransition(AppError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change order status from '{current}' to '{requested}'",
            context={"current": current, "requested": requested},
        )


class DatabaseError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(message: str, code: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": message, "code": code}
    if context:
        body["context"] = context
    return body


def _request_context(request: Request) -> Dict[str, Any]:
    return {
        "method": request.method,
        "path": request.url.path,
        "request_id": getattr(request.state, "request_id", None),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    settings = get_settings()
    if exc.status_code >= 500:
        logger.error(
            "application_error",
            exc_info=exc,
            extra={"error": exc.message, "context": exc.context, **_request_context(request)},
        )
        if not settings.is_development:
            return JSONResponse(_error_body("Internal server error", "InternalError"), status_code=exc.status_code)
    else:
        logger.warning(
            "client_error",
            extra={"error": exc.message, "status_code": exc.status_code, **_request_context(request)},
        )

    headers = None
    if isinstance(exc, TooManyRequestsError):
        headers = {"Retry-After": str(max(1, round(exc.retry_after)))}
    return JSONResponse(
        _error_body(exc.message, exc.code, exc.context),
        status_code=exc.status_code,
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
            "code": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    logger.warning("request_validation_failed", extra={"issues": issues, **_request_context(request)})
    return JSONResponse(
        _error_body("Validation failed", "ValidationError", {"issues": issues}),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        _error_body(str(exc.detail), "HTTPException"),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    settings = get_settings()
    logger.error("unexpected_error", exc_info=exc, extra=_request_context(request))
    message = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(_error_body(message, "InternalError"), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
