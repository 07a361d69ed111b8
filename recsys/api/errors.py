"""
Error Handlers
HTTP representation of API and engine errors.

Every error body has the shape {"error": {"message", "type", "details"}}.
"""

import logging
from typing import Optional, Union
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from .config import APISettings, get_settings
from ..ml.errors import (
    CapacityExceeded,
    DimensionMismatch,
    DuplicateItem,
    ItemNotFound,
    NotNormalized,
    NotReady,
    RecsysError,
    UserNotFound,
)

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ResourceNotFoundError(APIError):
    def __init__(self, resource: str, resource_id: Union[int, str]):
        super().__init__(
            message=f"{resource} not found: {resource_id}",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class InvalidRequestError(APIError):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class ConflictError(APIError):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, status.HTTP_409_CONFLICT, details)


class ServiceUnavailableError(APIError):
    """The engine is hydrating or draining; clients should retry later."""

    def __init__(self, state: str):
        super().__init__(
            message="Service not ready",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"state": state},
        )


class EngineError(APIError):
    """Engine failure with no more specific mapping."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_api_error(exc: RecsysError) -> APIError:
    """Map an engine error to its HTTP representation."""
    if isinstance(exc, NotReady):
        return ServiceUnavailableError(exc.state)
    if isinstance(exc, UserNotFound):
        return ResourceNotFoundError("User", exc.user_id)
    if isinstance(exc, ItemNotFound):
        return ResourceNotFoundError("Item", exc.item_id)
    if isinstance(exc, (DimensionMismatch, NotNormalized)):
        return InvalidRequestError(str(exc))
    if isinstance(exc, DuplicateItem):
        return ConflictError(str(exc), details={"id": exc.item_id})
    if isinstance(exc, CapacityExceeded):
        return ConflictError(str(exc))
    return EngineError(str(exc))


def _settings_for(request: Request) -> APISettings:
    return getattr(request.app.state, "settings", None) or get_settings()


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error_type: str,
    details=None,
) -> JSONResponse:
    """Build the JSON error body; 503s carry a Retry-After hint."""
    headers = None
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": str(_settings_for(request).retry_after_seconds)}

    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "details": details or {}}},
        headers=headers,
    )


def setup_error_handlers(app: FastAPI) -> None:
    """
    Register exception handlers on the app.

    Engine errors are translated with to_api_error(); 4xx outcomes log at
    warning, 5xx at error.
    """

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{exc.__class__.__name__} on {request.url.path}: {exc.message}",
            extra={"status_code": exc.status_code, "path": request.url.path},
        )
        return error_response(
            request, exc.status_code, exc.message, exc.__class__.__name__, exc.details
        )

    @app.exception_handler(RecsysError)
    async def engine_error_handler(request: Request, exc: RecsysError):
        return await api_error_handler(request, to_api_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc}")

        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Request validation failed",
            "ValidationError",
            errors,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"Invalid value on {request.url.path}: {exc}")
        return error_response(request, status.HTTP_400_BAD_REQUEST, str(exc), "ValueError")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "InternalServerError",
        )
