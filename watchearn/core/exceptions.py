from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppError):
    def __init__(self, message: str = "Invalid input", details: dict[str, Any] | None = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


# Business-rule violations. Callers branch on these; they never reach the generic handler.


class InsufficientFunds(AppError):
    def __init__(self, message: str = "Insufficient balance", details: dict[str, Any] | None = None):
        super().__init__(message, code="INSUFFICIENT_FUNDS", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class NoActivePlan(AppError):
    def __init__(self, message: str = "No active plan"):
        super().__init__(message, code="NO_ACTIVE_PLAN", status_code=status.HTTP_403_FORBIDDEN)


class PlanAlreadyActive(AppError):
    def __init__(self, message: str = "An active plan already exists", details: dict[str, Any] | None = None):
        super().__init__(message, code="PLAN_ALREADY_ACTIVE", status_code=status.HTTP_409_CONFLICT, details=details)


class QuotaExhausted(AppError):
    def __init__(self, message: str = "Daily video quota reached", details: dict[str, Any] | None = None):
        super().__init__(message, code="QUOTA_EXHAUSTED", status_code=status.HTTP_403_FORBIDDEN, details=details)


class AlreadyCredited(AppError):
    def __init__(self, message: str = "Video already credited today"):
        super().__init__(message, code="ALREADY_CREDITED", status_code=status.HTTP_409_CONFLICT)


class AlreadyProcessed(AppError):
    def __init__(self, message: str = "Request already processed", details: dict[str, Any] | None = None):
        super().__init__(message, code="ALREADY_PROCESSED", status_code=status.HTTP_409_CONFLICT, details=details)


class ConcurrencyConflict(AppError):
    """Optimistic version check lost against a concurrent writer."""

    def __init__(self, message: str = "Concurrent update, please retry"):
        super().__init__(message, code="CONCURRENCY_CONFLICT", status_code=status.HTTP_409_CONFLICT)


# External collaborator failures


class StorageFailure(AppError):
    def __init__(self, message: str = "Media storage failed"):
        super().__init__(message, code="STORAGE_FAILURE", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class NotifyFailure(AppError):
    def __init__(self, message: str = "Notification failed"):
        super().__init__(message, code="NOTIFY_FAILURE", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _with_request_id(request: Request, body: dict[str, Any]) -> dict[str, Any]:
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": jsonable_encoder(exc.details),
        }
    }
    return ORJSONResponse(status_code=exc.status_code, content=_with_request_id(request, body))


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        from watchearn.core.logging import get_logger
        get_logger(__name__).error("app_error", code=exc.code, message=exc.message)
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})},
        }
    }
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_with_request_id(request, body),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from watchearn.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_with_request_id(request, body),
    )
