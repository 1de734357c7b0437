"""Custom exception types for the API client and list controller."""
from __future__ import annotations


class AppError(Exception):
    """Base app exception."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ApiError(AppError):
    """Backend call failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ApiError):
    """No response was obtained from the backend."""

    retryable = True


class SessionExpiredError(ApiError):
    """Bearer token rejected; the user has to sign in again."""

    def __init__(self, message: str = "Session expired. Please sign in again."):
        super().__init__(message, status_code=401)


class BadRequestError(ApiError):
    """Request rejected by the backend (400)."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class NotFoundError(ApiError):
    """Target record does not exist on the backend (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ConflictError(ApiError):
    """Record changed concurrently on the backend (409)."""

    def __init__(
        self,
        message: str = (
            "This subscription was modified by another session. "
            "Please close and reopen to see the latest changes."
        ),
    ):
        super().__init__(message, status_code=409)


class ValidationError(ApiError):
    """Field validation failure reported by the backend (422)."""

    def __init__(self, message: str = "Validation error", field: str | None = None):
        super().__init__(message, status_code=422)
        self.field = field


class ServerError(ApiError):
    """Server-side failure or an unexpected status code."""


class InvalidResponseError(ServerError):
    """Response body could not be decoded into the expected model."""


class UndoNotAvailableError(AppError):
    """Undo requested while no deletion is pending."""
