"""Domain error taxonomy shared by every service.

Services raise these; routers translate them with ``to_http_exception``.
Each error carries a human readable ``message`` and a stable ``code``.
"""

from fastapi import HTTPException, status


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str = "app_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    """Target of an update, delete or required lookup does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class ConflictError(AppError):
    """Uniqueness violation or concurrent modification."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, "conflict")


class UnauthenticatedError(AppError):
    """No valid session."""

    def __init__(self, message: str = "Please sign in to continue"):
        super().__init__(message, "unauthenticated")


class ForbiddenError(AppError):
    """Valid session without sufficient privileges."""

    def __init__(self, message: str = "You do not have permission to do this"):
        super().__init__(message, "forbidden")


class InvalidFieldError(AppError):
    """A named input field failed validation."""

    def __init__(
        self, field: str, message: str | None = None, code: str = "invalid_field"
    ):
        self.field = field
        super().__init__(message or f"Invalid value for '{field}'", code)


class InvalidReferenceError(InvalidFieldError):
    """A field references a record that breaks a structural invariant."""

    def __init__(self, field: str, message: str | None = None):
        message = message or f"'{field}' references an invalid record"
        super().__init__(field, message, "invalid_reference")


class RateLimitExceededError(AppError):
    """Too many requests in the current window."""

    def __init__(self, message: str = "Too many requests, please slow down"):
        super().__init__(message, "rate_limit_exceeded")


class TransportFailureError(AppError):
    """Mail transport rejected or failed to deliver a message."""

    def __init__(self, message: str = "Mail transport failure"):
        super().__init__(message, "transport_failure")


STATUS_MAP: dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "invalid_field": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_reference": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "rate_limit_exceeded": status.HTTP_429_TOO_MANY_REQUESTS,
}


def to_http_exception(error: AppError) -> HTTPException:
    """Convert a domain error to an HTTP exception.

    Field errors keep the offending field name in the detail so clients can
    highlight it.
    """
    status_code = STATUS_MAP.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail: str | dict[str, str] = error.message
    if isinstance(error, InvalidFieldError):
        detail = {"field": error.field, "message": error.message}

    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
