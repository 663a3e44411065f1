"""Domain-specific exceptions for leadgen-service.

Every exception maps to one HTTP status and a stable ``error_type`` that
is rendered into the error envelope by the API layer.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    error_type: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str]:
        return {}


class AuthenticationFailure(ServiceError):
    """Missing, malformed, expired or wrongly signed bearer token."""

    status_code = 401
    error_type = "unauthenticated"
    default_message = "Unauthorized"

    @property
    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class AuthorizationFailure(ServiceError):
    """Token verified but no tenant could be resolved."""

    status_code = 403
    error_type = "forbidden"
    default_message = "Tenant could not be resolved"


class ValidationFailure(ServiceError):
    status_code = 400
    error_type = "validation_error"
    default_message = "Invalid request"


class NotFound(ServiceError):
    """Entity absent, or owned by another tenant."""

    status_code = 404
    error_type = "not_found"
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    error_type = "conflict"
    default_message = "Conflict"


class IdempotencyConflict(ConflictError):
    """Idempotency key reused with a different request payload."""

    error_type = "idempotency_conflict"
    default_message = "Idempotency key was already used with a different payload"


class DuplicateCode(ConflictError):
    error_type = "duplicate_code"
    default_message = "A QR tag with this code already exists"


class RateLimited(ServiceError):
    status_code = 429
    error_type = "rate_limit"
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: int = 1,
        limit: int | None = None,
    ) -> None:
        self.retry_after = retry_after
        self.limit = limit
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Retry-After": str(self.retry_after)}
        if self.limit is not None:
            headers["RateLimit-Limit"] = str(self.limit)
            headers["RateLimit-Remaining"] = "0"
            headers["RateLimit-Reset"] = str(self.retry_after)
        return headers


class InternalFailure(ServiceError):
    """Storage or unexpected failure; the message never leaves the server."""
