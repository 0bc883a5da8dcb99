from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code:
    - validation_error (400)
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class BadRequestError(ValidationError):
    """Alias for ValidationError - request is malformed or invalid."""
    pass


class NoScopeError(BadRequestError):
    """A first token exchange did not name any scope (400)."""

    def __init__(self, message: str = "no scope provided", **kwargs) -> None:
        super().__init__(message, error_code="no_scope", **kwargs)


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class NotAuthorizedError(AuthenticationError):
    """The bearer token is unknown, invalid or lacks the requested scope."""

    def __init__(self, message: str = "not authorized", **kwargs) -> None:
        super().__init__(message, **kwargs)


class NoTokenError(AuthenticationError):
    """No challenge or bearer token was supplied (401)."""

    def __init__(self, message: str = "no token provided", **kwargs) -> None:
        super().__init__(message, error_code="no_token", **kwargs)


class ForbiddenError(ServiceError):
    """Access denied - the account state disallows the operation (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class NoSuchEntityError(NotFoundError):
    """An entity that the operation requires to exist is absent."""

    def __init__(self, message: str = "entity does not exist", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ConflictError(ServiceError):
    """Resource conflict, e.g., duplicate creation (409)."""
    status_code = 409
    error_code = "conflict"


class AccountExistsError(ConflictError):
    """An account for (realm, user_id) already exists."""

    def __init__(self, message: str = "account exists", **kwargs) -> None:
        super().__init__(message, error_code="account_exists", **kwargs)


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


class NotificationError(ServerError):
    """A challenge or token could not be delivered."""


__all__ = [
    "ServiceError",
    "ValidationError",
    "BadRequestError",
    "NoScopeError",
    "AuthenticationError",
    "NotAuthorizedError",
    "NoTokenError",
    "ForbiddenError",
    "NotFoundError",
    "NoSuchEntityError",
    "ConflictError",
    "AccountExistsError",
    "ServerError",
    "NotificationError",
]
