from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "forbidden",
    "not_found",
    "validation_error",
    "conflict",
    "server_error",
    "no_token",
    "no_scope",
    "account_exists",
    "already_authorized",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


def _strip_required(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


class LoginRequest(BaseModel):
    realm: str = Field(..., max_length=128)
    user_id: str = Field(..., max_length=256)

    @field_validator("realm")
    @classmethod
    def _validate_realm(cls, value: str) -> str:
        return _strip_required(value, "realm")

    @field_validator("user_id")
    @classmethod
    def _validate_user_id(cls, value: str) -> str:
        return _strip_required(value, "user_id")


class LogoutRequest(LoginRequest):
    pass


class TokenRequest(LoginRequest):
    token: str = Field(..., max_length=256)

    @field_validator("token")
    @classmethod
    def _validate_token(cls, value: str) -> str:
        return _strip_required(value, "token")


class TokenResponse(BaseModel):
    realm: str
    user_id: str
    client_id: str
    token: str
    token_type: str
    scope: str
    expires: int


class AuthorizationInfo(BaseModel):
    realm: str
    user_id: str
    client_id: str
    token_type: str
    scope: str
    expires: int
    admin: bool
