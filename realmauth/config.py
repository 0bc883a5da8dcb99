from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from realmauth.service.scope import DEFAULT_SCOPE, normalize_scope


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings, read from the environment and an optional ``.env``."""

    redis_url: str | None = env_field(None, "REDIS_URL")
    use_memory_store: bool = env_field(True, "USE_MEMORY_STORE")
    shared_fs_root: str | None = env_field(
        None,
        "SHARED_FS_ROOT",
        description="Directory for the memory store snapshot; unset keeps state in memory only",
    )
    test_mode: bool = env_field(False, "TEST_MODE")

    authentication_expiration_minutes: int = env_field(
        10,
        "AUTHENTICATION_EXPIRATION_MINUTES",
        description="Lifetime of challenges and temporary tokens",
        gt=0,
    )
    authorization_expiration_days: int = env_field(
        90,
        "AUTHORIZATION_EXPIRATION_DAYS",
        description="Lifetime of bearer tokens",
        gt=0,
    )
    default_scope: str = env_field(
        DEFAULT_SCOPE,
        "DEFAULT_SCOPE",
        description="Scope granted by the token endpoint",
    )
    auth_endpoint: str = env_field(
        "http://localhost:8000",
        "AUTH_ENDPOINT",
        description="Base URL used in notifications and the post-confirmation redirect",
    )
    cache_ttl_seconds: int = env_field(600, "CACHE_TTL_SECONDS", gt=0)

    # Email notifications; without SMTP_HOST they are only logged
    smtp_host: str | None = env_field(None, "SMTP_HOST")
    smtp_port: int = env_field(587, "SMTP_PORT")
    smtp_user: str | None = env_field(None, "SMTP_USER")
    smtp_password: str | None = env_field(None, "SMTP_PASSWORD")
    smtp_use_tls: bool = env_field(True, "SMTP_USE_TLS")
    email_from_address: str | None = env_field(None, "EMAIL_FROM_ADDRESS")
    email_from_name: str = env_field("realmauth", "EMAIL_FROM_NAME")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("default_scope")
    @classmethod
    def _normalize_default_scope(cls, value: str) -> str:
        scope = normalize_scope(value)
        if not scope:
            raise ValueError("default_scope must name at least one scope")
        return scope

    @field_validator("auth_endpoint")
    @classmethod
    def _strip_endpoint(cls, value: str) -> str:
        return value.rstrip("/")


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
