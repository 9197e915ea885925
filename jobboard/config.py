from __future__ import annotations

import os
import secrets
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from jobboard.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Deployment-time settings for the job board API."""

    database_url: str = env_field(
        "postgresql://localhost:5432/jobboard", "DATABASE_URL"
    )
    redis_url: str | None = env_field("redis://localhost:6379/0", "REDIS_URL")
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    allow_redis_fallback_dev: bool = env_field(False, "ALLOW_REDIS_FALLBACK_DEV")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Deterministic testing behaviors (sync redis client, cacheless fallback).",
    )

    # Access tokens are signed with jwt_secret; every client-bound secret is
    # additionally wrapped with envelope_key.
    jwt_secret: str | None = env_field(None, "JWT_SECRET", validate_default=True)
    envelope_key: str | None = env_field(None, "ENVELOPE_KEY", validate_default=True)
    access_token_ttl_minutes: int = env_field(15, "ACCESS_TOKEN_TTL_MINUTES")
    refresh_token_ttl_minutes: int = env_field(
        30 * 24 * 60, "REFRESH_TOKEN_TTL_MINUTES"
    )
    email_verification_token_ttl_minutes: int = env_field(
        24 * 60, "EMAIL_VERIFICATION_TOKEN_TTL_MINUTES"
    )
    reset_password_token_ttl_minutes: int = env_field(
        60, "RESET_PASSWORD_TOKEN_TTL_MINUTES"
    )
    refresh_cookie_name: str = env_field("__Host-token", "REFRESH_COOKIE_NAME")

    cache_ttl_seconds: int = env_field(
        300,
        "CACHE_TTL_SECONDS",
        description="Lifetime of read-through cache entries; also the staleness bound.",
    )

    smtp_host: str | None = env_field(None, "SMTP_HOST")
    smtp_port: int = env_field(587, "SMTP_PORT")
    smtp_user: str | None = env_field(None, "SMTP_USER")
    smtp_password: str | None = env_field(None, "SMTP_PASSWORD")
    smtp_use_tls: bool = env_field(True, "SMTP_USE_TLS")
    email_from_address: str | None = env_field(None, "EMAIL_FROM_ADDRESS")
    email_from_name: str = env_field("Job Board", "EMAIL_FROM_NAME")
    verify_email_url: str = env_field(
        "http://localhost:3000/verify-email", "VERIFY_EMAIL_URL"
    )
    reset_password_url: str = env_field(
        "http://localhost:3000/reset-password", "RESET_PASSWORD_URL"
    )

    cors_allow_origins: list[str] = env_field([], "CORS_ALLOW_ORIGINS")

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

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("jwt_secret", "envelope_key")
    @classmethod
    def _ensure_secret(cls, value: str | None, info) -> str:
        if value:
            return value
        logger.warning(
            "secret_generated_ephemeral",
            setting=info.field_name,
            message="Tokens will not survive a restart; configure the secret explicitly.",
        )
        return secrets.token_urlsafe(64)

    @model_validator(mode="after")
    def _distinct_secrets(self) -> "Settings":
        if self.jwt_secret == self.envelope_key:
            raise ValueError("JWT_SECRET and ENVELOPE_KEY must differ")
        return self


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
