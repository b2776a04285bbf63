"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from captcha_relay.core.exceptions import ConfigurationError

# Order in which missing required settings are reported
REQUIRED_SETTINGS: tuple[str, ...] = (
    "gemini_api_key",
    "gemini_model",
    "auth_token",
    "api_key",
    "redis_url",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Inference provider
    # Required values default to None so the service can start and report
    # which one is missing instead of crashing at import time.
    gemini_api_key: SecretStr | None = Field(
        default=None,
        description="Credential for the Gemini generateContent API",
    )
    gemini_model: str | None = Field(
        default=None,
        description="Gemini model identifier (e.g. gemini-1.5-flash)",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the Gemini REST API",
        pattern=r"^https?://.*",
    )
    gemini_timeout_seconds: float = Field(
        default=30.0,
        description="Transport timeout for the single provider request",
        gt=0.0,
        le=300.0,
    )
    gemini_temperature: float = Field(
        default=0.1,
        description="Sampling temperature (answers are short tokens, keep it low)",
        ge=0.0,
        le=2.0,
    )
    gemini_max_output_tokens: int = Field(
        default=20,
        description="Output cap for the generated answer",
        ge=1,
        le=1024,
    )

    # Client credentials
    auth_token: SecretStr | None = Field(
        default=None,
        description="Bearer token required by POST /submit",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Query key required by GET /result",
    )

    # Result store
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL used as the task result store",
    )
    task_ttl_seconds: int = Field(
        default=300,
        description="Expiry applied to both the pending and the terminal task write",
        ge=1,
        le=86400,
    )

    # Application settings
    app_name: str = "Captcha Relay"
    app_version: str = "0.1.0"
    debug: bool = False

    # API settings
    api_host: str = "0.0.0.0"  # noqa: S104
    api_port: int = 8000

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit console logs as JSON lines",
    )
    log_file_path: str = Field(
        default="data/logs/captcha-relay.log",
        description="Path for rotating log file",
    )
    log_file_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Maximum size of each log file in bytes",
    )
    log_file_backup_count: int = Field(
        default=7,
        description="Number of backup log files to keep",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None) -> str | None:
        """Validate Redis URL scheme when a URL is provided."""
        if v and not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Invalid Redis URL scheme, expected redis://, rediss:// or unix://")
        return v or None

    def missing_required(self) -> list[str]:
        """Return names of required settings that are not configured."""
        missing = []
        for name in REQUIRED_SETTINGS:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if not value:
                missing.append(name)
        return missing


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Immutable per-process configuration handed to every request handler.

    Built once from :class:`Settings`; unlike ``Settings`` every field is
    guaranteed present, so handlers never deal with partial configuration.
    """

    gemini_api_key: str
    gemini_model: str
    auth_token: str
    api_key: str
    redis_url: str
    task_ttl_seconds: int = 300
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout_seconds: float = 30.0
    gemini_temperature: float = 0.1
    gemini_max_output_tokens: int = 20

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayConfig:
        """Build a RelayConfig, failing on the first missing required setting.

        Raises:
            ConfigurationError: naming the missing setting
        """
        missing = settings.missing_required()
        if missing:
            raise ConfigurationError(setting=missing[0])

        # missing_required() guarantees these are set
        assert settings.gemini_api_key is not None  # noqa: S101
        assert settings.auth_token is not None  # noqa: S101
        assert settings.api_key is not None  # noqa: S101
        return cls(
            gemini_api_key=settings.gemini_api_key.get_secret_value(),
            gemini_model=str(settings.gemini_model),
            auth_token=settings.auth_token.get_secret_value(),
            api_key=settings.api_key.get_secret_value(),
            redis_url=str(settings.redis_url),
            task_ttl_seconds=settings.task_ttl_seconds,
            gemini_base_url=settings.gemini_base_url.rstrip("/"),
            gemini_timeout_seconds=settings.gemini_timeout_seconds,
            gemini_temperature=settings.gemini_temperature,
            gemini_max_output_tokens=settings.gemini_max_output_tokens,
        )

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks
        return (
            f"RelayConfig(gemini_model={self.gemini_model!r}, "
            f"redis_url={self.redis_url!r}, task_ttl_seconds={self.task_ttl_seconds})"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
