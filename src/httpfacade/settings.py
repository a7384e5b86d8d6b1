"""Application settings powered by Pydantic BaseSettings."""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from httpfacade.constants import DEFAULT_RETRY_JITTER_MS, MAX_RETRY_JITTER_MS


class ValidationPolicy(str, Enum):
    """How header stores treat names and values that fail validation.

    - FAIL_OPEN: drop the offending header silently (the default)
    - FAIL_CLOSED: raise ``HeaderValidationError``
    """

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class AppSettings(BaseSettings):
    """Environment configuration, read from ``HTTPFACADE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPFACADE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_json: bool = True
    default_timeout_ms: int = Field(default=-1, description="<= 0 means no timeout")
    validation_policy: ValidationPolicy = ValidationPolicy.FAIL_OPEN
    retry_jitter_max_ms: int = Field(
        default=DEFAULT_RETRY_JITTER_MS, ge=0, le=MAX_RETRY_JITTER_MS
    )
    user_agent: str = "httpfacade/0.1"
    key_vault_name: str | None = None
    secrets_prefix: str = ""


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
