"""Validated configuration models for header limits, retry delays and transport."""

import random
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from httpfacade.constants import (
    DEFAULT_RETRY_DELAY,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_RETRY_JITTER_MS,
    MAX_HEADER_NAME_LENGTH,
    MAX_HEADER_TOTAL_LENGTH,
    MAX_HEADER_VALUE_LENGTH,
    MAX_RETRY_DELAY_MS,
    MAX_RETRY_JITTER_MS,
    MIN_RETRY_DELAY_MS,
)
from httpfacade.settings import AppSettings, ValidationPolicy


Clock = Callable[[], datetime]
Rng = Callable[[], float]


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class HeaderLimits(BaseModel):
    """Size limits applied by header stores (characters)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_name_length: Annotated[int, Field(ge=1)] = MAX_HEADER_NAME_LENGTH
    max_value_length: Annotated[int, Field(ge=1)] = MAX_HEADER_VALUE_LENGTH
    max_total_length: Annotated[int, Field(ge=1)] = MAX_HEADER_TOTAL_LENGTH


class RetryDelayPolicy(BaseModel):
    """How long to wait before retrying a retry-eligible status.

    The delay starts from a per-status base, is raised by a ``Retry-After``
    hint, clamped, and then has random jitter added.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_delays_ms: dict[int, int] = Field(
        default_factory=lambda: dict(DEFAULT_RETRY_DELAY)
    )
    default_delay_ms: Annotated[int, Field(ge=0)] = DEFAULT_RETRY_DELAY_MS
    min_delay_ms: Annotated[int, Field(ge=0)] = MIN_RETRY_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0, le=300_000)] = MAX_RETRY_DELAY_MS
    jitter_max_ms: Annotated[int, Field(ge=0, le=MAX_RETRY_JITTER_MS)] = (
        DEFAULT_RETRY_JITTER_MS
    )

    @field_validator("max_delay_ms")
    @classmethod
    def _max_not_below_min(cls, value: int, info: ValidationInfo) -> int:
        minimum = info.data.get("min_delay_ms", MIN_RETRY_DELAY_MS)
        if value < minimum:
            msg = f"max_delay_ms ({value}) must be >= min_delay_ms ({minimum})"
            raise ValueError(msg)
        return value

    def base_delay_ms(self, status: int) -> int:
        """Base delay for a status code before any Retry-After hint."""
        return self.base_delays_ms.get(status, self.default_delay_ms)

    def delay_ms(
        self,
        status: int,
        retry_after: str | None = None,
        now: Clock = utc_now,
        rng: Rng = random.random,
    ) -> int:
        """Calculate the delay before retrying.

        Args:
            status: HTTP status code of the failed response.
            retry_after: Raw ``Retry-After`` value (seconds or HTTP date).
            now: Clock used to measure an HTTP-date hint.
            rng: Source of uniform floats in [0, 1) for jitter.

        Returns:
            Delay in milliseconds, within
            ``[min_delay_ms, max_delay_ms + jitter_max_ms)``.
        """
        base = self.base_delay_ms(status)
        delay = base
        if retry_after is not None and retry_after.strip():
            hint = parse_retry_after_ms(retry_after, now)
            delay = 2 * base if hint is None else max(hint, base)
        delay = max(self.min_delay_ms, min(delay, self.max_delay_ms))
        return delay + int(rng() * self.jitter_max_ms)


def parse_retry_after_ms(value: str, now: Clock = utc_now) -> int | None:
    """Parse a Retry-After value to milliseconds from ``now``.

    Args:
        value: Header value, either delta-seconds or an HTTP date.
        now: Clock used for HTTP dates.

    Returns:
        Milliseconds to wait (never negative), or None if not parseable.
    """
    text = value.strip()
    try:
        return max(0, int(float(text) * 1000))
    except (ValueError, OverflowError):
        pass

    try:
        target = parsedate_to_datetime(text)
    except (ValueError, TypeError):
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=UTC)
    delta = target - now()
    return max(0, int(delta.total_seconds() * 1000))


class TransportConfig(BaseModel):
    """Defaults applied by ``HttpFetcher`` to every outgoing request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_ms: int = Field(default=-1, description="<= 0 means no timeout")
    user_agent: str = "httpfacade/0.1"
    follow_redirects: bool = False
    default_headers: dict[str, str] = Field(default_factory=dict)
    header_limits: HeaderLimits = Field(default_factory=HeaderLimits)
    retry_policy: RetryDelayPolicy = Field(default_factory=RetryDelayPolicy)
    validation_policy: ValidationPolicy = ValidationPolicy.FAIL_OPEN

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "TransportConfig":
        """Build transport defaults from environment settings."""
        return cls(
            timeout_ms=settings.default_timeout_ms,
            user_agent=settings.user_agent,
            retry_policy=RetryDelayPolicy(jitter_max_ms=settings.retry_jitter_max_ms),
            validation_policy=settings.validation_policy,
        )

    @property
    def timeout_seconds(self) -> float | None:
        """Timeout for httpx, or None when disabled."""
        return self.timeout_ms / 1000 if self.timeout_ms > 0 else None

