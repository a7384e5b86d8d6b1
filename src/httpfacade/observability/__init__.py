"""Structured logging for httpfacade."""

from httpfacade.observability.logging import (
    configure_from_settings,
    configure_logging,
    get_logger,
    redact_event,
)


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "redact_event",
]
