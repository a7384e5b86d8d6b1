"""structlog setup for httpfacade.

Every event passes through ``redact_event`` before rendering, so header
values such as ``Authorization`` and credentials embedded in URLs never
reach the log output.
"""

import logging
import sys
from collections.abc import Mapping, MutableMapping
from typing import Any, TextIO

import structlog

from httpfacade.redact import (
    REDACTED_VALUE,
    is_sensitive_header,
    redact_headers,
    redact_url_credentials,
)
from httpfacade.settings import AppSettings


_URL_KEYS = frozenset({"url", "redirect_url", "base_url"})


def redact_event(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking credentials in an event."""
    for key, value in list(event_dict.items()):
        if is_sensitive_header(key):
            event_dict[key] = REDACTED_VALUE
        elif key == "headers" and isinstance(value, Mapping):
            event_dict[key] = redact_headers(value)
        elif key in _URL_KEYS and isinstance(value, str):
            event_dict[key] = redact_url_credentials(value)
    return event_dict


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Route structlog events to ``output``.

    Args:
        level: Minimum level; lower events are dropped before processing.
        output: Stream the rendered lines are printed to.
        json_format: One JSON object per line when True, the console
            renderer otherwise (colored only on a TTY).
    """
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=output.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_event,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)


def configure_from_settings(settings: AppSettings, output: TextIO = sys.stderr) -> None:
    """Apply ``log_level`` and ``log_json`` from settings.

    An unrecognized level name falls back to INFO.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    configure_logging(level=level, output=output, json_format=settings.log_json)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
