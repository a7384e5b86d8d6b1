"""Redaction of credentials in headers and URLs before they are logged."""

import re
from collections.abc import Iterable, Mapping


SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "proxy-authorization",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
        "api_key",
    }
)

REDACTED_VALUE = "[REDACTED]"

_URL_CREDENTIALS = re.compile(r"^([a-z][a-z0-9+.-]*://)([^:@/]+):([^@/]+)@", re.IGNORECASE)


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive.

    Args:
        header_name: The header name to check.

    Returns:
        True if the header should be redacted.
    """
    return header_name.strip().lower() in SENSITIVE_HEADERS


def redact_headers(
    headers: Mapping[str, str] | Iterable[tuple[str, str]],
) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Header mapping or (name, value) pairs, such as
            ``HeaderStore.entries()``.

    Returns:
        New dictionary with sensitive values replaced by ``[REDACTED]``.
    """
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in pairs
    }


def redact_url_credentials(url: str) -> str:
    """Redact ``user:password@`` credentials from a URL.

    Args:
        url: URL that may contain credentials.

    Returns:
        URL with credentials redacted.
    """
    return _URL_CREDENTIALS.sub(r"\1[REDACTED]:[REDACTED]@", url)
