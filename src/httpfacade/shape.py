"""Helpers for probing values whose shape is only known at runtime.

Foreign responses, requests and header containers arrive as mappings,
attribute-bearing objects or plain text. These helpers read them
uniformly so callers never branch on type names.
"""

import json
import re
from collections.abc import Mapping
from typing import Any


_INTEGRAL_TEXT = re.compile(r"-?[0-9]+")


def get_field(source: Any, *names: str, default: Any = None) -> Any:
    """Return the first non-None field among ``names``.

    Mappings are read by key and other objects by attribute. Properties
    that refuse access (for example ``httpx.Response.request`` before a
    request is attached) count as missing.

    Args:
        source: Mapping or object to read.
        *names: Candidate field names, in order of preference.
        default: Value returned when no candidate is present.

    Returns:
        The first non-None value found, or ``default``.
    """
    if source is None or isinstance(source, (str, bytes, int, float)):
        return default
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name)
        else:
            try:
                value = getattr(source, name, None)
            except (AttributeError, RuntimeError):
                value = None
        if value is not None:
            return value
    return default


def has_field(source: Any, name: str) -> bool:
    """Check whether ``source`` carries a non-None ``name`` field."""
    return get_field(source, name) is not None


def is_blank(value: Any) -> bool:
    """Check whether a value is None or a whitespace-only string."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def looks_like_json(text: str) -> bool:
    """Check whether text is shaped like a JSON object or array."""
    stripped = text.strip()
    return (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    )


def parse_json_text(text: str) -> tuple[bool, Any]:
    """Parse text that looks like a JSON object or array.

    Args:
        text: Candidate JSON text.

    Returns:
        Tuple of (parsed, value). ``parsed`` is False when the text is not
        a JSON container.
    """
    if not looks_like_json(text):
        return False, None
    try:
        return True, json.loads(text)
    except json.JSONDecodeError:
        return False, None


def is_integral(value: Any) -> bool:
    """Check whether a value is an int (not bool) or ASCII integer text."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    if isinstance(value, str):
        return _INTEGRAL_TEXT.fullmatch(value.strip()) is not None
    return False
