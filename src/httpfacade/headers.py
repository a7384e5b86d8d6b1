"""Case-insensitive, multi-valued header storage.

A ``HeaderStore`` maps lowercase header names to a single concatenated
value. ``append`` joins values with ``", "`` unless the new value is
already contained in the existing one; ``set`` replaces. ``Set-Cookie``
values are kept as a list and are never comma-joined internally.

Stores are built from any header-like source. The source is classified
once into a tagged variant (``FromStore``, ``FromMapping``, ``FromPairs``,
``FromText``, ``FromForeignHeaders``) and each variant has its own
conversion into (name, value) pairs.

Invalid names, values carrying CR, LF or NUL, and over-length values are
dropped under ``ValidationPolicy.FAIL_OPEN`` (the default) and raise
``HeaderValidationError`` under ``FAIL_CLOSED``.
"""

import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from urllib.parse import unquote

import httpx
import structlog

from httpfacade.catalog import DEFAULT_CATALOG, Header, HeaderCatalog, HeaderDefinition
from httpfacade.config import HeaderLimits
from httpfacade.constants import (
    FORBIDDEN_REQUEST_HEADER_PREFIXES,
    FORBIDDEN_REQUEST_HEADERS,
    FORBIDDEN_RESPONSE_HEADERS,
    HEADER_VALUE_SEPARATOR,
    SET_COOKIE,
)
from httpfacade.errors import HeaderValidationError
from httpfacade.settings import ValidationPolicy
from httpfacade.shape import get_field, is_blank, parse_json_text


logger = structlog.get_logger()

# A comma followed by the start of a new name=value pair. Commas inside
# Expires dates ("Wed, 21 Oct 2015") are not followed by "=".
_SET_COOKIE_BOUNDARY = re.compile(r",\s*(?=[^;,=\s]+=)")
_HEADER_LINE = re.compile(r"\r?\n")
_FORBIDDEN_VALUE_CHARS = re.compile(r"[\r\n\0]")
_FILENAME_STAR = re.compile(r"filename\*\s*=\s*([^']*)'[^']*'([^;]+)", re.IGNORECASE)
_FILENAME = re.compile(r'filename\s*=\s*(?:"([^"]*)"|([^;]+))', re.IGNORECASE)


@runtime_checkable
class HeaderStoreLike(Protocol):
    """Anything that can answer header lookups the way a store does."""

    def get(self, name: Any) -> str | None: ...

    def has(self, name: Any) -> bool: ...

    def entries(self) -> list[tuple[str, str]]: ...


def resolve_header_name(key: Any) -> str:
    """Coerce a header-name-like value to a string.

    Accepts a string, a ``{name: ..., value: ...}`` mapping, a header
    definition or header, a (name, value) tuple or list, or an object with
    a ``name`` attribute.

    Args:
        key: Header-name-like value.

    Returns:
        The stripped name, or ``""`` when the value cannot be coerced.
    """
    if isinstance(key, str):
        return key.strip()
    if isinstance(key, (HeaderDefinition, Header)):
        return key.name
    if isinstance(key, (list, tuple)):
        return resolve_header_name(key[0]) if key else ""
    if isinstance(key, Mapping):
        name = key.get("name", key.get("key"))
        return name.strip() if isinstance(name, str) else ""
    name = get_field(key, "name")
    return name.strip() if isinstance(name, str) else ""


def resolve_header_value(value: Any) -> str:
    """Coerce a header value to a string.

    Lists are joined with ``", "``; a ``{value: ...}`` mapping or a header
    yields its value; None yields ``""``.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1").strip()
    if isinstance(value, Header):
        return value.value
    if isinstance(value, Mapping):
        return resolve_header_value(value.get("value"))
    if isinstance(value, (list, tuple)):
        parts = [resolve_header_value(item) for item in value]
        return HEADER_VALUE_SEPARATOR.join(part for part in parts if part)
    return str(value).strip()


def split_set_cookie(value: str) -> list[str]:
    """Split a possibly comma-joined ``Set-Cookie`` value into cookies."""
    return [cookie.strip() for cookie in _SET_COOKIE_BOUNDARY.split(value) if cookie.strip()]


def is_forbidden_request_header(name: str) -> bool:
    """Check whether a header may not be set by request code."""
    key = name.strip().lower()
    return key in FORBIDDEN_REQUEST_HEADERS or key.startswith(
        FORBIDDEN_REQUEST_HEADER_PREFIXES
    )


def is_forbidden_response_header(name: str) -> bool:
    """Check whether a header is hidden from response readers in browsers."""
    return name.strip().lower() in FORBIDDEN_RESPONSE_HEADERS


@dataclass(frozen=True)
class FromStore:
    """Headers copied from another store."""

    store: "HeaderStore"


@dataclass(frozen=True)
class FromMapping:
    """Headers given as a name -> value mapping."""

    mapping: Mapping[Any, Any]


@dataclass(frozen=True)
class FromPairs:
    """Headers given as a sequence of (name, value) pairs or header objects."""

    pairs: Sequence[Any]


@dataclass(frozen=True)
class FromText:
    """Headers given as JSON text or an RFC 7230 header block."""

    text: str


@dataclass(frozen=True)
class FromForeignHeaders:
    """Headers from a foreign container exposing ``multi_items``, ``entries`` or ``items``."""

    headers: Any


HeaderSource = FromStore | FromMapping | FromPairs | FromText | FromForeignHeaders


def classify_header_source(value: Any) -> HeaderSource | None:
    """Classify a header-like value into a source variant.

    Args:
        value: Store, mapping, pairs, text, bytes or foreign header object.

    Returns:
        The matching variant, or None for values with no headers.
    """
    if value is None:
        return None
    if isinstance(value, HeaderSource):
        return value
    if isinstance(value, HeaderStore):
        return FromStore(value)
    if isinstance(value, (bytes, bytearray)):
        return FromText(bytes(value).decode("latin-1"))
    if isinstance(value, str):
        return FromText(value)
    if callable(getattr(value, "multi_items", None)):
        return FromForeignHeaders(value)
    if isinstance(value, Mapping):
        return FromMapping(value)
    if isinstance(value, (list, tuple)):
        return FromPairs(value)
    if callable(getattr(value, "entries", None)) or callable(
        getattr(value, "items", None)
    ):
        return FromForeignHeaders(value)
    return None


def _pairs_from_store(source: FromStore) -> Iterator[tuple[Any, Any]]:
    yield from source.store.entries()


def _pairs_from_mapping(source: FromMapping) -> Iterator[tuple[Any, Any]]:
    for name, value in source.mapping.items():
        if isinstance(value, (list, tuple)) and str(name).strip().lower() == SET_COOKIE:
            for cookie in value:
                yield name, cookie
        else:
            yield name, value


def _pairs_from_sequence(source: FromPairs) -> Iterator[tuple[Any, Any]]:
    for item in source.pairs:
        if isinstance(item, (list, tuple)):
            if len(item) >= 2:
                yield item[0], item[1]
        elif isinstance(item, Header):
            yield item.name, item.value
        else:
            yield resolve_header_name(item), get_field(item, "value")


def _pairs_from_text(source: FromText) -> Iterator[tuple[Any, Any]]:
    parsed, payload = parse_json_text(source.text)
    if parsed:
        nested = classify_header_source(payload)
        if nested is not None:
            yield from header_pairs(nested)
        return
    for line in _HEADER_LINE.split(source.text):
        name, separator, value = line.partition(":")
        if separator and name.strip():
            yield name, value


def _pairs_from_foreign(source: FromForeignHeaders) -> Iterator[tuple[Any, Any]]:
    headers = source.headers
    for accessor in ("multi_items", "entries", "items"):
        method = getattr(headers, accessor, None)
        if callable(method):
            yield from method()
            return


_CONVERTERS: dict[type, Callable[[Any], Iterator[tuple[Any, Any]]]] = {
    FromStore: _pairs_from_store,
    FromMapping: _pairs_from_mapping,
    FromPairs: _pairs_from_sequence,
    FromText: _pairs_from_text,
    FromForeignHeaders: _pairs_from_foreign,
}


def header_pairs(source: HeaderSource) -> Iterator[tuple[Any, Any]]:
    """Convert a classified source into raw (name, value) pairs."""
    return _CONVERTERS[type(source)](source)


class HeaderStore:
    """Case-insensitive header container with append/set/delete semantics."""

    def __init__(
        self,
        source: Any = None,
        *,
        catalog: HeaderCatalog = DEFAULT_CATALOG,
        policy: ValidationPolicy = ValidationPolicy.FAIL_OPEN,
        limits: HeaderLimits | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            source: Optional header-like value to copy from.
            catalog: Registry used to validate header names.
            policy: Whether invalid headers are dropped or raise.
            limits: Name, value and total size limits.
        """
        self._catalog = catalog
        self._policy = policy
        self._limits = limits or HeaderLimits()
        self._values: dict[str, str] = {}
        self._names: dict[str, str] = {}
        self._cookies: list[str] = []
        self._over_total = False
        self._log = logger.bind(component="headers")
        self.update(source)

    @classmethod
    def from_literal(cls, literal: Mapping[str, Any], **kwargs: Any) -> "HeaderStore":
        """Build a store from a plain mapping."""
        return cls(FromMapping(literal), **kwargs)

    @property
    def policy(self) -> ValidationPolicy:
        """Validation policy in effect."""
        return self._policy

    @property
    def catalog(self) -> HeaderCatalog:
        """Header registry used for name validation."""
        return self._catalog

    def update(self, source: Any) -> None:
        """Append every header from a header-like source.

        Args:
            source: Store, mapping, pairs, text or foreign header object.
        """
        variant = classify_header_source(source)
        if variant is None:
            return
        for name, value in header_pairs(variant):
            self.append(name, value)

    def append(self, name: Any, value: Any) -> None:
        """Append a value, joining with ``", "`` unless already contained.

        Args:
            name: Header-name-like value.
            value: Header value.
        """
        accepted = self._accept(name, value)
        if accepted is None:
            return
        display, key, text = accepted

        if key == SET_COOKIE:
            for cookie in split_set_cookie(text):
                if cookie not in self._cookies:
                    self._cookies.append(cookie)
            if self._cookies:
                self._names[key] = display
            self._check_total()
            return

        existing = self._values.get(key)
        if not existing:
            self._values[key] = text
            self._names[key] = display
        elif text and text not in existing:
            self._values[key] = f"{existing}{HEADER_VALUE_SEPARATOR}{text}"
        self._check_total()

    def set(self, name: Any, value: Any) -> None:
        """Replace the value of a header.

        Args:
            name: Header-name-like value.
            value: Header value.
        """
        accepted = self._accept(name, value)
        if accepted is None:
            return
        display, key, text = accepted

        if key == SET_COOKIE:
            self._cookies = split_set_cookie(text)
            if self._cookies:
                self._names[key] = display
            else:
                self._names.pop(key, None)
        else:
            self._values[key] = text
            self._names[key] = display
        self._check_total()

    def get(self, name: Any) -> str | None:
        """Return the value for a name, ignoring case, or None."""
        key = resolve_header_name(name).lower()
        if key == SET_COOKIE:
            return HEADER_VALUE_SEPARATOR.join(self._cookies) if self._cookies else None
        return self._values.get(key)

    def get_value(self, name: Any, default: str = "") -> str:
        """Return the value for a name, or ``default`` when absent."""
        value = self.get(name)
        return default if value is None else value

    def has(self, name: Any) -> bool:
        """Check whether a header is present."""
        key = resolve_header_name(name).lower()
        if key == SET_COOKIE:
            return bool(self._cookies)
        return key in self._values

    def delete(self, name: Any) -> bool:
        """Remove a header.

        Returns:
            True if the header was present.
        """
        key = resolve_header_name(name).lower()
        self._names.pop(key, None)
        if key == SET_COOKIE:
            present = bool(self._cookies)
            self._cookies = []
            return present
        return self._values.pop(key, None) is not None

    def get_set_cookie(self) -> list[str]:
        """Return each ``Set-Cookie`` value as a separate entry."""
        return list(self._cookies)

    def entries(self) -> list[tuple[str, str]]:
        """Lowercase (name, value) pairs; each cookie is its own pair."""
        pairs = list(self._values.items())
        pairs.extend((SET_COOKIE, cookie) for cookie in self._cookies)
        return pairs

    def items(self) -> list[tuple[str, str]]:
        return self.entries()

    def keys(self) -> list[str]:
        """Lowercase names of the headers present."""
        names = list(self._values)
        if self._cookies:
            names.append(SET_COOKIE)
        return names

    def values(self) -> list[str]:
        return [value for _, value in self.entries()]

    def to_literal(self) -> dict[str, str]:
        """Plain lowercase-keyed mapping; cookies are joined with ``", "``.

        Use ``get_set_cookie`` for a lossless view of cookies.
        """
        literal = dict(self._values)
        if self._cookies:
            literal[SET_COOKIE] = HEADER_VALUE_SEPARATOR.join(self._cookies)
        return literal

    def to_httpx(self) -> httpx.Headers:
        """Adapt to ``httpx.Headers``, keeping cookies as separate entries."""
        return httpx.Headers([(self._names.get(k, k), v) for k, v in self.entries()])

    def merge(self, *others: Any) -> "HeaderStore":
        """Merge this store with other header-like values into a new store.

        Uses the default header merge rules; neither input is modified.
        """
        from httpfacade.merge import HeadersMerger

        return HeadersMerger().merge_headers(self, *others)

    def clone(self) -> "HeaderStore":
        """Return an independent copy of this store."""
        return type(self)(
            self, catalog=self._catalog, policy=self._policy, limits=self._limits
        )

    def __copy__(self) -> "HeaderStore":
        return self.clone()

    def __deepcopy__(self, memo: dict[int, Any]) -> "HeaderStore":
        return self.clone()

    def empty(self) -> "HeaderStore":
        """Return an empty store with the same catalog, policy and limits."""
        return type(self)(catalog=self._catalog, policy=self._policy, limits=self._limits)

    def equals(self, other: Any) -> bool:
        """Check whether another header-like value holds the same headers."""
        other_store = other if isinstance(other, HeaderStore) else HeaderStore(other)
        return sorted(self.entries()) == sorted(other_store.entries())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderStore):
            return NotImplemented
        return self.equals(other)

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        """Wire format: one ``Name: value`` line per header, CRLF-terminated."""
        return "".join(
            f"{self._names.get(key, key)}: {value}\r\n" for key, value in self.entries()
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_literal()!r})"

    def __len__(self) -> int:
        return len(self.keys())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __contains__(self, name: object) -> bool:
        return self.has(name)

    def _is_allowed(self, key: str) -> bool:
        """Whether this kind of store accepts a (valid) header name."""
        return True

    def _accept(self, name: Any, value: Any) -> tuple[str, str, str] | None:
        """Validate a header, applying the validation policy.

        Returns:
            Tuple of (display name, lowercase key, value), or None when the
            header is dropped.
        """
        resolved = resolve_header_name(name)
        if not resolved:
            return self._reject(resolved, "name is empty or not coercible")
        if len(resolved) > self._limits.max_name_length:
            return self._reject(
                resolved[:64], "name exceeds length limit", length=len(resolved)
            )
        definition = self._catalog.definition_for(resolved)
        if definition is None:
            return self._reject(resolved, "not a known or X- header")

        text = resolve_header_value(value)
        if _FORBIDDEN_VALUE_CHARS.search(text):
            return self._reject(resolved, "value contains CR, LF or NUL")
        if len(text) > self._limits.max_value_length:
            return self._reject(
                resolved, "value exceeds length limit", length=len(text)
            )

        key = resolved.lower()
        if not self._is_allowed(key):
            self._log.debug("header_forbidden", header=key)
            return None
        display = definition.name if definition.id >= 0 else resolved
        return display, key, text

    def _reject(self, name: str, reason: str, length: int | None = None) -> None:
        if self._policy is ValidationPolicy.FAIL_CLOSED:
            raise HeaderValidationError(name, reason)
        if length is None:
            self._log.debug("header_dropped", header=name, reason=reason)
        else:
            self._log.warning(
                "header_length_exceeded", header=name, reason=reason, length=length
            )
        return None

    def _check_total(self) -> None:
        total = sum(len(key) + len(value) + 4 for key, value in self.entries())
        over = total > self._limits.max_total_length
        if over and not self._over_total:
            self._log.warning(
                "header_total_length_exceeded",
                total=total,
                limit=self._limits.max_total_length,
            )
        self._over_total = over


class RequestHeaders(HeaderStore):
    """Header store for outgoing requests; forbidden request headers are dropped."""

    def _is_allowed(self, key: str) -> bool:
        return not is_forbidden_request_header(key)


class ResponseHeaders(HeaderStore):
    """Header store for received responses."""

    def extract_file_name(self, default: str = "") -> str:
        """Return the file name declared by ``Content-Disposition``.

        ``filename*`` (RFC 5987) takes precedence over ``filename``.

        Args:
            default: Value returned when no file name is declared.

        Returns:
            The file name, or ``default``.
        """
        disposition = self.get("content-disposition")
        if not disposition:
            return default
        match = _FILENAME_STAR.search(disposition)
        if match:
            charset = match.group(1) or "utf-8"
            return unquote(match.group(2).strip(), encoding=charset, errors="replace")
        match = _FILENAME.search(disposition)
        if match:
            name = match.group(1) if match.group(1) is not None else match.group(2)
            if not is_blank(name):
                return name.strip()
        return default


def get_header_value(headers: Any, name: str, default: str | None = None) -> str | None:
    """Read a header from any header-like value, ignoring case.

    Args:
        headers: Store, mapping, ``httpx.Headers``, pairs or header text.
        name: Header name.
        default: Value returned when the header is absent.

    Returns:
        The header value, or ``default``.
    """
    if isinstance(headers, HeaderStore):
        value = headers.get(name)
        return default if value is None else value
    key = name.strip().lower()
    variant = classify_header_source(headers)
    if variant is None:
        return default
    found: list[str] = []
    for raw_name, raw_value in header_pairs(variant):
        if resolve_header_name(raw_name).lower() == key:
            text = resolve_header_value(raw_value)
            if text and text not in found:
                found.append(text)
    return HEADER_VALUE_SEPARATOR.join(found) if found else default


def as_header_store(
    headers: Any, factory: type[HeaderStore] = HeaderStore, **kwargs: Any
) -> HeaderStore:
    """Return ``headers`` if it is already a ``factory`` store, else build one."""
    if type(headers) is factory:
        return headers
    return factory(headers, **kwargs)
