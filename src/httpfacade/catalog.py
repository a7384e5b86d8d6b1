"""Registries and classification for HTTP verbs, statuses, content types and headers.

The header catalog and status tables are built once, at import, into
immutable lookups. ``DEFAULT_CATALOG`` is the shared header registry;
callers that need a different vocabulary construct their own
``HeaderCatalog`` and pass it to the header store.
"""

import itertools
import re
from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from httpfacade.constants import (
    CONTENT_TYPES,
    HTTP_HEADERS,
    OK_STATUSES,
    PRIORITY,
    RATE_LIMIT_STATUSES,
    REDIRECT_STATUSES,
    STATUS_CODES,
    STATUS_ELIGIBLE_FOR_RETRY,
    STATUS_NAME_BY_CODE,
    STATUS_NOT_MODIFIED,
    VERBS,
    VERBS_FORBIDDING_BODY,
    VERBS_REQUIRING_BODY,
)
from httpfacade.errors import IllegalArgumentError
from httpfacade.shape import get_field, is_integral, parse_json_text


CUSTOM_HEADER_PREFIX = "X-"

# RFC 7230 field-name token
HEADER_NAME_TOKEN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


class HeaderCategory(str, Enum):
    """Grouping of header definitions in the catalog."""

    AUTHENTICATION = "AUTHENTICATION"
    CACHING = "CACHING"
    CONNECTION = "CONNECTION"
    CONDITIONAL = "CONDITIONAL"
    CONTENT_NEGOTIATION = "CONTENT_NEGOTIATION"
    CONTROLS = "CONTROLS"
    COOKIE = "COOKIE"
    CORS = "CORS"
    INTEGRITY = "INTEGRITY"
    MESSAGE_BODY = "MESSAGE_BODY"
    PROXIES = "PROXIES"
    RANGE = "RANGE"
    REDIRECTION = "REDIRECTION"
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"
    SECURITY = "SECURITY"
    FETCH = "FETCH"
    TRANSFER = "TRANSFER"
    WEB_SOCKETS = "WEB_SOCKETS"
    OTHER = "OTHER"
    CUSTOM = "CUSTOM"


class HeaderDefinition(BaseModel):
    """A known header name with its description and category."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(ge=-1, description="Registration order; -1 for custom X- headers")
    name: str = Field(min_length=1)
    description: str = ""
    category: HeaderCategory = HeaderCategory.OTHER

    @property
    def key(self) -> str:
        """Lowercase lookup key."""
        return self.name.lower()

    def __str__(self) -> str:
        return self.name


class Header(BaseModel):
    """A header definition paired with a string value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    definition: HeaderDefinition
    value: str

    @property
    def name(self) -> str:
        """Header name as registered."""
        return self.definition.name


class HeaderCatalog:
    """Immutable registry of header definitions keyed case-insensitively.

    Token names beginning with ``X-`` are always accepted as custom headers
    even when they are not registered.
    """

    def __init__(self, definitions: Iterable[HeaderDefinition]) -> None:
        """Initialize the catalog.

        Args:
            definitions: Definitions to register. When two share a name the
                first one wins.
        """
        by_key: dict[str, HeaderDefinition] = {}
        for definition in definitions:
            by_key.setdefault(definition.key, definition)
        self._by_key = MappingProxyType(by_key)

    @classmethod
    def from_mapping(
        cls, table: Mapping[str, Mapping[str, str]]
    ) -> "HeaderCatalog":
        """Build a catalog from a category -> {name: description} table.

        Args:
            table: Static header table such as ``HTTP_HEADERS``.

        Returns:
            New catalog with ids assigned in table order.
        """
        counter = itertools.count()
        definitions = [
            HeaderDefinition(
                id=next(counter),
                name=name,
                description=description,
                category=HeaderCategory(category),
            )
            for category, headers in table.items()
            for name, description in headers.items()
        ]
        return cls(definitions)

    def get(self, name: str) -> HeaderDefinition | None:
        """Look up a registered definition by name, ignoring case."""
        return self._by_key.get(name.strip().lower())

    def definition_for(self, name: str) -> HeaderDefinition | None:
        """Return the registered definition, or a custom one for ``X-`` names.

        Args:
            name: Header name.

        Returns:
            The definition, or None when the name is not a header.
        """
        definition = self.get(name)
        if definition is not None:
            return definition
        if self.is_custom(name):
            return HeaderDefinition(
                id=-1, name=name.strip(), category=HeaderCategory.CUSTOM
            )
        return None

    @staticmethod
    def is_custom(name: str) -> bool:
        """Check whether a name is a well-formed token with the ``X-`` prefix."""
        stripped = name.strip()
        return (
            len(stripped) > len(CUSTOM_HEADER_PREFIX)
            and stripped.upper().startswith(CUSTOM_HEADER_PREFIX)
            and HEADER_NAME_TOKEN.fullmatch(stripped) is not None
        )

    def is_header(self, name: Any) -> bool:
        """Check whether a value names a registered or custom header.

        Never raises; non-string values other than definitions are not
        headers.
        """
        if isinstance(name, HeaderDefinition):
            return True
        if not isinstance(name, str) or not name.strip():
            return False
        return self.get(name) is not None or self.is_custom(name)

    def categories(self) -> list[HeaderCategory]:
        """Categories that have at least one registered definition."""
        seen: dict[HeaderCategory, None] = {}
        for definition in self._by_key.values():
            seen.setdefault(definition.category, None)
        return list(seen)

    def in_category(self, category: HeaderCategory) -> list[HeaderDefinition]:
        """Definitions registered under a category."""
        return [d for d in self._by_key.values() if d.category == category]

    def __iter__(self) -> Iterator[HeaderDefinition]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, name: object) -> bool:
        return self.is_header(name)


DEFAULT_CATALOG = HeaderCatalog.from_mapping(HTTP_HEADERS)


class HttpVerb(str, Enum):
    """HTTP request methods, in index order."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    TRACE = "TRACE"

    @property
    def requires_body(self) -> bool:
        """Whether requests with this verb carry a body."""
        return self.value in VERBS_REQUIRING_BODY

    @property
    def allows_body(self) -> bool:
        """Whether requests with this verb may carry a body."""
        return self.requires_body or self is HttpVerb.DELETE

    @property
    def forbids_body(self) -> bool:
        """Whether a body must be dropped for this verb."""
        return self.value in VERBS_FORBIDDING_BODY

    @classmethod
    def resolve(cls, value: Any) -> "HttpVerb":
        """Resolve any method-like value to a verb, defaulting to GET."""
        return cls(resolve_http_method(value))

    def __str__(self) -> str:
        return self.value


def resolve_http_method(value: Any) -> str:
    """Resolve a method-like value to an uppercase verb name.

    Accepts a verb, a verb name in any case, JSON text, a mapping or object
    with a ``method`` field, or an index into the verb list. Anything else
    resolves to GET.

    Args:
        value: Method-like value.

    Returns:
        Uppercase verb name.
    """
    if isinstance(value, HttpVerb):
        return value.value
    if isinstance(value, bool) or value is None:
        return HttpVerb.GET.value
    if isinstance(value, int):
        return VERBS[value] if 0 <= value < len(VERBS) else HttpVerb.GET.value
    if isinstance(value, str):
        candidate = value.strip().upper()
        if candidate in VERBS:
            return candidate
        if is_integral(candidate):
            return resolve_http_method(int(candidate))
        parsed, payload = parse_json_text(value)
        if parsed:
            return resolve_http_method(payload)
        return HttpVerb.GET.value
    method = get_field(value, "method")
    if method is not None and method is not value:
        return resolve_http_method(method)
    return HttpVerb.GET.value


def is_verb(value: Any) -> bool:
    """Check whether a value is a known HTTP verb."""
    if isinstance(value, HttpVerb):
        return True
    return isinstance(value, str) and value.strip().upper() in VERBS


class HttpContentType(BaseModel):
    """A named MIME type from the content-type table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    content_type: str

    @classmethod
    def of(cls, key: str) -> "HttpContentType":
        """Look up a content type by table key (e.g. ``JSON``)."""
        return cls(type=key.upper(), content_type=CONTENT_TYPES[key.upper()])

    def __str__(self) -> str:
        return self.content_type


def is_content_type(value: Any) -> bool:
    """Check whether a value is a known content type key or MIME type."""
    if isinstance(value, HttpContentType):
        return True
    if not isinstance(value, str) or not value.strip():
        return False
    candidate = value.split(";", 1)[0].strip().lower()
    return candidate.upper() in CONTENT_TYPES or candidate in {
        mime.lower() for mime in CONTENT_TYPES.values()
    }


def calculate_content_type(body: Any) -> str:
    """Infer the content type for a request body.

    Args:
        body: Request body.

    Returns:
        MIME type, or an empty string when there is no body or the body is
        still pending.
    """
    if body is None or hasattr(body, "__await__"):
        return ""
    if isinstance(body, (bytes, bytearray, memoryview)):
        return CONTENT_TYPES["BINARY_STREAM"]
    if isinstance(body, str):
        parsed, _ = parse_json_text(body)
        return CONTENT_TYPES["JSON"] if parsed else CONTENT_TYPES["FORM_URLENCODED"]
    if isinstance(body, (bool, int, float)):
        return CONTENT_TYPES["FORM_URLENCODED"]
    return CONTENT_TYPES["JSON"]


def get_content_type(config: Any) -> str:
    """Return the declared content type of a request config, else infer one.

    Args:
        config: Request-like mapping or object with ``headers`` and
            ``body``/``data``.

    Returns:
        MIME type, or an empty string.
    """
    headers = get_field(config, "headers")
    declared = None
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if str(key).lower() == "content-type":
                declared = value
                break
    elif headers is not None and hasattr(headers, "get"):
        declared = headers.get("content-type")
    if declared:
        return str(declared)
    return calculate_content_type(get_field(config, "body", "data"))


def calculate_priority(request: Any = None, config: Any = None) -> str:
    """Resolve a request priority to ``low``, ``high`` or ``auto``.

    Numeric priorities map negative to low and positive to high.

    Args:
        request: Request-like value that may carry ``priority``.
        config: Fallback config that may carry ``priority``.

    Returns:
        Priority name.
    """
    priority = get_field(request, "priority") or get_field(config, "priority")
    if priority is None or isinstance(priority, bool):
        return PRIORITY["AUTO"]
    if is_integral(priority):
        number = int(priority)
        if number < 0:
            return PRIORITY["LOW"]
        return PRIORITY["HIGH"] if number > 0 else PRIORITY["AUTO"]
    if isinstance(priority, str):
        return PRIORITY.get(priority.strip().upper(), PRIORITY["AUTO"])
    return PRIORITY["AUTO"]


class HttpStatus(BaseModel):
    """An HTTP status code with its canonical name.

    Classification predicates are pure functions of ``code``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: int = Field(ge=0)
    name: str

    def is_informational(self) -> bool:
        """1xx."""
        return 100 <= self.code < 200

    def is_success(self) -> bool:
        """2xx."""
        return 200 <= self.code < 300

    def is_redirect(self) -> bool:
        """One of 301, 302, 303, 307, 308.

        300 and 304 are deliberately excluded; see ``is_use_cached``.
        """
        return self.code in REDIRECT_STATUSES

    def is_use_cached(self) -> bool:
        """304 Not Modified."""
        return self.code == STATUS_NOT_MODIFIED

    def is_error(self) -> bool:
        return self.code >= 400

    def is_client_error(self) -> bool:
        return 400 <= self.code < 500

    def is_server_error(self) -> bool:
        return self.code >= 500

    def is_exceeds_rate_limit(self) -> bool:
        """429 Too Many Requests or 425 Too Early."""
        return self.code in RATE_LIMIT_STATUSES

    def can_retry(self) -> bool:
        """Whether the status is an error eligible for a retry."""
        return self.is_error() and self.code in STATUS_ELIGIBLE_FOR_RETRY

    def is_ok(self) -> bool:
        return self.code == 200

    def is_valid(self) -> bool:
        """200, 201, 202 or 204."""
        return self.code in OK_STATUSES

    def __str__(self) -> str:
        return f"{self.code} {self.name}"

    @staticmethod
    def is_status_code(code: Any) -> bool:
        """Check whether a value is an integral, listed status code."""
        return is_integral(code) and int(code) in STATUS_NAME_BY_CODE

    @staticmethod
    def is_status_text(text: Any) -> bool:
        """Check whether a value is a listed status name."""
        return isinstance(text, str) and _status_key(text) in STATUS_CODES

    @classmethod
    def from_code(cls, code: Any) -> "HttpStatus":
        """Resolve a status from a code, name, response or candidate list.

        Args:
            code: An ``HttpStatus``, an integer or numeric text, a status
                name such as ``"OK"`` or ``"Not Found"``, a response-like
                mapping or object, or a list of such candidates (the first
                resolvable candidate wins; None entries and nested lists
                are skipped).

        Returns:
            The resolved status.

        Raises:
            IllegalArgumentError: If nothing resolves to a known status.
        """
        if isinstance(code, HttpStatus):
            return code
        if isinstance(code, (list, tuple)):
            for candidate in code:
                # Nested sequences are not candidates; a list may contain itself
                if candidate is None or isinstance(candidate, (list, tuple)):
                    continue
                try:
                    return cls.from_code(candidate)
                except IllegalArgumentError:
                    continue
            raise IllegalArgumentError(
                "None of the candidate values can be interpreted as an HTTP status",
                context="from_code",
                args=(code,),
            )
        if is_integral(code):
            number = int(code)
            if number in _STATUS_BY_CODE:
                return _STATUS_BY_CODE[number]
        elif isinstance(code, str):
            key = _status_key(code)
            if key in STATUS_CODES:
                return _STATUS_BY_CODE[STATUS_CODES[key]]
        elif code is not None and not isinstance(code, (bool, bytes, float)):
            return cls.from_response(code)
        raise IllegalArgumentError(
            "The specified value cannot be interpreted as an HTTP status",
            context="from_code",
            args=(code,),
        )

    @classmethod
    def from_response(cls, response: Any) -> "HttpStatus":
        """Resolve the status of a response-like value.

        Reads ``status``/``status_code`` and ``statusText``/``status_text``/
        ``reason_phrase`` from the value, or from its ``response`` when it
        wraps one.

        Raises:
            IllegalArgumentError: If the value carries no known status.
        """
        source = get_field(response, "response") or response
        status = get_field(source, "status", "status_code")
        if isinstance(status, HttpStatus):
            return status
        code = get_field(status, "code") if status is not None else None
        if code is None and isinstance(status, (int, str)):
            code = status
        text = get_field(source, "statusText", "status_text", "reason_phrase")
        if text is None and status is not None:
            text = get_field(status, "name")
        for candidate in (code, text):
            if isinstance(candidate, (int, str)) and not isinstance(candidate, bool):
                try:
                    return cls.from_code(candidate)
                except IllegalArgumentError:
                    continue
        raise IllegalArgumentError(
            "A valid response object is required to calculate its status",
            context="from_response",
            args=(response,),
        )


# One shared instance per listed code
_STATUS_BY_CODE: Mapping[int, HttpStatus] = MappingProxyType(
    {code: HttpStatus(code=code, name=name) for code, name in STATUS_NAME_BY_CODE.items()}
)


def _status_key(text: str) -> str:
    key = text.strip().upper().replace(" ", "_").replace("-", "_").replace("'", "")
    if key.startswith("HTTP_"):
        key = key[len("HTTP_") :]
    return key


def status_for(code: int) -> HttpStatus:
    """Return the listed status for a known code."""
    return _STATUS_BY_CODE[code]


def is_http_status(value: Any) -> bool:
    """Check whether a value resolves to a known HTTP status. Never raises."""
    if isinstance(value, HttpStatus):
        return True
    try:
        HttpStatus.from_code(value)
    except (IllegalArgumentError, TypeError, ValueError):
        return False
    return True


def is_header(value: Any, catalog: HeaderCatalog = DEFAULT_CATALOG) -> bool:
    """Check whether a value names a header in the catalog or an ``X-`` header."""
    return catalog.is_header(value)
