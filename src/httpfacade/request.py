"""Canonical request representation and resolution of request-like values.

``resolve_request`` accepts a URL, JSON text, an ``HttpRequest``, an
``httpx.Request``, or any mapping/object carrying ``url``/``method``/
``headers``, unwrapping nested ``.request`` chains up to
``MAX_UNWRAP_DEPTH`` levels.
"""

import itertools
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any
from urllib.parse import parse_qsl, urljoin, urlsplit

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from httpfacade.catalog import HttpVerb, calculate_priority
from httpfacade.constants import MAX_REQUEST_ID, MAX_UNWRAP_DEPTH, MODES
from httpfacade.errors import IllegalArgumentError, RequestAbortedError
from httpfacade.headers import HeaderStore, RequestHeaders
from httpfacade.merge import ConfigMerger
from httpfacade.redact import redact_url_credentials
from httpfacade.shape import get_field, is_blank, is_integral, parse_json_text


logger = structlog.get_logger()

REQUEST_CACHE_OPTIONS = (
    "default",
    "no-store",
    "reload",
    "no-cache",
    "force-cache",
    "only-if-cached",
)
REQUEST_CREDENTIALS_OPTIONS = ("omit", "same-origin", "include")
REDIRECT_OPTIONS = ("follow", "error", "manual")
REFERRER_POLICY_OPTIONS = (
    "no-referrer",
    "no-referrer-when-downgrade",
    "same-origin",
    "origin",
    "strict-origin",
    "origin-when-cross-origin",
    "strict-origin-when-cross-origin",
    "unsafe-url",
)
DEFAULT_REFERRER = "about:client"

PROTOCOL_PORTS = {"http": 80, "https": 443, "ftp": 21}
DEFAULT_PORT = 80

# Field names copied by RequestOptions.from_options, with accepted aliases
OPTION_FIELDS = (
    "body",
    "cache",
    "credentials",
    "headers",
    "integrity",
    "keepalive",
    "method",
    "mode",
    "priority",
    "redirect",
    "referrer",
    "referrer_policy",
    "signal",
    "timeout",
)
_OPTION_ALIASES = {"referrerPolicy": "referrer_policy", "data": "body"}


class AbortSignal:
    """Signals that an operation should be abandoned.

    Transport code checks ``aborted`` (or calls ``throw_if_aborted``);
    this class only carries the state.
    """

    def __init__(self) -> None:
        self._aborted = False
        self._reason: object = None
        self._listeners: list[Callable[["AbortSignal"], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> object:
        return self._reason

    def abort(self, reason: object = None) -> None:
        """Mark the signal aborted and notify listeners. Repeat calls are ignored."""
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason if reason is not None else RequestAbortedError()
        for listener in self._listeners:
            listener(self)

    def add_listener(self, listener: Callable[["AbortSignal"], None]) -> None:
        """Call ``listener`` on abort, immediately if already aborted."""
        if self.aborted:
            listener(self)
        else:
            self._listeners.append(listener)

    def throw_if_aborted(self) -> None:
        """Raise ``RequestAbortedError`` if the signal has fired."""
        if self.aborted:
            raise RequestAbortedError(self.reason)

    def remaining_seconds(self) -> float | None:
        """Seconds until this signal times out, or None if it has no deadline."""
        return None

    @classmethod
    def timeout(
        cls, milliseconds: int, clock: Callable[[], float] = time.monotonic
    ) -> "TimeoutSignal":
        """Signal that aborts once ``milliseconds`` have elapsed on ``clock``."""
        return TimeoutSignal(milliseconds, clock)

    @classmethod
    def any(cls, signals: Iterable["AbortSignal | None"]) -> "CombinedSignal":
        """Signal that is aborted as soon as any of ``signals`` is."""
        return CombinedSignal([s for s in signals if s is not None])


class TimeoutSignal(AbortSignal):
    """Abort signal with a deadline, evaluated lazily against a clock."""

    def __init__(self, milliseconds: int, clock: Callable[[], float]) -> None:
        super().__init__()
        self._milliseconds = milliseconds
        self._clock = clock
        self._deadline = clock() + milliseconds / 1000

    @property
    def milliseconds(self) -> int:
        return self._milliseconds

    @property
    def aborted(self) -> bool:
        if not self._aborted and self._clock() >= self._deadline:
            self.abort(TimeoutError(f"Timed out after {self._milliseconds} ms"))
        return self._aborted

    def remaining_seconds(self) -> float | None:
        return max(0.0, self._deadline - self._clock())


class CombinedSignal(AbortSignal):
    """Abort signal that follows several source signals."""

    def __init__(self, sources: list[AbortSignal]) -> None:
        super().__init__()
        self._sources = sources

    @property
    def sources(self) -> list[AbortSignal]:
        return list(self._sources)

    @property
    def aborted(self) -> bool:
        if not self._aborted:
            for source in self._sources:
                if source.aborted:
                    self.abort(source.reason)
                    break
        return self._aborted

    def remaining_seconds(self) -> float | None:
        remaining = [
            r for r in (s.remaining_seconds() for s in self._sources) if r is not None
        ]
        return min(remaining) if remaining else None


class AbortController:
    """Owns an ``AbortSignal`` and can abort it."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: object = None) -> None:
        self.signal.abort(reason)


def _choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    if isinstance(value, str):
        candidate = value.strip().lower()
        if candidate in choices:
            return candidate
    return default


def _as_timeout(value: Any) -> int:
    if is_integral(value):
        return int(value)
    return -1


class RequestOptions:
    """Options for one outgoing request.

    A body given with a verb that forbids one (GET, HEAD, OPTIONS, TRACE)
    is dropped. Unknown enum values fall back to their defaults.
    """

    def __init__(
        self,
        body: Any = None,
        cache: str = "default",
        credentials: str = "same-origin",
        headers: Any = None,
        integrity: str = "",
        keepalive: bool = False,
        method: Any = HttpVerb.GET,
        mode: str = MODES["DEFAULT"],
        priority: Any = "auto",
        redirect: str = "follow",
        referrer: str = DEFAULT_REFERRER,
        referrer_policy: str = "no-referrer-when-downgrade",
        signal: AbortSignal | None = None,
        timeout: Any = -1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize request options.

        Args:
            body: Request body; dropped when the method forbids a body.
            cache: One of ``REQUEST_CACHE_OPTIONS``.
            credentials: One of ``REQUEST_CREDENTIALS_OPTIONS``.
            headers: Header-like value; forbidden request headers are dropped.
            integrity: Subresource integrity value.
            keepalive: Whether the request may outlive the caller.
            method: Method-like value, resolved with ``HttpVerb.resolve``.
            mode: ``same-origin``, ``no-cors`` or ``cors``.
            priority: ``low``/``high``/``auto`` or a number.
            redirect: One of ``REDIRECT_OPTIONS``.
            referrer: Referrer URL.
            referrer_policy: One of ``REFERRER_POLICY_OPTIONS``.
            signal: Caller's abort signal.
            timeout: Milliseconds; <= 0 means no timeout.
            clock: Monotonic clock for the timeout signal.
        """
        self.method = HttpVerb.resolve(method)
        self.headers = headers if isinstance(headers, RequestHeaders) else RequestHeaders(headers)
        self.body = None if self.method.forbids_body else body
        if body is not None and self.body is None:
            logger.debug("request_body_dropped", component="request", method=self.method.value)
        self.cache = _choice(cache, REQUEST_CACHE_OPTIONS, "default")
        self.credentials = _choice(credentials, REQUEST_CREDENTIALS_OPTIONS, "same-origin")
        self.integrity = integrity if isinstance(integrity, str) else ""
        self.keepalive = bool(keepalive)
        self.mode = _choice(mode, tuple(MODES.values()), MODES["DEFAULT"])
        self.priority = calculate_priority({"priority": priority})
        self.redirect = _choice(redirect, REDIRECT_OPTIONS, "follow")
        self.referrer = referrer if isinstance(referrer, str) and referrer else DEFAULT_REFERRER
        self.referrer_policy = _choice(
            referrer_policy, REFERRER_POLICY_OPTIONS, "no-referrer-when-downgrade"
        )
        self.timeout = _as_timeout(timeout)
        self._signal = signal
        self._controller: AbortController | None = None
        self._clock = clock
        self._derived: CombinedSignal | None = None
        self._derived_for: tuple[int, AbortSignal] | None = None

    @property
    def abort_controller(self) -> AbortController:
        """Controller owning the default signal, created on first use."""
        if self._controller is None:
            self._controller = AbortController()
        return self._controller

    @property
    def signal(self) -> AbortSignal:
        """The caller's signal, or the controller's signal when none was given."""
        return self._signal if self._signal is not None else self.abort_controller.signal

    @signal.setter
    def signal(self, value: AbortSignal | None) -> None:
        self._signal = value

    @property
    def combined_signal(self) -> AbortSignal:
        """``signal`` combined with a timeout signal when ``timeout > 0``.

        The combined signal is created once per (timeout, signal) pair and
        reused on later reads.
        """
        if self.timeout <= 0:
            return self.signal
        key = (self.timeout, self.signal)
        if self._derived is None or self._derived_for != key:
            self._derived = AbortSignal.any(
                [self.signal, AbortSignal.timeout(self.timeout, self._clock)]
            )
            self._derived_for = key
        return self._derived

    @classmethod
    def from_options(cls, source: Any = None) -> "RequestOptions":
        """Copy only the request option fields from another value.

        Args:
            source: ``RequestOptions``, mapping or object; everything other
                than the option fields is ignored.

        Returns:
            New options; headers are copied, not shared.
        """
        fields = option_fields(source)
        if isinstance(fields.get("headers"), RequestHeaders):
            fields["headers"] = fields["headers"].clone()
        return cls(**fields)

    def to_config(self) -> dict[str, Any]:
        """Option fields as a mapping (the stored signal, not the derived one)."""
        return {
            "body": self.body,
            "cache": self.cache,
            "credentials": self.credentials,
            "headers": self.headers,
            "integrity": self.integrity,
            "keepalive": self.keepalive,
            "method": self.method,
            "mode": self.mode,
            "priority": self.priority,
            "redirect": self.redirect,
            "referrer": self.referrer,
            "referrer_policy": self.referrer_policy,
            "signal": self._signal,
            "timeout": self.timeout,
        }

    def clone(self) -> "RequestOptions":
        return RequestOptions.from_options(self)


def option_fields(source: Any) -> dict[str, Any]:
    """Extract the present, non-None option fields from a value."""
    if source is None:
        return {}
    if isinstance(source, RequestOptions):
        return {k: v for k, v in source.to_config().items() if v is not None}
    fields: dict[str, Any] = {}
    for name in OPTION_FIELDS:
        value = get_field(source, name)
        if value is not None:
            fields[name] = value
    for alias, name in _OPTION_ALIASES.items():
        if name not in fields:
            value = get_field(source, alias)
            if value is not None:
                fields[name] = value
    return fields


class HttpUrl(BaseModel):
    """Parts of an absolute URL."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    href: str
    protocol: str
    username: str = ""
    password: str = ""
    hostname: str = ""
    port: int = DEFAULT_PORT
    explicit_port: bool = False
    pathname: str = "/"
    search: str = ""
    hash: str = ""

    @classmethod
    def parse(cls, url: str, base: str | None = None) -> "HttpUrl":
        """Parse a URL, resolving it against ``base`` when relative."""
        href = urljoin(base, url) if base else url
        parts = urlsplit(href)
        scheme = parts.scheme.lower()
        return cls(
            href=href,
            protocol=f"{scheme}:" if scheme else "",
            username=parts.username or "",
            password=parts.password or "",
            hostname=parts.hostname or "",
            port=parts.port or PROTOCOL_PORTS.get(scheme, DEFAULT_PORT),
            explicit_port=parts.port is not None,
            pathname=parts.path or "/",
            search=f"?{parts.query}" if parts.query else "",
            hash=f"#{parts.fragment}" if parts.fragment else "",
        )

    @property
    def host(self) -> str:
        """Hostname, with the port when it was given explicitly."""
        return f"{self.hostname}:{self.port}" if self.explicit_port else self.hostname

    @property
    def origin(self) -> str:
        return f"{self.protocol}//{self.host}" if self.protocol else ""

    @property
    def search_params(self) -> list[tuple[str, str]]:
        """Decoded query parameters, in order."""
        return parse_qsl(self.search.lstrip("?"), keep_blank_values=True)


def resolve_url(value: Any, config: Any = None) -> str:
    """Return the URL of a URL-like value, joined with the config's base URL.

    Args:
        value: URL string, ``httpx.URL`` or object with ``url``/``href``.
        config: Optional config carrying ``base_url``/``baseURL``.

    Returns:
        The URL, or ``""`` when none is found.
    """
    if isinstance(value, (str, httpx.URL)):
        url = str(value)
    else:
        found = get_field(value, "url", "href")
        url = str(found) if isinstance(found, (str, httpx.URL)) else ""
    base = get_field(config, "base_url", "baseURL", "baseUrl")
    if url and isinstance(base, str) and base and not urlsplit(url).scheme:
        return urljoin(base if base.endswith("/") else f"{base}/", url.lstrip("/"))
    return url


class _RequestIdCounter:
    """Wrapping counter in ``1..MAX_REQUEST_ID``."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)

    def next(self) -> int:
        value = next(self._counter)
        if value > MAX_REQUEST_ID:
            self._counter = itertools.count(2)
            value = 1
        return value

    def reset(self, start: int = 1) -> None:
        """Restart the counter (primarily for testing)."""
        self._counter = itertools.count(start)


_REQUEST_IDS = _RequestIdCounter()


def next_request_id() -> int:
    """Next advisory request id; wraps from 999_999 back to 1."""
    return _REQUEST_IDS.next()


def reset_request_ids(start: int = 1) -> None:
    """Restart request ids at ``start`` (primarily for testing)."""
    _REQUEST_IDS.reset(start)


class HttpRequest:
    """The canonical request: URL, options and any extra properties."""

    def __init__(
        self,
        url: str,
        options: RequestOptions | None = None,
        extras: Mapping[str, Any] | None = None,
        request_id: int | None = None,
    ) -> None:
        """Initialize the request.

        Args:
            url: Absolute or relative URL.
            options: Request options; defaults are used when omitted.
            extras: Unrecognized properties carried over from the source.
            request_id: Advisory id; drawn from the wrapping counter if omitted.
        """
        self._url = url
        self._options = options or RequestOptions()
        self._extras = dict(extras or {})
        self._id = request_id if request_id is not None else next_request_id()
        self._url_parts: HttpUrl | None = None

    @property
    def id(self) -> int:
        return self._id

    @property
    def url(self) -> str:
        return self._url

    @property
    def options(self) -> RequestOptions:
        return self._options

    @property
    def method(self) -> HttpVerb:
        return self._options.method

    @property
    def headers(self) -> RequestHeaders:
        return self._options.headers

    @property
    def body(self) -> Any:
        return self._options.body

    @property
    def signal(self) -> AbortSignal:
        return self._options.combined_signal

    @property
    def priority(self) -> str:
        return self._options.priority

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self._extras)

    @property
    def url_parts(self) -> HttpUrl:
        """Parsed URL, computed on first access."""
        if self._url_parts is None:
            self._url_parts = HttpUrl.parse(self._url)
        return self._url_parts

    def to_config(self) -> dict[str, Any]:
        """URL, option fields and extras as one mapping."""
        return {**self._extras, **self._options.to_config(), "url": self._url}

    def clone(self) -> "HttpRequest":
        """Independent copy with the same id."""
        return HttpRequest(
            self._url, self._options.clone(), self._extras, request_id=self._id
        )

    def to_httpx(self, headers: HeaderStore | None = None) -> httpx.Request:
        """Adapt to an ``httpx.Request``.

        Args:
            headers: Headers to send instead of the request's own.
        """
        headers = self.headers if headers is None else headers
        body = self.body
        kwargs: dict[str, Any] = {}
        if isinstance(body, (bytes, bytearray, str)):
            kwargs["content"] = body
        elif isinstance(body, (Mapping, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["content"] = str(body)
        return httpx.Request(
            self.method.value, self._url, headers=headers.to_httpx(), **kwargs
        )

    def __repr__(self) -> str:
        return f"HttpRequest(id={self._id}, method={self.method.value}, url={redact_url_credentials(self._url)!r})"


def is_request(value: Any) -> bool:
    """Check whether a value is already a canonical request."""
    return isinstance(value, HttpRequest)


def _extras_of(source: Any) -> dict[str, Any]:
    known = set(OPTION_FIELDS) | set(_OPTION_ALIASES) | {"url", "href", "request"}
    if isinstance(source, Mapping):
        items = source.items()
    elif hasattr(source, "__dict__"):
        items = vars(source).items()
    else:
        return {}
    return {
        str(k): v
        for k, v in items
        if str(k) not in known and not str(k).startswith("_")
    }


def _from_request_like(source: Any, url: str, options: Any) -> HttpRequest:
    config = ConfigMerger().merge_configs(option_fields(source), option_fields(options))
    request_id = get_field(source, "id")
    return HttpRequest(
        resolve_url(url, options),
        RequestOptions.from_options(config),
        extras=_extras_of(source),
        request_id=request_id if isinstance(request_id, int) else None,
    )


def _from_httpx(request: httpx.Request, options: Any) -> HttpRequest:
    try:
        content = request.content
    except httpx.RequestNotRead:
        content = None
    source = {
        "method": request.method,
        "headers": request.headers,
        "body": content or None,
    }
    return _from_request_like(source, str(request.url), options)


def resolve_request(value: Any, options: Any = None) -> HttpRequest:
    """Resolve a URL or request-like value into an ``HttpRequest``.

    Args:
        value: URL string, JSON text, ``HttpRequest``, ``httpx.Request``,
            request-like mapping/object, or a value whose ``request``
            attribute (possibly nested) is one of these.
        options: Option overrides applied on top of the source's options.

    Returns:
        The canonical request. An ``HttpRequest`` given without options is
        returned unchanged.

    Raises:
        IllegalArgumentError: If no URL is found within the unwrap bound.
    """
    current = value
    visited: set[int] = set()
    for _ in range(MAX_UNWRAP_DEPTH + 1):
        if isinstance(current, HttpRequest):
            if options is None:
                return current
            return _from_request_like(current.to_config(), current.url, options)
        if isinstance(current, httpx.Request):
            return _from_httpx(current, options)
        if isinstance(current, (str, httpx.URL)):
            text = str(current)
            parsed, payload = parse_json_text(text)
            if parsed:
                current = payload
                continue
            if is_blank(text):
                break
            return HttpRequest(resolve_url(text, options), RequestOptions.from_options(options))
        if current is None or id(current) in visited:
            break
        visited.add(id(current))

        url = get_field(current, "url", "href")
        if isinstance(url, (str, httpx.URL)) and not is_blank(str(url)):
            return _from_request_like(current, str(url), options)
        nested = get_field(current, "request")
        if nested is None:
            break
        current = nested

    logger.warning(
        "request_unresolved", component="request", value_type=type(value).__name__
    )
    raise IllegalArgumentError(
        "Unable to resolve a request URL", context="resolve_request", args=(value, options)
    )
