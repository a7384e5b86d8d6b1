"""Canonical response data.

``ResponseData.from_value`` reduces anything response-shaped to one
canonical object: Fetch-like and httpx responses, Axios-like
``{data, status, headers, config}`` envelopes, exceptions that carry a
``response``, JSON text and plain text bodies. Resolution never raises;
a value that cannot be interpreted becomes an error-shaped response.
"""

import asyncio
import copy
import inspect
import json
import random
from collections.abc import AsyncIterator, Mapping
from enum import Enum
from typing import Any

import httpx
import structlog

from httpfacade.catalog import HttpStatus, status_for
from httpfacade.config import Clock, RetryDelayPolicy, Rng, utc_now
from httpfacade.constants import (
    MAX_UNWRAP_DEPTH,
    RATE_LIMIT_STATUSES,
    REDIRECT_STATUSES,
    RETRY_AFTER_HEADERS,
    STATUS_CLIENT_ERROR,
    STATUS_UNKNOWN,
)
from httpfacade.errors import (
    HttpFacadeError,
    IllegalArgumentError,
    ResponseResolutionError,
)
from httpfacade.headers import ResponseHeaders, get_header_value
from httpfacade.redact import redact_url_credentials
from httpfacade.request import HttpRequest, resolve_request
from httpfacade.shape import get_field, is_blank, is_integral, parse_json_text
from httpfacade.state_machine import ResolutionPhase, ResolutionStateMachine


logger = structlog.get_logger()

BODY_CHUNK_SIZE = 8192
DEFAULT_RETRY_POLICY = RetryDelayPolicy()
_OK_HELPER_STATUSES = frozenset({200, 201, 204})
_TEXTUAL_MARKERS = ("text/", "xml", "javascript", "x-www-form-urlencoded")


class InputKind(str, Enum):
    """Shape of the value handed to ``ResponseData.from_value``."""

    RESPONSE_DATA = "response_data"
    ERROR = "error"
    HTTPX_RESPONSE = "httpx_response"
    MAPPING = "mapping"
    OBJECT = "object"
    JSON_TEXT = "json_text"
    TEXT = "text"
    EMPTY = "empty"


def classify_input(value: Any) -> InputKind:
    """Classify a raw value for resolution."""
    if isinstance(value, ResponseData):
        return InputKind.RESPONSE_DATA
    if isinstance(value, BaseException):
        return InputKind.ERROR
    if isinstance(value, httpx.Response):
        return InputKind.HTTPX_RESPONSE
    if value is None:
        return InputKind.EMPTY
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
        parsed, _ = parse_json_text(text)
        return InputKind.JSON_TEXT if parsed else InputKind.TEXT
    if isinstance(value, Mapping):
        return InputKind.MAPPING
    return InputKind.OBJECT


def _charset(content_type: str) -> str:
    for part in content_type.split(";")[1:]:
        key, _, val = part.strip().partition("=")
        if key.lower() == "charset" and val:
            return val.strip().strip('"')
    return "utf-8"


def decode_text(content: bytes, content_type: str = "") -> str:
    """Decode bytes using the charset named in ``content_type`` (UTF-8 default)."""
    try:
        return content.decode(_charset(content_type), errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def decode_payload(content: bytes, content_type: str) -> Any:
    """Decode a raw payload by its content type.

    JSON payloads become Python values, textual payloads become ``str`` and
    everything else stays ``bytes``.
    """
    lowered = content_type.lower()
    if not content:
        return "" if lowered else b""
    if "json" in lowered:
        try:
            return json.loads(content)
        except ValueError:
            logger.debug("response_json_invalid", component="response")
    if "json" in lowered or any(marker in lowered for marker in _TEXTUAL_MARKERS):
        return decode_text(content, content_type)
    return content


def _decode_httpx(response: httpx.Response) -> Any:
    return decode_payload(response.content, response.headers.get("content-type", ""))


def payload_bytes(value: Any) -> bytes:
    """Encode a resolved payload to bytes for streaming."""
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (Mapping, list, tuple, bool, int, float)):
        return json.dumps(value).encode("utf-8")
    return str(value).encode("utf-8")


class _Body:
    """Response payload that may still be pending.

    Resolution runs at most once; later calls (and clones sharing the
    body) reuse the cached value.
    """

    def __init__(self, raw: Any, source: Any = None) -> None:
        self._raw = raw
        self._source = source
        self._value: Any = raw
        self._resolved = not self._is_pending(raw, source)
        self._lock = asyncio.Lock()

    @staticmethod
    def _is_pending(raw: Any, source: Any) -> bool:
        if inspect.isawaitable(raw) or hasattr(raw, "__aiter__"):
            return True
        return raw is None and source is not None

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def single_use(self) -> bool:
        """Whether the underlying source can only be read once."""
        return self._is_pending(self._raw, self._source)

    @property
    def value(self) -> Any:
        return self._value

    async def resolve(self) -> Any:
        if self._resolved:
            return self._value
        async with self._lock:
            if not self._resolved:
                self._value = await self._materialize()
                self._resolved = True
        return self._value

    async def _materialize(self) -> Any:
        raw = self._raw
        if inspect.isawaitable(raw):
            raw = await raw
        if hasattr(raw, "__aiter__"):
            chunks = [payload_bytes(chunk) async for chunk in raw]
            return b"".join(chunks)
        if raw is not None:
            return raw

        source = self._source
        if isinstance(source, httpx.Response):
            try:
                source.content  # noqa: B018
            except httpx.ResponseNotRead:
                await source.aread()
            return _decode_httpx(source)

        reader = get_field(source, "text")
        if callable(reader):
            text = reader()
            if inspect.isawaitable(text):
                text = await text
            content_type = get_header_value(get_field(source, "headers"), "content-type", "") or ""
            if isinstance(text, str) and "json" in content_type.lower():
                try:
                    return json.loads(text)
                except ValueError:
                    return text
            return text
        return None


class ResponseData:
    """The canonical response.

    Instances are produced by ``from_value``/``async_from`` and are
    immutable apart from lazy body resolution.
    """

    def __init__(
        self,
        *,
        status: int,
        status_text: str,
        http_status: HttpStatus,
        headers: ResponseHeaders,
        body: _Body,
        config: Mapping[str, Any] | None = None,
        url: str = "/",
        error: BaseException | None = None,
        request: HttpRequest | None = None,
        retry_policy: RetryDelayPolicy | None = None,
    ) -> None:
        self._status = status
        self._status_text = status_text
        self._http_status = http_status
        self._headers = headers
        self._body = body
        self._config = dict(config or {})
        self._url = url
        self._error = error
        self._request = request
        self._retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self._body_used = False

    # -- construction -------------------------------------------------

    @classmethod
    def from_value(
        cls,
        value: Any,
        config: Mapping[str, Any] | None = None,
        url: str | None = None,
        *,
        retry_policy: RetryDelayPolicy | None = None,
    ) -> "ResponseData":
        """Resolve any response-shaped value. Never raises.

        Args:
            value: Response, envelope, exception, JSON text or body text.
                A ``ResponseData`` is returned unchanged.
            config: Request config used as a fallback for headers, url and
                status.
            url: URL used when neither the value nor the config has one.
            retry_policy: Policy for ``retry_after_milliseconds``.

        Returns:
            The canonical response.
        """
        return ResponseResolver(config=config, url=url, retry_policy=retry_policy).resolve(
            value
        )

    @classmethod
    async def async_from(
        cls,
        value: Any,
        config: Mapping[str, Any] | None = None,
        url: str | None = None,
        *,
        retry_policy: RetryDelayPolicy | None = None,
    ) -> "ResponseData":
        """Resolve a value and its pending body. Never raises.

        A pending ``value`` (coroutine or future) is awaited first. A body
        that fails to resolve is recorded as the response's error.
        """
        if inspect.isawaitable(value):
            try:
                value = await value
            except Exception as e:  # noqa: BLE001
                value = e
        response = cls.from_value(value, config, url, retry_policy=retry_policy)
        try:
            await response.resolve_data()
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "response_body_failed",
                component="response",
                error_type=type(e).__name__,
                error=str(e),
            )
            response._record_body_error(e)
        return response

    @classmethod
    def create_error_response(
        cls, error: Any, message: str | None = None
    ) -> "ResponseData":
        """Build an error-shaped response.

        Args:
            error: An exception, or any value describing the failure.
            message: Human-readable message used as the response data.

        Returns:
            A response whose ``error`` is set and whose status is taken
            from the error's ``response`` when present, else 666.
        """
        if not isinstance(error, BaseException):
            error = HttpFacadeError(message or str(error))
        return ResponseResolver(message=message).resolve(error)

    # -- status -------------------------------------------------------

    @property
    def status(self) -> int:
        return self._status

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def http_status(self) -> HttpStatus:
        return self._http_status

    @property
    def ok(self) -> bool:
        """True iff the status is 200, 201, 202 or 204."""
        return self._http_status.is_valid()

    def is_error(self) -> bool:
        """True when an error was captured or the status is >= 400."""
        return self._error is not None or self._http_status.is_error()

    def is_redirect(self) -> bool:
        """True when the status redirects and ``Location`` is non-blank."""
        return self._http_status.is_redirect() and not is_blank(
            self._headers.get("location")
        )

    @property
    def redirect_url(self) -> str:
        """The ``Location`` header, or ``""``."""
        return self._headers.get_value("location")

    def is_use_cached(self) -> bool:
        return self._http_status.is_use_cached()

    def is_client_error(self) -> bool:
        return self._http_status.is_client_error()

    def is_server_error(self) -> bool:
        return self._http_status.is_server_error()

    def is_exceeds_rate_limit(self) -> bool:
        return self._status in RATE_LIMIT_STATUSES

    def can_retry(self) -> bool:
        return self._http_status.can_retry()

    # -- retry --------------------------------------------------------

    @property
    def retry_after(self) -> str | None:
        """Raw ``Retry-After`` (or ``X-Retry-After``) header value."""
        return get_retry_after(self._headers)

    @property
    def retry_after_milliseconds(self) -> int:
        """Suggested delay before retrying, with jitter."""
        return self.retry_after_ms()

    def retry_after_ms(self, now: Clock = utc_now, rng: Rng = random.random) -> int:
        """Suggested delay before retrying, with injectable clock and RNG."""
        return retry_after_milliseconds(
            self._status, self._headers, self._retry_policy, now=now, rng=rng
        )

    # -- metadata -----------------------------------------------------

    @property
    def headers(self) -> ResponseHeaders:
        return self._headers

    @property
    def headers_literal(self) -> dict[str, str]:
        return self._headers.to_literal()

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._config)

    @property
    def url(self) -> str:
        return self._url

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def request(self) -> HttpRequest | None:
        return self._request

    # -- body ---------------------------------------------------------

    @property
    def data(self) -> Any:
        """The payload; may still be pending until ``resolve_data``."""
        return self._body.value

    @property
    def data_resolved(self) -> bool:
        return self._body.resolved

    @property
    def body_used(self) -> bool:
        """True once a single-use source has been read or a body iterated."""
        return self._body_used or (self._body.single_use and self._body.resolved)

    async def resolve_data(self) -> Any:
        """Resolve a pending payload. Idempotent.

        Returns:
            The resolved payload.
        """
        return await self._body.resolve()

    async def json(self) -> Any:
        """The payload as a JSON value.

        Containers are returned as-is; text and bytes are parsed.

        Raises:
            json.JSONDecodeError: If a text payload is not valid JSON.
        """
        value = await self.resolve_data()
        if isinstance(value, (str, bytes, bytearray)):
            return json.loads(value)
        return value

    async def text(self) -> str:
        """The payload as text; containers are serialized to JSON."""
        value = await self.resolve_data()
        if value is None:
            return ""
        if isinstance(value, (bytes, bytearray)):
            return decode_text(bytes(value), self._headers.get_value("content-type"))
        if isinstance(value, str):
            return value
        if isinstance(value, (Mapping, list, tuple)):
            return json.dumps(value)
        return str(value)

    @property
    def body(self) -> AsyncIterator[bytes]:
        """A fresh async iterator over the payload bytes."""
        return self._iter_body()

    async def _iter_body(self) -> AsyncIterator[bytes]:
        content = payload_bytes(await self.resolve_data())
        self._body_used = True
        for start in range(0, len(content), BODY_CHUNK_SIZE):
            yield content[start : start + BODY_CHUNK_SIZE]

    def clone(self) -> "ResponseData":
        """Independent copy; headers are copied and the body can be read again."""
        data = self._body.value
        body = (
            _Body(copy.deepcopy(data) if isinstance(data, (dict, list)) else data)
            if self._body.resolved
            else self._body
        )
        return ResponseData(
            status=self._status,
            status_text=self._status_text,
            http_status=self._http_status,
            headers=self._headers.clone(),
            body=body,
            config=self._config,
            url=self._url,
            error=self._error,
            request=self._request.clone() if self._request is not None else None,
            retry_policy=self._retry_policy,
        )

    def _record_body_error(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
        self._body = _Body(str(error))

    def __repr__(self) -> str:
        return (
            f"ResponseData(status={self._status}, url={redact_url_credentials(self._url)!r}, "
            f"error={type(self._error).__name__ if self._error else None})"
        )


class ResponseResolver:
    """Runs one value through the resolution phases.

    Every phase transition is logged. Failures inside a phase move the
    machine to FAILED and produce an error-shaped response.
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        url: str | None = None,
        retry_policy: RetryDelayPolicy | None = None,
        message: str | None = None,
    ) -> None:
        self._config = config
        self._url = url
        self._retry_policy = retry_policy
        self._message = message
        self._machine = ResolutionStateMachine()
        self._log = logger.bind(component="response")

    @property
    def phase(self) -> ResolutionPhase:
        return self._machine.phase

    @property
    def history(self) -> list[ResolutionPhase]:
        return self._machine.history

    def resolve(self, value: Any) -> ResponseData:
        """Resolve ``value`` into a ``ResponseData``. Never raises."""
        try:
            return self._run(value)
        except Exception as e:  # noqa: BLE001
            phase = self._machine.phase
            self._machine.fail()
            self._log.warning(
                "response_resolution_failed",
                phase=phase.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._fallback(value, phase, e)

    def _run(self, value: Any) -> ResponseData:
        kind = classify_input(value)
        if kind is InputKind.RESPONSE_DATA:
            self._machine.transition_to(ResolutionPhase.DONE)
            return value

        error: BaseException | None = None
        if kind is InputKind.ERROR:
            error = value
        elif kind is InputKind.JSON_TEXT:
            text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
            _, value = parse_json_text(text)
            # JSON text that is not an envelope is the body itself
            if not isinstance(value, Mapping) or not _is_envelope(value):
                value = _TextEnvelope(value)
        elif kind is InputKind.TEXT:
            value = _TextEnvelope(value)

        self._machine.transition_to(ResolutionPhase.UNWRAP)
        layers = self._unwrap(value)

        self._machine.transition_to(ResolutionPhase.EXTRACT)
        fields = self._extract(layers, error, kind)

        self._machine.transition_to(ResolutionPhase.HEADERS)
        headers = ResponseHeaders(fields["headers"])

        self._machine.transition_to(ResolutionPhase.STATUS)
        status, status_text, http_status = self._status(fields, error)

        self._machine.transition_to(ResolutionPhase.REQUEST)
        request = self._request(fields)

        self._machine.transition_to(ResolutionPhase.FINALIZE)
        response = ResponseData(
            status=status,
            status_text=status_text,
            http_status=http_status,
            headers=headers,
            body=_Body(fields["data"], fields["source"]),
            config=fields["config"],
            url=fields["url"],
            error=error,
            request=request,
            retry_policy=self._retry_policy,
        )
        self._machine.transition_to(ResolutionPhase.DONE)
        self._log.debug(
            "response_resolved",
            kind=kind.value,
            status=status,
            layers=len(layers),
            url=redact_url_credentials(response.url),
        )
        return response

    def _unwrap(self, value: Any) -> list[Any]:
        """Outermost-first list of nested ``.response`` layers."""
        layers: list[Any] = []
        seen: set[int] = set()
        current = value
        while current is not None and id(current) not in seen:
            if len(layers) > MAX_UNWRAP_DEPTH:
                self._log.warning("response_unwrap_capped", depth=len(layers))
                break
            seen.add(id(current))
            layers.append(current)
            nested = get_field(current, "response")
            if nested is None or isinstance(nested, (str, bytes, int, float, bool)):
                break
            current = nested
        return layers

    def _extract(
        self, layers: list[Any], error: BaseException | None, kind: InputKind
    ) -> dict[str, Any]:
        # Innermost layer first; the exception itself never supplies the body
        ordered = list(reversed(layers))
        config = self._config_of(ordered)

        def pick(*names: str) -> Any:
            for layer in ordered:
                found = get_field(layer, *names)
                if found is not None:
                    return found
            return get_field(config, *names)

        source: Any = None
        data: Any = None
        for layer in ordered:
            if layer is error:
                continue
            if isinstance(layer, httpx.Response):
                source = layer
                try:
                    data = _decode_httpx(layer)
                except httpx.ResponseNotRead:
                    data = None
                break
            data = get_field(layer, "data", "body")
            if data is not None:
                break
            if callable(get_field(layer, "text")) and not isinstance(layer, Mapping):
                source = layer
                break

        if data is None and source is None:
            if error is not None:
                data = self._message or str(error)
            elif kind is InputKind.MAPPING and not _is_envelope(ordered[0]):
                data = ordered[0]
            elif self._config is not None:
                data = get_field(self._config, "data", "body")

        url = pick("url")
        if isinstance(url, httpx.URL):
            url = str(url)
        if not isinstance(url, str) or is_blank(url):
            url = self._url if self._url else "/"

        return {
            "status": pick("status", "status_code"),
            "status_text": pick("statusText", "status_text", "reason_phrase"),
            "headers": pick("headers"),
            "data": data,
            "source": source,
            "config": config,
            "url": url,
            "request": self._request_source(ordered, config),
        }

    def _config_of(self, ordered: list[Any]) -> dict[str, Any]:
        for layer in ordered:
            found = get_field(layer, "config")
            if isinstance(found, Mapping):
                return {**dict(self._config or {}), **dict(found)}
        return dict(self._config or {})

    @staticmethod
    def _request_source(ordered: list[Any], config: Mapping[str, Any]) -> Any:
        for layer in ordered:
            if isinstance(layer, httpx.Response):
                try:
                    return layer.request
                except RuntimeError:
                    continue
            found = get_field(layer, "request")
            if found is not None:
                return found
        return config if get_field(config, "url") is not None else None

    def _status(
        self, fields: Mapping[str, Any], error: BaseException | None
    ) -> tuple[int, str, HttpStatus]:
        raw = fields["status"]
        raw_text = fields["status_text"]
        # An integral status is authoritative; the text only fills in for a missing one
        candidates = [raw] if is_integral(raw) else [raw, raw_text]
        try:
            http_status = HttpStatus.from_code(candidates)
        except IllegalArgumentError:
            fallback = STATUS_CLIENT_ERROR if error is not None else STATUS_UNKNOWN
            http_status = status_for(fallback)

        if isinstance(raw, HttpStatus):
            status = raw.code
        elif is_integral(raw) and http_status.code in (STATUS_UNKNOWN, STATUS_CLIENT_ERROR):
            status = int(raw)
        else:
            status = http_status.code
        status_text = raw_text if isinstance(raw_text, str) else http_status.name
        return status, status_text, http_status

    def _request(self, fields: Mapping[str, Any]) -> HttpRequest | None:
        source = fields["request"]
        if source is None:
            if fields["url"] == "/" and not self._url:
                return None
            source = fields["url"]
        try:
            return resolve_request(source)
        except (IllegalArgumentError, TypeError, ValueError) as e:
            self._log.debug("response_request_unresolved", error_type=type(e).__name__)
            return None

    def _fallback(
        self, value: Any, phase: ResolutionPhase, exc: Exception
    ) -> ResponseData:
        if isinstance(value, BaseException):
            error: BaseException = value
        else:
            error = ResponseResolutionError(phase.value, str(exc))
            error.__cause__ = exc
        return ResponseData(
            status=STATUS_CLIENT_ERROR,
            status_text=status_for(STATUS_CLIENT_ERROR).name,
            http_status=status_for(STATUS_CLIENT_ERROR),
            headers=ResponseHeaders(),
            body=_Body(self._message or str(error)),
            config=self._config,
            url=self._url or "/",
            error=error,
            retry_policy=self._retry_policy,
        )


class _TextEnvelope:
    """Wraps a bare body so it resolves like ``{"data": body}``."""

    __slots__ = ("data",)

    def __init__(self, data: Any) -> None:
        self.data = data


_ENVELOPE_FIELDS = frozenset(
    {"status", "status_code", "statusText", "status_text", "headers", "data", "body", "response", "config"}
)


def _is_envelope(value: Mapping[str, Any]) -> bool:
    return any(key in value for key in _ENVELOPE_FIELDS)


def retry_after_milliseconds(
    status: int,
    headers: Any = None,
    policy: RetryDelayPolicy | None = None,
    now: Clock = utc_now,
    rng: Rng = random.random,
) -> int:
    """Suggested delay before retrying a response.

    Args:
        status: Response status code.
        headers: Header store, mapping or anything with ``headers``.
        policy: Delay policy; the default policy is used when omitted.
        now: Clock used for HTTP-date hints.
        rng: Source of uniform floats in [0, 1) for jitter.

    Returns:
        Delay in milliseconds.
    """
    return (policy or DEFAULT_RETRY_POLICY).delay_ms(
        status, get_retry_after(headers), now=now, rng=rng
    )


def get_retry_after(response_or_headers: Any) -> str | None:
    """Raw ``Retry-After`` or ``X-Retry-After`` value of a response or headers."""
    nested = get_field(response_or_headers, "headers")
    headers = response_or_headers if nested is None else nested
    for name in RETRY_AFTER_HEADERS:
        value = get_header_value(headers, name)
        if not is_blank(value):
            return value
    return None


def is_response_data(value: Any) -> bool:
    return isinstance(value, ResponseData)


def _status_of(value: Any) -> int | None:
    if isinstance(value, ResponseData):
        return value.status
    if is_integral(value):
        return int(value)
    status = get_field(value, "status", "status_code")
    return int(status) if is_integral(status) else None


def is_redirected(value: Any) -> bool:
    """Check whether a response or status code is a redirect."""
    if isinstance(value, ResponseData):
        return value.is_redirect()
    return _status_of(value) in REDIRECT_STATUSES


def exceeds_rate_limit(value: Any) -> bool:
    """Check whether a response or status code is 429 or 425."""
    return _status_of(value) in RATE_LIMIT_STATUSES


def is_ok(value: Any) -> bool:
    """Check whether a response or status code is 200, 201 or 204."""
    return _status_of(value) in _OK_HELPER_STATUSES
