"""Transport adapter sending canonical requests through httpx.

Failures are isolated: every outcome, including timeouts and connection
errors, is returned as a ``ResponseData``. There is no retry loop; callers
decide whether to retry using ``can_retry()`` and
``retry_after_milliseconds``.
"""

import time
from types import TracebackType
from typing import Any

import httpx
import structlog

from httpfacade.config import TransportConfig
from httpfacade.errors import IllegalArgumentError, RequestAbortedError
from httpfacade.headers import RequestHeaders
from httpfacade.metrics import TransportMetrics
from httpfacade.redact import redact_headers, redact_url_credentials
from httpfacade.request import HttpRequest, resolve_request
from httpfacade.response import ResponseData


logger = structlog.get_logger()


class HttpFetcher:
    """Async HTTP client returning ``ResponseData`` for every outcome.

    Provides:
    - Request resolution from URLs, request-likes and ``httpx.Request``
    - Default headers and User-Agent from ``TransportConfig``
    - Timeouts from the request's signal or the config
    - Header redaction for logging
    - Metrics collection
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Transport defaults.
            client: Client to send through. When omitted a client is
                created and closed by this fetcher.
        """
        self._config = config or TransportConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=self._config.follow_redirects
        )
        self._metrics = TransportMetrics.get_instance()
        self._log = logger.bind(component="transport")

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, target: Any, options: Any = None) -> ResponseData:
        """Send a request and return its response.

        Args:
            target: URL, ``HttpRequest``, ``httpx.Request`` or request-like.
            options: Request option overrides.

        Returns:
            The response. Transport failures produce an error-shaped
            response with ``is_error()`` true.
        """
        try:
            request = resolve_request(target, options)
        except IllegalArgumentError as e:
            self._metrics.record_failure("invalid_request")
            return ResponseData.create_error_response(e, "Unable to resolve request")

        start_time_ns = time.perf_counter_ns()
        config = request.to_config()
        log = self._log.bind(
            request_id=request.id,
            method=request.method.value,
            url=redact_url_credentials(request.url),
        )

        signal = request.signal
        if signal.aborted:
            self._metrics.record_aborted()
            log.info("fetch_aborted")
            return ResponseData.from_value(
                RequestAbortedError(signal.reason), config, request.url
            )

        headers = self._build_headers(request)
        outgoing = request.to_httpx(headers)
        outgoing.extensions["timeout"] = httpx.Timeout(self._timeout_for(request)).as_dict()
        log = log.bind(headers=redact_headers(headers.entries()))

        try:
            response = await self._client.send(
                outgoing, follow_redirects=self._config.follow_redirects
            )
        except httpx.TimeoutException as e:
            return self._failure("timeout", e, config, request, log)
        except httpx.TransportError as e:
            return self._failure("transport", e, config, request, log)
        except Exception as e:  # noqa: BLE001
            return self._failure("unknown", e, config, request, log)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        result = ResponseData.from_value(
            response,
            config,
            request.url,
            retry_policy=self._config.retry_policy,
        )
        self._metrics.record_response(
            result.http_status, len(response.content), duration_ms
        )
        log.info(
            "fetch_complete",
            status_code=result.status,
            bytes=len(response.content),
            duration_ms=round(duration_ms, 2),
        )
        return result

    def _build_headers(self, request: HttpRequest) -> RequestHeaders:
        """Request headers, with config defaults filling in absent names."""
        headers = RequestHeaders(
            request.headers,
            policy=self._config.validation_policy,
            limits=self._config.header_limits,
        )
        defaults = {"User-Agent": self._config.user_agent, **self._config.default_headers}
        for name, value in defaults.items():
            if not headers.has(name):
                headers.set(name, value)
        return headers

    def _timeout_for(self, request: HttpRequest) -> float | None:
        remaining = request.signal.remaining_seconds()
        configured = self._config.timeout_seconds
        if remaining is None:
            return configured
        if configured is None:
            return remaining
        return min(remaining, configured)

    def _failure(
        self,
        error_class: str,
        error: Exception,
        config: dict[str, Any],
        request: HttpRequest,
        log: Any,
    ) -> ResponseData:
        self._metrics.record_failure(error_class)
        log.warning(
            "fetch_failed",
            error_class=error_class,
            error_type=type(error).__name__,
            error=str(error),
        )
        return ResponseData.from_value(
            error, config, request.url, retry_policy=self._config.retry_policy
        )
