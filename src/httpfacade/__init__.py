"""Facades over HTTP verbs, statuses, headers, requests and responses.

This package provides:
- A read-only header catalog and case-insensitive header stores
- Rule-based merging of headers and request configs
- Canonical requests resolved from URLs and request-like values
- Canonical responses resolved from any response-shaped value
- Request-keyed response caches with ETag revalidation
- An httpx transport adapter and secrets/connection-string collaborators
"""

from httpfacade.cache import HttpCache, HttpCacheStorage, cache_key
from httpfacade.catalog import (
    DEFAULT_CATALOG,
    Header,
    HeaderCatalog,
    HeaderCategory,
    HeaderDefinition,
    HttpContentType,
    HttpStatus,
    HttpVerb,
    calculate_content_type,
    calculate_priority,
    get_content_type,
    is_content_type,
    is_header,
    is_http_status,
    is_verb,
    resolve_http_method,
)
from httpfacade.config import (
    HeaderLimits,
    RetryDelayPolicy,
    TransportConfig,
    parse_retry_after_ms,
)
from httpfacade.constants import STATUS_CODES
from httpfacade.database import (
    ConnectionFactory,
    ConnectionSettings,
    build_connection_string,
)
from httpfacade.errors import (
    HeaderValidationError,
    HttpFacadeError,
    IllegalArgumentError,
    RequestAbortedError,
    ResponseResolutionError,
    SecretNotFoundError,
)
from httpfacade.files import WrittenFile, pipe_to_file, stream_to_file
from httpfacade.headers import (
    FromForeignHeaders,
    FromMapping,
    FromPairs,
    FromStore,
    FromText,
    HeaderStore,
    HeaderStoreLike,
    RequestHeaders,
    ResponseHeaders,
    get_header_value,
)
from httpfacade.merge import (
    COMBINE,
    PRESERVE,
    REMOVE,
    REPLACE,
    REPLACE_STRING,
    ConfigMerger,
    HeadersMerger,
    MergeRule,
    PropertiesMerger,
    PropertyRule,
    define_property_rules,
)
from httpfacade.metrics import TransportMetrics
from httpfacade.request import (
    AbortController,
    AbortSignal,
    HttpRequest,
    HttpUrl,
    RequestOptions,
    is_request,
    resolve_request,
)
from httpfacade.response import (
    ResponseData,
    ResponseResolver,
    exceeds_rate_limit,
    get_retry_after,
    is_ok,
    is_redirected,
    is_response_data,
    retry_after_milliseconds,
)
from httpfacade.secrets import (
    KeyVaultSecretsManager,
    LocalSecretsManager,
    SecretKey,
    SecretsManager,
    SecretsProvider,
)
from httpfacade.settings import AppSettings, ValidationPolicy, get_settings
from httpfacade.state_machine import ResolutionPhase
from httpfacade.transport import HttpFetcher


__all__ = [
    # Catalog
    "DEFAULT_CATALOG",
    "STATUS_CODES",
    "Header",
    "HeaderCatalog",
    "HeaderCategory",
    "HeaderDefinition",
    "HttpContentType",
    "HttpStatus",
    "HttpVerb",
    "calculate_content_type",
    "calculate_priority",
    "get_content_type",
    "is_content_type",
    "is_header",
    "is_http_status",
    "is_verb",
    "resolve_http_method",
    # Headers
    "HeaderStore",
    "HeaderStoreLike",
    "RequestHeaders",
    "ResponseHeaders",
    "FromStore",
    "FromMapping",
    "FromPairs",
    "FromText",
    "FromForeignHeaders",
    "get_header_value",
    # Merge
    "MergeRule",
    "PropertyRule",
    "PropertiesMerger",
    "HeadersMerger",
    "ConfigMerger",
    "define_property_rules",
    "PRESERVE",
    "REPLACE",
    "REPLACE_STRING",
    "COMBINE",
    "REMOVE",
    # Request
    "AbortController",
    "AbortSignal",
    "HttpRequest",
    "HttpUrl",
    "RequestOptions",
    "is_request",
    "resolve_request",
    # Response
    "ResolutionPhase",
    "ResponseData",
    "ResponseResolver",
    "exceeds_rate_limit",
    "get_retry_after",
    "is_ok",
    "is_redirected",
    "is_response_data",
    "retry_after_milliseconds",
    # Transport
    "HttpFetcher",
    "TransportMetrics",
    # Cache
    "HttpCache",
    "HttpCacheStorage",
    "cache_key",
    # Files
    "WrittenFile",
    "pipe_to_file",
    "stream_to_file",
    # Secrets and database
    "SecretKey",
    "SecretsProvider",
    "SecretsManager",
    "LocalSecretsManager",
    "KeyVaultSecretsManager",
    "ConnectionSettings",
    "ConnectionFactory",
    "build_connection_string",
    # Config
    "AppSettings",
    "HeaderLimits",
    "RetryDelayPolicy",
    "TransportConfig",
    "ValidationPolicy",
    "get_settings",
    "parse_retry_after_ms",
    # Errors
    "HttpFacadeError",
    "IllegalArgumentError",
    "HeaderValidationError",
    "ResponseResolutionError",
    "SecretNotFoundError",
    "RequestAbortedError",
]
