"""Static HTTP tables: verbs, modes, content types, status codes and headers.

Every table here is read-only. Mappings are exposed through
``MappingProxyType`` and sets through ``frozenset`` so that nothing can
register or rewrite an entry after import.
"""

from types import MappingProxyType


# Verbs, in index order (an integer method resolves against this order)
VERBS: tuple[str, ...] = (
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "HEAD",
    "OPTIONS",
    "DELETE",
    "CONNECT",
    "TRACE",
)

VERBS_REQUIRING_BODY = frozenset({"POST", "PUT", "PATCH"})
VERBS_FORBIDDING_BODY = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

MODES = MappingProxyType(
    {
        "SAME_ORIGIN": "same-origin",
        "NO_CORS": "no-cors",
        "CORS": "cors",
        "DEFAULT": "same-origin",
    }
)

PRIORITY = MappingProxyType(
    {
        "LOW": "low",
        "HIGH": "high",
        "AUTO": "auto",
    }
)

CONTENT_TYPES = MappingProxyType(
    {
        "PLAIN": "text/plain",
        "TEXT": "text/plain",
        "HTML": "text/html",
        "CSS": "text/css",
        "JAVASCRIPT": "application/javascript",
        "JS": "text/javascript",
        "JSON": "application/json",
        "ECMASCRIPT": "application/ecmascript",
        "BINARY_STREAM": "application/octet-stream",
        "MS_WORD": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "MULTIPART": "multipart/form-data",
        "FORM_URLENCODED": "application/x-www-form-urlencoded",
        "XML": "text/xml",
        "CSV": "text/csv",
        "ZIP": "application/zip",
        "PNG": "image/png",
        "SVG": "image/svg+xml",
    }
)

# Status names to codes. Several names share a code; the first name listed
# for a code is its canonical name.
STATUS_CODES = MappingProxyType(
    {
        "UNKNOWN": 0,
        "CONTINUE": 100,
        "SWITCHING_PROTOCOLS": 101,
        "PROCESSING": 102,
        "EARLY_HINTS": 103,
        "OK": 200,
        "CREATED": 201,
        "ACCEPTED": 202,
        "NON_AUTHORITATIVE_INFORMATION": 203,
        "NO_CONTENT": 204,
        "RESET_CONTENT": 205,
        "PARTIAL_CONTENT": 206,
        "MULTI_STATUS": 207,
        "ALREADY_REPORTED": 208,
        "IM_USED": 226,
        "MULTIPLE_CHOICES": 300,
        "MOVED_PERMANENTLY": 301,
        "MOVED": 301,
        "FOUND": 302,
        "SEE_OTHER": 303,
        "NOT_MODIFIED": 304,
        "USE_PROXY": 305,
        "UNUSED": 306,
        "TEMPORARY_REDIRECT": 307,
        "PERMANENT_REDIRECT": 308,
        "BAD_REQUEST": 400,
        "ERROR": 400,
        "UNAUTHORIZED": 401,
        "PAYMENT_REQUIRED": 402,
        "FORBIDDEN": 403,
        "NOT_ALLOWED": 403,
        "NOT_FOUND": 404,
        "METHOD_NOT_ALLOWED": 405,
        "NOT_ACCEPTABLE": 406,
        "PROXY_AUTHENTICATION_REQUIRED": 407,
        "REQUEST_TIMEOUT": 408,
        "CONFLICT": 409,
        "GONE": 410,
        "LENGTH_REQUIRED": 411,
        "PRECONDITION_FAILED": 412,
        "REQUEST_ENTITY_TOO_LARGE": 413,
        "REQUEST_URI_TOO_LONG": 414,
        "UNSUPPORTED_MEDIA_TYPE": 415,
        "REQUESTED_RANGE_NOT_SATISFIABLE": 416,
        "EXPECTATION_FAILED": 417,
        "I_AM_A_TEAPOT": 418,
        "MISDIRECTED_REQUEST": 421,
        "UNPROCESSABLE_ENTITY": 422,
        "LOCKED": 423,
        "FAILED_DEPENDENCY": 424,
        "TOO_EARLY": 425,
        "UPGRADE_REQUIRED": 426,
        "PRECONDITION_REQUIRED": 428,
        "TOO_MANY_REQUESTS": 429,
        "REQUEST_HEADER_FIELDS_TOO_LARGE": 431,
        "UNAVAILABLE_FOR_LEGAL_REASONS": 451,
        "INTERNAL_SERVER_ERROR": 500,
        "INTERNAL_SERVICE_ERROR": 500,
        "NOT_IMPLEMENTED": 501,
        "BAD_GATEWAY": 502,
        "SERVICE_UNAVAILABLE": 503,
        "GATEWAY_TIMEOUT": 504,
        "HTTP_VERSION_NOT_SUPPORTED": 505,
        "VARIANT_ALSO_NEGOTIATES": 506,
        "INSUFFICIENT_STORAGE": 507,
        "LOOP_DETECTED": 508,
        "NOT_EXTENDED": 510,
        "NETWORK_AUTHENTICATION_REQUIRED": 511,
        # Project convention: synthetic status for an error with no response
        "CLIENT_ERROR": 666,
    }
)

STATUS_NAME_BY_CODE = MappingProxyType(
    {code: name for name, code in reversed(list(STATUS_CODES.items()))}
)

OK_STATUSES = frozenset({200, 201, 202, 204})
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
RATE_LIMIT_STATUSES = frozenset({429, 425})
STATUS_NOT_MODIFIED = 304
STATUS_UNKNOWN = 0
STATUS_CLIENT_ERROR = 666

STATUS_ELIGIBLE_FOR_RETRY = frozenset({429, 423, 425, 408, 503, 504, 500})

# Milliseconds to wait before retrying a status in STATUS_ELIGIBLE_FOR_RETRY
DEFAULT_RETRY_DELAY = MappingProxyType(
    {
        429: 256,
        423: 1024,
        425: 512,
        408: 128,
        503: 1024,
        504: 256,
    }
)
DEFAULT_RETRY_DELAY_MS = 256
MIN_RETRY_DELAY_MS = 100
MAX_RETRY_DELAY_MS = 30_000
DEFAULT_RETRY_JITTER_MS = 128
MAX_RETRY_JITTER_MS = 256

RETRY_AFTER_HEADERS = ("retry-after", "x-retry-after")

# Header size limits (characters)
MAX_HEADER_NAME_LENGTH = 256
MAX_HEADER_VALUE_LENGTH = 4096
MAX_HEADER_TOTAL_LENGTH = 8192

FORBIDDEN_REQUEST_HEADERS = frozenset(
    {
        "accept-charset",
        "accept-encoding",
        "access-control-request-headers",
        "access-control-request-method",
        "connection",
        "content-length",
        "cookie",
        "cookie2",
        "date",
        "dnt",
        "expect",
        "host",
        "keep-alive",
        "origin",
        "referer",
        "set-cookie",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "via",
        "x-http-method",
        "x-http-method-override",
        "x-method-override",
    }
)
FORBIDDEN_REQUEST_HEADER_PREFIXES = ("sec-", "proxy-")
FORBIDDEN_RESPONSE_HEADERS = frozenset({"set-cookie", "set-cookie2"})

SET_COOKIE = "set-cookie"
HEADER_VALUE_SEPARATOR = ", "

# Bound on `.request` / `.response` nesting followed while unwrapping
MAX_UNWRAP_DEPTH = 5

MAX_REQUEST_ID = 999_999

# Cache names are "<prefix>_<base>_<version>"
DEFAULT_CACHE_NAME = "Default"
DEFAULT_CACHE_PREFIX = "HttpFacadeCache"
DEFAULT_CACHE_VERSION = 1

HTTP_HEADERS = MappingProxyType(
    {
        "AUTHENTICATION": {
            "WWW-Authenticate": "Defines the authentication method that should be used to access a resource.",
            "Authorization": "Contains the credentials to authenticate a user-agent with a server.",
            "Proxy-Authenticate": "Defines the authentication method that should be used to access a resource behind a proxy server.",
            "Proxy-Authorization": "Contains the credentials to authenticate a user-agent with a proxy server.",
        },
        "CACHING": {
            "Cache-Control": "Directives that must be obeyed by all caching mechanisms along the request/response chain.",
            "Pragma": "Implementation-specific directives that may apply to any recipient along the chain.",
            "Expires": "The date/time after which the response is considered stale.",
            "Warning": "Indicates that particular server behaviors are degraded.",
            "Age": "The time, in seconds, that the object has been in a proxy cache.",
            "ETag": "An identifier for a specific version of a resource.",
            "Last-Modified": "The date and time at which the origin server believes the variant was last modified.",
            "No-Vary-Search": "Specifies how URL query parameters affect cache matching.",
        },
        "CONNECTION": {
            "Connection": "Controls whether the network connection stays open after the current transaction.",
            "Keep-Alive": "Controls how long a persistent connection should stay open.",
            "Proxy-Connection": "Controls whether a proxied connection stays open.",
            "TE": "The transfer encodings the user agent is willing to accept.",
            "Trailer": "Fields included at the end of a chunked message.",
            "Transfer-Encoding": "The form of encoding used to safely transfer the resource.",
            "Upgrade": "Asks the peer to switch to another protocol on the same connection.",
        },
        "CONDITIONAL": {
            "If-Match": "Applies the method only if the stored resource matches one of the given ETags.",
            "If-None-Match": "Applies the method only if the stored resource matches none of the given ETags.",
            "If-Modified-Since": "Transmits the resource only if it was modified after the given date.",
            "If-Unmodified-Since": "Transmits the resource only if it was not modified after the given date.",
            "Vary": "Determines how request headers select a cached response.",
        },
        "CONTENT_NEGOTIATION": {
            "Accept": "Media types the client is able to understand.",
            "Accept-Charset": "Character encodings the client is able to understand.",
            "Accept-Encoding": "Content encodings, usually compression, the client is able to understand.",
            "Accept-Language": "Natural languages the client prefers.",
            "Accept-Patch": "Media types the server accepts in a PATCH request.",
            "Accept-Post": "Media types the server accepts in a POST request.",
        },
        "CONTROLS": {
            "Expect": "Expectations that need to be fulfilled by the server to handle the request.",
            "Max-Forwards": "Limits the number of proxies or gateways that can forward the request.",
        },
        "COOKIE": {
            "Cookie": "Stored HTTP cookies previously sent by the server.",
            "Set-Cookie": "Sends cookies from the server to the user-agent.",
        },
        "CORS": {
            "Access-Control-Allow-Credentials": "Whether the response can be exposed when credentials are included.",
            "Access-Control-Allow-Headers": "Headers that can be used when making the actual request.",
            "Access-Control-Allow-Methods": "Methods allowed when accessing the resource.",
            "Access-Control-Allow-Origin": "Whether the response can be shared with the requesting origin.",
            "Access-Control-Expose-Headers": "Headers that can be exposed as part of the response.",
            "Access-Control-Max-Age": "How long the results of a preflight request can be cached.",
            "Access-Control-Request-Headers": "Headers the actual request will use, sent with a preflight request.",
            "Access-Control-Request-Method": "Method the actual request will use, sent with a preflight request.",
            "Origin": "Indicates where a fetch originates from.",
            "Timing-Allow-Origin": "Origins allowed to see Resource Timing values.",
        },
        "INTEGRITY": {
            "Content-Digest": "A digest of the message content.",
            "Repr-Digest": "A digest of the selected representation of the target resource.",
            "Want-Content-Digest": "States the wish for a Content-Digest header.",
            "Want-Repr-Digest": "States the wish for a Repr-Digest header.",
        },
        "MESSAGE_BODY": {
            "Content-Length": "The size of the resource, in bytes.",
            "Content-Type": "The media type of the resource.",
            "Content-Encoding": "The compression algorithm applied to the resource.",
            "Content-Language": "The natural language(s) of the intended audience.",
            "Content-Location": "An alternate location for the returned data.",
            "Content-Disposition": "Whether the resource is displayed inline or handled as a download.",
        },
        "PROXIES": {
            "Forwarded": "Client-facing information altered or lost when a proxy is involved.",
            "Via": "Added by proxies, both forward and reverse.",
        },
        "RANGE": {
            "Accept-Ranges": "Whether the server supports range requests.",
            "Range": "The part of a document the server should return.",
            "If-Range": "A range request fulfilled only if the given ETag or date matches.",
            "Content-Range": "Where in a full body a partial message belongs.",
        },
        "REDIRECTION": {
            "Location": "The URL to redirect the request to.",
            "Retry-After": "How long the user agent should wait before a follow-up request.",
            "Refresh": "Directs the user agent to reload or redirect.",
            "URI": "The URI the user agent can use to resubmit the request.",
        },
        "REQUEST": {
            "From": "An email address for the human user controlling the user agent.",
            "Host": "The domain name and optional port of the server.",
            "Referer": "The address of the previous page from which the request was made.",
            "Referrer-Policy": "How much referrer information is included with requests.",
            "User-Agent": "Identifies the requesting software.",
            "DNT": "The user's tracking preference.",
        },
        "RESPONSE": {
            "Allow": "The request methods supported by a resource.",
            "Server": "The software used by the origin server.",
        },
        "SECURITY": {
            "Cross-Origin-Embedder-Policy": "Declares an embedder policy for a document.",
            "Cross-Origin-Opener-Policy": "Prevents other domains from opening or controlling a window.",
            "Cross-Origin-Resource-Policy": "Prevents other domains from reading the response.",
            "Content-Security-Policy": "Controls resources the user agent is allowed to load.",
            "Content-Security-Policy-Report-Only": "Monitors, without enforcing, a content security policy.",
            "Permissions-Policy": "Allows or denies browser features in a document and its frames.",
            "Reporting-Endpoints": "Endpoints used to receive violation reports.",
            "Strict-Transport-Security": "Forces communication using HTTPS.",
            "Upgrade-Insecure-Requests": "Signals a preference for an encrypted response.",
        },
        "FETCH": {
            "Sec-Fetch-Site": "Relationship between the request initiator's origin and the target's origin.",
            "Sec-Fetch-Mode": "The request's mode.",
            "Sec-Fetch-User": "Whether a navigation request was triggered by user activation.",
            "Sec-Fetch-Dest": "The request's destination.",
            "Sec-Purpose": "The purpose of a request other than immediate use.",
            "Service-Worker-Navigation-Preload": "Sent with a preemptive service worker navigation preload request.",
        },
        "WEB_SOCKETS": {
            "Sec-WebSocket-Accept": "Indicates the server is willing to upgrade to a WebSocket connection.",
            "Sec-WebSocket-Extensions": "WebSocket extensions supported or selected.",
            "Sec-WebSocket-Key": "Verifies the client intends to open a WebSocket.",
            "Sec-WebSocket-Protocol": "WebSocket sub-protocols supported or selected.",
            "Sec-WebSocket-Version": "The WebSocket protocol version.",
        },
        "OTHER": {
            "Alt-Svc": "Alternate ways to reach this service.",
            "Alt-Used": "The alternative service in use.",
            "Date": "The date and time at which the message originated.",
            "Link": "Serializes one or more links in HTTP headers.",
            "Server-Timing": "Metrics and descriptions for the request-response cycle.",
            "Service-Worker": "Included in fetches for a service worker's script resource.",
            "Service-Worker-Allowed": "Removes the path restriction of a service worker script.",
            "SourceMap": "Links generated code to a source map.",
            "Priority": "A hint about the priority of a particular resource request.",
        },
    }
)
