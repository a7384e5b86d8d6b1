"""Exceptions raised by the HTTP facades.

Most failures in this package are represented as data: invalid headers
are dropped and transport failures become an error-shaped
``ResponseData``. The exceptions below are reserved for programmer errors
(an unresolvable status passed as a bare scalar) and for the opt-in
fail-closed header policy.
"""

from typing import Any


class HttpFacadeError(Exception):
    """Base exception for all httpfacade errors."""


class IllegalArgumentError(HttpFacadeError):
    """Raised when an argument cannot be interpreted.

    Carries the name of the function that rejected the argument and the
    arguments it received, for diagnostics.
    """

    def __init__(self, message: str, context: str, args: tuple[Any, ...]) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message.
            context: Name of the function that rejected the argument.
            args: The arguments that could not be interpreted.
        """
        self.message = message
        self.context = context
        self.arguments = args
        super().__init__(f"{message} (context={context})")

    def to_dict(self) -> dict[str, Any]:
        """Describe the error as a plain mapping for structured logging."""
        return {
            "message": self.message,
            "context": self.context,
            "args": [repr(arg) for arg in self.arguments],
        }


class HeaderValidationError(HttpFacadeError):
    """Raised when a header is rejected under the fail-closed policy."""

    def __init__(self, name: str, reason: str) -> None:
        """Initialize the error.

        Args:
            name: Header name as given (may be empty).
            reason: Why the header was rejected.
        """
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid header '{name}': {reason}")


class ResponseResolutionError(HttpFacadeError):
    """Raised inside response resolution when a phase cannot complete.

    Never escapes ``ResponseData.from_value``; the resolver turns it into
    an error-shaped response.
    """

    def __init__(self, phase: str, message: str) -> None:
        """Initialize the error.

        Args:
            phase: Name of the resolution phase that failed.
            message: Human-readable message.
        """
        self.phase = phase
        super().__init__(f"Response resolution failed in {phase}: {message}")


class SecretNotFoundError(HttpFacadeError):
    """Raised when a required secret is not available from any provider."""

    def __init__(self, key: str) -> None:
        """Initialize the error.

        Args:
            key: The secret key that was not found.
        """
        self.key = key
        super().__init__(f"Secret not found: {key}")


class RequestAbortedError(HttpFacadeError):
    """Raised by ``AbortSignal.throw_if_aborted`` once a signal has fired."""

    def __init__(self, reason: object = None) -> None:
        """Initialize the error.

        Args:
            reason: The reason given when the signal was aborted.
        """
        self.reason = reason
        super().__init__(f"Request aborted: {reason!r}" if reason is not None else "Request aborted")
