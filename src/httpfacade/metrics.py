"""Counters for the transport adapter."""

from dataclasses import dataclass, field
from typing import ClassVar

from httpfacade.catalog import HttpStatus


def status_class(status: HttpStatus) -> str:
    """Bucket a status into the class used for metric labels."""
    if status.is_informational():
        return "informational"
    if status.is_success():
        return "success"
    # Every 3xx, including 300 and 304, counts as a redirect here
    if 300 <= status.code < 400:
        return "redirect"
    if status.is_client_error():
        return "client_error"
    if status.is_server_error():
        return "server_error"
    return "other"


@dataclass
class TransportMetrics:
    """Process-wide counters for ``HttpFetcher``.

    Responses are counted per code and per status class. Sends that never
    produced a response are counted per failure class, aborts separately.
    """

    responses_by_code: dict[int, int] = field(default_factory=dict)
    responses_by_class: dict[str, int] = field(default_factory=dict)
    retry_eligible_total: int = 0
    failures_by_class: dict[str, int] = field(default_factory=dict)
    aborted_total: int = 0
    bytes_received_total: int = 0
    duration_ms_total: float = 0.0

    _instance: ClassVar["TransportMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "TransportMetrics":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance; the next ``get_instance`` starts at zero."""
        cls._instance = None

    @property
    def response_count(self) -> int:
        return sum(self.responses_by_code.values())

    def record_response(
        self, status: HttpStatus, bytes_received: int, duration_ms: float
    ) -> None:
        """Count a send that produced a response.

        Args:
            status: Resolved status of the response.
            bytes_received: Body length in bytes.
            duration_ms: Time from send to a fully read body.
        """
        label = status_class(status)
        self.responses_by_code[status.code] = self.responses_by_code.get(status.code, 0) + 1
        self.responses_by_class[label] = self.responses_by_class.get(label, 0) + 1
        if status.can_retry():
            self.retry_eligible_total += 1
        self.bytes_received_total += bytes_received
        self.duration_ms_total += duration_ms

    def record_failure(self, failure_class: str) -> None:
        self.failures_by_class[failure_class] = self.failures_by_class.get(failure_class, 0) + 1

    def record_aborted(self) -> None:
        self.aborted_total += 1

    @property
    def avg_duration_ms(self) -> float:
        count = self.response_count
        return self.duration_ms_total / count if count else 0.0

    def snapshot(self) -> dict[str, object]:
        """Copy of every counter, suitable for logging."""
        return {
            "responses_by_code": dict(self.responses_by_code),
            "responses_by_class": dict(self.responses_by_class),
            "retry_eligible_total": self.retry_eligible_total,
            "failures_by_class": dict(self.failures_by_class),
            "aborted_total": self.aborted_total,
            "bytes_received_total": self.bytes_received_total,
            "avg_duration_ms": round(self.avg_duration_ms, 3),
        }
