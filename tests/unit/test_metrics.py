"""Unit tests for transport counters."""

import pytest

from httpfacade.catalog import HttpStatus
from httpfacade.metrics import TransportMetrics, status_class


class TestStatusClass:
    """Tests for status_class."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (100, "informational"),
            (204, "success"),
            (300, "redirect"),
            (301, "redirect"),
            (304, "redirect"),
            (308, "redirect"),
            (404, "client_error"),
            (503, "server_error"),
            (0, "other"),
        ],
    )
    def test_buckets_by_range(self, code: int, expected: str) -> None:
        """Test that every listed code lands in its hundreds bucket."""
        assert status_class(HttpStatus.from_code(code)) == expected


class TestTransportMetrics:
    """Tests for TransportMetrics counters."""

    def test_record_response(self) -> None:
        """Test per-code, per-class and retry counters."""
        metrics = TransportMetrics()
        metrics.record_response(HttpStatus.from_code(304), 0, 10.0)
        metrics.record_response(HttpStatus.from_code(503), 20, 30.0)

        assert metrics.responses_by_code == {304: 1, 503: 1}
        assert metrics.responses_by_class == {"redirect": 1, "server_error": 1}
        assert metrics.retry_eligible_total == 1
        assert metrics.snapshot()["avg_duration_ms"] == 20.0

    def test_shared_instance_resets(self) -> None:
        """Test that reset drops the shared instance."""
        TransportMetrics.reset()
        shared = TransportMetrics.get_instance()
        shared.record_aborted()

        TransportMetrics.reset()
        assert TransportMetrics.get_instance().aborted_total == 0
        assert TransportMetrics.get_instance() is not shared
        TransportMetrics.reset()
