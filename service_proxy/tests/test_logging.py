"""
Unit tests for request-scoped logging context.
"""

import pytest

from shared.logging import (
    add_request_context,
    add_service_context,
    clear_context,
    set_cache_key,
    set_request_id,
)


class TestLoggingContext:
    """Test cases for the logging processors."""

    @pytest.fixture(autouse=True)
    def reset_context(self):
        clear_context()
        yield
        clear_context()

    def test_request_context_attached(self):
        set_request_id("req-1")
        set_cache_key("abc123")

        event = add_request_context(None, "info", {"event": "Cache hit"})

        assert event["request_id"] == "req-1"
        assert event["cache_key"] == "abc123"

    def test_explicit_request_id_wins(self):
        set_request_id("req-1")

        event = add_request_context(None, "info", {"event": "HTTP request", "request_id": "req-2"})

        assert event["request_id"] == "req-2"

    def test_no_context_outside_requests(self):
        event = add_request_context(None, "info", {"event": "Proxy configured"})
        assert "request_id" not in event
        assert "cache_key" not in event

    def test_request_id_generated_when_missing(self):
        first = set_request_id(None)
        second = set_request_id("")

        assert first and second and first != second

    def test_service_from_logger_name(self):
        event = add_service_context(None, "info", {"logger": "proxy.cache"})
        assert event["service"] == "proxy"
