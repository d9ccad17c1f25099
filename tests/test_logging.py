"""
Tests for structured logging helpers.
"""

import structlog

from ai_tier_router.core.logging import bind_request_context, clear_request_context, get_logger


class TestRequestContext:
    """Test per-request context binding."""

    def teardown_method(self):
        structlog.contextvars.clear_contextvars()

    def test_bind_generates_request_id(self):
        request_id = bind_request_context("alice")

        bound = structlog.contextvars.get_contextvars()
        assert bound["caller_id"] == "alice"
        assert bound["request_id"] == request_id
        assert len(request_id) == 36

    def test_bind_keeps_given_request_id(self):
        assert bind_request_context("alice", "req-1") == "req-1"

    def test_clear_removes_request_fields(self):
        bind_request_context("alice")

        clear_request_context()

        bound = structlog.contextvars.get_contextvars()
        assert "caller_id" not in bound
        assert "request_id" not in bound

    def test_get_logger(self):
        assert get_logger(__name__) is not None
