"""Tests for the structured logging and error-tracking configuration."""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import patch

from risk_agent.logging_config import (
    JSONFormatter,
    _RequestIdFilter,
    generate_request_id,
    request_id_ctx,
    setup_error_tracking,
    setup_logging,
)


def _record(name: str = "test", level: int = logging.INFO, msg: str = "hi", exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=exc_info,
    )


class TestGenerateRequestId:

    def test_length(self):
        rid = generate_request_id()
        assert len(rid) == 12

    def test_hex_chars(self):
        rid = generate_request_id()
        assert all(c in "0123456789abcdef" for c in rid)

    def test_unique(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100


class TestRequestIdFilter:

    def test_injects_request_id(self):
        record = _record()
        token = request_id_ctx.set("abc123")
        try:
            _RequestIdFilter().filter(record)
        finally:
            request_id_ctx.reset(token)
        assert record.request_id == "abc123"  # type: ignore[attr-defined]

    def test_default_dash(self):
        record = _record()
        _RequestIdFilter().filter(record)
        assert record.request_id == "-"  # type: ignore[attr-defined]


class TestJSONFormatter:

    def test_basic_output(self):
        record = _record(name="risk_agent.analyzer", level=logging.WARNING, msg="something happened")
        token = request_id_ctx.set("test999")
        try:
            output = JSONFormatter().format(record)
        finally:
            request_id_ctx.reset(token)
        data = json.loads(output)
        assert data["level"] == "WARNING"
        assert data["logger"] == "risk_agent.analyzer"
        assert data["msg"] == "something happened"
        assert data["request_id"] == "test999"

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(name="err", level=logging.ERROR, msg="fail", exc_info=sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert "exception" in data
        assert "ValueError" in data["exception"]


class TestSetupLogging:

    def test_text_handler_on_stderr(self):
        setup_logging(level="DEBUG", fmt="text")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr  # type: ignore[attr-defined]

    def test_json_format(self):
        setup_logging(level="INFO", fmt="json")
        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging(level="chatty", fmt="text")
        assert logging.getLogger().level == logging.INFO


class TestSetupErrorTracking:

    def test_disabled_without_dsn(self):
        with patch("risk_agent.logging_config.SENTRY_DSN", ""), \
             patch("risk_agent.logging_config.sentry_sdk.init") as init:
            assert setup_error_tracking() is False
        init.assert_not_called()

    def test_enabled_with_dsn(self):
        with patch("risk_agent.logging_config.SENTRY_DSN", "https://key@o0.ingest.sentry.io/1"), \
             patch("risk_agent.logging_config.sentry_sdk.init") as init:
            assert setup_error_tracking() is True
        init.assert_called_once()
        assert init.call_args.kwargs["send_default_pii"] is False
