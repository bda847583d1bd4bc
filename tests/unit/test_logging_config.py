"""Unit tests for logging filters and formatters."""

import json
import logging

from src.logging_config import JsonFormatter, RedactionFilter, RequestIdFilter, request_id_var


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("src.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLoggingFilters:
    def test_sensitive_extras_are_redacted(self):
        record = _record(password="hunter2", code="123456", user_id="u1")

        assert RedactionFilter().filter(record) is True
        assert record.password == "***"
        assert record.code == "***"
        assert record.user_id == "u1"

    def test_request_id_from_context(self):
        token = request_id_var.set("req-1")
        try:
            record = _record()
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "req-1"

    def test_json_formatter_includes_extras(self):
        record = _record(request_id="req-2", user_id="u1", reset_code="***")
        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "hello world"
        assert payload["request_id"] == "req-2"
        assert payload["user_id"] == "u1"
        assert payload["reset_code"] == "***"
