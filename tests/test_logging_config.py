"""Unit tests for expense_gateway.middleware.logging_config.

Coverage
--------
    1. credentials after OAuth / Basic / Bearer are masked in messages,
       %-args and exception text
    2. request_id is stamped on records emitted inside a request
    3. formatter output carries request_id, duration and error_code
"""

import json
import logging
import sys

from flask import g

from expense_gateway.middleware.logging_config import (
    CredentialFilter,
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
    redact,
)


def _record(msg, *args, exc_info=None, **extra):
    record = logging.LogRecord(
        name="expense_gateway.test",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args or None,
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRedaction:
    def test_oauth_token_is_masked(self):
        assert redact("Authorization: OAuth abc123") == "Authorization: OAuth ***"

    def test_basic_and_bearer_values_are_masked(self):
        text = redact("Basic YWxpY2U6czNjcmV0 then Bearer eyJhbGciOi.x.y")
        assert "YWxpY2U6czNjcmV0" not in text
        assert "eyJhbGciOi" not in text
        assert text == "Basic *** then Bearer ***"

    def test_text_without_credentials_is_unchanged(self):
        assert redact("Fetching expenses from Concur") == "Fetching expenses from Concur"

    def test_filter_masks_interpolated_args(self):
        record = _record("Calling Concur with %s", "OAuth secret-token")

        assert CredentialFilter().filter(record) is True
        assert record.getMessage() == "Calling Concur with OAuth ***"

    def test_exception_text_is_masked_in_json(self):
        try:
            raise RuntimeError("rejected OAuth secret-token")
        except RuntimeError:
            record = _record("Concur call failed", exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert "secret-token" not in entry["exception"]
        assert "OAuth ***" in entry["exception"]


class TestRequestContext:
    def test_request_id_is_stamped_inside_request(self, app):
        record = _record("inside")
        with app.test_request_context("/api/v1/expenses"):
            g.request_id = "req-7"
            RequestContextFilter().filter(record)

        assert record.request_id == "req-7"

    def test_explicit_request_id_wins(self, app):
        record = _record("inside", request_id="from-timing")
        with app.test_request_context("/api/v1/expenses"):
            g.request_id = "req-7"
            RequestContextFilter().filter(record)

        assert record.request_id == "from-timing"

    def test_outside_request_nothing_is_added(self):
        record = _record("startup")
        RequestContextFilter().filter(record)

        assert getattr(record, "request_id", None) is None


class TestFormatters:
    def test_json_formatter_includes_gateway_fields(self):
        record = _record("Server error", request_id="req-1", error_code="ERR_UPSTREAM", status=500)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Server error"
        assert entry["request_id"] == "req-1"
        assert entry["error_code"] == "ERR_UPSTREAM"
        assert entry["status"] == 500

    def test_readable_formatter_shows_request_id_and_error_code(self):
        record = _record("Server error", request_id="req-1", error_code="ERR_UPSTREAM", duration_ms=412.3)

        line = ReadableFormatter().format(record)

        assert "[req-1]" in line
        assert "[412ms]" in line
        assert line.endswith("ERR_UPSTREAM")
