"""
Unit tests for logging setup.
"""

import io
import json
import logging
import sys

from apiserver.logs import (
    JSONFormatter,
    RequestIdFilter,
    bind_request_id,
    configure_logging,
    current_request_id,
    reset_request_id,
)


def make_record(msg="hello", **extra):
    record = logging.LogRecord("apiserver.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestIdContext:

    def test_default(self):
        assert current_request_id() == "-"

    def test_bind_and_reset(self):
        token = bind_request_id("rid-1")
        try:
            assert current_request_id() == "rid-1"
        finally:
            reset_request_id(token)

        assert current_request_id() == "-"

    def test_filter_stamps_record(self):
        record = make_record()
        token = bind_request_id("rid-2")
        try:
            assert RequestIdFilter().filter(record) is True
        finally:
            reset_request_id(token)

        assert record.request_id == "rid-2"

    def test_filter_keeps_explicit_value(self):
        record = make_record(request_id="given")
        RequestIdFilter().filter(record)

        assert record.request_id == "given"


class TestJSONFormatter:

    def test_fields_and_extras(self):
        record = make_record("Starting HTTP server", port=8080, request_id="-")
        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Starting HTTP server"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "apiserver.test"
        assert payload["port"] == 8080
        assert payload["request_id"] == "-"

    def test_exception_info(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord(
                "apiserver.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        payload = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in payload["exc_info"]


class TestConfigureLogging:

    def test_text_output(self, restore_logging):
        stream = io.StringIO()
        configure_logging("INFO", "text", stream=stream)

        logging.getLogger("apiserver.server").info("Starting HTTP server on 127.0.0.1:1")

        line = stream.getvalue()
        assert "[INFO] apiserver.server [-]: Starting HTTP server" in line

    def test_json_output_with_request_id(self, restore_logging):
        stream = io.StringIO()
        configure_logging("DEBUG", "json", stream=stream)

        token = bind_request_id("rid-3")
        try:
            logging.getLogger("apiserver.x").debug("inside")
        finally:
            reset_request_id(token)

        payload = json.loads(stream.getvalue().strip())
        assert payload["request_id"] == "rid-3"
        assert payload["level"] == "DEBUG"

    def test_level_filters(self, restore_logging):
        stream = io.StringIO()
        configure_logging("WARNING", stream=stream)

        logging.getLogger("apiserver.x").info("hidden")

        assert stream.getvalue() == ""

    def test_repeated_calls_do_not_duplicate(self, restore_logging):
        stream = io.StringIO()
        configure_logging(stream=stream)
        configure_logging(stream=stream)

        logging.getLogger("apiserver.x").warning("once")

        assert stream.getvalue().count("once") == 1
