"""Tests for structured logging and the HTTP middleware helpers."""

import json
import logging
import sys

from fastapi.testclient import TestClient

from edustream.core.logging import ContextFilter, StructuredFormatter, correlation_id_var, handler_var, log_context
from edustream.core.middleware import CORRELATION_ID_HEADER, route_label
from edustream.main import app


def format_record(message: str = "Job submitted", **extra) -> dict:
    record = logging.LogRecord("edustream.test", logging.INFO, __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    ContextFilter().filter(record)
    return json.loads(StructuredFormatter().format(record))


class TestStructuredFormatter:

    def test_bound_context_is_emitted(self) -> None:
        with log_context("msg-42", "upload_trigger"):
            entry = format_record(content_id="abc")

        assert entry["correlation_id"] == "msg-42"
        assert entry["handler"] == "upload_trigger"
        assert entry["message"] == "Job submitted"
        assert entry["extra"] == {"content_id": "abc"}

    def test_unserializable_extra_is_stringified(self) -> None:
        entry = format_record(job=object())

        assert isinstance(entry["extra"]["job"], str)

    def test_exception_is_included(self) -> None:
        try:
            raise RuntimeError("quota exceeded")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "Submit failed", (), None)
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["exception"]["type"] == "RuntimeError"
        assert entry["exception"]["message"] == "quota exceeded"
        assert entry["exception"]["stack_trace"]


def test_log_context_restores_previous_values() -> None:
    with log_context("outer", "cleanup"):
        with log_context(None, "reclaim") as inner:
            assert correlation_id_var.get() == inner
            assert inner != "outer"
        assert correlation_id_var.get() == "outer"
        assert handler_var.get() == "cleanup"


def test_route_label_collapses_ids() -> None:
    assert route_label("/api/v1/contents/0b7c2a8e-4f0e-4f53-9f1a-3f6a1b2c3d4e") == "/api/v1/contents/{id}"
    assert route_label("/api/v1/items/42/parts") == "/api/v1/items/{id}/parts"
    assert route_label("/api/v1/transcoding/events/storage") == "/api/v1/transcoding/events/storage"


def test_correlation_id_is_echoed() -> None:
    client = TestClient(app)

    supplied = client.get("/health", headers={CORRELATION_ID_HEADER: "req-1"})
    from_trace = client.get("/health", headers={"X-Cloud-Trace-Context": "105445aa7843bc8bf206b120001000/1;o=1"})

    assert supplied.headers[CORRELATION_ID_HEADER] == "req-1"
    assert from_trace.headers[CORRELATION_ID_HEADER] == "105445aa7843bc8bf206b120001000"
