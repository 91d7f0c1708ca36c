from __future__ import annotations

import json
import logging

from boletas.core.logging import (
    MAX_FIELD_CHARS,
    REDACTED,
    JsonFormatter,
    bind_context,
    get_logger,
    log_event,
    reset_context,
)


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


def test_json_formatter_redacts_and_clips():
    record = logging.LogRecord("boletas.test", logging.INFO, __file__, 1, "ocr.read.success", None, None)
    record.event = "ocr.read.success"
    record.fields = {"api_key": "sk-123", "text": "x" * 1000, "vendor": "Farmacia Ñuñoa", "gone": None}

    payload = json.loads(JsonFormatter().format(record))

    assert payload["event"] == "ocr.read.success"
    assert payload["api_key"] == REDACTED
    assert len(payload["text"]) == MAX_FIELD_CHARS + 1
    assert payload["vendor"] == "Farmacia Ñuñoa"
    assert "gone" not in payload


def test_bound_context_is_attached_to_events():
    logger = get_logger("boletas.test_context")
    capture = _Capture()
    logger.addHandler(capture)
    try:
        token = bind_context(celery_task_id="task-1")
        log_event(logger, "celery.task.start", task_name="cleanup_temp_uploads")
        reset_context(token)
        log_event(logger, "celery.task.finish")
    finally:
        logger.removeHandler(capture)

    first, second = capture.records
    assert first.fields == {"celery_task_id": "task-1", "task_name": "cleanup_temp_uploads"}
    assert second.fields == {}


def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"x-request-id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"
    assert client.get("/healthz").headers["x-request-id"]
