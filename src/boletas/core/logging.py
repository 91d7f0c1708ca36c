"""
JSON logs for the API and the Celery worker.

Every record is one JSON object: ``event`` names what happened
(``receipt.created``, ``extraction.read.timeout``...), the remaining keys are
the fields passed to ``log_event`` plus whatever is bound to the current
context (request id, user id, Celery task id). Credentials never reach the
output and long values (OCR text) are clipped.
"""

from __future__ import annotations

import contextvars
import json
import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from boletas.core.config import settings

ROOT_LOGGER = "boletas"
MAX_FIELD_CHARS = 300
REDACTED = "[redacted]"
SENSITIVE_FIELDS = frozenset(
    {"password", "password_hash", "api_key", "authorization", "access_token", "secret_key"}
)

_context: contextvars.ContextVar[dict[str, str]] = contextvars.ContextVar("log_context", default={})

_configured = False


def _clean(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_FIELDS:
        return REDACTED
    if isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
        return value[:MAX_FIELD_CHARS] + "…"
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        fields = getattr(record, "fields", None) or {}
        payload.update({k: _clean(k, v) for k, v in fields.items() if v is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Vendor and category names are Spanish; keep them readable.
        return json.dumps(payload, default=str, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """One line per event for local development: ``event key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "fields", None) or {}
        parts = [getattr(record, "event", None) or record.getMessage()]
        parts.extend(f"{k}={_clean(k, v)}" for k, v in fields.items() if v is not None)
        line = f"{record.levelname:<7} {' '.join(parts)}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(PlainFormatter() if settings.log_format == "plain" else JsonFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def bind_context(**values: str | None) -> contextvars.Token:
    """Add values to every event logged in the current context. Returns a reset token."""
    merged = dict(_context.get())
    merged.update({k: v for k, v in values.items() if v is not None})
    return _context.set(merged)


def reset_context(token: contextvars.Token) -> None:
    _context.reset(token)


def set_user_context(user_id: str | None) -> None:
    # Bound for the rest of the request; the middleware resets the whole context.
    bind_context(user_id=user_id)


def set_task_context(task_id: str | None) -> contextvars.Token:
    return bind_context(celery_task_id=task_id)


def reset_task_context(token: contextvars.Token) -> None:
    reset_context(token)


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": {**_context.get(), **fields}})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": {**_context.get(), **fields}})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with ``x-request-id`` (echoed back) and logs its outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = _context.set({"request_id": request_id})
        logger = get_logger(__name__)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                logger,
                "http.request.error",
                method=request.method,
                path=request.url.path,
                duration_ms=monotonic_ms(start),
            )
            raise
        finally:
            reset_context(token)
        response.headers["x-request-id"] = request_id
        log_event(
            logger,
            "http.request.finish",
            level=logging.DEBUG,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            request_id=request_id,
            duration_ms=monotonic_ms(start),
        )
        return response
