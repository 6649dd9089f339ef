"""
Structured logging for the membership service.

All modules log under the "membership" logger tree. Records carry a small
set of named fields (webhook outcome fields and request fields) which the
JSON formatter emits as keys and the pretty formatter appends as key=value
pairs, so an ignored event always says why it was ignored.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

LOGGER_NAME = "membership"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Webhook reconciliation
BILLING_FIELDS = (
    "event_type",
    "event_id",
    "outcome",
    "reason",
    "user_id",
    "customer_id",
    "rows_matched",
    "plan",
    "error_code",
)
# HTTP access
REQUEST_FIELDS = ("method", "path", "status", "latency_ms")

STRUCTURED_FIELDS = BILLING_FIELDS + REQUEST_FIELDS

_MAX_FIELD_CHARS = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def _record_fields(record: logging.LogRecord) -> Dict[str, object]:
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class RequestIdFilter(logging.Filter):
    """Stamp records with the request_id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update(_record_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """Single readable line per record for local development."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            f"{record.levelname:<7}",
            record.name,
        ]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"[{rid[:8]}]")
        parts.append(record.getMessage())
        parts.extend(f"{k}={v}" for k, v in _record_fields(record).items())

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development") -> None:
    """JSON output in production, pretty output everywhere else."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True


def _safe_truncate(value, limit: int = _MAX_FIELD_CHARS):
    if isinstance(value, (int, float, bool)):
        return value
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    if len(text) <= limit:
        return text
    return text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
    **fields: object,
) -> None:
    """
    Emit `msg` on the membership logger with structured fields.

    Named fields (see STRUCTURED_FIELDS) are rendered by both formatters;
    `extra` carries anything else and is only visible to handlers that look
    for it. None values are dropped and long values are truncated.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    payload: Dict[str, object] = {"request_id": request_id or get_request_id()}
    for key, value in list(fields.items()) + list((extra or {}).items()):
        if value is not None:
            payload[key] = _safe_truncate(value)

    log_fn = getattr(logger, level, logger.info)
    log_fn(msg, extra=payload)
