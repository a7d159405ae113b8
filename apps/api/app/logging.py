from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings


_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "correlation_id"}

# extra keys allowed into the "fields" object; anything else passed via ``extra`` is dropped
LOGGED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "event_name",
        "pipeline_id",
        "deal_id",
        "step_name",
        "status",
        "organization_id",
        "user_id",
        "po_number",
        "reason",
        "error",
    }
)
ERROR_FIELD_LIMIT = 500


def _extract_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {
        key: value
        for key, value in vars(record).items()
        if key in LOGGED_FIELDS and key not in _RESERVED_ATTRS
    }
    if isinstance(fields.get("error"), str):
        fields["error"] = fields["error"][:ERROR_FIELD_LIMIT]
    return fields


class CorrelationIdFilter(logging.Filter):
    """Stamp the active correlation id on records that were not given one explicitly."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = _extract_fields(record)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
                "fields": fields,
            },
            default=str,
        )


class KeyValueLogFormatter(logging.Formatter):
    """Human readable variant for local runs, selected with ``LOG_FORMAT=text``."""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = getattr(record, "correlation_id", None) or "-"
        pairs = " ".join(f"{key}={value}" for key, value in sorted(_extract_fields(record).items()))
        line = f"{record.levelname:<7} {record.name} [{correlation_id}] {record.getMessage()}"
        if pairs:
            line = f"{line} {pairs}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_connectplus_configured", False):
        return

    settings = get_settings()
    resolved_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO
    formatter = KeyValueLogFormatter() if (fmt or settings.log_format).lower() == "text" else JsonLogFormatter()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.setLevel(resolved_level)
    root_logger.addHandler(handler)
    root_logger._connectplus_configured = True  # type: ignore[attr-defined]
