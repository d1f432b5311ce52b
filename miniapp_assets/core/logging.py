import json
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone
from typing import Any

from miniapp_assets.core.config import settings

# Structured fields passed through logger.*(..., extra={...}).
# Names must not collide with LogRecord attributes (filename, module, name, ...).
EXTRA_FIELDS = (
    "slot", "provider", "backend", "attempt", "max_attempts",
    "delay_seconds", "remaining_seconds", "verdict", "reason",
    "transport_error", "http_status", "quota_id", "quota_metric",
    "quota_model", "artifact_name", "path", "size_bytes", "media_type",
    "field", "old_value", "new_value", "duration_ms", "error",
)


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in EXTRA_FIELDS
        if getattr(record, name, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log files and CI."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable terminal lines: time, level, message, then key=value extras."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = record_extras(record)
        if extras:
            line += "  " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


def configure_logging() -> None:
    """Console handler in LOG_FORMAT, plus an optional rotating JSON file (LOG_FILE)."""
    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if settings.log_format == "json" else ConsoleFormatter())
    handlers: list[logging.Handler] = [console]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    root.handlers = handlers
    # httpx logs every request at INFO; keep the run log readable
    logging.getLogger("httpx").setLevel(logging.WARNING)
