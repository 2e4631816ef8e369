"""
Logging setup for the rankings service.

Refresh-cycle components log ``key=value`` messages through
``logging.getLogger(__name__)``; source failures additionally carry
``failure_kind`` / ``failure_source`` in ``extra={"extra": {...}}``. With
LOG_JSON=1 those fields become top-level keys of one JSON object per line,
otherwise a plain text line is written. LOG_LEVEL picks the level (INFO).
"""
import json
import logging
import os
import sys
from typing import Any, Optional

SERVICE_NAME = "market-rankings"

# chatty libraries: one line per poll / per image request otherwise
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _json_default(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "value"):  # FailureKind / FailureSource
        return obj.value
    return str(obj)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; structured ``extra`` fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            payload.update({k: v for k, v in fields.items() if k not in payload and v is not None})
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def _wants_json() -> bool:
    return os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")


def configure_logging(level_name: Optional[str] = None) -> None:
    level = getattr(logging, (level_name or os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter() if _wants_json() else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    # uvicorn --reload re-imports main; keep a single handler
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
