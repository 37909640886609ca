"""
Structured JSON logging with request and target context.

Provides consistent, machine-readable logs with request IDs for tracing.
"""
from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
target_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("target_id", default=None)

# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        # request_id from record.extra OR from contextvar
        req_id = getattr(record, "request_id", None) or request_id_var.get()
        if req_id:
            payload["request_id"] = req_id
        target_id = getattr(record, "target_id", None) or target_id_var.get()
        if target_id:
            payload["target_id"] = target_id

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and key not in ("request_id", "target_id")
        }
        if extra:
            payload["data"] = extra

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_formatter(json_output: bool) -> logging.Formatter:
    if json_output:
        return JSONFormatter()
    return logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(level: str = "INFO", json_output: bool = True, log_file: str | None = None) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON; if False, output plain text
        log_file: Optional path that receives a copy of every record
    """
    root = logging.getLogger()
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Reload-safe: replace handlers instead of accumulating them.
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(json_output))
    root.addHandler(handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(_build_formatter(json_output))
        root.addHandler(file_handler)

    root.setLevel(numeric_level)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
