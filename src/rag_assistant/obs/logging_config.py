"""Structured JSON logging setup.

Usage:
    from rag_assistant.obs.logging_config import setup_logging

    setup_logging(level="INFO", service_name="rag-assistant")

Modules keep using ``logging.getLogger(__name__)``; this only installs the
root handler and formatter.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def __init__(self, service_name: str = "rag-assistant") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", service_name: str = "rag-assistant") -> None:
    """Route all package logs to stdout as JSON. Safe to call more than once."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_rag_assistant", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler._rag_assistant = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Third-party HTTP clients are chatty at INFO.
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
