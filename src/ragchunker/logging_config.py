"""Logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

QUALITY_LOGGER_NAME = "ragchunker.quality"


class MinimalJSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string."""

    _RESERVED_KEYS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z")
        )

        log_record: dict[str, Any] = {
            "ts": timestamp,
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            log_record.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                log_record["message"] = message

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._RESERVED_KEYS or key.startswith("_"):
                continue
            log_record[key] = value

        return json.dumps(log_record, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None, *, audit_log_dir: str | Path | None = None) -> None:
    """Configure JSON logging on the root logger.

    When ``audit_log_dir`` is given, chunk quality warnings (undersized or
    oversized chunks) are additionally appended to ``chunk_quality.log``.
    """

    resolved_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    handlers: dict[str, Any] = {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    }
    loggers: dict[str, Any] = {}

    if audit_log_dir is not None:
        log_dir = Path(audit_log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["chunk_quality"] = {
            "class": "logging.FileHandler",
            "filename": str(log_dir / "chunk_quality.log"),
            "mode": "a",
            "encoding": "utf-8",
            "formatter": "json",
        }
        loggers[QUALITY_LOGGER_NAME] = {
            "level": "INFO",
            "handlers": ["chunk_quality"],
            "propagate": True,
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": handlers,
            "root": {
                "level": resolved_level,
                "handlers": ["default"],
            },
            "loggers": loggers,
        }
    )
