"""Structured logging helpers for engine diagnostics."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Attributes passed through ``extra=`` by the analytics modules.
CONTEXT_FIELDS = ("event", "portfolio", "symbol", "tier", "trials", "duration_ms")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, carrying any engine context fields set on the record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def _file_handler(log_file: str, formatter: str) -> dict[str, Any]:
    path = Path(log_file).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "filename": str(path),
        "maxBytes": LOG_FILE_MAX_BYTES,
        "backupCount": LOG_FILE_BACKUPS,
        "formatter": formatter,
        "encoding": "utf-8",
    }


def configure_logging(
    level: str = "INFO",
    *,
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Install console (and optional rotating file) handlers on the root logger.

    The engine itself only creates module loggers; applications embedding it
    call this once at startup.
    """
    formatter = "json" if json_format else "text"
    handlers: dict[str, dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "formatter": formatter},
    }
    if log_file:
        handlers["file"] = _file_handler(log_file, formatter)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonLogFormatter},
                "text": {"format": TEXT_FORMAT, "datefmt": "%Y-%m-%dT%H:%M:%S%z"},
            },
            "handlers": handlers,
            "root": {"level": level.upper(), "handlers": list(handlers)},
        }
    )


def configure_from_settings(settings: Any, *, log_file: str | None = None) -> None:
    """Apply ``log_level`` and ``log_json`` from :class:`~portfolio_risk.settings.EngineSettings`."""
    configure_logging(
        getattr(settings, "log_level", "INFO"),
        json_format=bool(getattr(settings, "log_json", False)),
        log_file=log_file,
    )
