"""
Telecast Logging
================

Console output goes through rich for interactive runs; the rotating log
file always receives one JSON object per line, so a refresh run can be
filtered by component or channel afterwards.
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler

ROOT_LOGGER = "telecast"

# Attributes present on every LogRecord; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, caller context nested under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if context:
            payload["extra"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _level_name(level: Any) -> str:
    return str(getattr(level, "value", level)).upper()


def _console_handler(structured: bool) -> logging.Handler:
    if structured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        return handler
    return RichHandler(show_path=False, rich_tracebacks=True, markup=False)


def configure_application_logging(log_settings, level: Optional[str] = None) -> logging.Logger:
    """Install handlers on the ``telecast`` logger from LoggingSettings.

    Safe to call repeatedly; previously installed handlers are closed and
    replaced.

    Args:
        log_settings: The ``logging`` section of TelecastSettings
        level: Overrides ``log_settings.level`` (e.g. ``--debug``)

    Returns:
        The configured root application logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_level_name(level or log_settings.level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_settings.console_logging:
        logger.addHandler(_console_handler(log_settings.structured_logging))

    if log_settings.file_path:
        log_path = Path(log_settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=log_settings.max_file_size_mb * 1024 * 1024,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    # aiohttp logs every dropped connection at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return logger


class ComponentLogger(logging.LoggerAdapter):
    """Adapter whose fixed context is merged into each call's ``extra``."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger_for_component(component_name: str, **context: Any) -> ComponentLogger:
    """Logger for one part of the system, e.g. ``pipeline`` or ``normalizer``.

    Keyword context (``channel_id``, ``feed_url`` ...) is attached to every
    record; None values are dropped.
    """
    extra = {"component": component_name}
    extra.update({key: value for key, value in context.items() if value is not None})
    return ComponentLogger(logging.getLogger(f"{ROOT_LOGGER}.{component_name}"), extra)


class PerformanceLogger:
    """Times a block and logs how it ended.

    Usage:
        with PerformanceLogger(logger, "refresh batch", channels=250):
            ...
    """

    def __init__(self, logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.elapsed: Optional[float] = None
        self._started = 0.0

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed = time.perf_counter() - self._started
        context = {
            **self.context,
            "duration_seconds": round(self.elapsed, 3),
            "success": exc_type is None,
        }

        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {self.elapsed:.3f}s", extra=context)
        else:
            self.logger.error(f"Failed {self.operation} after {self.elapsed:.3f}s: {exc_val}", extra=context)
        return False
