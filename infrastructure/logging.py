"""Structured JSON logging for the order entry service."""
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Union

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredLogger:
    """Logger that outputs structured JSON logs."""

    def __init__(self, service_name: str, level: Union[int, str] = logging.INFO):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()
        self.logger.addHandler(self._setup_handler(sys.stdout))

    def _setup_handler(self, stream):
        """Setup handler with JSON formatter."""
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter(self.service_name))
        return handler

    def debug(self, message: str, **extra: Any):
        self.logger.debug(message, extra=extra)

    def info(self, message: str, **extra: Any):
        """Log info level message with extra context."""
        self.logger.info(message, extra=extra)

    def warning(self, message: str, **extra: Any):
        """Log warning level message with extra context."""
        self.logger.warning(message, extra=extra)

    def error(self, message: str, exc_info: bool = False, **extra: Any):
        """Log error level message with optional exception info."""
        self.logger.error(message, exc_info=exc_info, extra=extra)


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self._format_exception(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def _format_exception(self, exc_info) -> str:
        return "".join(traceback.format_exception(*exc_info))


_loggers: dict = {}


def get_logger(service_name: str = "order-entry", level: Union[int, str] = logging.INFO) -> StructuredLogger:
    """Get (or reuse) a structured logger for the service."""
    logger = _loggers.get(service_name)
    if logger is None:
        logger = StructuredLogger(service_name=service_name, level=level)
        _loggers[service_name] = logger
    return logger


def configure_level(level: str) -> None:
    """Apply a level name such as "DEBUG" to every logger handed out so far."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    for logger in _loggers.values():
        logger.logger.setLevel(numeric)
    if numeric > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
