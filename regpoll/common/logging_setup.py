"""
Structured Logging Setup

Consistent logging configuration across all services.
Uses JSON format for structured logs in production.
"""

import logging
import sys
import os
from datetime import datetime, timezone
from typing import Any
import json


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in (
                "name", "msg", "args", "levelname", "levelno", "pathname",
                "filename", "module", "exc_info", "exc_text", "stack_info",
                "lineno", "funcName", "created", "msecs", "relativeCreated",
                "thread", "threadName", "processName", "process", "service",
                "message", "taskName",
            ):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "device", "api")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"regpoll.{service_name}")
    logger.setLevel(numeric_level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from REGPOLL_LOG_LEVEL / REGPOLL_LOG_FORMAT.

    Args:
        service_name: Name of the service

    Returns:
        Logger adapter with service name in all logs
    """
    log_level, json_format = resolve_log_settings()
    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def resolve_log_settings(log_level: str = "INFO", log_format: str = "json") -> tuple[str, bool]:
    """
    Apply environment overrides to configured log settings.

    REGPOLL_LOG_LEVEL and REGPOLL_LOG_FORMAT win over the values passed in.

    Returns:
        (log_level, json_format)
    """
    log_level = os.environ.get("REGPOLL_LOG_LEVEL", log_level)
    log_format = os.environ.get("REGPOLL_LOG_FORMAT", log_format)
    return log_level, log_format.lower() == "json"


def configure_service_loggers(
    service_names: list[str],
    log_level: str,
    log_format: str,
) -> None:
    """Re-apply config file settings (env still overrides) to already-created loggers."""
    log_level, json_format = resolve_log_settings(log_level, log_format)
    for name in service_names:
        setup_logging(name, log_level, json_format)


def log_device_read(logger: logging.Logger, reading: Any) -> None:
    """Log the outcome of one poll attempt"""
    device = f"{reading.device_name} ({reading.host}:{reading.port} unit {reading.unit_id})"
    if reading.error is None:
        logger.debug(
            f"Read {device}: {len(reading.registers)} registers",
            extra={
                "device": reading.device_name,
                "unit_id": reading.unit_id,
                "registers": list(reading.registers),
            },
        )
    else:
        logger.warning(
            f"Failed to read {device}: {reading.error}",
            extra={"device": reading.device_name, "unit_id": reading.unit_id},
        )
