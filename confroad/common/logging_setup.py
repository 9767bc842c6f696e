"""
Structured Logging Setup

Consistent logging configuration across the engine and service.
Uses JSON format for structured logs by default.
"""

import logging
import sys
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
import json

LOGGER_PREFIX = "confroad"
LOG_FILE_NAME = "confroad.log"

# service name -> configured logger
_service_loggers: dict[str, logging.Logger] = {}


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


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JsonFormatter()
    return logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
    log_dir: str | Path | None = None,
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "engine", "config.cache")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)
        log_dir: Optional directory for a shared log file

    Returns:
        Configured logger instance
    """
    # Get numeric log level
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(numeric_level)

    # Close and clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = _make_formatter(json_format)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_dir:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                Path(log_dir) / LOG_FILE_NAME, encoding="utf-8"
            )
        except OSError as e:
            logger.warning(f"Cannot open log file in {log_dir}: {e}")
        else:
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # Don't propagate to root logger
    logger.propagate = False

    _service_loggers[service_name] = logger
    return logger


def _json_format_from_env() -> bool:
    return os.environ.get("CONFROAD_LOG_FORMAT", "json").lower() == "json"


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Args:
        service_name: Name of the service

    Returns:
        Logger adapter with service name in all logs
    """
    # Check for environment variable override
    log_level = os.environ.get("CONFROAD_LOG_LEVEL", "INFO")

    logger = setup_logging(service_name, log_level, _json_format_from_env())
    return ServiceLoggerAdapter(logger, {"service": service_name})


def configure_logging(log_level: str, log_dir: str | Path | None = None) -> None:
    """
    Re-apply level and file output to every service logger created so far.

    Called once the bootstrap file is loaded, since module-level loggers
    exist before the bootstrap log settings are known.
    """
    json_format = _json_format_from_env()
    for service_name in list(_service_loggers):
        setup_logging(service_name, log_level, json_format, log_dir)


def log_document_applied(
    logger: logging.LoggerAdapter,
    document_id: str,
    origin: str,
    size: int,
    cached: bool = True,
) -> None:
    """Log a document landing in the config store"""
    if cached:
        logger.info(
            f"Applied {document_id} from {origin} ({size} bytes)",
            extra={"document_id": document_id, "origin": origin, "size": size},
        )
    else:
        logger.warning(
            f"Applied {document_id} from {origin} ({size} bytes) without cache",
            extra={"document_id": document_id, "origin": origin, "size": size},
        )
