"""Structured logging configuration with JSON output."""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from psh_server.middleware.request_id import get_request_id

JSON_LOG_FORMAT = "%(levelname)s %(name)s %(message)s %(request_id)s"
TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s"


class RequestIDFilter(logging.Filter):
    """Add request ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "no-request-id"
        return True


class HealthCheckFilter(logging.Filter):
    """Suppress uvicorn access logs for successful health checks."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        health_paths = ["GET /health ", "GET /health/ready "]
        return all(not (path in message and '" 200' in message) for path in health_paths)


def build_json_formatter() -> JsonFormatter:
    return JsonFormatter(
        fmt=JSON_LOG_FORMAT,
        rename_fields={"levelname": "level"},
        timestamp=True,
    )


def configure_json_logging(
    log_level: str = "INFO",
    use_json: bool = True,
) -> None:
    """Configure application logging with optional JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Whether to use JSON output (True) or text output (False)
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(level)
    stream_handler.addFilter(RequestIDFilter())

    if use_json:
        stream_handler.setFormatter(build_json_formatter())
    else:
        stream_handler.setFormatter(
            logging.Formatter(fmt=TEXT_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )

    root_logger.addHandler(stream_handler)

    # Suppress noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aioapns").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())
