"""
Structured Logging Setup

Every bridge module logs through `get_service_logger(name)`, which tags
records with the service name and writes one line per record to stdout.

Output is controlled by environment variables:
    ERIE_BRIDGE_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default INFO)
    ERIE_BRIDGE_LOG_FORMAT  json / text (default json)
"""

import logging
import sys
import os
from datetime import datetime, timezone
from typing import Any
import json

LOGGER_PREFIX = "erie_bridge"
LOG_LEVEL_ENV = "ERIE_BRIDGE_LOG_LEVEL"
LOG_FORMAT_ENV = "ERIE_BRIDGE_LOG_FORMAT"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(service)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else arrived through `extra`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "service", "taskName"}

# Extra keys whose values never reach the log output
SECRET_KEYS = frozenset({"password", "access_token", "access-token", "client", "token"})
MASK = "***"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra fields included"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            log_data[key] = MASK if key.lower() in SECRET_KEYS else value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Adds the service name to every record"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})
        extra["service"] = self.extra.get("service", "unknown")
        kwargs["extra"] = extra
        return msg, kwargs


def _parse_level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def _build_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT))
    return handler


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the `erie_bridge.<service_name>` logger.

    Calling it again for the same service replaces the handler, so the
    latest level and format win.

    Args:
        service_name: Dotted service name (e.g. "erie.session", "ledger")
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines when True, plain text otherwise

    Returns:
        The configured logger
    """
    level = _parse_level(log_level)

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(_build_handler(level, json_format))

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger adapter for one bridge module, configured from the environment"""
    log_level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    json_format = os.environ.get(LOG_FORMAT_ENV, "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Change the level of every bridge logger created so far (e.g. --verbose)"""
    level = _parse_level(log_level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not name.startswith(f"{LOGGER_PREFIX}.") or not isinstance(logger, logging.Logger):
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


# Domain events

def log_reading(
    logger: logging.Logger,
    total: int,
    last_reset: float,
    space_left: float,
    execution_time_ms: float | None = None,
) -> None:
    """Log a fetched tank reading"""
    message = f"Reading: total={total}L, last_reset={last_reset}L, space_left={space_left}L"
    extra: dict[str, Any] = {
        "total": total,
        "last_reset": last_reset,
        "space_left": space_left,
    }
    if execution_time_ms is not None:
        message += f", exec={execution_time_ms:.0f}ms"
        extra["execution_time_ms"] = round(execution_time_ms, 1)

    logger.info(message, extra=extra)


def log_reset(
    logger: logging.Logger,
    label: str,
    value: float,
    previous: float,
    success: bool = True,
) -> None:
    """Log a baseline reset"""
    extra = {"reset_label": label, "value": value, "previous": previous}
    if success:
        logger.info(f"Reset recorded at {label}: baseline {previous} -> {value}", extra=extra)
    else:
        logger.error(f"Failed to record reset at {label} (baseline stays {previous})", extra=extra)
