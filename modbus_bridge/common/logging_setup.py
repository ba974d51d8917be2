"""
Logging

Every bridge component logs through a ServiceLoggerAdapter bound to the
logger "modbus_bridge.<service>". Records go to stdout, one JSON object
per line by default; MODBUS_BRIDGE_LOG_FORMAT=text switches to a plain
console format.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_PREFIX = "modbus_bridge"

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(service)s] %(message)s"

# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "service"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with `extra=` fields merged at top level"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "-"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_FIELDS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Stamps the service name on every record, keeping the caller's extras"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def _stdout_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, defaults={"service": "-"}))
    return handler


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the stdout logger of one service.

    Calling it again for the same service replaces the handler rather
    than stacking a second one.

    Args:
        service_name: Dotted service name, e.g. "device.session"
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines when True, plain text otherwise
    """
    level = _level(log_level)

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(_stdout_handler(level, json_format))
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger adapter for one service, configured from MODBUS_BRIDGE_LOG_* env vars"""
    logger = setup_logging(
        service_name,
        log_level=os.environ.get("MODBUS_BRIDGE_LOG_LEVEL", "INFO"),
        json_format=os.environ.get("MODBUS_BRIDGE_LOG_FORMAT", "json").lower() != "text",
    )
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Apply a level to every bridge logger created so far"""
    level = _level(log_level)
    for name, candidate in logging.Logger.manager.loggerDict.items():
        if not name.startswith(f"{LOGGER_PREFIX}.") or not isinstance(candidate, logging.Logger):
            continue
        candidate.setLevel(level)
        for handler in candidate.handlers:
            handler.setLevel(level)


def log_block_read(
    logger: logging.Logger | logging.LoggerAdapter,
    start_address: int,
    count: int,
    values: list[int] | None = None,
    success: bool = True,
) -> None:
    """One holding register block read: debug on success, warning on failure"""
    span = {"start_address": start_address, "count": count}
    if not success:
        logger.warning(f"Block {start_address}+{count} not read", extra=span)
        return
    logger.debug(f"Block {start_address}+{count} read", extra={**span, "values": values})


def log_publish(
    logger: logging.Logger | logging.LoggerAdapter,
    topic: str,
    item_count: int | None = None,
    success: bool = True,
    error: Any = None,
) -> None:
    """One broker publish: info on success, error on failure"""
    if not success:
        logger.error(f"Failed to publish to {topic}: {error}", extra={"topic": topic})
        return
    suffix = f" ({item_count} item(s))" if item_count is not None else ""
    logger.info(f"Published to {topic}{suffix}", extra={"topic": topic, "item_count": item_count})
