"""
Structured logging configuration using Loguru.

Every line written while a cross-domain command runs carries the command id
as `trace_id`, and checks add the `user` and `market` they act on, so one
remediation can be followed from the monitor's dispatch to the executor.
"""

import json
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional

from loguru import logger

from .config import settings

logger.remove()

# Promoted to the front of JSON lines and shown in text lines
CORRELATION_FIELDS = ("trace_id", "user", "market")

TEXT_HEADER = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan>:<cyan>{line}</cyan>"
)


def serialize(record: Dict[str, Any]) -> str:
    """Serialize log record to a single JSON line."""
    extra = record["extra"]
    line = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "service": settings.service_name,
        "message": record["message"],
    }
    for key in CORRELATION_FIELDS:
        if key in extra:
            line[key] = extra[key]

    line.update(module=record["module"], function=record["function"], line=record["line"])
    for key, value in extra.items():
        if key not in line and not key.startswith("_"):
            line[key] = value

    if record["exception"] is not None:
        line["exception"] = {
            "type": record["exception"].type.__name__,
            "value": str(record["exception"].value),
        }

    # Loguru treats the return value as a format string
    extra["_json"] = json.dumps(line, default=str)
    return "{extra[_json]}\n"


def format_text(record: Dict[str, Any]) -> str:
    """Console format: header, correlation fields present on the record, message."""
    record["extra"].setdefault("logger_name", record["name"])
    fmt = TEXT_HEADER
    for key in CORRELATION_FIELDS:
        if key in record["extra"]:
            fmt += f" | <yellow>{key}={{extra[{key}]}}</yellow>"
    fmt += " - <level>{message}</level>\n"
    if record["exception"] is not None:
        fmt += "{exception}\n"
    return fmt


def configure_logging():
    """(Re)install sinks from the monitoring settings."""
    logger.remove()
    monitoring = settings.monitoring
    json_output = monitoring.log_format == "json"

    logger.add(
        sys.stdout,
        format=serialize if json_output else format_text,
        level=monitoring.log_level,
        colorize=not json_output,
        backtrace=True,
        diagnose=False,
    )

    if monitoring.log_file:
        logger.add(
            monitoring.log_file,
            format=serialize,
            level=monitoring.log_level,
            rotation="100 MB",
            retention="7 days",
            compression="gz",
        )

    logger.info(
        "Logging configured",
        service=settings.service_name,
        environment=settings.environment.value,
        log_level=monitoring.log_level,
        log_format=monitoring.log_format,
    )


def setup_logging(service_name: str):
    """Name the running service in every line, then reinstall the sinks."""
    settings.service_name = service_name
    configure_logging()


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """Tag every log line inside the block with `trace_id` (a fresh uuid if omitted)."""
    if trace_id is None:
        trace_id = str(uuid.uuid4())

    with logger.contextualize(trace_id=trace_id):
        yield trace_id


def get_logger(name: str):
    return logger.bind(logger_name=name)


configure_logging()


__all__ = ["logger", "get_logger", "trace_context", "configure_logging", "setup_logging"]
