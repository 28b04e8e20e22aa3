"""Structured logging for the admission webhook."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from rbacguard.core.config import settings

# Admission request fields copied from `extra` onto JSON records
REQUEST_CONTEXT_FIELDS = ("request_uid", "username", "resource", "event")

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "kubernetes": logging.WARNING,
    "urllib3": logging.WARNING,
}


class AdmissionJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with app and admission request context."""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["app_name"] = settings.app_name
        log_record["app_version"] = settings.app_version
        log_record["environment"] = settings.environment.value

        for name in REQUEST_CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_record[name] = value


def setup_logging() -> None:
    """Send all logs to stdout, as JSON when `log_json` is set."""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level.value)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.log_level.value)
    if settings.log_json:
        handler.setFormatter(
            AdmissionJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(logging.Formatter(settings.log_format))
    root_logger.addHandler(handler)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    get_logger(__name__).info(
        "Logging configured",
        extra={"log_level": settings.log_level.value, "log_json": settings.log_json},
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestContextAdapter(logging.LoggerAdapter):
    """Merges the bound admission request context into each call's `extra`."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger_with_context(name: str, **context) -> RequestContextAdapter:
    """Get a logger bound to one admission request (uid, username, resource)."""
    return RequestContextAdapter(get_logger(name), context)


def log_event(logger: logging.Logger, level: str, event: str, **kwargs) -> None:
    """Log a structured event as `event: {json fields}`.

    The fields are also attached to the record, so the JSON formatter emits
    them as top-level keys.
    """
    message = f"{event}: {json.dumps(kwargs, default=str)}" if kwargs else event
    logger.log(
        logging.getLevelName(level.upper()), message, extra={"event": event, **kwargs}
    )
