"""Structured logging for request and pipeline context.

Two context variables travel with each request: the correlation ID set by
CorrelationIdMiddleware, and the ID of the video currently being ingested.
Both are stamped on every record, so one upload can be followed through
staging, ffmpeg, probe and storage without passing IDs around.
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
video_id_var: ContextVar[Optional[str]] = ContextVar("video_id", default=None)

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "correlation_id",
    "video_id",
}

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(correlation_id)s] %(message)s"

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "s3transfer": logging.WARNING,
    "passlib": logging.ERROR,
}


def get_correlation_id() -> str:
    """Correlation ID of the current context, created on first use."""
    correlation_id = correlation_id_var.get()
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex
        correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


@contextmanager
def video_context(video_id: Any) -> Iterator[None]:
    """Attach ``video_id`` to every record logged inside the block."""
    token = video_id_var.set(str(video_id))
    try:
        yield
    finally:
        video_id_var.reset(token)


class ContextFilter(logging.Filter):
    """Stamps records with the correlation ID and the current video ID.

    A ``video_id`` passed explicitly through ``extra`` wins over the
    context value.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        if getattr(record, "video_id", None) is None:
            record.video_id = video_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """Formats each record as one JSON object.

    Output shape::

        {"timestamp", "level", "logger", "message", "correlation_id",
         "video_id"?, "fields"?, "error"?}
    """

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        video_id = getattr(record, "video_id", None) or video_id_var.get()
        if video_id:
            entry["video_id"] = video_id

        fields = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if fields:
            entry["fields"] = fields

        if record.exc_info:
            exc_type, exc, _ = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc) if exc else None,
            }
            if self.include_stack_trace:
                entry["error"]["stack_trace"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route all logging to stdout through a single handler.

    Args:
        level: Root log level name
        json_format: Emit JSON lines instead of plain text
        include_stack_trace: Add formatted tracebacks to JSON error entries
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def log_info(logger: logging.Logger, message: str, **fields: Any) -> None:
    logger.info(message, extra=fields)


def log_warning(logger: logging.Logger, message: str, **fields: Any) -> None:
    logger.warning(message, extra=fields)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Log an error, with the exception's traceback when one is given."""
    logger.error(message, exc_info=exception, extra=fields)
