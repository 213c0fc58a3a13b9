"""Structured logging for the API and the pipeline workers.

Records are emitted as one JSON object per line. Each carries the
correlation ID of the request or Pub/Sub message being processed and, on
workers, the name of the pipeline handler, so a single upload can be
followed from the storage notification through job submission to the
completion callback.
"""

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
handler_var: ContextVar[Optional[str]] = ContextVar("pipeline_handler", default=None)

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "correlation_id",
    "handler",
}

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "botocore", "urllib3")


def get_correlation_id() -> str:
    """Return the current correlation ID, creating one if none is bound."""
    cid = correlation_id_var.get()
    if cid is None:
        cid = str(uuid.uuid4())
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


@contextmanager
def log_context(correlation_id: Optional[str], handler: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID and handler name for the duration of a block.

    A missing correlation ID is replaced by a fresh one, which is yielded.
    """
    cid = correlation_id or str(uuid.uuid4())
    cid_token = correlation_id_var.set(cid)
    handler_token = handler_var.set(handler)
    try:
        yield cid
    finally:
        handler_var.reset(handler_token)
        correlation_id_var.reset(cid_token)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        handler = getattr(record, "handler", None)
        if handler:
            entry["handler"] = handler

        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
            if self.include_stack_trace:
                entry["exception"]["stack_trace"] = traceback.format_exception(*record.exc_info)

        extra = {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


class ContextFilter(logging.Filter):
    """Copy the bound correlation ID and handler name onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.handler = handler_var.get()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route all logging to stdout.

    Args:
        level: Root log level name
        json_format: Emit JSON lines instead of plain text
        include_stack_trace: Include formatted tracebacks in JSON output
    """
    numeric_level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.addFilter(ContextFilter())
    if json_format:
        stream_handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        stream_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"
        ))
    root_logger.addHandler(stream_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _log(logger: logging.Logger, level: int, message: str, exc_info=None, **extra: Any) -> None:
    extra["correlation_id"] = get_correlation_id()
    extra["handler"] = handler_var.get()
    logger.log(level, message, exc_info=exc_info, extra=extra)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error, with the exception's traceback when one is given."""
    _log(logger, logging.ERROR, message, exc_info=exception, **extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.WARNING, message, **extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.INFO, message, **extra)
