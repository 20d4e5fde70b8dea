"""
Structured logging for the order engine.

structlog is configured once for the whole service. Request and caller
identifiers live in context variables so every line of a request carries
them, workflows bind the order they are working on with ``order_context``,
and ``log_performance`` times a block and flags it when it runs slow.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from src.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Libraries whose INFO output drowns the workflow logs
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


def add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Copy the request and caller identifiers into the event when set."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    user_id = user_id_ctx.get()
    if user_id:
        event_dict.setdefault("user_id", user_id)
    return event_dict


def add_utc_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _renderer(development: bool) -> Processor:
    if development:
        return structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Development gets a coloured console renderer; every other environment
    emits one JSON object per line on stdout.
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_utc_timestamp,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_correlation_ids,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(settings.is_development),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context, generating one if needed.

    Returns:
        The request ID now in effect
    """
    request_id = request_id or str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_ctx.get()


def set_user_id(user_id: Optional[str]) -> None:
    user_id_ctx.set(user_id)


def clear_context() -> None:
    """Forget every identifier bound during the current request."""
    request_id_ctx.set("")
    user_id_ctx.set(None)
    structlog.contextvars.clear_contextvars()


@contextmanager
def order_context(order_id: Any, operation: str) -> Iterator[None]:
    """
    Bind an order and the workflow touching it to every log line in the block.

    Explicit keyword arguments on a log call still win over the bound values.
    """
    with structlog.contextvars.bound_contextvars(
        order_id=str(order_id), operation=operation
    ):
        yield


class PerformanceLogger:
    """
    Times a block of code and logs the outcome.

    Failures are logged as warnings with the exception type. Successful runs
    slower than ``threshold_ms`` are warnings too; anything faster is logged
    at debug level.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        threshold_ms: Optional[float] = None,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.threshold_ms = (
            threshold_ms if threshold_ms is not None else get_settings().slow_operation_ms
        )
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    @property
    def elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        duration_ms = self.elapsed_ms

        if exc_type is not None:
            self.logger.warning(
                "Operation failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
        elif duration_ms > self.threshold_ms:
            self.logger.warning(
                "Slow operation",
                operation=self.operation,
                duration_ms=duration_ms,
                threshold_ms=self.threshold_ms,
                **self.context,
            )
        else:
            self.logger.debug(
                "Operation completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **self.context,
            )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Time a block with a ``PerformanceLogger``.

    Example:
        >>> with log_performance(logger, "create_order", customer_id=str(customer_id)):
        ...     await self.orders.add(order)
    """
    return PerformanceLogger(logger, operation, **context)
