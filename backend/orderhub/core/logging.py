"""
Structured logging for the order lifecycle engine.

Log events are rendered as JSON (console output in development) and carry
the correlation id of the orchestrator call that produced them together with
the acting user. ``log_operation`` binds both for the duration of one
operation and records how long it took.
"""

import logging
import sys
import time
from contextvars import ContextVar, Token
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from orderhub.core.config import Settings, get_settings

operation_id_ctx: ContextVar[str] = ContextVar("operation_id", default="")
actor_ctx: ContextVar[Optional[str]] = ContextVar("actor", default=None)


def add_operation_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Copy the current operation id and actor into the event.

    Values already present in the event win over the context.
    """
    operation_id = operation_id_ctx.get()
    if operation_id:
        event_dict.setdefault("operation_id", operation_id)
    actor = actor_ctx.get()
    if actor:
        event_dict.setdefault("actor", actor)
    return event_dict


def _renderer(settings: Settings) -> Processor:
    if settings.is_development:
        return structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.JSONRenderer(sort_keys=True)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and route standard library logging to stdout.

    Args:
        settings: Settings to read the level and environment from,
            the cached application settings by default
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_operation_context,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # SQL echo is controlled by Settings.debug, not by the log level
    for noisy in ("sqlalchemy.engine", "asyncpg", "asyncio"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger named after the calling module."""
    return structlog.get_logger(name)


def get_operation_id() -> str:
    return operation_id_ctx.get()


def get_actor() -> Optional[str]:
    return actor_ctx.get()


def clear_context() -> None:
    """Forget the operation id and actor of the current context."""
    operation_id_ctx.set("")
    actor_ctx.set(None)


class OperationLogger:
    """
    Context manager timing one order operation.

    On entry a fresh operation id is bound unless an outer operation already
    set one, and the actor is bound when given. On exit the previous context
    is restored and the outcome is logged with ``duration_ms``; operations
    slower than the threshold are logged as warnings.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        actor: Optional[str] = None,
        slow_ms: Optional[float] = None,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.actor = actor
        self.slow_ms = slow_ms
        self.context = context
        self.operation_id: Optional[str] = None
        self.duration_ms: Optional[float] = None
        self._started: Optional[float] = None
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "OperationLogger":
        self.operation_id = operation_id_ctx.get() or uuid4().hex
        self._tokens.append((operation_id_ctx, operation_id_ctx.set(self.operation_id)))
        if self.actor is not None:
            self._tokens.append((actor_ctx, actor_ctx.set(self.actor)))

        self._started = time.perf_counter()
        self.logger.debug("Operation started", operation=self.operation, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self._started is None:
                return
            self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)

            if exc_type is not None:
                self.logger.warning(
                    "Operation failed",
                    operation=self.operation,
                    duration_ms=self.duration_ms,
                    error_type=exc_type.__name__,
                    error_code=getattr(exc_val, "code", None),
                    **self.context,
                )
                return

            slow_ms = self.slow_ms
            if slow_ms is None:
                slow_ms = get_settings().slow_operation_ms
            log = self.logger.warning if self.duration_ms > slow_ms else self.logger.info
            log(
                "Operation completed",
                operation=self.operation,
                duration_ms=self.duration_ms,
                **self.context,
            )
        finally:
            while self._tokens:
                var, token = self._tokens.pop()
                var.reset(token)


def log_operation(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    actor: Optional[str] = None,
    slow_ms: Optional[float] = None,
    **context: Any,
) -> OperationLogger:
    """
    Time an order operation and bind its correlation context.

    Example:
        >>> with log_operation(logger, "order.cancel", actor=acting_user_ref,
        ...                    order_id=str(order_id)):
        ...     ...
    """
    return OperationLogger(logger, operation, actor=actor, slow_ms=slow_ms, **context)
