"""
Structured Logging for the Service Bus Gateway

Correlation tracking and keyword-field logging for gateway operations.
Formatting and secret redaction live on the root logger, installed by
sbexplorer.core.logging_config.setup_logging.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import logging
import time
import uuid
from functools import wraps
from typing import Any, Dict, Optional

from sbexplorer.core.logging_config import correlation_id as correlation_id_var


class CorrelationContext:
    """Per-request correlation ID held in a context variable."""

    @staticmethod
    def get_correlation_id() -> str:
        """Current request's correlation ID; one is minted on first use."""
        current = correlation_id_var.get()
        if current:
            return current
        minted = str(uuid.uuid4())
        correlation_id_var.set(minted)
        return minted

    @staticmethod
    def set_correlation_id(corr_id: str) -> None:
        correlation_id_var.set(corr_id)

    @staticmethod
    def clear_correlation_id() -> None:
        correlation_id_var.set(None)


def _fields(context: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in context.items() if value is not None}


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that turns keyword arguments into
    record attributes, so the JSON formatter emits them as fields.

    Keywords whose value is None are dropped.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, message: str, **context) -> None:
        self.logger.debug(message, extra=_fields(context))

    def info(self, message: str, **context) -> None:
        self.logger.info(message, extra=_fields(context))

    def warning(self, message: str, **context) -> None:
        self.logger.warning(message, extra=_fields(context))

    def error(self, message: str, exc_info: bool = False, **context) -> None:
        self.logger.error(message, exc_info=exc_info, extra=_fields(context))

    def log_operation(
        self,
        operation: str,
        entity_type: str,
        entity_name: Optional[str] = None,
        **context
    ) -> None:
        """Record a completed change or listing on a broker entity."""
        path = entity_type if not entity_name else f"{entity_type}/{entity_name}"
        self.info(
            f"{operation}: {path}",
            operation=operation,
            entity_type=entity_type,
            entity_name=entity_name,
            **context
        )

    def log_error(
        self,
        operation: str,
        error_type: str,
        error_message: str,
        **context
    ) -> None:
        """Record a failed gateway operation."""
        self.error(
            f"Error in {operation}: {error_message}",
            operation=operation,
            error_type=error_type,
            error_message=error_message,
            **context
        )


def track_operation_time(logger: StructuredLogger, operation: str):
    """
    Decorate a coroutine so its wall time is logged.

    Completion goes to DEBUG; a raised exception goes to WARNING with its
    type and is re-raised unchanged.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()

            def elapsed_ms() -> float:
                return round((time.perf_counter() - started) * 1000, 2)

            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger.warning(
                    f"Operation failed: {operation}",
                    operation=operation,
                    duration_ms=elapsed_ms(),
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                raise
            logger.debug(
                f"Operation completed: {operation}",
                operation=operation,
                duration_ms=elapsed_ms(),
            )
            return result
        return wrapper
    return decorator
