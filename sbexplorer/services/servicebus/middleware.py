"""
Correlation ID Middleware for the Gateway API

Every request gets a correlation ID: the caller's x-correlation-id (or
correlation-id) header when present, a fresh UUID otherwise. The ID is
visible to logging and error responses for the duration of the request
and echoed back on the response.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_utils import CorrelationContext, StructuredLogger

logger = StructuredLogger('sbexplorer.services.servicebus.middleware')

CORRELATION_HEADERS = ('x-correlation-id', 'correlation-id')


def _incoming_correlation_id(request: Request) -> str:
    for header in CORRELATION_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return str(uuid.uuid4())


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Scopes a correlation ID to each request and logs its outcome."""

    async def dispatch(self, request: Request, call_next):
        corr_id = _incoming_correlation_id(request)
        CorrelationContext.set_correlation_id(corr_id)
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        logger.debug(
            f"Request started: {route}",
            operation="request_started",
            method=request.method,
            path=request.url.path,
        )
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request failed: {route}",
                exc_info=True,
                operation="request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            CorrelationContext.clear_correlation_id()
            raise

        response.headers['x-correlation-id'] = corr_id
        logger.info(
            f"Request completed: {route} - {response.status_code}",
            operation="request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        CorrelationContext.clear_correlation_id()
        return response
