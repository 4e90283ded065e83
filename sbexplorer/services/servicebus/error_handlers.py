"""
FastAPI Exception Handlers for the Gateway

Maps gateway exceptions to standardized HTTP error responses. Rejected
requests and oversized messages are client errors (4xx); broker failures
are reported as 502, an unusable connection as 503.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from .exceptions import (
    GatewayError,
    ValidationError,
    MessageSizeExceededError,
    ConnectivityError,
    NotFoundError,
    ConflictError,
    BrokerOperationError,
)
from .error_models import ErrorResponse
from .logging_utils import CorrelationContext, StructuredLogger


logger = StructuredLogger('sbexplorer.services.servicebus.api.errors')


# Exception class to HTTP status; subclasses inherit their parent's status
EXCEPTION_STATUS_CODES = {
    MessageSizeExceededError: status.HTTP_413_CONTENT_TOO_LARGE,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConnectivityError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NotFoundError: status.HTTP_502_BAD_GATEWAY,
    ConflictError: status.HTTP_502_BAD_GATEWAY,
    BrokerOperationError: status.HTTP_502_BAD_GATEWAY,
}


def get_status_code_for_exception(exc: Exception) -> int:
    """HTTP status for an exception, resolved along its class hierarchy; 500 if unmapped."""
    for klass in type(exc).__mro__:
        if klass in EXCEPTION_STATUS_CODES:
            return EXCEPTION_STATUS_CODES[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_exception_handler(
    request: Request,
    exc: GatewayError
) -> JSONResponse:
    """
    Handle GatewayError exceptions.

    Args:
        request: FastAPI request
        exc: GatewayError instance

    Returns:
        JSONResponse with standardized error format
    """
    correlation_id = CorrelationContext.get_correlation_id()
    status_code = get_status_code_for_exception(exc)

    error_response = ErrorResponse.from_exception(exc, correlation_id)

    logger.log_error(
        operation="api_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code=exc.error_code,
        status_code=status_code,
        path=request.url.path
    )

    return JSONResponse(
        status_code=status_code,
        content=error_response.to_content()
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: FastAPI request
        exc: Exception instance

    Returns:
        JSONResponse with standardized error format
    """
    correlation_id = CorrelationContext.get_correlation_id()

    error_response = ErrorResponse.from_exception(exc, correlation_id)

    logger.error(
        f"Unexpected error: {type(exc).__name__}",
        exc_info=True,
        operation="unexpected_error",
        error_type=type(exc).__name__,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        path=request.url.path
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.to_content()
    )


def register_exception_handlers(app):
    """
    Register exception handlers with a FastAPI app.

    Args:
        app: FastAPI app instance
    """
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
