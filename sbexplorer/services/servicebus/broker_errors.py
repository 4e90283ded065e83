"""
Broker Error Translation

Maps azure-core and azure-servicebus exceptions onto the gateway error
taxonomy, keeping the broker's own message text.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.servicebus.exceptions import (
    MessageSizeExceededError as SdkMessageSizeExceededError,
    MessagingEntityAlreadyExistsError,
    MessagingEntityNotFoundError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusCommunicationError,
    ServiceBusConnectionError,
)

from .exceptions import (
    BrokerOperationError,
    ConflictError,
    ConnectivityError,
    GatewayError,
    MessageSizeExceededError,
    NotFoundError,
    ValidationError,
)

_CONNECTIVITY_ERRORS = (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusConnectionError,
    ServiceBusCommunicationError,
)


def _message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


def translate_broker_error(
    exc: Exception,
    operation: str,
    entity_type: str = "entity",
    entity_name: Optional[str] = None,
) -> GatewayError:
    """
    Classify an SDK exception.

    Args:
        exc: Exception raised by the broker SDK
        operation: Gateway operation name, for context
        entity_type: Kind of entity the call targeted
        entity_name: Name of the targeted entity, if any

    Returns:
        The matching GatewayError; already-classified errors are returned as-is
    """
    if isinstance(exc, GatewayError):
        return exc

    message = _message(exc)
    name = entity_name or ""

    if isinstance(exc, (ResourceNotFoundError, MessagingEntityNotFoundError)):
        return NotFoundError(entity_type, name, message)
    if isinstance(exc, (ResourceExistsError, MessagingEntityAlreadyExistsError)):
        return ConflictError(entity_type, name, message)
    if isinstance(exc, SdkMessageSizeExceededError):
        return MessageSizeExceededError(message, details={"operation": operation})
    if isinstance(exc, _CONNECTIVITY_ERRORS):
        return ConnectivityError(type(exc).__name__, message)

    if isinstance(exc, HttpResponseError):
        status = exc.status_code
        if status == 404:
            return NotFoundError(entity_type, name, message)
        if status == 409:
            return ConflictError(entity_type, name, message)
        if status in (401, 403):
            return ConnectivityError(f"HTTP {status}", message)
        if status == 400:
            return ValidationError(message, details={"operation": operation})

    return BrokerOperationError(operation, message)


@contextmanager
def broker_errors(
    operation: str,
    entity_type: str = "entity",
    entity_name: Optional[str] = None,
) -> Iterator[None]:
    """
    Re-raise SDK exceptions from the enclosed block as gateway errors.

    Usage:
        with broker_errors("get_queue", "queue", name):
            props = await admin.get_queue(name)
    """
    try:
        yield
    except GatewayError:
        raise
    except Exception as exc:
        raise translate_broker_error(exc, operation, entity_type, entity_name) from exc
