"""
Service Bus Gateway Package

Stateless gateway to Azure Service Bus namespaces: connection descriptors,
request-scoped broker sessions, entity management and message operations.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from .descriptor import AuthMode, ConnectionDescriptor, resolve_descriptor
from .addressing import (
    QueueAddress,
    SubscriptionAddress,
    TopicAddress,
    SubQueue,
    resolve_address,
    resolve_send_target,
    clamp_max_count,
)
from .session import (
    AzureClientFactory,
    BrokerSession,
    ClientFactory,
    ConnectionRegistry,
    open_session,
)
from .admin import AdministrativeGateway
from .messaging import MessageGateway
from .dispatcher import RequestDispatcher
from .exceptions import (
    GatewayError,
    ValidationError,
    AddressingError,
    MessageSizeExceededError,
    ConnectivityError,
    NotFoundError,
    ConflictError,
    BrokerOperationError,
)

__all__ = [
    "AuthMode",
    "ConnectionDescriptor",
    "resolve_descriptor",
    "QueueAddress",
    "SubscriptionAddress",
    "TopicAddress",
    "SubQueue",
    "resolve_address",
    "resolve_send_target",
    "clamp_max_count",
    "AzureClientFactory",
    "BrokerSession",
    "ClientFactory",
    "ConnectionRegistry",
    "open_session",
    "AdministrativeGateway",
    "MessageGateway",
    "RequestDispatcher",
    "GatewayError",
    "ValidationError",
    "AddressingError",
    "MessageSizeExceededError",
    "ConnectivityError",
    "NotFoundError",
    "ConflictError",
    "BrokerOperationError",
]
