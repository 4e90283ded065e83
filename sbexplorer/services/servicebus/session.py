"""
Broker Sessions

A BrokerSession is a request-scoped pair of Service Bus clients (data plane
and administration plane) built from a ConnectionDescriptor. Sessions are
opened for exactly one logical operation and always closed afterwards; no
session is pooled or reused across requests.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Tuple

from azure.identity.aio import DefaultAzureCredential
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from .broker_errors import broker_errors, translate_broker_error
from .constants import ERROR_SESSION_CLOSED
from .descriptor import AuthMode, ConnectionDescriptor, RawDescriptor, resolve_descriptor
from .exceptions import ConnectivityError, GatewayError
from .logging_utils import StructuredLogger
from .metrics import GatewayMetrics, get_metrics

logger = StructuredLogger('sbexplorer.services.servicebus.session')

# (data-plane client, administration client, credential or None)
ClientBundle = Tuple[Any, Any, Optional[Any]]


class ClientFactory(ABC):
    """Builds broker clients for a descriptor. Tests substitute an in-memory broker here."""

    @abstractmethod
    def create(self, descriptor: ConnectionDescriptor) -> ClientBundle:
        """Return (client, admin_client, credential) for the descriptor."""


class AzureClientFactory(ClientFactory):
    """Builds azure-servicebus async clients."""

    def create(self, descriptor: ConnectionDescriptor) -> ClientBundle:
        if descriptor.auth_mode is AuthMode.AZURE_AD:
            credential = DefaultAzureCredential(**self._credential_options(descriptor))
            namespace = descriptor.fully_qualified_namespace
            client = ServiceBusClient(namespace, credential)
            admin_client = ServiceBusAdministrationClient(namespace, credential)
            return client, admin_client, credential

        client = ServiceBusClient.from_connection_string(descriptor.connection_string)
        admin_client = ServiceBusAdministrationClient.from_connection_string(
            descriptor.connection_string
        )
        return client, admin_client, None

    @staticmethod
    def _credential_options(descriptor: ConnectionDescriptor) -> dict:
        options = {}
        if descriptor.client_id:
            options["managed_identity_client_id"] = descriptor.client_id
        if descriptor.tenant_id:
            options["additionally_allowed_tenants"] = [descriptor.tenant_id]
        return options


class BrokerSession:
    """
    Live connection handle for one gateway operation.

    Usage:
        async with BrokerSession(descriptor) as session:
            await session.admin.get_topic("orders-events")
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        factory: Optional[ClientFactory] = None,
        metrics: Optional[GatewayMetrics] = None,
    ):
        self.descriptor = descriptor
        self._factory = factory or AzureClientFactory()
        self._metrics = metrics or get_metrics()
        self._client = None
        self._admin = None
        self._credential = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._closed

    @property
    def client(self) -> Any:
        """Data-plane client (senders, receivers)."""
        self._require_open()
        return self._client

    @property
    def admin(self) -> Any:
        """Administration client (entity management, runtime counters)."""
        self._require_open()
        return self._admin

    def _require_open(self) -> None:
        if not self.is_open:
            raise ConnectivityError("SessionNotOpen", ERROR_SESSION_CLOSED)

    async def open(self) -> "BrokerSession":
        """
        Build the broker clients.

        Raises:
            ConnectivityError: If the clients cannot be constructed from the
                descriptor (malformed connection string, bad namespace, ...)
        """
        if self._closed:
            raise ConnectivityError("SessionClosed", ERROR_SESSION_CLOSED)
        if self._client is not None:
            return self

        try:
            self._client, self._admin, self._credential = self._factory.create(self.descriptor)
        except GatewayError:
            raise
        except Exception as exc:
            error = translate_broker_error(exc, "open_session", "namespace", self.descriptor.label)
            if not isinstance(error, ConnectivityError):
                error = ConnectivityError(type(exc).__name__, error.message)
            raise error from exc

        self._metrics.track_session_opened()
        logger.debug(
            "Broker session opened",
            connection=self.descriptor.label,
            auth_mode=self.descriptor.auth_mode.value,
        )
        return self

    async def verify(self) -> None:
        """
        Perform one authenticated administrative read against the namespace.

        Raises:
            GatewayError: Classified broker failure
        """
        with broker_errors("verify_connection", "namespace", self.descriptor.label):
            await self.admin.get_namespace_properties()

    async def close(self) -> None:
        """
        Release the clients and credential. Idempotent; never raises.

        Release failures are logged and counted only.
        """
        if self._closed:
            return
        self._closed = True

        for resource in (self._client, self._admin, self._credential):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:
                self._metrics.track_session_close_failure()
                logger.warning(
                    "Failed to release broker session resource",
                    connection=self.descriptor.label,
                    resource=type(resource).__name__,
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )

        self._client = self._admin = self._credential = None
        logger.debug("Broker session closed", connection=self.descriptor.label)

    async def __aenter__(self) -> "BrokerSession":
        try:
            return await self.open()
        except BaseException:
            await self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


@asynccontextmanager
async def open_session(
    descriptor: ConnectionDescriptor,
    factory: Optional[ClientFactory] = None,
    metrics: Optional[GatewayMetrics] = None,
) -> AsyncIterator[BrokerSession]:
    """Open a session for one operation and close it on every exit path."""
    session = BrokerSession(descriptor, factory=factory, metrics=metrics)
    try:
        await session.open()
        yield session
    finally:
        await session.close()


class ConnectionRegistry:
    """Validates connection descriptors against the broker."""

    def __init__(
        self,
        factory: Optional[ClientFactory] = None,
        metrics: Optional[GatewayMetrics] = None,
    ):
        self._factory = factory or AzureClientFactory()
        self._metrics = metrics or get_metrics()

    def session(self, descriptor: ConnectionDescriptor):
        """Scoped session for one operation, using this registry's factory."""
        return open_session(descriptor, factory=self._factory, metrics=self._metrics)

    async def test_connection(self, raw: RawDescriptor) -> bool:
        """
        Report whether a descriptor can reach and authenticate to its namespace.

        Opens a session, reads the namespace properties, closes the session.
        Any failure yields False; nothing is raised.
        """
        try:
            descriptor = resolve_descriptor(raw)
            async with self.session(descriptor) as session:
                await session.verify()
        except Exception as exc:
            logger.info(
                "Connection test failed",
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return False

        logger.info("Connection test succeeded", connection=descriptor.label)
        return True
