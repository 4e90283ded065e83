"""
Request Dispatcher

Transport-independent entry point for every gateway operation. Each call
parses its payload, resolves addressing and the connection descriptor
locally, then opens one broker session, performs one operation and closes
the session on every exit path. Results are returned as wire-ready
(camelCase) dictionaries.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from sbexplorer.core.config_manager import GatewaySettings

from .addressing import QueueAddress, SubQueue, require_name, resolve_address, resolve_send_target
from .admin import AdministrativeGateway
from .descriptor import RawDescriptor, resolve_descriptor
from .exceptions import GatewayError, ValidationError
from .logging_utils import StructuredLogger
from .messaging import MessageGateway
from .metrics import GatewayMetrics, get_metrics
from .models import (
    CreateQueueRequest,
    CreateSubscriptionRequest,
    CreateTopicRequest,
    PeekRequest,
    PurgeRequest,
    SendMessageRequest,
    UpdateQueueRequest,
    UpdateTopicRequest,
)
from .session import ClientFactory, ConnectionRegistry

logger = StructuredLogger('sbexplorer.services.servicebus.dispatcher')

M = TypeVar("M", bound=BaseModel)
Payload = Optional[Mapping[str, Any]]


class RequestDispatcher:
    """
    Routes boundary requests to the administrative and message gateways.

    Holds configuration only; no session, descriptor or entity state
    survives a call.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        factory: Optional[ClientFactory] = None,
        metrics: Optional[GatewayMetrics] = None,
    ):
        self.settings = settings or GatewaySettings()
        self.metrics = metrics or get_metrics()
        self.registry = ConnectionRegistry(factory, self.metrics)
        self.admin = AdministrativeGateway(self.settings)
        self.messages = MessageGateway(self.settings, self.metrics)

    # ========== Plumbing ==========

    @contextmanager
    def _operation(self, operation: str, **context) -> Iterator[None]:
        """Time, count and log one gateway operation."""
        logger.debug(f"Operation started: {operation}", operation=operation, **context)
        start = time.perf_counter()
        try:
            yield
        except GatewayError as exc:
            duration = time.perf_counter() - start
            self.metrics.track_operation(operation, duration, exc.error_code)
            logger.warning(
                f"Operation failed: {operation}",
                operation=operation,
                error_code=exc.error_code,
                error_message=exc.message,
                duration_ms=round(duration * 1000, 2),
                **context
            )
            raise
        except Exception as exc:
            duration = time.perf_counter() - start
            self.metrics.track_operation(operation, duration, "InternalError")
            logger.error(
                f"Operation failed unexpectedly: {operation}",
                exc_info=True,
                operation=operation,
                error_type=type(exc).__name__,
                duration_ms=round(duration * 1000, 2),
                **context
            )
            raise

        duration = time.perf_counter() - start
        self.metrics.track_operation(operation, duration)
        logger.info(
            f"Operation completed: {operation}",
            operation=operation,
            duration_ms=round(duration * 1000, 2),
            **context
        )

    def _session(self, raw: RawDescriptor):
        """Resolve the descriptor, then hand back a scoped session for it."""
        return self.registry.session(resolve_descriptor(raw))

    @staticmethod
    def _parse(model: Type[M], payload: Payload, subject: str = "request") -> M:
        try:
            return model.model_validate(payload if payload is not None else {})
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, subject)

    # ========== Connections ==========

    async def test_connection(self, raw: RawDescriptor, payload: Payload = None) -> Dict[str, Any]:
        """
        Report whether a descriptor is usable. Never raises.

        The descriptor may ride in the payload's 'connection' field; it takes
        precedence over the out-of-band carrier.
        """
        if isinstance(payload, Mapping) and payload.get("connection") is not None:
            raw = payload["connection"]

        start = time.perf_counter()
        valid = await self.registry.test_connection(raw)
        self.metrics.track_operation(
            "test_connection",
            time.perf_counter() - start,
            None if valid else "ConnectionInvalid",
        )
        return {"valid": valid}

    # ========== Queues ==========

    async def list_queues(self, raw: RawDescriptor) -> Dict[str, Any]:
        with self._operation("list_queues"):
            async with self._session(raw) as session:
                queues = await self.admin.list_queues(session)
        return {"queues": [queue.to_wire() for queue in queues]}

    async def get_queue(self, raw: RawDescriptor, queue_name: str) -> Dict[str, Any]:
        with self._operation("get_queue", entity_name=queue_name):
            require_name(queue_name, "queue")
            async with self._session(raw) as session:
                queue = await self.admin.get_queue(session, queue_name)
        return {"queue": queue.to_wire()}

    async def create_queue(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        with self._operation("create_queue"):
            request = self._parse(CreateQueueRequest, payload)
            require_name(request.queue_name, "queue")
            async with self._session(raw) as session:
                await self.admin.create_queue(session, request.queue_name, request.properties)
        return {"success": True}

    async def update_queue(self, raw: RawDescriptor, queue_name: str, payload: Payload) -> Dict[str, Any]:
        with self._operation("update_queue", entity_name=queue_name):
            request = self._parse(UpdateQueueRequest, payload)
            require_name(queue_name, "queue")
            async with self._session(raw) as session:
                await self.admin.update_queue(session, queue_name, request.properties)
        return {"success": True}

    async def delete_queue(self, raw: RawDescriptor, queue_name: str) -> Dict[str, Any]:
        with self._operation("delete_queue", entity_name=queue_name):
            require_name(queue_name, "queue")
            async with self._session(raw) as session:
                await self.admin.delete_queue(session, queue_name)
        return {"success": True}

    # ========== Topics ==========

    async def list_topics(self, raw: RawDescriptor) -> Dict[str, Any]:
        with self._operation("list_topics"):
            async with self._session(raw) as session:
                topics = await self.admin.list_topics(session)
        return {"topics": [topic.to_wire() for topic in topics]}

    async def get_topic(self, raw: RawDescriptor, topic_name: str) -> Dict[str, Any]:
        with self._operation("get_topic", entity_name=topic_name):
            require_name(topic_name, "topic")
            async with self._session(raw) as session:
                topic = await self.admin.get_topic(session, topic_name)
        return {"topic": topic.to_wire()}

    async def create_topic(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        with self._operation("create_topic"):
            request = self._parse(CreateTopicRequest, payload)
            require_name(request.topic_name, "topic")
            async with self._session(raw) as session:
                await self.admin.create_topic(session, request.topic_name, request.properties)
        return {"success": True}

    async def update_topic(self, raw: RawDescriptor, topic_name: str, payload: Payload) -> Dict[str, Any]:
        with self._operation("update_topic", entity_name=topic_name):
            request = self._parse(UpdateTopicRequest, payload)
            require_name(topic_name, "topic")
            async with self._session(raw) as session:
                await self.admin.update_topic(session, topic_name, request.properties)
        return {"success": True}

    async def delete_topic(self, raw: RawDescriptor, topic_name: str) -> Dict[str, Any]:
        with self._operation("delete_topic", entity_name=topic_name):
            require_name(topic_name, "topic")
            async with self._session(raw) as session:
                await self.admin.delete_topic(session, topic_name)
        return {"success": True}

    # ========== Subscriptions ==========

    async def list_subscriptions(self, raw: RawDescriptor, topic_name: str) -> Dict[str, Any]:
        with self._operation("list_subscriptions", entity_name=topic_name):
            require_name(topic_name, "topic")
            async with self._session(raw) as session:
                subscriptions = await self.admin.list_subscriptions(session, topic_name)
        return {"subscriptions": [sub.to_wire() for sub in subscriptions]}

    async def get_subscription(
        self,
        raw: RawDescriptor,
        topic_name: str,
        subscription_name: str,
    ) -> Dict[str, Any]:
        with self._operation("get_subscription", entity_name=f"{topic_name}/{subscription_name}"):
            require_name(topic_name, "topic")
            require_name(subscription_name, "subscription")
            async with self._session(raw) as session:
                subscription = await self.admin.get_subscription(session, topic_name, subscription_name)
        return {"subscription": subscription.to_wire()}

    async def create_subscription(
        self,
        raw: RawDescriptor,
        topic_name: str,
        payload: Payload,
    ) -> Dict[str, Any]:
        with self._operation("create_subscription", entity_name=topic_name):
            request = self._parse(CreateSubscriptionRequest, payload)
            require_name(topic_name, "topic")
            require_name(request.subscription_name, "subscription")
            async with self._session(raw) as session:
                await self.admin.create_subscription(
                    session, topic_name, request.subscription_name, request.properties
                )
        return {"success": True}

    # ========== Messages ==========

    async def peek_messages(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        """Peek a queue, or a topic subscription when no queue is named."""
        with self._operation("peek_messages"):
            request = self._parse(PeekRequest, payload)
            address = resolve_address(request.queue_name, request.topic_name, request.subscription_name)
            async with self._session(raw) as session:
                if isinstance(address, QueueAddress):
                    messages = await self.messages.peek_messages(
                        session, address.queue_name, request.max_count
                    )
                else:
                    messages = await self.messages.peek_messages_from_subscription(
                        session, address.topic_name, address.subscription_name, request.max_count
                    )
        return {"messages": [message.to_wire() for message in messages]}

    async def peek_dead_letter_messages(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        with self._operation("peek_dead_letter_messages"):
            request = self._parse(PeekRequest, payload)
            address = resolve_address(request.queue_name, request.topic_name, request.subscription_name)
            async with self._session(raw) as session:
                messages = await self.messages.peek(
                    session, address, SubQueue.DEAD_LETTER, request.max_count
                )
        return {"messages": [message.to_wire() for message in messages]}

    async def send_message(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        """Send to a queue, or to a topic when no queue is named."""
        with self._operation("send_message"):
            request = self._parse(SendMessageRequest, payload)
            target = resolve_send_target(request.queue_name, request.topic_name)
            async with self._session(raw) as session:
                if isinstance(target, QueueAddress):
                    await self.messages.send_message(session, target.queue_name, request.message)
                else:
                    await self.messages.send_message_to_topic(session, target.topic_name, request.message)
        return {"success": True}

    async def purge_queue(self, raw: RawDescriptor, payload: Payload) -> Dict[str, Any]:
        with self._operation("purge_queue"):
            request = self._parse(PurgeRequest, payload)
            require_name(request.queue_name, "queue")
            async with self._session(raw) as session:
                purged = await self.messages.purge_queue(
                    session, request.queue_name, request.purge_dead_letter
                )
        return {"purgedCount": purged}
