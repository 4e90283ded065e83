"""
Administrative Gateway

Entity management against a live namespace: list, inspect, create, update
and delete queues, topics and subscriptions. Every call runs on a session
supplied by the caller and every SDK failure is surfaced through the
gateway error taxonomy.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from sbexplorer.core.config_manager import GatewaySettings

from .addressing import require_name
from .broker_errors import broker_errors
from .conversions import (
    apply_options,
    options_to_sdk,
    queue_from_sdk,
    subscription_from_sdk,
    topic_from_sdk,
)
from .logging_utils import StructuredLogger, track_operation_time
from .models import (
    QueueOptions,
    QueueProperties,
    SubscriptionOptions,
    SubscriptionProperties,
    TopicOptions,
    TopicProperties,
)
from .session import BrokerSession

logger = StructuredLogger('sbexplorer.services.servicebus.admin')

T = TypeVar("T")
R = TypeVar("R")


class AdministrativeGateway:
    """
    Queue, topic and subscription management.

    Listing operations exhaust the broker's pagination and return complete
    collections in broker enumeration order. Runtime counters are fetched
    per entity, concurrently, bounded by runtime_properties_concurrency.
    """

    def __init__(self, settings: Optional[GatewaySettings] = None):
        self.settings = settings or GatewaySettings()

    async def _for_each(self, items: List[T], fetch: Callable[[T], Awaitable[R]]) -> List[R]:
        """Run fetch over items with bounded concurrency, preserving order."""
        semaphore = asyncio.Semaphore(self.settings.runtime_properties_concurrency)

        async def bounded(item: T) -> R:
            async with semaphore:
                return await fetch(item)

        return list(await asyncio.gather(*(bounded(item) for item in items)))

    # ========== Queues ==========

    @track_operation_time(logger, "list_queues")
    async def list_queues(self, session: BrokerSession) -> List[QueueProperties]:
        """List every queue with its runtime counters."""
        admin = session.admin
        with broker_errors("list_queues", "queue"):
            queues = [props async for props in admin.list_queues()]

        async def with_runtime(props: Any) -> QueueProperties:
            with broker_errors("get_queue_runtime_properties", "queue", props.name):
                runtime = await admin.get_queue_runtime_properties(props.name)
            return queue_from_sdk(props, runtime)

        result = await self._for_each(queues, with_runtime)
        logger.log_operation("queues_listed", "queue", count=len(result))
        return result

    @track_operation_time(logger, "get_queue")
    async def get_queue(self, session: BrokerSession, queue_name: str) -> QueueProperties:
        """
        Get a queue with its runtime counters.

        Raises:
            NotFoundError: Queue does not exist
        """
        require_name(queue_name, "queue")
        admin = session.admin
        with broker_errors("get_queue", "queue", queue_name):
            props = await admin.get_queue(queue_name)
            runtime = await admin.get_queue_runtime_properties(queue_name)
        return queue_from_sdk(props, runtime)

    @track_operation_time(logger, "create_queue")
    async def create_queue(
        self,
        session: BrokerSession,
        queue_name: str,
        properties: Optional[QueueOptions] = None,
    ) -> QueueProperties:
        """
        Create a queue; unset overlay fields take broker defaults.

        Raises:
            ValidationError: Empty or broker-rejected name
            ConflictError: Queue already exists
        """
        require_name(queue_name, "queue")
        with broker_errors("create_queue", "queue", queue_name):
            props = await session.admin.create_queue(queue_name, **options_to_sdk(properties))
        logger.log_operation("queue_created", "queue", queue_name)
        return queue_from_sdk(props)

    @track_operation_time(logger, "update_queue")
    async def update_queue(
        self,
        session: BrokerSession,
        queue_name: str,
        properties: QueueOptions,
    ) -> QueueProperties:
        """
        Update a queue by read-modify-write; unset overlay fields keep their current value.

        Raises:
            NotFoundError: Queue does not exist
        """
        require_name(queue_name, "queue")
        admin = session.admin
        with broker_errors("update_queue", "queue", queue_name):
            props = await admin.get_queue(queue_name)
            apply_options(props, properties)
            await admin.update_queue(props)
        logger.log_operation("queue_updated", "queue", queue_name)
        return queue_from_sdk(props)

    @track_operation_time(logger, "delete_queue")
    async def delete_queue(self, session: BrokerSession, queue_name: str) -> None:
        """
        Delete a queue.

        Raises:
            NotFoundError: Queue does not exist
        """
        require_name(queue_name, "queue")
        with broker_errors("delete_queue", "queue", queue_name):
            await session.admin.delete_queue(queue_name)
        logger.log_operation("queue_deleted", "queue", queue_name)

    # ========== Topics ==========

    @track_operation_time(logger, "list_topics")
    async def list_topics(self, session: BrokerSession) -> List[TopicProperties]:
        """List every topic with its runtime counters."""
        admin = session.admin
        with broker_errors("list_topics", "topic"):
            topics = [props async for props in admin.list_topics()]

        async def with_runtime(props: Any) -> TopicProperties:
            with broker_errors("get_topic_runtime_properties", "topic", props.name):
                runtime = await admin.get_topic_runtime_properties(props.name)
            return topic_from_sdk(props, runtime)

        result = await self._for_each(topics, with_runtime)
        logger.log_operation("topics_listed", "topic", count=len(result))
        return result

    @track_operation_time(logger, "get_topic")
    async def get_topic(self, session: BrokerSession, topic_name: str) -> TopicProperties:
        """
        Get a topic with its runtime counters.

        Raises:
            NotFoundError: Topic does not exist
        """
        require_name(topic_name, "topic")
        admin = session.admin
        with broker_errors("get_topic", "topic", topic_name):
            props = await admin.get_topic(topic_name)
            runtime = await admin.get_topic_runtime_properties(topic_name)
        return topic_from_sdk(props, runtime)

    @track_operation_time(logger, "create_topic")
    async def create_topic(
        self,
        session: BrokerSession,
        topic_name: str,
        properties: Optional[TopicOptions] = None,
    ) -> TopicProperties:
        """
        Create a topic; unset overlay fields take broker defaults.

        Raises:
            ValidationError: Empty or broker-rejected name
            ConflictError: Topic already exists
        """
        require_name(topic_name, "topic")
        with broker_errors("create_topic", "topic", topic_name):
            props = await session.admin.create_topic(topic_name, **options_to_sdk(properties))
        logger.log_operation("topic_created", "topic", topic_name)
        return topic_from_sdk(props)

    @track_operation_time(logger, "update_topic")
    async def update_topic(
        self,
        session: BrokerSession,
        topic_name: str,
        properties: TopicOptions,
    ) -> TopicProperties:
        """Update a topic by read-modify-write."""
        require_name(topic_name, "topic")
        admin = session.admin
        with broker_errors("update_topic", "topic", topic_name):
            props = await admin.get_topic(topic_name)
            apply_options(props, properties)
            await admin.update_topic(props)
        logger.log_operation("topic_updated", "topic", topic_name)
        return topic_from_sdk(props)

    @track_operation_time(logger, "delete_topic")
    async def delete_topic(self, session: BrokerSession, topic_name: str) -> None:
        """Delete a topic and, with it, all of its subscriptions."""
        require_name(topic_name, "topic")
        with broker_errors("delete_topic", "topic", topic_name):
            await session.admin.delete_topic(topic_name)
        logger.log_operation("topic_deleted", "topic", topic_name)

    # ========== Subscriptions ==========

    @track_operation_time(logger, "list_subscriptions")
    async def list_subscriptions(
        self,
        session: BrokerSession,
        topic_name: str,
    ) -> List[SubscriptionProperties]:
        """
        List every subscription of a topic with its runtime counters.

        Raises:
            NotFoundError: Topic does not exist
        """
        require_name(topic_name, "topic")
        admin = session.admin

        # Enumerating a missing topic yields an empty page on some SDK versions
        with broker_errors("get_topic", "topic", topic_name):
            await admin.get_topic(topic_name)

        with broker_errors("list_subscriptions", "topic", topic_name):
            subscriptions = [props async for props in admin.list_subscriptions(topic_name)]

        async def with_runtime(props: Any) -> SubscriptionProperties:
            entity_name = f"{topic_name}/subscriptions/{props.name}"
            with broker_errors("get_subscription_runtime_properties", "subscription", entity_name):
                runtime = await admin.get_subscription_runtime_properties(topic_name, props.name)
            return subscription_from_sdk(topic_name, props, runtime)

        result = await self._for_each(subscriptions, with_runtime)
        logger.log_operation("subscriptions_listed", "topic", topic_name, count=len(result))
        return result

    @track_operation_time(logger, "get_subscription")
    async def get_subscription(
        self,
        session: BrokerSession,
        topic_name: str,
        subscription_name: str,
    ) -> SubscriptionProperties:
        """
        Get a subscription with its runtime counters.

        Raises:
            NotFoundError: Topic or subscription does not exist
        """
        require_name(topic_name, "topic")
        require_name(subscription_name, "subscription")
        admin = session.admin
        entity_name = f"{topic_name}/subscriptions/{subscription_name}"
        with broker_errors("get_subscription", "subscription", entity_name):
            props = await admin.get_subscription(topic_name, subscription_name)
            runtime = await admin.get_subscription_runtime_properties(topic_name, subscription_name)
        return subscription_from_sdk(topic_name, props, runtime)

    @track_operation_time(logger, "create_subscription")
    async def create_subscription(
        self,
        session: BrokerSession,
        topic_name: str,
        subscription_name: str,
        properties: Optional[SubscriptionOptions] = None,
    ) -> SubscriptionProperties:
        """
        Create a subscription on an existing topic.

        Raises:
            ValidationError: Empty or broker-rejected name
            ConflictError: Subscription already exists
            NotFoundError: Topic does not exist
        """
        require_name(topic_name, "topic")
        require_name(subscription_name, "subscription")
        entity_name = f"{topic_name}/subscriptions/{subscription_name}"
        with broker_errors("create_subscription", "subscription", entity_name):
            props = await session.admin.create_subscription(
                topic_name, subscription_name, **options_to_sdk(properties)
            )
        logger.log_operation("subscription_created", "subscription", entity_name)
        return subscription_from_sdk(topic_name, props)
