"""
Shared Test Fixtures

In-memory stand-in for a Service Bus namespace, injected through the
ClientFactory seam. It mirrors the slice of the azure-servicebus async API
the gateway uses and records every call it receives.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import copy
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError
from azure.servicebus import ServiceBusReceiveMode, ServiceBusSubQueue
from azure.servicebus.amqp import AmqpMessageBodyType
from azure.servicebus.exceptions import MessagingEntityNotFoundError
from fastapi.testclient import TestClient

from sbexplorer.cli import create_app
from sbexplorer.core.config_manager import ExplorerConfig, GatewaySettings
from sbexplorer.services.servicebus.descriptor import ConnectionDescriptor
from sbexplorer.services.servicebus.dispatcher import RequestDispatcher
from sbexplorer.services.servicebus.metrics import GatewayMetrics
from sbexplorer.services.servicebus.session import BrokerSession, ClientFactory


CONNECTION_STRING = (
    "Endpoint=sb://contoso.servicebus.windows.net/;"
    "SharedAccessKeyName=RootManageSharedAccessKey;"
    "SharedAccessKey=c2VjcmV0LWtleS12YWx1ZQ=="
)

_NAME_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._\-]{0,259}$')

MAIN = "main"
DEAD_LETTER = "deadletter"


@dataclass
class FakeMessage:
    """Broker-side message, shaped like ServiceBusReceivedMessage."""
    body: Any
    sequence_number: int
    body_type: Any = AmqpMessageBodyType.DATA
    application_properties: Dict[Any, Any] = field(default_factory=dict)
    message_id: Optional[str] = None
    content_type: Optional[str] = None
    correlation_id: Optional[str] = None
    session_id: Optional[str] = None
    reply_to: Optional[str] = None
    reply_to_session_id: Optional[str] = None
    subject: Optional[str] = None
    time_to_live: Optional[timedelta] = None
    to: Optional[str] = None
    delivery_count: int = 0
    enqueued_time_utc: Optional[datetime] = None
    locked_until_utc: Optional[datetime] = None
    dead_letter_reason: Optional[str] = None
    dead_letter_error_description: Optional[str] = None
    dead_letter_source: Optional[str] = None


class FakeBroker:
    """
    In-memory namespace.

    Attributes:
        calls: Every client, admin, sender and receiver call, in order
        failures: Call name -> exception raised (once) on the next such call
        peek_batch_limit: Most messages a single peek call returns
    """

    def __init__(self):
        self.queues: Dict[str, SimpleNamespace] = {}
        self.topics: Dict[str, SimpleNamespace] = {}
        self.subscriptions: Dict[str, Dict[str, SimpleNamespace]] = {}
        self.stores: Dict[Tuple[str, str], List[FakeMessage]] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, BaseException] = {}
        self.peek_batch_limit = 3
        self.descriptors: List[ConnectionDescriptor] = []
        self._sequence = 0

    # ----- bookkeeping -----

    def call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures.pop(name)

    def calls_to(self, name: str) -> int:
        return self.calls.count(name)

    def store(self, path: str, sub_queue: str = MAIN) -> List[FakeMessage]:
        return self.stores.setdefault((path, sub_queue), [])

    def entity_exists(self, path: str) -> bool:
        if path in self.queues:
            return True
        topic, _, subscription = path.partition("/subscriptions/")
        return subscription in self.subscriptions.get(topic, {})

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    # ----- seeding -----

    def add_queue(self, name: str, **overrides) -> SimpleNamespace:
        self.queues[name] = queue_props(name, **overrides)
        return self.queues[name]

    def add_topic(self, name: str, **overrides) -> SimpleNamespace:
        self.topics[name] = topic_props(name, **overrides)
        self.subscriptions.setdefault(name, {})
        return self.topics[name]

    def add_subscription(self, topic: str, name: str, **overrides) -> SimpleNamespace:
        self.subscriptions.setdefault(topic, {})[name] = subscription_props(name, **overrides)
        return self.subscriptions[topic][name]

    def seed(self, path: str, body: Any = "hello", sub_queue: str = MAIN, **fields) -> FakeMessage:
        """Place a message directly on an entity's sub-queue."""
        if isinstance(body, str):
            body = [body.encode("utf-8")]
        elif isinstance(body, bytes):
            body = [body]
        message = FakeMessage(
            body=body,
            sequence_number=self.next_sequence(),
            enqueued_time_utc=datetime(2026, 1, 1, tzinfo=timezone.utc),
            **fields,
        )
        self.store(path, sub_queue).append(message)
        return message

    def accept(self, path: str, message: Any) -> None:
        """Enqueue an SDK ServiceBusMessage as a received-message snapshot."""
        properties = message.application_properties or {}
        self.store(path).append(FakeMessage(
            body=list(message.body),
            body_type=message.body_type,
            sequence_number=self.next_sequence(),
            application_properties={
                key.encode("utf-8") if isinstance(key, str) else key: value
                for key, value in properties.items()
            },
            message_id=message.message_id,
            content_type=message.content_type,
            correlation_id=message.correlation_id,
            session_id=message.session_id,
            reply_to=message.reply_to,
            reply_to_session_id=message.reply_to_session_id,
            subject=message.subject,
            time_to_live=message.time_to_live,
            to=message.to,
            enqueued_time_utc=datetime.now(timezone.utc),
        ))


def queue_props(name: str, **overrides) -> SimpleNamespace:
    props = SimpleNamespace(
        name=name,
        max_size_in_megabytes=1024,
        lock_duration=timedelta(seconds=60),
        max_delivery_count=10,
        default_message_time_to_live=timedelta(days=14),
        dead_lettering_on_message_expiration=False,
        duplicate_detection_history_time_window=timedelta(minutes=10),
        enable_batched_operations=True,
        enable_partitioning=False,
        requires_session=False,
        requires_duplicate_detection=False,
        status="Active",
    )
    for key, value in overrides.items():
        setattr(props, key, value)
    return props


def topic_props(name: str, **overrides) -> SimpleNamespace:
    props = SimpleNamespace(
        name=name,
        max_size_in_megabytes=1024,
        default_message_time_to_live=timedelta(days=14),
        duplicate_detection_history_time_window=timedelta(minutes=10),
        enable_batched_operations=True,
        enable_partitioning=False,
        requires_duplicate_detection=False,
        support_ordering=True,
        status="Active",
    )
    for key, value in overrides.items():
        setattr(props, key, value)
    return props


def subscription_props(name: str, **overrides) -> SimpleNamespace:
    props = SimpleNamespace(
        name=name,
        lock_duration=timedelta(seconds=60),
        max_delivery_count=10,
        default_message_time_to_live=timedelta(days=14),
        dead_lettering_on_message_expiration=False,
        enable_batched_operations=True,
        requires_session=False,
        forward_to=None,
        status="Active",
    )
    for key, value in overrides.items():
        setattr(props, key, value)
    return props


def _bad_request(message: str) -> HttpResponseError:
    error = HttpResponseError(message=message)
    error.status_code = 400
    return error


async def _pages(items):
    for item in items:
        yield item


class FakeAdminClient:
    """Stand-in for azure.servicebus.aio.management.ServiceBusAdministrationClient."""

    def __init__(self, broker: FakeBroker):
        self.broker = broker

    async def get_namespace_properties(self):
        self.broker.call("get_namespace_properties")
        return SimpleNamespace(name="contoso", namespace_type="Messaging")

    # ----- queues -----

    def list_queues(self):
        self.broker.call("list_queues")
        return _pages(list(self.broker.queues.values()))

    async def get_queue(self, name):
        self.broker.call("get_queue")
        if name not in self.broker.queues:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")
        return copy.copy(self.broker.queues[name])

    async def get_queue_runtime_properties(self, name):
        self.broker.call("get_queue_runtime_properties")
        if name not in self.broker.queues:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")
        active = self.broker.store(name)
        dead = self.broker.store(name, DEAD_LETTER)
        return SimpleNamespace(
            name=name,
            total_message_count=len(active) + len(dead),
            active_message_count=len(active),
            dead_letter_message_count=len(dead),
            scheduled_message_count=0,
            transfer_message_count=0,
            transfer_dead_letter_message_count=0,
            size_in_bytes=sum(len(b"".join(m.body)) for m in active),
        )

    async def create_queue(self, name, **kwargs):
        self.broker.call("create_queue")
        if not _NAME_RE.match(name):
            raise _bad_request(f"The specified name '{name}' is invalid.")
        if name in self.broker.queues:
            raise ResourceExistsError(f"Entity '{name}' already exists.")
        return copy.copy(self.broker.add_queue(name, **kwargs))

    async def update_queue(self, queue):
        self.broker.call("update_queue")
        if queue.name not in self.broker.queues:
            raise ResourceNotFoundError(f"Entity '{queue.name}' was not found.")
        self.broker.queues[queue.name] = copy.copy(queue)

    async def delete_queue(self, name):
        self.broker.call("delete_queue")
        if self.broker.queues.pop(name, None) is None:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")

    # ----- topics -----

    def list_topics(self):
        self.broker.call("list_topics")
        return _pages(list(self.broker.topics.values()))

    async def get_topic(self, name):
        self.broker.call("get_topic")
        if name not in self.broker.topics:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")
        return copy.copy(self.broker.topics[name])

    async def get_topic_runtime_properties(self, name):
        self.broker.call("get_topic_runtime_properties")
        if name not in self.broker.topics:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")
        return SimpleNamespace(
            name=name,
            size_in_bytes=0,
            subscription_count=len(self.broker.subscriptions.get(name, {})),
            scheduled_message_count=0,
        )

    async def create_topic(self, name, **kwargs):
        self.broker.call("create_topic")
        if not _NAME_RE.match(name):
            raise _bad_request(f"The specified name '{name}' is invalid.")
        if name in self.broker.topics:
            raise ResourceExistsError(f"Entity '{name}' already exists.")
        return copy.copy(self.broker.add_topic(name, **kwargs))

    async def update_topic(self, topic):
        self.broker.call("update_topic")
        self.broker.topics[topic.name] = copy.copy(topic)

    async def delete_topic(self, name):
        self.broker.call("delete_topic")
        if self.broker.topics.pop(name, None) is None:
            raise ResourceNotFoundError(f"Entity '{name}' was not found.")
        self.broker.subscriptions.pop(name, None)

    # ----- subscriptions -----

    def list_subscriptions(self, topic_name):
        self.broker.call("list_subscriptions")
        return _pages(list(self.broker.subscriptions.get(topic_name, {}).values()))

    async def get_subscription(self, topic_name, subscription_name):
        self.broker.call("get_subscription")
        subscription = self.broker.subscriptions.get(topic_name, {}).get(subscription_name)
        if subscription is None:
            raise ResourceNotFoundError(f"Entity '{topic_name}/{subscription_name}' was not found.")
        return copy.copy(subscription)

    async def get_subscription_runtime_properties(self, topic_name, subscription_name):
        self.broker.call("get_subscription_runtime_properties")
        path = f"{topic_name}/subscriptions/{subscription_name}"
        return SimpleNamespace(
            name=subscription_name,
            total_message_count=0,
            active_message_count=len(self.broker.store(path)),
            dead_letter_message_count=len(self.broker.store(path, DEAD_LETTER)),
            transfer_message_count=0,
            transfer_dead_letter_message_count=0,
        )

    async def create_subscription(self, topic_name, subscription_name, **kwargs):
        self.broker.call("create_subscription")
        if topic_name not in self.broker.topics:
            raise ResourceNotFoundError(f"Entity '{topic_name}' was not found.")
        if not _NAME_RE.match(subscription_name):
            raise _bad_request(f"The specified name '{subscription_name}' is invalid.")
        if subscription_name in self.broker.subscriptions.get(topic_name, {}):
            raise ResourceExistsError(f"Entity '{topic_name}/{subscription_name}' already exists.")
        return copy.copy(self.broker.add_subscription(topic_name, subscription_name, **kwargs))

    async def close(self):
        self.broker.call("admin_close")


class FakeReceiver:
    """Stand-in for ServiceBusReceiver."""

    def __init__(self, broker: FakeBroker, path: str, sub_queue=None, receive_mode=None, **kwargs):
        self.broker = broker
        self.path = path
        self.sub_queue = DEAD_LETTER if sub_queue == ServiceBusSubQueue.DEAD_LETTER else MAIN
        self.receive_mode = receive_mode
        self.options = kwargs

    async def __aenter__(self):
        self.broker.call("receiver_open")
        if not self.broker.entity_exists(self.path):
            raise MessagingEntityNotFoundError(message=f"The messaging entity '{self.path}' could not be found.")
        return self

    async def __aexit__(self, *exc_info):
        self.broker.calls.append("receiver_close")

    async def peek_messages(self, max_message_count=1, *, sequence_number=0, timeout=None):
        self.broker.call("peek_messages")
        store = self.broker.store(self.path, self.sub_queue)
        eligible = [m for m in store if m.sequence_number >= sequence_number]
        count = min(max_message_count, self.broker.peek_batch_limit)
        return [copy.copy(m) for m in eligible[:count]]

    async def receive_messages(self, max_message_count=None, max_wait_time=None):
        self.broker.call("receive_messages")
        store = self.broker.store(self.path, self.sub_queue)
        count = max_message_count or 1
        batch = store[:count]
        if self.receive_mode == ServiceBusReceiveMode.RECEIVE_AND_DELETE:
            del store[:count]
        else:
            for message in batch:
                message.delivery_count += 1
        return batch


class FakeSender:
    """Stand-in for ServiceBusSender."""

    def __init__(self, broker: FakeBroker, queue_name: Optional[str] = None, topic_name: Optional[str] = None):
        self.broker = broker
        self.queue_name = queue_name
        self.topic_name = topic_name

    async def __aenter__(self):
        self.broker.call("sender_open")
        if self.queue_name and self.queue_name not in self.broker.queues:
            raise MessagingEntityNotFoundError(message=f"The messaging entity '{self.queue_name}' could not be found.")
        if self.topic_name and self.topic_name not in self.broker.topics:
            raise MessagingEntityNotFoundError(message=f"The messaging entity '{self.topic_name}' could not be found.")
        return self

    async def __aexit__(self, *exc_info):
        self.broker.calls.append("sender_close")

    async def send_messages(self, message):
        self.broker.call("send_messages")
        if self.queue_name:
            self.broker.accept(self.queue_name, message)
            return
        for subscription in self.broker.subscriptions.get(self.topic_name, {}):
            self.broker.accept(f"{self.topic_name}/subscriptions/{subscription}", message)


class FakeServiceBusClient:
    """Stand-in for azure.servicebus.aio.ServiceBusClient."""

    def __init__(self, broker: FakeBroker):
        self.broker = broker

    def get_queue_receiver(self, queue_name, **kwargs):
        self.broker.call("get_queue_receiver")
        return FakeReceiver(self.broker, queue_name, **kwargs)

    def get_subscription_receiver(self, topic_name, subscription_name, **kwargs):
        self.broker.call("get_subscription_receiver")
        return FakeReceiver(self.broker, f"{topic_name}/subscriptions/{subscription_name}", **kwargs)

    def get_queue_sender(self, queue_name):
        self.broker.call("get_queue_sender")
        return FakeSender(self.broker, queue_name=queue_name)

    def get_topic_sender(self, topic_name):
        self.broker.call("get_topic_sender")
        return FakeSender(self.broker, topic_name=topic_name)

    async def close(self):
        self.broker.call("client_close")


class FakeClientFactory(ClientFactory):
    """Hands out clients bound to one FakeBroker."""

    def __init__(self, broker: FakeBroker):
        self.broker = broker

    def create(self, descriptor):
        self.broker.call("create_clients")
        self.broker.descriptors.append(descriptor)
        return FakeServiceBusClient(self.broker), FakeAdminClient(self.broker), None


# ========== Fixtures ==========

@pytest.fixture
def broker():
    """Empty in-memory namespace."""
    return FakeBroker()


@pytest.fixture
def factory(broker):
    return FakeClientFactory(broker)


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return GatewayMetrics()


@pytest.fixture
def settings():
    return GatewaySettings()


@pytest.fixture
def descriptor():
    return ConnectionDescriptor(name="local", connection_string=CONNECTION_STRING)


@pytest.fixture
def connection_json():
    """Descriptor as carried in the connection header."""
    return json.dumps({"name": "local", "connectionString": CONNECTION_STRING})


@pytest.fixture
async def session(descriptor, factory, metrics):
    """Open broker session against the fake namespace."""
    broker_session = BrokerSession(descriptor, factory=factory, metrics=metrics)
    await broker_session.open()
    yield broker_session
    await broker_session.close()


@pytest.fixture
def dispatcher(settings, factory, metrics):
    return RequestDispatcher(settings=settings, factory=factory, metrics=metrics)


@pytest.fixture
def app(factory, metrics):
    return create_app(ExplorerConfig(), client_factory=factory, metrics=metrics)


@pytest.fixture
def client(app, connection_json):
    """Test client sending the connection header on every request."""
    return TestClient(app, headers={"x-connection": connection_json})
