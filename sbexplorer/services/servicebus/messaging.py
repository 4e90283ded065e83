"""
Message Gateway

Non-destructive peeks, sends and purges against queues and subscriptions.

Peeks use the broker's browse API exclusively: no lock is taken, the
delivery count is untouched and messages keep their position. Purge is the
only operation here that removes messages.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import time
from typing import Any, List, Mapping, Optional, Union

from azure.servicebus import ServiceBusReceiveMode, ServiceBusSubQueue
from pydantic import ValidationError as PydanticValidationError

from sbexplorer.core.config_manager import GatewaySettings

from .addressing import (
    EntityAddress,
    QueueAddress,
    SendTarget,
    SubQueue,
    SubscriptionAddress,
    TopicAddress,
    clamp_max_count,
    require_name,
    resolve_address,
)
from .broker_errors import broker_errors
from .conversions import message_from_sdk, message_to_sdk
from .exceptions import BrokerOperationError, ValidationError
from .logging_utils import StructuredLogger, track_operation_time
from .metrics import GatewayMetrics, get_metrics
from .models import OutgoingMessage, ReceivedMessage
from .session import BrokerSession

logger = StructuredLogger('sbexplorer.services.servicebus.messaging')

_SDK_SUB_QUEUES = {
    SubQueue.MAIN: None,
    SubQueue.DEAD_LETTER: ServiceBusSubQueue.DEAD_LETTER,
}


class MessageGateway:
    """Peek, send and purge operations over a broker session."""

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        metrics: Optional[GatewayMetrics] = None,
    ):
        self.settings = settings or GatewaySettings()
        self._metrics = metrics or get_metrics()

    def _receiver(self, session: BrokerSession, address: EntityAddress, sub_queue: SubQueue, **kwargs):
        """Receiver for the given entity and sub-queue."""
        sdk_sub_queue = _SDK_SUB_QUEUES[sub_queue]
        if sdk_sub_queue is not None:
            kwargs["sub_queue"] = sdk_sub_queue

        if isinstance(address, QueueAddress):
            return session.client.get_queue_receiver(address.queue_name, **kwargs)
        return session.client.get_subscription_receiver(
            address.topic_name, address.subscription_name, **kwargs
        )

    # ========== Peek ==========

    async def peek(
        self,
        session: BrokerSession,
        address: EntityAddress,
        sub_queue: SubQueue = SubQueue.MAIN,
        max_count: Optional[int] = None,
    ) -> List[ReceivedMessage]:
        """
        Browse up to max_count messages from an entity's sub-queue.

        max_count is clamped into the configured peek bounds. Browsing
        continues from the last returned sequence number until the bound is
        reached or the broker has nothing more.
        """
        limit = clamp_max_count(max_count, self.settings)
        peeked: List[Any] = []

        with broker_errors("peek_messages", address.entity_type, address.entity_name):
            receiver = self._receiver(session, address, sub_queue)
            async with receiver:
                next_sequence = 0
                while len(peeked) < limit:
                    batch = await receiver.peek_messages(
                        max_message_count=limit - len(peeked),
                        sequence_number=next_sequence,
                    )
                    if not batch:
                        break
                    peeked.extend(batch)
                    next_sequence = batch[-1].sequence_number + 1

        messages = [message_from_sdk(msg) for msg in peeked[:limit]]
        self._metrics.track_messages_peeked(address.entity_type, sub_queue.value, len(messages))
        logger.log_operation(
            "messages_peeked",
            address.entity_type,
            address.entity_name,
            sub_queue=sub_queue.value,
            requested=max_count,
            limit=limit,
            count=len(messages),
        )
        return messages

    @track_operation_time(logger, "peek_messages")
    async def peek_messages(
        self,
        session: BrokerSession,
        queue_name: str,
        max_count: Optional[int] = None,
    ) -> List[ReceivedMessage]:
        """Browse the main sub-queue of a queue."""
        require_name(queue_name, "queue")
        return await self.peek(session, QueueAddress(queue_name), SubQueue.MAIN, max_count)

    @track_operation_time(logger, "peek_messages_from_subscription")
    async def peek_messages_from_subscription(
        self,
        session: BrokerSession,
        topic_name: str,
        subscription_name: str,
        max_count: Optional[int] = None,
    ) -> List[ReceivedMessage]:
        """Browse the main sub-queue of a topic subscription."""
        require_name(topic_name, "topic")
        require_name(subscription_name, "subscription")
        address = SubscriptionAddress(topic_name, subscription_name)
        return await self.peek(session, address, SubQueue.MAIN, max_count)

    @track_operation_time(logger, "peek_dead_letter_messages")
    async def peek_dead_letter_messages(
        self,
        session: BrokerSession,
        queue_name: Optional[str] = None,
        topic_name: Optional[str] = None,
        subscription_name: Optional[str] = None,
        max_count: Optional[int] = None,
    ) -> List[ReceivedMessage]:
        """
        Browse the dead-letter sub-queue of a queue or a topic subscription.

        Raises:
            AddressingError: Neither a queue nor a complete topic+subscription pair
        """
        address = resolve_address(queue_name, topic_name, subscription_name)
        return await self.peek(session, address, SubQueue.DEAD_LETTER, max_count)

    # ========== Send ==========

    async def send(
        self,
        session: BrokerSession,
        target: SendTarget,
        message: Union[OutgoingMessage, Mapping[str, Any]],
    ) -> None:
        """
        Send one message to a queue or topic.

        Raises:
            ValidationError: Malformed message
            MessageSizeExceededError: Broker rejected the message as too large
        """
        if not isinstance(message, OutgoingMessage):
            try:
                message = OutgoingMessage.model_validate(message)
            except PydanticValidationError as exc:
                raise ValidationError.from_pydantic(exc, "message")

        sdk_message = message_to_sdk(message)
        with broker_errors("send_message", target.entity_type, target.entity_name):
            if isinstance(target, QueueAddress):
                sender = session.client.get_queue_sender(target.queue_name)
            else:
                sender = session.client.get_topic_sender(target.topic_name)
            async with sender:
                await sender.send_messages(sdk_message)

        self._metrics.track_message_sent(target.entity_type)
        logger.log_operation(
            "message_sent",
            target.entity_type,
            target.entity_name,
            message_id=message.message_id,
        )

    @track_operation_time(logger, "send_message")
    async def send_message(
        self,
        session: BrokerSession,
        queue_name: str,
        message: Union[OutgoingMessage, Mapping[str, Any]],
    ) -> None:
        """Send one message to a queue."""
        require_name(queue_name, "queue")
        await self.send(session, QueueAddress(queue_name), message)

    @track_operation_time(logger, "send_message_to_topic")
    async def send_message_to_topic(
        self,
        session: BrokerSession,
        topic_name: str,
        message: Union[OutgoingMessage, Mapping[str, Any]],
    ) -> None:
        """Send one message to a topic."""
        require_name(topic_name, "topic")
        await self.send(session, TopicAddress(topic_name), message)

    # ========== Purge ==========

    @track_operation_time(logger, "purge_queue")
    async def purge_queue(
        self,
        session: BrokerSession,
        queue_name: str,
        purge_dead_letter: bool = False,
    ) -> int:
        """
        Remove every message from a queue's main or dead-letter sub-queue.

        Drains with receive-and-delete batches until a batch comes back empty.
        Returns the number of messages removed; 0 for an already-empty
        sub-queue.

        Raises:
            BrokerOperationError: The time budget ran out before the sub-queue
                was empty; details carry the count already removed
        """
        require_name(queue_name, "queue")
        address = QueueAddress(queue_name)
        sub_queue = SubQueue.DEAD_LETTER if purge_dead_letter else SubQueue.MAIN
        settings = self.settings

        purged = 0
        exhausted = False
        started = time.monotonic()
        with broker_errors("purge_queue", address.entity_type, address.entity_name):
            receiver = self._receiver(
                session,
                address,
                sub_queue,
                receive_mode=ServiceBusReceiveMode.RECEIVE_AND_DELETE,
            )
            async with receiver:
                while True:
                    batch = await receiver.receive_messages(
                        max_message_count=settings.purge_batch_size,
                        max_wait_time=settings.purge_max_wait_time,
                    )
                    if not batch:
                        break
                    purged += len(batch)

                    if time.monotonic() - started >= settings.purge_time_budget:
                        exhausted = True
                        break

        self._metrics.track_messages_purged(sub_queue.value, purged)
        if exhausted:
            logger.warning(
                "Purge stopped at time budget",
                entity_name=queue_name,
                sub_queue=sub_queue.value,
                purged=purged,
            )
            raise BrokerOperationError(
                "purge_queue",
                f"Purge of queue '{queue_name}' stopped after {purged} messages: "
                f"time budget of {settings.purge_time_budget}s exhausted",
                entity_type="queue",
                entity_name=queue_name,
                sub_queue=sub_queue.value,
                purged=purged,
            )

        logger.log_operation(
            "queue_purged",
            "queue",
            queue_name,
            sub_queue=sub_queue.value,
            purged=purged,
        )
        return purged
