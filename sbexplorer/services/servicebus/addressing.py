"""
Entity Addressing and Peek Bounds

Single resolver for the queue vs. topic+subscription addressing rule, the
main vs. dead-letter sub-queue selector, and the peek count clamp. Every
gateway operation goes through these helpers; nothing here touches the
network.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sbexplorer.core.config_manager import GatewaySettings

from .constants import ERROR_ADDRESS_REQUIRED, ERROR_NAME_REQUIRED, ERROR_SEND_TARGET_REQUIRED
from .exceptions import AddressingError, ValidationError


class SubQueue(str, Enum):
    """Which buffer of a queue or subscription an operation targets."""
    MAIN = "main"
    DEAD_LETTER = "deadletter"


@dataclass(frozen=True)
class QueueAddress:
    """A queue, addressed by name."""
    queue_name: str

    entity_type = "queue"

    @property
    def entity_name(self) -> str:
        return self.queue_name


@dataclass(frozen=True)
class SubscriptionAddress:
    """A subscription, addressed by its topic and its own name."""
    topic_name: str
    subscription_name: str

    entity_type = "subscription"

    @property
    def entity_name(self) -> str:
        return f"{self.topic_name}/subscriptions/{self.subscription_name}"


@dataclass(frozen=True)
class TopicAddress:
    """A topic, as a send target."""
    topic_name: str

    entity_type = "topic"

    @property
    def entity_name(self) -> str:
        return self.topic_name


# Readable entities: a queue or a topic subscription
EntityAddress = Union[QueueAddress, SubscriptionAddress]

# Writable entities: a queue or a topic
SendTarget = Union[QueueAddress, TopicAddress]


def _given(name: Optional[str]) -> Optional[str]:
    """The name if it has any non-blank content, otherwise None."""
    if name is None or not str(name).strip():
        return None
    return name


def resolve_address(
    queue_name: Optional[str] = None,
    topic_name: Optional[str] = None,
    subscription_name: Optional[str] = None,
) -> EntityAddress:
    """
    Resolve the entity an operation reads from.

    A queue name takes precedence when present. Otherwise topic and
    subscription names are required together. Blank names count as absent.

    Raises:
        AddressingError: If neither a queue nor a complete topic+subscription
            pair is supplied
    """
    queue_name, topic_name, subscription_name = (
        _given(queue_name), _given(topic_name), _given(subscription_name)
    )
    if queue_name:
        return QueueAddress(queue_name)

    if topic_name and subscription_name:
        return SubscriptionAddress(topic_name, subscription_name)

    raise AddressingError(
        ERROR_ADDRESS_REQUIRED,
        topic_name=topic_name,
        subscription_name=subscription_name,
    )


def resolve_send_target(
    queue_name: Optional[str] = None,
    topic_name: Optional[str] = None,
) -> SendTarget:
    """
    Resolve the entity a message is sent to; a queue name takes precedence.
    Blank names count as absent.

    Raises:
        AddressingError: If neither name is supplied
    """
    queue_name, topic_name = _given(queue_name), _given(topic_name)
    if queue_name:
        return QueueAddress(queue_name)
    if topic_name:
        return TopicAddress(topic_name)
    raise AddressingError(ERROR_SEND_TARGET_REQUIRED)


def require_name(value: Optional[str], entity_type: str) -> str:
    """
    Return a non-blank entity name.

    Raises:
        ValidationError: If the name is missing or blank
    """
    if _given(value) is None:
        raise ValidationError(
            ERROR_NAME_REQUIRED.format(entity_type=entity_type.capitalize()),
            details={"entity_type": entity_type},
        )
    return value


def clamp_max_count(max_count: Optional[int], settings: Optional[GatewaySettings] = None) -> int:
    """
    Effective peek bound for a caller-supplied count.

    Missing, zero and negative counts fall back to the default; the result is
    then clamped into [min_peek_count, max_peek_count]. Out-of-range input is
    corrected, never rejected.

    >>> clamp_max_count(0)
    10
    >>> clamp_max_count(5000)
    1000
    >>> clamp_max_count(37)
    37
    """
    settings = settings or GatewaySettings()
    count = max_count if max_count and max_count > 0 else settings.default_peek_count
    return max(settings.min_peek_count, min(int(count), settings.max_peek_count))
