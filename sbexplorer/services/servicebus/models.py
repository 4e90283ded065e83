"""
Service Bus Gateway Models

Pydantic models for entity snapshots, messages, and operation payloads.
Field names are snake_case in Python and camelCase on the wire.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import base64
import binascii
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def to_wire(self) -> Dict[str, Any]:
        """Dump as JSON-compatible dict with wire aliases, omitting unset values."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ========== Message Values ==========

class BinaryValue(BaseModel):
    """
    Opaque binary payload, carried as base64 text on the wire.

    Example: {"binary": "aGVsbG8="}
    """
    model_config = ConfigDict(extra='forbid')

    binary: str

    @field_validator('binary')
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Reject text that is not valid base64."""
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"binary value is not valid base64: {exc}")
        return v

    @classmethod
    def from_bytes(cls, data: bytes) -> "BinaryValue":
        """Wrap raw bytes."""
        return cls(binary=base64.b64encode(data).decode("ascii"))

    def to_bytes(self) -> bytes:
        """Decode to raw bytes."""
        return base64.b64decode(self.binary)


# Closed set of application property value types
PropertyValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, BinaryValue]

# Text, binary, or a JSON document (encoded before it reaches the broker)
MessageBody = Union[
    StrictStr,
    BinaryValue,
    Dict[str, Any],
    List[Any],
    StrictBool,
    StrictInt,
    StrictFloat,
]


class OutgoingMessage(CamelModel):
    """
    Caller-constructed message for send operations.

    time_to_live is expressed in milliseconds; the broker keeps whole
    seconds, so sub-second remainders are dropped on send.
    """

    body: MessageBody
    message_id: Optional[str] = None
    content_type: Optional[str] = None
    correlation_id: Optional[str] = None
    session_id: Optional[str] = None
    reply_to: Optional[str] = None
    reply_to_session_id: Optional[str] = None
    subject: Optional[str] = None
    time_to_live: Optional[float] = Field(default=None, gt=0)
    to: Optional[str] = None
    application_properties: Dict[str, PropertyValue] = Field(default_factory=dict)

    @field_validator('body', mode='before')
    @classmethod
    def tag_binary_body(cls, v: Any) -> Any:
        """An object holding only a 'binary' key is a binary body, not a JSON document."""
        if isinstance(v, dict) and set(v) == {"binary"}:
            return BinaryValue(**v)
        return v


class ReceivedMessage(OutgoingMessage):
    """Read-only snapshot of a peeked message, including broker-assigned fields."""

    body: Optional[MessageBody] = None
    delivery_count: Optional[int] = None
    enqueued_time_utc: Optional[datetime] = None
    locked_until_utc: Optional[datetime] = None
    sequence_number: Optional[int] = None
    dead_letter_reason: Optional[str] = None
    dead_letter_error_description: Optional[str] = None
    dead_letter_source: Optional[str] = None


# ========== Entity Snapshots ==========

class QueueProperties(CamelModel):
    """Queue configuration and point-in-time counters."""

    name: str
    max_size_in_megabytes: Optional[int] = None
    lock_duration_in_seconds: Optional[int] = None
    max_delivery_count: Optional[int] = None
    default_message_time_to_live_in_seconds: Optional[int] = None
    dead_lettering_on_message_expiration: Optional[bool] = None
    duplicate_detection_history_time_window_in_seconds: Optional[int] = None
    enable_batched_operations: Optional[bool] = None
    enable_partitioning: Optional[bool] = None
    requires_session: Optional[bool] = None
    requires_duplicate_detection: Optional[bool] = None
    status: Optional[str] = None

    message_count: int = 0
    active_message_count: int = 0
    dead_letter_message_count: int = 0
    scheduled_message_count: int = 0
    transfer_message_count: int = 0
    transfer_dead_letter_message_count: int = 0
    size_in_bytes: int = 0


class TopicProperties(CamelModel):
    """Topic configuration and point-in-time counters."""

    name: str
    max_size_in_megabytes: Optional[int] = None
    default_message_time_to_live_in_seconds: Optional[int] = None
    duplicate_detection_history_time_window_in_seconds: Optional[int] = None
    enable_batched_operations: Optional[bool] = None
    enable_partitioning: Optional[bool] = None
    requires_duplicate_detection: Optional[bool] = None
    support_ordering: Optional[bool] = None
    status: Optional[str] = None

    size_in_bytes: int = 0
    subscription_count: int = 0
    scheduled_message_count: int = 0


class SubscriptionProperties(CamelModel):
    """Subscription configuration and point-in-time counters."""

    topic_name: str
    subscription_name: str
    max_delivery_count: Optional[int] = None
    lock_duration_in_seconds: Optional[int] = None
    default_message_time_to_live_in_seconds: Optional[int] = None
    dead_lettering_on_message_expiration: Optional[bool] = None
    enable_batched_operations: Optional[bool] = None
    requires_session: Optional[bool] = None
    forward_to: Optional[str] = None
    status: Optional[str] = None

    message_count: int = 0
    active_message_count: int = 0
    dead_letter_message_count: int = 0
    transfer_message_count: int = 0
    transfer_dead_letter_message_count: int = 0


# ========== Configuration Overlays ==========

class QueueOptions(CamelModel):
    """Partial queue configuration; unset fields keep broker defaults or existing values."""

    max_size_in_megabytes: Optional[int] = Field(default=None, ge=1)
    lock_duration_in_seconds: Optional[int] = Field(default=None, ge=5, le=300)
    max_delivery_count: Optional[int] = Field(default=None, ge=1, le=2000)
    default_message_time_to_live_in_seconds: Optional[int] = Field(default=None, ge=1)
    dead_lettering_on_message_expiration: Optional[bool] = None
    duplicate_detection_history_time_window_in_seconds: Optional[int] = Field(default=None, ge=20)
    enable_batched_operations: Optional[bool] = None
    enable_partitioning: Optional[bool] = None
    requires_session: Optional[bool] = None
    requires_duplicate_detection: Optional[bool] = None


class TopicOptions(CamelModel):
    """Partial topic configuration."""

    max_size_in_megabytes: Optional[int] = Field(default=None, ge=1)
    default_message_time_to_live_in_seconds: Optional[int] = Field(default=None, ge=1)
    duplicate_detection_history_time_window_in_seconds: Optional[int] = Field(default=None, ge=20)
    enable_batched_operations: Optional[bool] = None
    enable_partitioning: Optional[bool] = None
    requires_duplicate_detection: Optional[bool] = None
    support_ordering: Optional[bool] = None


class SubscriptionOptions(CamelModel):
    """Partial subscription configuration."""

    max_delivery_count: Optional[int] = Field(default=None, ge=1, le=2000)
    lock_duration_in_seconds: Optional[int] = Field(default=None, ge=5, le=300)
    default_message_time_to_live_in_seconds: Optional[int] = Field(default=None, ge=1)
    dead_lettering_on_message_expiration: Optional[bool] = None
    enable_batched_operations: Optional[bool] = None
    requires_session: Optional[bool] = None
    forward_to: Optional[str] = None


# ========== Operation Payloads ==========

class CreateQueueRequest(CamelModel):
    """Request model for creating a queue."""

    queue_name: Optional[str] = None
    properties: Optional[QueueOptions] = None


class UpdateQueueRequest(CamelModel):
    """Request model for updating a queue."""

    properties: QueueOptions = Field(default_factory=QueueOptions)


class CreateTopicRequest(CamelModel):
    """Request model for creating a topic."""

    topic_name: Optional[str] = None
    properties: Optional[TopicOptions] = None


class UpdateTopicRequest(CamelModel):
    """Request model for updating a topic."""

    properties: TopicOptions = Field(default_factory=TopicOptions)


class CreateSubscriptionRequest(CamelModel):
    """Request model for creating a subscription."""

    subscription_name: Optional[str] = None
    properties: Optional[SubscriptionOptions] = None


class PeekRequest(CamelModel):
    """Request model for peek and dead-letter peek operations."""

    queue_name: Optional[str] = None
    topic_name: Optional[str] = None
    subscription_name: Optional[str] = None
    max_count: Optional[int] = None


class SendMessageRequest(CamelModel):
    """Request model for sending a message to a queue or topic."""

    queue_name: Optional[str] = None
    topic_name: Optional[str] = None
    message: OutgoingMessage


class PurgeRequest(CamelModel):
    """Request model for purging a queue or its dead-letter sub-queue."""

    queue_name: Optional[str] = None
    purge_dead_letter: bool = False


class ConnectionTestRequest(CamelModel):
    """Request model for connection tests; the descriptor may ride in the body."""

    connection: Optional[Dict[str, Any]] = None
