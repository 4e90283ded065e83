"""
Broker SDK Conversions

Translates between azure-servicebus SDK objects and the gateway's own
models: entity properties and runtime counters into snapshots, option
overlays into SDK keyword arguments, and messages in both directions.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import json
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Union

from azure.servicebus import ServiceBusMessage
from azure.servicebus.amqp import AmqpMessageBodyType
from pydantic import BaseModel

from .constants import (
    DEAD_LETTER_DESCRIPTION_PROPERTY,
    DEAD_LETTER_REASON_PROPERTY,
    JSON_CONTENT_TYPE,
)
from .models import (
    BinaryValue,
    OutgoingMessage,
    QueueProperties,
    ReceivedMessage,
    SubscriptionProperties,
    TopicProperties,
)

# Option fields carried as whole seconds, mapped to their timedelta SDK keyword
_DURATION_FIELDS = {
    "lock_duration_in_seconds": "lock_duration",
    "default_message_time_to_live_in_seconds": "default_message_time_to_live",
    "duplicate_detection_history_time_window_in_seconds": "duplicate_detection_history_time_window",
}

_DAYS_RE = re.compile(r'(\d+)D')
_MONTHS_RE = re.compile(r'(\d+)M')
_YEARS_RE = re.compile(r'(\d+)Y')
_HOURS_RE = re.compile(r'(\d+)H')
_MINUTES_RE = re.compile(r'(\d+)M')
_SECONDS_RE = re.compile(r'(\d+(?:\.\d+)?)S')


# ========== Durations ==========

def parse_iso_duration(duration_str: str) -> int:
    """
    Parse ISO 8601 duration string to seconds.

    Supports formats like:
    - PT60S (60 seconds)
    - PT1M (60 seconds)
    - PT1H (3600 seconds)
    - P14D (1209600 seconds)

    Months and years are approximated as 30 and 365 days.

    Raises:
        ValueError: If the string is not an ISO 8601 duration
    """
    if not duration_str.startswith('P'):
        raise ValueError(f"Invalid ISO 8601 duration: {duration_str}")

    date_part, _, time_part = duration_str[1:].partition('T')
    total_seconds = 0

    if date_part:
        if match := _DAYS_RE.search(date_part):
            total_seconds += int(match.group(1)) * 86400
        if match := _MONTHS_RE.search(date_part):
            total_seconds += int(match.group(1)) * 30 * 86400
        if match := _YEARS_RE.search(date_part):
            total_seconds += int(match.group(1)) * 365 * 86400

    if time_part:
        if match := _HOURS_RE.search(time_part):
            total_seconds += int(match.group(1)) * 3600
        if match := _MINUTES_RE.search(time_part):
            total_seconds += int(match.group(1)) * 60
        if match := _SECONDS_RE.search(time_part):
            total_seconds += int(float(match.group(1)))

    return total_seconds


def to_seconds(value: Union[None, timedelta, int, float, str]) -> Optional[int]:
    """Whole seconds from an SDK duration (timedelta, number, or ISO 8601 text)."""
    if value is None:
        return None
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, (int, float)):
        return int(value)
    return parse_iso_duration(str(value))


def _status(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _count(runtime: Any, attr: str) -> int:
    if runtime is None:
        return 0
    return getattr(runtime, attr, None) or 0


# ========== Entity Snapshots ==========

def queue_from_sdk(props: Any, runtime: Any = None) -> QueueProperties:
    """
    Build a queue snapshot from SDK properties and runtime counters.

    message_count is active + dead-lettered + scheduled.
    """
    active = _count(runtime, "active_message_count")
    dead_letter = _count(runtime, "dead_letter_message_count")
    scheduled = _count(runtime, "scheduled_message_count")

    return QueueProperties(
        name=props.name,
        max_size_in_megabytes=props.max_size_in_megabytes,
        lock_duration_in_seconds=to_seconds(props.lock_duration),
        max_delivery_count=props.max_delivery_count,
        default_message_time_to_live_in_seconds=to_seconds(props.default_message_time_to_live),
        dead_lettering_on_message_expiration=props.dead_lettering_on_message_expiration,
        duplicate_detection_history_time_window_in_seconds=to_seconds(
            props.duplicate_detection_history_time_window
        ),
        enable_batched_operations=props.enable_batched_operations,
        enable_partitioning=props.enable_partitioning,
        requires_session=props.requires_session,
        requires_duplicate_detection=props.requires_duplicate_detection,
        status=_status(props.status),
        message_count=active + dead_letter + scheduled,
        active_message_count=active,
        dead_letter_message_count=dead_letter,
        scheduled_message_count=scheduled,
        transfer_message_count=_count(runtime, "transfer_message_count"),
        transfer_dead_letter_message_count=_count(runtime, "transfer_dead_letter_message_count"),
        size_in_bytes=_count(runtime, "size_in_bytes"),
    )


def topic_from_sdk(props: Any, runtime: Any = None) -> TopicProperties:
    """Build a topic snapshot from SDK properties and runtime counters."""
    return TopicProperties(
        name=props.name,
        max_size_in_megabytes=props.max_size_in_megabytes,
        default_message_time_to_live_in_seconds=to_seconds(props.default_message_time_to_live),
        duplicate_detection_history_time_window_in_seconds=to_seconds(
            props.duplicate_detection_history_time_window
        ),
        enable_batched_operations=props.enable_batched_operations,
        enable_partitioning=props.enable_partitioning,
        requires_duplicate_detection=props.requires_duplicate_detection,
        support_ordering=props.support_ordering,
        status=_status(props.status),
        size_in_bytes=_count(runtime, "size_in_bytes"),
        subscription_count=_count(runtime, "subscription_count"),
        scheduled_message_count=_count(runtime, "scheduled_message_count"),
    )


def subscription_from_sdk(topic_name: str, props: Any, runtime: Any = None) -> SubscriptionProperties:
    """
    Build a subscription snapshot from SDK properties and runtime counters.

    message_count is active + dead-lettered + transfer.
    """
    active = _count(runtime, "active_message_count")
    dead_letter = _count(runtime, "dead_letter_message_count")
    transfer = _count(runtime, "transfer_message_count")

    return SubscriptionProperties(
        topic_name=topic_name,
        subscription_name=props.name,
        max_delivery_count=props.max_delivery_count,
        lock_duration_in_seconds=to_seconds(props.lock_duration),
        default_message_time_to_live_in_seconds=to_seconds(props.default_message_time_to_live),
        dead_lettering_on_message_expiration=props.dead_lettering_on_message_expiration,
        enable_batched_operations=props.enable_batched_operations,
        requires_session=props.requires_session,
        forward_to=props.forward_to,
        status=_status(props.status),
        message_count=active + dead_letter + transfer,
        active_message_count=active,
        dead_letter_message_count=dead_letter,
        transfer_message_count=transfer,
        transfer_dead_letter_message_count=_count(runtime, "transfer_dead_letter_message_count"),
    )


# ========== Option Overlays ==========

def options_to_sdk(options: Optional[BaseModel]) -> Dict[str, Any]:
    """SDK keyword arguments for the fields set on an options overlay."""
    if options is None:
        return {}
    kwargs: Dict[str, Any] = {}
    for field, value in options.model_dump(exclude_none=True).items():
        if field in _DURATION_FIELDS:
            kwargs[_DURATION_FIELDS[field]] = timedelta(seconds=value)
        else:
            kwargs[field] = value
    return kwargs


def apply_options(sdk_props: Any, options: Optional[BaseModel]) -> Any:
    """Overlay set option fields onto fetched SDK properties, in place."""
    for attr, value in options_to_sdk(options).items():
        setattr(sdk_props, attr, value)
    return sdk_props


# ========== Messages ==========

def _wire_value(value: Any) -> Any:
    """JSON-safe rendition of an AMQP value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryValue.from_bytes(bytes(value))
    if isinstance(value, Mapping):
        return {_text_key(k): _wire_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_wire_value(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, timedelta)):
        return str(value)
    return value


def _text_key(key: Any) -> str:
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="replace")
    return str(key)


def body_from_sdk(msg: Any) -> Any:
    """
    Decode a received message body.

    Data sections are joined and decoded as UTF-8 text, or carried as binary
    when they are not valid UTF-8. Value and sequence bodies pass through.
    """
    body = msg.body
    if body is None:
        return None

    body_type = getattr(msg, "body_type", AmqpMessageBodyType.DATA)
    if body_type == AmqpMessageBodyType.DATA:
        data = bytes(body) if isinstance(body, (bytes, bytearray)) else b"".join(body)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return BinaryValue.from_bytes(data)
    if body_type == AmqpMessageBodyType.SEQUENCE:
        return [_wire_value(section) for section in body]
    return _wire_value(body)


def properties_from_sdk(properties: Optional[Mapping[Any, Any]]) -> Dict[str, Any]:
    """Application properties with text keys and wire-representable values."""
    result: Dict[str, Any] = {}
    for key, value in (properties or {}).items():
        if isinstance(value, (bytes, bytearray)):
            result[_text_key(key)] = BinaryValue.from_bytes(bytes(value))
        elif value is None or isinstance(value, (bool, int, float, str)):
            result[_text_key(key)] = value
        else:
            result[_text_key(key)] = str(value)
    return {k: v for k, v in result.items() if v is not None}


def message_from_sdk(msg: Any) -> ReceivedMessage:
    """
    Snapshot a peeked SDK message.

    Dead-letter metadata comes from the broker's own fields, falling back to
    the application properties some producers set.
    """
    properties = properties_from_sdk(msg.application_properties)
    ttl = msg.time_to_live

    reason = getattr(msg, "dead_letter_reason", None) or properties.get(DEAD_LETTER_REASON_PROPERTY)
    description = (
        getattr(msg, "dead_letter_error_description", None)
        or properties.get(DEAD_LETTER_DESCRIPTION_PROPERTY)
    )

    return ReceivedMessage(
        body=body_from_sdk(msg),
        message_id=_optional_text(msg.message_id),
        content_type=msg.content_type,
        correlation_id=_optional_text(msg.correlation_id),
        session_id=msg.session_id,
        reply_to=msg.reply_to,
        reply_to_session_id=msg.reply_to_session_id,
        subject=msg.subject,
        time_to_live=ttl.total_seconds() * 1000 if ttl else None,
        to=msg.to,
        application_properties=properties,
        delivery_count=msg.delivery_count,
        enqueued_time_utc=msg.enqueued_time_utc,
        locked_until_utc=getattr(msg, "locked_until_utc", None),
        sequence_number=msg.sequence_number,
        dead_letter_reason=_optional_text(reason),
        dead_letter_error_description=_optional_text(description),
        dead_letter_source=getattr(msg, "dead_letter_source", None),
    )


def _optional_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, BinaryValue):
        return value.to_bytes().decode("utf-8", errors="replace")
    return str(value)


def body_to_sdk(body: Any) -> Union[str, bytes]:
    """Encode an outgoing body: text as-is, binary as bytes, anything else as JSON."""
    if isinstance(body, str):
        return body
    if isinstance(body, BinaryValue):
        return body.to_bytes()
    return json.dumps(body)


def message_to_sdk(message: OutgoingMessage) -> ServiceBusMessage:
    """
    Build an SDK message from a caller-constructed one.

    JSON documents are sent with application/json unless the caller set a
    content type. time_to_live is converted from milliseconds and truncated
    to whole seconds by the SDK.
    """
    content_type = message.content_type
    if content_type is None and not isinstance(message.body, (str, BinaryValue)):
        content_type = JSON_CONTENT_TYPE

    properties = {
        key: value.to_bytes() if isinstance(value, BinaryValue) else value
        for key, value in message.application_properties.items()
    }

    return ServiceBusMessage(
        body_to_sdk(message.body),
        application_properties=properties or None,
        session_id=message.session_id,
        message_id=message.message_id,
        content_type=content_type,
        correlation_id=message.correlation_id,
        subject=message.subject,
        to=message.to,
        reply_to=message.reply_to,
        reply_to_session_id=message.reply_to_session_id,
        time_to_live=timedelta(milliseconds=message.time_to_live) if message.time_to_live else None,
    )
