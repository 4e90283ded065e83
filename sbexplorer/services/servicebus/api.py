"""
Gateway API Endpoints.

FastAPI endpoints for connection testing, entity management and message
operations. The connection descriptor travels out-of-band in a dedicated
header (``x-connection`` by default), as JSON; operation parameters travel
in the path and the JSON body.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Request

from .constants import ERROR_BODY_MALFORMED
from .dispatcher import RequestDispatcher
from .exceptions import ValidationError


# Create router
router = APIRouter(prefix="/api", tags=["service-bus"])

# Note: Exception handlers must be registered at the FastAPI app level,
# not the router level. Call register_exception_handlers(app) when
# including this router in your FastAPI app.


def _dispatcher(request: Request) -> RequestDispatcher:
    return request.app.state.dispatcher


def _connection(request: Request) -> Optional[str]:
    """Raw descriptor from the connection header, if present."""
    header = _dispatcher(request).settings.connection_header
    return request.headers.get(header)


async def _body(request: Request) -> Optional[Any]:
    """Parsed JSON body; None when the body is empty."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(ERROR_BODY_MALFORMED.format(reason=str(e)))


# ========== Connections ==========

@router.post("/connections/test")
async def test_connection(request: Request) -> dict:
    """
    Test a connection descriptor.

    The descriptor may be supplied in the body as ``connection`` or in the
    connection header. Always answers 200 with ``{"valid": bool}``.
    """
    try:
        payload = await _body(request)
    except ValidationError:
        payload = None
    return await _dispatcher(request).test_connection(_connection(request), payload)


# ========== Queues ==========

@router.get("/queues")
async def list_queues(request: Request) -> dict:
    """List all queues with runtime counters."""
    return await _dispatcher(request).list_queues(_connection(request))


@router.post("/queues/create")
async def create_queue(request: Request) -> dict:
    """
    Create a queue.

    Body: ``{"queueName": str, "properties": {...}?}``

    Raises:
        400 Bad Request: Missing or invalid queue name
        502 Bad Gateway: Queue already exists
    """
    return await _dispatcher(request).create_queue(_connection(request), await _body(request))


@router.get("/queues/{queue_name}")
async def get_queue(queue_name: str, request: Request) -> dict:
    """Get a queue with runtime counters."""
    return await _dispatcher(request).get_queue(_connection(request), queue_name)


@router.put("/queues/{queue_name}")
async def update_queue(queue_name: str, request: Request) -> dict:
    """Update a queue. Body: ``{"properties": {...}}``"""
    return await _dispatcher(request).update_queue(
        _connection(request), queue_name, await _body(request)
    )


@router.delete("/queues/{queue_name}")
async def delete_queue(queue_name: str, request: Request) -> dict:
    """Delete a queue."""
    return await _dispatcher(request).delete_queue(_connection(request), queue_name)


# ========== Topics ==========

@router.get("/topics")
async def list_topics(request: Request) -> dict:
    """List all topics with runtime counters."""
    return await _dispatcher(request).list_topics(_connection(request))


@router.post("/topics/create")
async def create_topic(request: Request) -> dict:
    """
    Create a topic.

    Body: ``{"topicName": str, "properties": {...}?}``

    Raises:
        400 Bad Request: Missing or invalid topic name
        502 Bad Gateway: Topic already exists
    """
    return await _dispatcher(request).create_topic(_connection(request), await _body(request))


@router.get("/topics/{topic_name}")
async def get_topic(topic_name: str, request: Request) -> dict:
    """Get a topic with runtime counters."""
    return await _dispatcher(request).get_topic(_connection(request), topic_name)


@router.put("/topics/{topic_name}")
async def update_topic(topic_name: str, request: Request) -> dict:
    """Update a topic. Body: ``{"properties": {...}}``"""
    return await _dispatcher(request).update_topic(
        _connection(request), topic_name, await _body(request)
    )


@router.delete("/topics/{topic_name}")
async def delete_topic(topic_name: str, request: Request) -> dict:
    """Delete a topic and its subscriptions."""
    return await _dispatcher(request).delete_topic(_connection(request), topic_name)


# ========== Subscriptions ==========

@router.get("/topics/{topic_name}/subscriptions")
async def list_subscriptions(topic_name: str, request: Request) -> dict:
    """
    List the subscriptions of a topic.

    Raises:
        502 Bad Gateway: Topic not found
    """
    return await _dispatcher(request).list_subscriptions(_connection(request), topic_name)


@router.post("/topics/{topic_name}/subscriptions/create")
async def create_subscription(topic_name: str, request: Request) -> dict:
    """Create a subscription. Body: ``{"subscriptionName": str, "properties": {...}?}``"""
    return await _dispatcher(request).create_subscription(
        _connection(request), topic_name, await _body(request)
    )


@router.get("/topics/{topic_name}/subscriptions/{subscription_name}")
async def get_subscription(topic_name: str, subscription_name: str, request: Request) -> dict:
    """Get a subscription with runtime counters."""
    return await _dispatcher(request).get_subscription(
        _connection(request), topic_name, subscription_name
    )


# ========== Messages ==========

@router.post("/messages/peek")
async def peek_messages(request: Request) -> dict:
    """
    Peek messages without locking or consuming them.

    Body: ``{"queueName": str}`` or ``{"topicName": str, "subscriptionName": str}``,
    plus optional ``maxCount`` (default 10, clamped to [1, 1000]).
    """
    return await _dispatcher(request).peek_messages(_connection(request), await _body(request))


@router.post("/messages/deadletter")
async def peek_dead_letter_messages(request: Request) -> dict:
    """Peek the dead-letter sub-queue. Same body as /messages/peek."""
    return await _dispatcher(request).peek_dead_letter_messages(
        _connection(request), await _body(request)
    )


@router.post("/messages/send")
async def send_message(request: Request) -> dict:
    """
    Send one message.

    Body: ``{"queueName": str}`` or ``{"topicName": str}``, plus ``message``.

    Raises:
        400 Bad Request: Missing target or malformed message
        413 Content Too Large: Broker rejected the message size
    """
    return await _dispatcher(request).send_message(_connection(request), await _body(request))


@router.post("/messages/purge")
async def purge_queue(request: Request) -> dict:
    """
    Remove all messages from a queue's main or dead-letter sub-queue.

    Body: ``{"queueName": str, "purgeDeadLetter": bool?}``
    """
    return await _dispatcher(request).purge_queue(_connection(request), await _body(request))
