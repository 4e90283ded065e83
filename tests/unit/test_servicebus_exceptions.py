"""
Unit Tests for Gateway Exceptions

Tests for the error taxonomy and the translation of broker SDK failures
into it.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import pytest
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.servicebus.exceptions import (
    MessageSizeExceededError as SdkMessageSizeExceededError,
    MessagingEntityNotFoundError,
    ServiceBusAuthenticationError,
    ServiceBusConnectionError,
)
from pydantic import BaseModel, ValidationError as PydanticValidationError

from sbexplorer.services.servicebus.broker_errors import broker_errors, translate_broker_error
from sbexplorer.services.servicebus.exceptions import (
    GatewayError,
    ValidationError,
    AddressingError,
    MessageSizeExceededError,
    ConnectivityError,
    NotFoundError,
    ConflictError,
    BrokerOperationError,
)


def _http_error(status_code: int, message: str) -> HttpResponseError:
    error = HttpResponseError(message=message)
    error.status_code = status_code
    return error


class TestGatewayError:
    """Tests for base GatewayError class."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = GatewayError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.error_code == "GatewayError"
        assert error.details == {}

    def test_error_with_custom_code(self):
        """Test error with custom code."""
        error = GatewayError("Custom error", error_code="CustomCode", details={"key": "value"})
        assert error.error_code == "CustomCode"
        assert error.details == {"key": "value"}

    def test_to_dict(self):
        """Test conversion to API response shape."""
        error = GatewayError("Test error", error_code="TestCode", details={"foo": "bar"})

        assert error.to_dict() == {
            "error": {
                "code": "TestCode",
                "message": "Test error",
                "details": {"foo": "bar"}
            }
        }


class TestRequestErrors:
    """Tests for locally detected request errors."""

    def test_validation_error(self):
        """Test validation error code."""
        error = ValidationError("Queue name is required")
        assert error.error_code == "ValidationError"
        assert isinstance(error, GatewayError)

    def test_addressing_error_is_validation_error(self):
        """Test that addressing failures are validation failures."""
        error = AddressingError("no address", topic_name="orders")
        assert isinstance(error, ValidationError)
        assert error.error_code == "InvalidAddress"
        assert error.details == {"topic_name": "orders"}

    def test_message_size_exceeded_is_validation_error(self):
        """Test that size rejections are client errors."""
        error = MessageSizeExceededError("too big")
        assert isinstance(error, ValidationError)
        assert error.error_code == "MessageSizeExceeded"

    def test_from_pydantic(self):
        """Test summarizing a pydantic validation failure."""
        class Sample(BaseModel):
            count: int

        with pytest.raises(PydanticValidationError) as exc_info:
            Sample(count="many")

        error = ValidationError.from_pydantic(exc_info.value, "request")

        assert error.message.startswith("Invalid request: count:")
        assert error.details == {"fields": ["count"]}


class TestBrokerErrors:
    """Tests for broker-side error classes."""

    def test_not_found_default_message(self):
        """Test default not-found message and details."""
        error = NotFoundError("topic", "orders-events")
        assert error.message == "Topic 'orders-events' not found"
        assert error.error_code == "EntityNotFound"
        assert error.details == {"entity_type": "topic", "entity_name": "orders-events"}

    def test_conflict_default_message(self):
        """Test default conflict message."""
        error = ConflictError("queue", "orders")
        assert error.message == "Queue 'orders' already exists"
        assert error.error_code == "EntityAlreadyExists"

    def test_connectivity_error(self):
        """Test connectivity error keeps its reason."""
        error = ConnectivityError("ClientAuthenticationError", "Unauthorized access")
        assert error.message == "Unauthorized access"
        assert error.details == {"reason": "ClientAuthenticationError"}

    def test_broker_operation_error(self):
        """Test broker operation error carries the operation."""
        error = BrokerOperationError("send_message", "Quota exceeded")
        assert error.details == {"operation": "send_message"}


class TestTranslateBrokerError:
    """Tests for SDK exception classification."""

    def test_resource_not_found(self):
        """Test management-plane not found."""
        error = translate_broker_error(
            ResourceNotFoundError("Entity 'orders' was not found."), "get_queue", "queue", "orders"
        )
        assert isinstance(error, NotFoundError)
        assert error.message == "Entity 'orders' was not found."
        assert error.details["entity_name"] == "orders"

    def test_messaging_entity_not_found(self):
        """Test data-plane not found."""
        error = translate_broker_error(
            MessagingEntityNotFoundError(message="The messaging entity 'orders' could not be found."),
            "peek_messages", "queue", "orders",
        )
        assert isinstance(error, NotFoundError)
        assert "could not be found" in error.message

    def test_resource_exists(self):
        """Test creation collision."""
        error = translate_broker_error(
            ResourceExistsError("Entity 'orders' already exists."), "create_queue", "queue", "orders"
        )
        assert isinstance(error, ConflictError)
        assert error.message == "Entity 'orders' already exists."

    def test_message_size_exceeded(self):
        """Test size rejection."""
        error = translate_broker_error(
            SdkMessageSizeExceededError(message="Message is too large"), "send_message", "queue", "orders"
        )
        assert isinstance(error, MessageSizeExceededError)
        assert error.details == {"operation": "send_message"}

    @pytest.mark.parametrize("exc", [
        ClientAuthenticationError("Unauthorized"),
        ServiceRequestError("Name or service not known"),
        ServiceBusAuthenticationError(message="Invalid signature"),
        ServiceBusConnectionError(message="Connection refused"),
    ])
    def test_connectivity_failures(self, exc):
        """Test authentication and transport failures."""
        error = translate_broker_error(exc, "list_queues")
        assert isinstance(error, ConnectivityError)
        assert error.details["reason"] == type(exc).__name__

    @pytest.mark.parametrize("status_code,expected", [
        (404, NotFoundError),
        (409, ConflictError),
        (401, ConnectivityError),
        (403, ConnectivityError),
        (400, ValidationError),
        (500, BrokerOperationError),
    ])
    def test_http_status_codes(self, status_code, expected):
        """Test classification of bare HTTP failures by status."""
        error = translate_broker_error(_http_error(status_code, "broker says no"), "create_topic", "topic", "t")
        assert type(error) is expected
        assert error.message == "broker says no"

    def test_unknown_exception(self):
        """Test that anything else is a broker operation error."""
        error = translate_broker_error(RuntimeError("boom"), "purge_queue")
        assert isinstance(error, BrokerOperationError)
        assert error.message == "boom"
        assert error.details == {"operation": "purge_queue"}

    def test_gateway_error_passes_through(self):
        """Test that already-classified errors are returned unchanged."""
        original = ValidationError("bad")
        assert translate_broker_error(original, "send_message") is original


class TestBrokerErrorsContext:
    """Tests for the broker_errors context manager."""

    def test_translates_and_chains(self):
        """Test that SDK errors are re-raised as gateway errors."""
        cause = ResourceNotFoundError("missing")

        with pytest.raises(NotFoundError) as exc_info:
            with broker_errors("get_topic", "topic", "orders-events"):
                raise cause

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.details["entity_type"] == "topic"

    def test_gateway_errors_propagate_unchanged(self):
        """Test that gateway errors are not re-wrapped."""
        original = ConnectivityError("SessionNotOpen", "closed")

        with pytest.raises(ConnectivityError) as exc_info:
            with broker_errors("get_queue", "queue", "orders"):
                raise original

        assert exc_info.value is original

    def test_no_error(self):
        """Test that a clean block passes through."""
        with broker_errors("get_queue"):
            value = 42
        assert value == 42
