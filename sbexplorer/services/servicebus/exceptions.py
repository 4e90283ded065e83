"""
Service Bus Gateway Exception Hierarchy

Error taxonomy for gateway operations with error codes and context.
Every broker failure is surfaced under one of these categories with the
broker's own message text.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'EntityNotFound')
        details: Additional context (entity_type, entity_name, etc.)
    """

    error_code: str = "GatewayError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for API responses."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# ========== Request Errors ==========

class ValidationError(GatewayError):
    """
    Malformed or missing required input.

    Raised before any network call whenever the request can be rejected
    locally; also used for broker rejections of invalid input.
    """
    error_code = "ValidationError"

    @classmethod
    def from_pydantic(cls, exc: Any, subject: str) -> "ValidationError":
        """
        Summarize a pydantic ValidationError as a single gateway error.

        Args:
            exc: pydantic.ValidationError instance
            subject: What was being validated (e.g. "connection data")
        """
        parts = []
        fields = []
        for err in exc.errors():
            location = ".".join(str(p) for p in err["loc"])
            fields.append(location)
            parts.append(f"{location or subject}: {err['msg']}")
        return cls(f"Invalid {subject}: {'; '.join(parts)}", details={"fields": fields})


class AddressingError(ValidationError):
    """Raised when queue vs. topic+subscription addressing cannot be resolved."""
    error_code = "InvalidAddress"

    def __init__(
        self,
        message: str,
        queue_name: Optional[str] = None,
        topic_name: Optional[str] = None,
        subscription_name: Optional[str] = None,
    ):
        details = {
            key: value for key, value in {
                "queue_name": queue_name,
                "topic_name": topic_name,
                "subscription_name": subscription_name,
            }.items() if value
        }
        super().__init__(message, details=details)


class MessageSizeExceededError(ValidationError):
    """Raised when the broker rejects a message for exceeding its size limit."""
    error_code = "MessageSizeExceeded"


# ========== Broker Errors ==========

class ConnectivityError(GatewayError):
    """Raised when a broker session cannot be opened or authenticated."""
    error_code = "ConnectivityError"

    def __init__(self, reason: str, message: Optional[str] = None):
        message = message or reason
        super().__init__(message, details={"reason": reason})


class NotFoundError(GatewayError):
    """Raised when a referenced queue, topic or subscription does not exist."""
    error_code = "EntityNotFound"

    def __init__(
        self,
        entity_type: str,
        entity_name: str,
        message: Optional[str] = None
    ):
        message = message or f"{entity_type.capitalize()} '{entity_name}' not found"
        details = {"entity_type": entity_type, "entity_name": entity_name}
        super().__init__(message, details=details)


class ConflictError(GatewayError):
    """Raised when an entity-creation request collides with an existing entity."""
    error_code = "EntityAlreadyExists"

    def __init__(
        self,
        entity_type: str,
        entity_name: str,
        message: Optional[str] = None
    ):
        message = message or f"{entity_type.capitalize()} '{entity_name}' already exists"
        details = {"entity_type": entity_type, "entity_name": entity_name}
        super().__init__(message, details=details)


class BrokerOperationError(GatewayError):
    """Any other broker-reported failure (quota exceeded, malformed message, ...)."""
    error_code = "BrokerOperationError"

    def __init__(self, operation: str, message: str, **context: Any):
        super().__init__(message, details={"operation": operation, **context})
