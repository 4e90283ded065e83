"""
Error Response Models for the Gateway API

Standardized error response format for API endpoints.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetails(BaseModel):
    """Additional error context details."""

    entity_type: Optional[str] = Field(None, description="Type of entity (queue, topic, subscription)")
    entity_name: Optional[str] = Field(None, description="Name of entity")
    operation: Optional[str] = Field(None, description="Operation that failed")
    reason: Optional[str] = Field(None, description="Failure reason")
    correlation_id: Optional[str] = Field(None, description="Request correlation identifier")

    model_config = ConfigDict(extra="allow")


class ErrorInfo(BaseModel):
    """Error information in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: ErrorDetails = Field(default_factory=ErrorDetails, description="Additional context")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "code": "EntityNotFound",
            "message": "Topic 'orders-events' not found",
            "details": {
                "entity_type": "topic",
                "entity_name": "orders-events",
                "correlation_id": "abc-123"
            }
        }
    })


class ErrorResponse(BaseModel):
    """Standard API error response format."""

    error: ErrorInfo = Field(..., description="Error information")

    @classmethod
    def from_exception(cls, exc: Exception, correlation_id: Optional[str] = None) -> "ErrorResponse":
        """
        Create ErrorResponse from exception.

        Args:
            exc: Exception to convert
            correlation_id: Optional correlation ID to include

        Returns:
            ErrorResponse instance
        """
        from .exceptions import GatewayError

        details: Dict[str, Any] = {}
        if isinstance(exc, GatewayError):
            error_dict = exc.to_dict()["error"]
            code = error_dict["code"]
            message = error_dict["message"]
            details.update(error_dict.get("details") or {})
        else:
            code = "InternalError"
            message = str(exc) or "An unexpected error occurred"

        if correlation_id:
            details["correlation_id"] = correlation_id

        return cls(error=ErrorInfo(code=code, message=message, details=ErrorDetails(**details)))

    def to_content(self) -> Dict[str, Any]:
        """JSON body, omitting empty detail fields."""
        return self.model_dump(mode="json", exclude_none=True)
