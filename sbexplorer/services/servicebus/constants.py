"""
Service Bus Gateway Constants

Centralized constants for error messages and broker addressing.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

# Error message templates
ERROR_CONNECTION_REQUIRED = "Connection data is required"
ERROR_CONNECTION_MALFORMED = "Connection data is not valid JSON: {reason}"
ERROR_CONNECTION_INCOMPLETE = "Either connection string or namespace with Azure AD must be provided"
ERROR_ADDRESS_REQUIRED = "Either queueName or (topicName and subscriptionName) is required"
ERROR_SEND_TARGET_REQUIRED = "Either queueName or topicName is required"
ERROR_NAME_REQUIRED = "{entity_type} name is required"
ERROR_BODY_MALFORMED = "Request body is not valid JSON: {reason}"
ERROR_SESSION_CLOSED = "Broker session is already closed"

# Namespace host suffix for AAD descriptors
SERVICEBUS_DOMAIN_SUFFIX = ".servicebus.windows.net"

# Application property names some producers use for dead-letter metadata
DEAD_LETTER_REASON_PROPERTY = "DeadLetterReason"
DEAD_LETTER_DESCRIPTION_PROPERTY = "DeadLetterErrorDescription"

JSON_CONTENT_TYPE = "application/json"
