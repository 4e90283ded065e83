"""
Connection Descriptor Resolution

Turns a raw, client-supplied connection descriptor into a typed, immutable
value. Resolution is pure: no I/O, no credential checks. Credentials are
validated by the broker SDK when a session is opened.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import json
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ConfigDict, Field, ValidationError as PydanticValidationError

from .constants import (
    ERROR_CONNECTION_INCOMPLETE,
    ERROR_CONNECTION_MALFORMED,
    ERROR_CONNECTION_REQUIRED,
    SERVICEBUS_DOMAIN_SUFFIX,
)
from .exceptions import ValidationError
from .models import CamelModel


class AuthMode(str, Enum):
    """How a session authenticates against the namespace."""
    CONNECTION_STRING = "connection_string"
    AZURE_AD = "azure_ad"


class ConnectionDescriptor(CamelModel):
    """
    How to reach a Service Bus namespace.

    Either an opaque connection string, or an Azure AD namespace with optional
    tenant and client ids. The Azure AD form wins when `use_azure_ad` is set
    and a namespace is present.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    connection_string: Optional[str] = Field(default=None, repr=False)
    namespace: Optional[str] = None
    use_azure_ad: bool = Field(default=False, alias="useAzureAD")
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def auth_mode(self) -> Optional[AuthMode]:
        """Resolved authentication variant, or None when neither is complete."""
        if self.use_azure_ad and self.namespace:
            return AuthMode.AZURE_AD
        if self.connection_string:
            return AuthMode.CONNECTION_STRING
        return None

    @property
    def fully_qualified_namespace(self) -> Optional[str]:
        """Namespace host name, e.g. 'contoso.servicebus.windows.net'."""
        if not self.namespace:
            return None
        if "." in self.namespace:
            return self.namespace
        return f"{self.namespace}{SERVICEBUS_DOMAIN_SUFFIX}"

    @property
    def label(self) -> str:
        """Short, secret-free name for logs."""
        if self.name:
            return self.name
        if self.namespace:
            return self.namespace
        return self.id or "<unnamed>"


RawDescriptor = Union[None, str, bytes, Mapping[str, Any], ConnectionDescriptor]


def resolve_descriptor(raw: RawDescriptor) -> ConnectionDescriptor:
    """
    Resolve a raw descriptor into a typed ConnectionDescriptor.

    Args:
        raw: JSON text (as carried in the connection header), a mapping,
            or an already-typed descriptor

    Returns:
        ConnectionDescriptor with a resolvable auth variant

    Raises:
        ValidationError: If the descriptor is absent, malformed, or lacks the
            fields required by its auth variant
    """
    if isinstance(raw, ConnectionDescriptor):
        descriptor = raw
    else:
        data = _load(raw)
        try:
            descriptor = ConnectionDescriptor.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "connection data")

    if descriptor.auth_mode is None:
        raise ValidationError(ERROR_CONNECTION_INCOMPLETE)
    return descriptor


def _load(raw: RawDescriptor) -> Dict[str, Any]:
    """Decode header text into a mapping."""
    if raw is None:
        raise ValidationError(ERROR_CONNECTION_REQUIRED)

    if isinstance(raw, Mapping):
        if not raw:
            raise ValidationError(ERROR_CONNECTION_REQUIRED)
        return dict(raw)

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")

    if not raw.strip():
        raise ValidationError(ERROR_CONNECTION_REQUIRED)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(ERROR_CONNECTION_MALFORMED.format(reason=exc.msg))

    if not isinstance(data, dict):
        raise ValidationError(ERROR_CONNECTION_MALFORMED.format(reason="expected a JSON object"))
    return data
