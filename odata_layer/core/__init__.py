"""
odata_layer.core - Configuration, errors and transport
======================================================

- ProtocolVersion: V2/V4 selection and version headers
- ODataAuth / ODataConfig: Authentication and connection configuration
- ODataSession: HTTP session with retries, version headers and error mapping
- ConnectionContext: Environment-driven connection manager
- Exception taxonomy rooted at ODataError

"""

from odata_layer.core.config import ODataAuth, ODataConfig, ProtocolVersion
from odata_layer.core.errors import (
    EntityNotFound,
    InvalidArgument,
    MalformedResponse,
    MissingFieldContext,
    ODataError,
    ODataUpstreamError,
    SerializationError,
    UnsupportedValue,
)
from odata_layer.core.session import HttpResponse, ODataSession
from odata_layer.core.connection import ConnectionContext

__all__ = [
    "ProtocolVersion",
    "ODataAuth",
    "ODataConfig",
    "HttpResponse",
    "ODataSession",
    "ConnectionContext",
    "ODataError",
    "MissingFieldContext",
    "UnsupportedValue",
    "InvalidArgument",
    "MalformedResponse",
    "SerializationError",
    "ODataUpstreamError",
    "EntityNotFound",
]
