"""
odata_layer.core.errors - Exception taxonomy
=============================================

All exceptions raised by this package derive from ``ODataError`` so callers
can catch library failures in one place.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ODataError(Exception):
    """Base class for every error raised by odata_layer."""


class MissingFieldContext(ODataError):
    """A filter condition was added before ``where()`` named a field."""


class UnsupportedValue(ODataError, TypeError):
    """A Python value has no OData literal representation."""


class InvalidArgument(ODataError, ValueError):
    """A query option or configuration value was rejected."""


class MalformedResponse(ODataError, ValueError):
    """
    A response body could not be decoded or lacks a required structure.

    Attributes
    ----------
    raw_body : str
        The offending body text, kept for diagnostics.
    """

    def __init__(self, message: str, raw_body: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_body = raw_body or ""


class SerializationError(ODataError):
    """A request payload could not be encoded as JSON."""

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.data = data


class ODataUpstreamError(ODataError):
    """
    Exception raised when the OData service answers with an error status.

    Attributes
    ----------
    status : int
        HTTP status code
    body : str
        Response body (truncated for display)
    url : str
        The URL that was called
    headers : dict
        Response headers
    error : ErrorDetail or None
        Normalized error payload, when the body carried one
    """

    def __init__(
        self,
        status: int,
        body: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        error: Any = None,
    ):
        snippet = (body or "")[:1200]
        super().__init__(f"OData upstream error {status} for {url}: {snippet}")
        self.status = status
        self.body = body or ""
        self.url = url
        self.headers = headers or {}
        self.error = error


class EntityNotFound(ODataUpstreamError):
    """The service answered 404 for the requested resource."""
