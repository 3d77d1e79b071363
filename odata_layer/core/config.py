"""
odata_layer.core.config - Connection configuration
===================================================

Protocol version selection, authentication and transport settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from odata_layer.core.errors import InvalidArgument


class ProtocolVersion(str, Enum):
    """
    OData protocol version spoken by a service.

    The version is always chosen explicitly by the caller; nothing in this
    package sniffs it from responses.
    """

    V2 = "2.0"
    V4 = "4.0"

    @classmethod
    def parse(cls, value: Any) -> "ProtocolVersion":
        """
        Coerce a user-supplied version marker.

        Examples
        --------
        >>> ProtocolVersion.parse("v2")
        <ProtocolVersion.V2: '2.0'>
        >>> ProtocolVersion.parse(4)
        <ProtocolVersion.V4: '4.0'>
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().lstrip("v")
        if text in ("2", "2.0"):
            return cls.V2
        if text in ("4", "4.0", "4.01"):
            return cls.V4
        raise InvalidArgument(f"Unsupported OData version: {value!r}. Only 2 and 4 are supported.")

    @property
    def headers(self) -> Dict[str, str]:
        """Version negotiation headers sent with every request."""
        if self is ProtocolVersion.V2:
            return {"DataServiceVersion": "2.0", "MaxDataServiceVersion": "2.0"}
        return {"OData-Version": "4.0", "OData-MaxVersion": "4.0"}


@dataclass
class ODataAuth:
    """
    Authentication configuration handed to the HTTP session.

    Parameters
    ----------
    kind : str
        Either "basic" or "bearer"
    value : tuple or str
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str  # "basic" | "bearer"
    value: Union[Tuple[str, str], str]  # (user, pass) or access_token


@dataclass
class ODataConfig:
    """
    Connection configuration for an OData service root.

    Parameters
    ----------
    base_url : str
        Base URL services hang off, e.g. "https://host/odata/"
    version : ProtocolVersion
        Protocol version of the target services (default: V4)
    auth : ODataAuth, optional
        Authentication configuration
    lang : str
        Language sent as Accept-Language (default: "EN")
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Number of retry attempts (default: 3)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value
    default_params : dict
        Query parameters merged into every request (e.g. sap-client)

    Examples
    --------
    >>> cfg = ODataConfig(
    ...     base_url="https://services.example.com/odata/",
    ...     version=ProtocolVersion.V2,
    ...     auth=ODataAuth("basic", ("USER", "PASS")),
    ...     default_params={"sap-client": "100"},
    ... )
    """
    base_url: str
    version: ProtocolVersion = ProtocolVersion.V4
    auth: Optional[ODataAuth] = None
    lang: str = "EN"
    timeout: float = 60.0
    retries: int = 3
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "odata-layer/0.3"
    default_params: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.version = ProtocolVersion.parse(self.version)
