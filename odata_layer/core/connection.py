"""
odata_layer.core.connection - High-level connection management
===============================================================

Provides a ConnectionContext that resolves configuration from arguments,
environment variables and an optional .env file.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Optional, Union

from dotenv import find_dotenv, load_dotenv

from odata_layer.core.config import ODataAuth, ODataConfig, ProtocolVersion
from odata_layer.core.session import ODataSession

if TYPE_CHECKING:
    from odata_layer.odata.service import ODataService


class ConnectionContext:
    """
    High-level connection manager for OData services.

    Supports environment variable configuration and context manager usage.

    Parameters
    ----------
    base_url : str, optional
        OData base URL. Falls back to ODATA_BASE_URL env var.
    version : str or ProtocolVersion, optional
        Protocol version. Falls back to ODATA_VERSION env var, then V4.
    user : str, optional
        Username for basic auth. Falls back to ODATA_USER env var.
    password : str, optional
        Password for basic auth. Falls back to ODATA_PASS env var.
    bearer_token : str, optional
        Bearer token. Falls back to ODATA_BEARER_TOKEN env var.
    verify : bool, optional
        SSL verification. Falls back to ODATA_VERIFY_TLS env var.
    timeout : float, optional
        Request timeout in seconds. Falls back to ODATA_TIMEOUT env var.
    load_env : bool
        Load a .env file (searched from the working directory upwards)
        before reading the environment.

    Examples
    --------
    >>> with ConnectionContext("https://host/odata/", version="v2") as conn:
    ...     svc = conn.get_service("NORTHWIND_SRV")
    ...     customers = svc.find("Customers", lambda q: q.top(10))
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        version: Optional[Union[str, ProtocolVersion]] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify: Optional[bool] = None,
        timeout: Optional[float] = None,
        *,
        load_env: bool = False,
    ) -> None:
        if load_env:
            load_dotenv(find_dotenv(usecwd=True))

        self._base_url = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        self._version = ProtocolVersion.parse(version or os.environ.get("ODATA_VERSION", "4"))
        self._user = user or os.environ.get("ODATA_USER", "")
        self._password = password or os.environ.get("ODATA_PASS", "")
        self._bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        if timeout is not None:
            self._timeout = float(timeout)
        else:
            self._timeout = float(os.environ.get("ODATA_TIMEOUT", "60"))

        if not self._base_url or self._base_url == "/":
            raise ValueError(
                "Missing base_url. Set ODATA_BASE_URL environment variable "
                "or pass base_url parameter."
            )

        self._session: Optional[ODataSession] = None

    @property
    def session(self) -> ODataSession:
        """Get or create the underlying OData session."""
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_auth(self) -> Optional[ODataAuth]:
        if self._bearer_token:
            return ODataAuth("bearer", self._bearer_token)
        if self._user and self._password:
            return ODataAuth("basic", (self._user, self._password))
        return None

    def _build_session(self) -> ODataSession:
        cfg = ODataConfig(
            base_url=self._base_url,
            version=self._version,
            auth=self._build_auth(),
            verify=self._verify,
            timeout=self._timeout,
        )
        return ODataSession(cfg)

    def close(self) -> None:
        """Close the connection."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_service(self, service_path: str = "") -> "ODataService":
        """
        Get an ODataService bound to a service below the base URL.

        Parameters
        ----------
        service_path : str
            Service root relative to the base URL, e.g. "V4/TripPinService"

        Returns
        -------
        ODataService
            Service client speaking the configured protocol version
        """
        # Import here to avoid circular imports
        from odata_layer.odata.service import ODataService
        return ODataService(self.session, service_path)

    @property
    def base_url(self) -> str:
        """The configured base URL."""
        return self._base_url

    @property
    def version(self) -> ProtocolVersion:
        """The configured protocol version."""
        return self._version
