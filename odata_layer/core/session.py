"""
odata_layer.core.session - HTTP session for OData services
===========================================================

The transport collaborator of the package:
- Basic and Bearer token authentication
- Automatic retry with exponential backoff (urllib3 Retry)
- Version negotiation headers for OData V2 and V4
- RFC3986 query-string encoding (%20, never '+')
- Error extraction from OData error payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
import json
import logging
import time

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from odata_layer.core.config import ODataConfig, ProtocolVersion
from odata_layer.core.errors import EntityNotFound, MalformedResponse, ODataUpstreamError
from odata_layer.odata.literals import format_query_string
from odata_layer.odata.parsing import parse_error


@dataclass
class HttpResponse:
    """
    Transport-neutral view of an HTTP response.

    Attributes
    ----------
    status : int
        HTTP status code
    headers : dict
        Flattened header name -> value mapping
    body : str
        Response body text
    url : str
        Final request URL
    """
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    url: str = ""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lname = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lname:
                return value
        return None

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise MalformedResponse(f"Response body is not valid JSON: {e}", self.body) from e


class ODataSession:
    """
    Low-level HTTP session for OData V2/V4 services.

    Handles authentication, retries, version headers and error mapping.
    Use as a context manager for automatic cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration
    session : requests.Session, optional
        Pre-built session to use instead of creating one

    Examples
    --------
    >>> cfg = ODataConfig(base_url="https://host/odata/", version="v4")
    >>> with ODataSession(cfg) as sess:
    ...     r = sess.request("GET", "TripPin/People", params={"$top": 5})
    """

    def __init__(self, cfg: ODataConfig, session: Optional[Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.base_url.rstrip("/") + "/"
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify
        self.logger = logging.getLogger("odata_layer.http")

        self.session = session if session is not None else self._build_session()

    @property
    def version(self) -> ProtocolVersion:
        return self.cfg.version

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "ODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()

        auth = self.cfg.auth
        if auth is not None:
            if auth.kind == "basic":
                sess.auth = auth.value  # type: ignore[assignment]
            elif auth.kind == "bearer":
                sess.headers.update({"Authorization": f"Bearer {auth.value}"})
            else:
                raise ValueError("auth.kind must be 'basic' or 'bearer'")

        sess.headers.update({
            "Accept": "application/json",
            "Accept-Language": self.cfg.lang.lower(),
            "User-Agent": self.cfg.user_agent,
        })
        sess.headers.update(self.cfg.version.headers)

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=20, pool_maxsize=50)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    # ---------------- helpers ----------------

    def _params(
        self,
        params: Optional[Dict[str, Any]] = None,
        *,
        include_format: bool = True,
    ) -> Dict[str, Any]:
        p: Dict[str, Any] = {}
        if include_format and self.cfg.version is ProtocolVersion.V2:
            p["$format"] = "json"
        p.update(self.cfg.default_params)
        if params:
            p.update(params)
        return p

    def url(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Resolve a service-relative path (or absolute URL) and append params.

        Absolute URLs, such as server-issued next links, are kept verbatim.
        """
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.base}{path.lstrip('/')}"
        if params:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{format_query_string(params)}"
        return url

    def _raise_for_error(self, r: Response, url: str) -> None:
        if r.status_code >= 400 or r.status_code in (301, 302, 303, 307, 308):
            detail = parse_error(r.text, r.status_code)
            cls = EntityNotFound if r.status_code == 404 else ODataUpstreamError
            raise cls(r.status_code, detail.summary() or r.text, url, dict(r.headers), error=detail)

    # ---------------- public ops ----------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Union[str, bytes]] = None,
        include_format: bool = True,
    ) -> HttpResponse:
        """
        Execute a request against a service-relative path or absolute URL.

        Parameters
        ----------
        method : str
            HTTP verb, e.g. "GET" or "MERGE"
        path : str
            Path below the base URL, or an absolute URL
        params : dict, optional
            Query options (already rendered values)
        headers : dict, optional
            Additional HTTP headers
        data : str or bytes, optional
            Request body
        include_format : bool
            Add ``$format=json`` for V2 services

        Returns
        -------
        HttpResponse
            Status, flattened headers and body text

        Raises
        ------
        ODataUpstreamError
            For status codes >= 400 (EntityNotFound for 404)
        """
        # continuation links already carry every option the server needs
        if "?" in path:
            q = dict(params or {})
        else:
            q = self._params(params, include_format=include_format)
        url = self.url(path, q)

        t0 = time.perf_counter()
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or {},
            data=data,
            timeout=self.timeout,
            verify=self.verify,
        )
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %s %sms", method.upper(), url, r.status_code, round(dt, 1))
        self._raise_for_error(r, url)
        return HttpResponse(
            status=r.status_code,
            headers={k: v for k, v in r.headers.items()},
            body=r.text,
            url=url,
        )

    def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """Execute a GET request."""
        return self.request("GET", path, params=params, headers=extra_headers)

    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Execute a GET request and return the raw text response.

        Useful for $metadata which returns XML.
        """
        headers = {}
        if path == "$metadata" or path.endswith("/$metadata"):
            headers["Accept"] = "application/xml"
        r = self.request("GET", path, params=params, headers=headers, include_format=False)
        return r.body
