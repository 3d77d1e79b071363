"""
odata_layer.odata.service - OData service client
================================================

Service-scoped client tying the pieces together: query options go out,
normalized entities come back, whatever the protocol version.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, Generator, Iterable, List, Mapping, Optional, Union
from urllib.parse import urljoin, urlparse

from odata_layer.core.config import ProtocolVersion
from odata_layer.core.errors import InvalidArgument, MalformedResponse
from odata_layer.odata.entity import Entity, EntityCollection
from odata_layer.odata.literals import build_path, encode_key_segment, encode_literal
from odata_layer.odata.parsing import key_from_resource_path, response_parser_for
from odata_layer.odata.query import QueryOptions, query_options_for
from odata_layer.odata.serializer import JsonSerializer
from odata_layer.odata.service_document import ServiceDocument

if TYPE_CHECKING:
    from odata_layer.core.session import HttpResponse, ODataSession

Key = Union[str, int, Mapping[str, Any]]
Configure = Optional[Callable[[QueryOptions], Any]]

# Namespace.EnumType'Member'
_ENUM_LITERAL_RE = re.compile(r"^[A-Za-z0-9_.]+'[A-Za-z0-9_]+'$")


def _function_literal(value: Any) -> str:
    """Render a function parameter: enum literals pass through, lists/dicts go as JSON."""
    if isinstance(value, str) and _ENUM_LITERAL_RE.match(value):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return encode_literal(value)


class ODataService:
    """
    Service-scoped OData client.

    Parameters
    ----------
    sess : ODataSession
        Active HTTP session; its configured version selects the query
        conventions and the response normalizer
    service_path : str
        Service root relative to the session base URL
    serializer : JsonSerializer, optional
        Request body encoder

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     svc = ODataService(sess, "V4/TripPinService")
    ...     people = svc.find(
    ...         "People",
    ...         lambda q: q.filter(FilterBuilder().where("FirstName").starts_with("R")).top(5).count(),
    ...     )
    ...     print(people.total_count, [p["UserName"] for p in people])
    """

    def __init__(
        self,
        sess: "ODataSession",
        service_path: str = "",
        *,
        serializer: Optional[JsonSerializer] = None,
    ) -> None:
        self.sess = sess
        self.service_path = service_path.strip("/")
        self.version = ProtocolVersion.parse(sess.version)
        self.parser = response_parser_for(self.version)
        self.serializer = serializer or JsonSerializer()
        self.logger = logging.getLogger("odata_layer.service")

    # ---------------- paths/options ----------------

    def query(self, entity_set: Optional[str] = None) -> QueryOptions:
        """Return a fresh assembler speaking this service's protocol version."""
        return query_options_for(self.version, entity_set)

    def path(self, *segments: str) -> str:
        """Service-relative path, e.g. ``path("People")`` -> ``"V4/TripPinService/People"``."""
        return build_path(self.service_path, *segments)

    @staticmethod
    def entity_path(entity_set: str, key: Key) -> str:
        return f"{entity_set}({encode_key_segment(key)})"

    def _options(self, entity_set: Optional[str], configure: Configure) -> Dict[str, Any]:
        q = self.query(entity_set)
        if configure is not None:
            configure(q)
        return q.get_options()

    # ---------------- core reads ----------------

    def get(self, entity_set: str, key: Key, configure: Configure = None) -> Entity:
        """
        Read one entity by key.

        Raises
        ------
        EntityNotFound
            When the service answers 404
        """
        r = self.sess.get(self.path(self.entity_path(entity_set, key)), self._options(entity_set, configure))
        return self.parser.parse_entity(r.body, r.headers)

    def find(self, entity_set: str, configure: Configure = None) -> EntityCollection:
        """
        Read a single page of an entity set.

        Parameters
        ----------
        entity_set : str
            Entity set name
        configure : callable, optional
            Receives a ``QueryOptions`` to set $filter, $top, ...

        Returns
        -------
        EntityCollection
            The page, with ``total_count`` and ``next_link`` when sent
        """
        r = self.sess.get(self.path(entity_set), self._options(entity_set, configure))
        return self.parser.parse_collection(r.body, r.headers)

    def iterate(
        self,
        entity_set: str,
        configure: Configure = None,
        *,
        max_pages: Optional[int] = None,
    ) -> Generator[EntityCollection, None, None]:
        """
        Iterate through pages of results.

        Yields each non-empty page, following server next links until none
        is left, a link repeats, or ``max_pages`` pages were yielded.
        """
        r = self.sess.get(self.path(entity_set), self._options(entity_set, configure))
        page = self.parser.parse_collection(r.body, r.headers)

        yielded = 0
        seen = set()
        while True:
            if not page.is_empty():
                yield page
                yielded += 1
                if max_pages is not None and yielded >= int(max_pages):
                    return

            next_link = page.next_link
            if not next_link:
                return
            if not next_link.startswith(("http://", "https://")):
                # V4 allows next links relative to the request URL
                next_link = urljoin(self.sess.url(self.path(entity_set)), next_link)
            if next_link in seen:
                self.logger.warning("next link repeats, stopping iteration: %s", next_link)
                return
            seen.add(next_link)
            self.logger.debug("following next link %s after %d page(s)", next_link, yielded)

            r = self.sess.get(next_link)
            page = self.parser.parse_collection(r.body, r.headers)

    def read_all(
        self,
        entity_set: str,
        configure: Configure = None,
        *,
        max_pages: Optional[int] = None,
    ) -> EntityCollection:
        """
        Read all pages into one collection.

        ``total_count`` comes from the first page; ``next_link`` is left set
        when the walk stopped before the last page.
        """
        out = EntityCollection()
        first: Optional[EntityCollection] = None
        last: Optional[EntityCollection] = None
        for page in self.iterate(entity_set, configure, max_pages=max_pages):
            if first is None:
                first = page
            last = page
            for entity in page:
                out.add(entity)
        if first is not None and last is not None:
            out.total_count = first.total_count
            out.next_link = last.next_link
            out.delta_link = last.delta_link
        return out

    def count(self, entity_set: str, configure: Configure = None) -> int:
        """Return ``entity_set/$count`` as an int."""
        r = self.sess.request(
            "GET",
            self.path(entity_set, "$count"),
            params=self._options(entity_set, configure),
            headers={"Accept": "text/plain"},
            include_format=False,
        )
        return self.parser.parse_count(r.body, r.headers)

    # ---------------- writes ----------------

    def create(self, entity_set: str, data: Union[Entity, Mapping[str, Any]]) -> Entity:
        """
        POST a new entity.

        A 201 with a body returns the server representation. A 204 marks
        the given entity persisted, taking the key from ``Location`` and
        the eTag from ``ETag`` when present.
        """
        entity = self._to_entity(entity_set, data, is_new=True)
        r = self._send("POST", self.path(entity_set), entity)
        if r.status == 204 or not r.body.strip():
            location = r.header("Location")
            new_id = key_from_resource_path(urlparse(location).path) if location else None
            return entity.mark_as_persisted(new_id if new_id is not None else entity.id, r.header("ETag"))
        return self.parser.parse_entity(r.body, r.headers)

    def update(
        self,
        entity_set: str,
        key: Key,
        data: Union[Entity, Mapping[str, Any]],
        etag: Optional[str] = None,
    ) -> Entity:
        """Replace an entity (PUT)."""
        return self._write("PUT", entity_set, key, data, etag)

    def merge(
        self,
        entity_set: str,
        key: Key,
        data: Union[Entity, Mapping[str, Any]],
        etag: Optional[str] = None,
    ) -> Entity:
        """Partially update an entity (V2 MERGE, V4 PATCH)."""
        method = "MERGE" if self.version is ProtocolVersion.V2 else "PATCH"
        return self._write(method, entity_set, key, data, etag)

    def delete(self, entity_set: str, key: Key, etag: Optional[str] = None) -> bool:
        """DELETE an entity; True when the service answered 204."""
        headers = {"If-Match": etag} if etag else {}
        r = self.sess.request("DELETE", self.path(self.entity_path(entity_set, key)), headers=headers)
        return r.status == 204

    # ---------------- operations ----------------

    def call_function(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        binding_entity_set: Optional[str] = None,
        binding_key: Optional[Key] = None,
        configure: Configure = None,
    ) -> Any:
        """
        Call a function (V4) or GET service operation (V2).

        V4 unbound functions get their parameters inline,
        ``Fn(a=1,b='x')``; bound functions and V2 service operations pass
        them as query options.

        Returns
        -------
        Entity, EntityCollection or plain value
            Depending on the response shape; None for an empty body
        """
        path = self._operation_path(name, binding_entity_set, binding_key)
        q = self.query()
        params = dict(parameters or {})
        if self.version is ProtocolVersion.V4 and binding_entity_set is None and "(" not in name:
            inline = ",".join(f"{k}={_function_literal(v)}" for k, v in params.items())
            path = f"{path}({inline})"
            params = {}
        for k, v in params.items():
            q.custom(k, _function_literal(v))
        if configure is not None:
            configure(q)

        r = self.sess.get(path, q.get_options())
        return self._parse_result(r)

    def call_action(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        binding_entity_set: Optional[str] = None,
        binding_key: Optional[Key] = None,
    ) -> Any:
        """
        Invoke an action (V4) or POST service operation (V2).

        Parameters go in a JSON body. Returns True when the service sent
        no content.
        """
        path = self._operation_path(name, binding_entity_set, binding_key)
        headers: Dict[str, str] = {}
        body = None
        if parameters:
            body = self.serializer.dumps(dict(parameters), "action parameters").encode("utf-8")
            headers["Content-Type"] = self.serializer.content_type

        r = self.sess.request("POST", path, headers=headers, data=body)
        if r.status == 204 or not r.body.strip():
            return True
        return self._parse_result(r)

    def execute_batch(self, requests: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """
        Send a V4 JSON ``$batch`` and return the raw ``responses`` list.

        Each request needs ``method`` and ``url`` (relative to the service
        root); version headers are added to every part.

        Raises
        ------
        InvalidArgument
            For V2 services, which only know multipart batches
        """
        if self.version is ProtocolVersion.V2:
            raise InvalidArgument("JSON $batch is only supported for OData V4 services.")

        parts = []
        for item in requests:
            part = dict(item)
            part["headers"] = {
                **self.version.headers,
                "Accept": "application/json;odata.metadata=minimal",
                **dict(item.get("headers") or {}),
            }
            parts.append(part)
        body = self.serializer.serialize_batch(parts)

        r = self.sess.request(
            "POST",
            self.path("$batch"),
            headers={"Content-Type": self.serializer.content_type, "Accept": "application/json"},
            data=body.encode("utf-8"),
        )
        payload = r.json()
        responses = payload.get("responses") if isinstance(payload, dict) else None
        if not isinstance(responses, list):
            raise MalformedResponse("Invalid batch response format: 'responses' array missing.", r.body)
        self.logger.debug("batch of %d requests returned %d responses", len(parts), len(responses))
        return responses

    # ---------------- discovery ----------------

    def service_document(self) -> ServiceDocument:
        """Fetch and parse the service root."""
        root = f"{self.service_path}/" if self.service_path else ""
        r = self.sess.get(root)
        return ServiceDocument.parse(r.body, self.version)

    def metadata_document(self) -> str:
        """Raw ``$metadata`` XML."""
        return self.sess.get_text(self.path("$metadata"))

    # ---------------- internals ----------------

    def _to_entity(
        self,
        entity_set: str,
        data: Union[Entity, Mapping[str, Any]],
        key: Optional[Key] = None,
        *,
        is_new: bool,
    ) -> Entity:
        if isinstance(data, Entity):
            return data
        entity_id = key if isinstance(key, (str, int)) else None
        return Entity(entity_set, dict(data), entity_id, is_new=is_new)

    def _send(self, method: str, path: str, entity: Entity, etag: Optional[str] = None) -> "HttpResponse":
        headers = {"Content-Type": self.serializer.content_type}
        if etag:
            headers["If-Match"] = etag
        body = self.serializer.serialize_entity(entity)
        return self.sess.request(method, path, headers=headers, data=body.encode("utf-8"))

    def _write(
        self,
        method: str,
        entity_set: str,
        key: Key,
        data: Union[Entity, Mapping[str, Any]],
        etag: Optional[str],
    ) -> Entity:
        entity = self._to_entity(entity_set, data, key, is_new=False)
        etag = etag or entity.etag
        r = self._send(method, self.path(self.entity_path(entity_set, key)), entity, etag)
        if r.status == 204 or not r.body.strip():
            entity_id = key if isinstance(key, (str, int)) else entity.id
            return entity.mark_as_persisted(entity_id, r.header("ETag") or etag)
        return self.parser.parse_entity(r.body, r.headers)

    def _operation_path(self, name: str, binding_entity_set: Optional[str], binding_key: Optional[Key]) -> str:
        if binding_entity_set is None:
            return self.path(name)
        binding = binding_entity_set
        if binding_key is not None:
            binding = self.entity_path(binding_entity_set, binding_key)
        return self.path(binding, name)

    def _parse_result(self, r: "HttpResponse") -> Any:
        """Pick entity, collection or plain value from the response shape."""
        if not r.body.strip():
            return None
        decoded = r.json()
        if self.version is ProtocolVersion.V2:
            wrapper = decoded.get("d") if isinstance(decoded, dict) else None
            if isinstance(wrapper, dict) and isinstance(wrapper.get("results"), list):
                return self.parser.parse_collection(decoded, r.headers)
            if isinstance(wrapper, dict) and "__metadata" in wrapper:
                return self.parser.parse_entity(decoded, r.headers)
            return self.parser.parse_value(decoded, r.headers)

        if not isinstance(decoded, dict):
            return self.parser.parse_value(decoded, r.headers)
        value = decoded.get("value")
        if isinstance(value, list) and all(isinstance(v, dict) for v in value):
            return self.parser.parse_collection(decoded, r.headers)
        if "value" in decoded:
            return self.parser.parse_value(decoded, r.headers)
        return self.parser.parse_entity(decoded, r.headers)
