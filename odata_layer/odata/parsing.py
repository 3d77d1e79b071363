"""
odata_layer.odata.parsing - Response normalization for OData V2 and V4
======================================================================

Turns the two JSON dialects into ``Entity`` / ``EntityCollection``:

- V2: ``{"d": {"results": [...], "__count": "N", "__next": "url"}}`` with
  per-entity ``__metadata`` blocks
- V4: ``{"value": [...], "@odata.count": N, "@odata.nextLink": "url"}`` with
  ``@odata.*`` annotations on each entity

Bodies may be passed as text/bytes or already decoded. Type and key
inference is best-effort: failures yield "Unknown" / no id, never an error.
Only structurally unusable payloads raise ``MalformedResponse``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union
from urllib.parse import urlparse

from odata_layer.core.config import ProtocolVersion
from odata_layer.core.errors import InvalidArgument, MalformedResponse
from odata_layer.odata.entity import UNKNOWN_TYPE, Entity, EntityCollection
from odata_layer.odata.literals import parse_key_segment

logger = logging.getLogger("odata_layer.parsing")

Body = Union[str, bytes, Dict[str, Any], List[Any], None]
Headers = Optional[Mapping[str, str]]

# V2 wire names
V2_WRAPPER = "d"
V2_RESULTS = "results"
V2_COUNT = "__count"
V2_NEXT = "__next"
V2_DELTA = "__delta"
V2_METADATA = "__metadata"

# V4 wire names
ODATA_PREFIX = "@odata."
ODATA_VALUE = "value"
ODATA_CONTEXT = "@odata.context"
ODATA_COUNT = "@odata.count"
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_DELTA_LINK = "@odata.deltaLink"
ODATA_ETAG = "@odata.etag"
ODATA_ID = "@odata.id"
ODATA_TYPE = "@odata.type"

# quoted segments may contain parentheses and commas
_KEY_RE = re.compile(r"\(((?:'(?:[^']|'')*'|[^()'])*)\)$")
_COUNT_RE = re.compile(r"^-?[0-9]+$")
_CONTEXT_COLLECTION_RE = re.compile(r"\$metadata#Collection\(([A-Za-z0-9_.]+)\)$", re.IGNORECASE)
_CONTEXT_RE = re.compile(
    r"\$metadata#([A-Za-z0-9_.]+)(?:\([^)]*\))?(?:/\$entity|/@Element)?$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# shared helpers
# ---------------------------------------------------------------------------

def decode_body(body: Body) -> Tuple[Any, str]:
    """
    Decode a response body.

    Returns
    -------
    tuple
        (decoded value, raw text kept for diagnostics)

    Raises
    ------
    MalformedResponse
        When text/bytes are not valid JSON
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedResponse(
                f"Response body is not valid UTF-8: {e}", body.decode("utf-8", errors="replace")
            ) from e
    if isinstance(body, str):
        try:
            return json.loads(body), body
        except ValueError as e:
            raise MalformedResponse(f"Failed to decode JSON response: {e}", body) from e
    return body, json.dumps(body, default=str)


def _is_list_shaped(value: Any) -> bool:
    return isinstance(value, list) or (isinstance(value, dict) and not value)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("ignoring non-integer count %r", value)
        return None


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _header(headers: Headers, name: str) -> Optional[str]:
    if not headers:
        return None
    lname = name.lower()
    for key, value in headers.items():
        if key.lower() == lname:
            return value
    return None


def simple_type_name(qualified: str) -> str:
    """
    Last dot-segment of a (possibly '#'-prefixed) qualified type name.

    >>> simple_type_name("#Microsoft.OData.SampleService.Models.TripPin.Person")
    'Person'
    """
    name = qualified.lstrip("#")
    return name.rsplit(".", 1)[-1] or name


def key_from_resource_path(path: str) -> Union[str, int, None]:
    """Extract the key from a trailing ``Set(<key>)`` segment, if any."""
    match = _KEY_RE.search(path.strip())
    if not match or not match.group(1):
        return None
    return parse_key_segment(match.group(1))


def type_from_uri(uri: str) -> Optional[str]:
    """Infer an entity set name from a V2 ``__metadata.uri``."""
    segments = [s for s in urlparse(uri).path.strip("/").split("/") if s]
    if not segments:
        return None
    last = segments[-1]
    if "(" not in last:
        return last
    name = last.split("(", 1)[0]
    if name:
        return name
    if len(segments) > 1:
        return segments[-2].split("(", 1)[0] or None
    return None


def type_from_context(context: str) -> Optional[str]:
    """Infer a type or entity set name from a V4 ``@odata.context`` URL."""
    match = _CONTEXT_COLLECTION_RE.search(context) or _CONTEXT_RE.search(context)
    if not match:
        return None
    return simple_type_name(match.group(1))


@dataclass
class ErrorDetail:
    """
    Normalized OData error payload.

    Attributes
    ----------
    code : str
        Service error code, or the HTTP status when none was sent
    message : str
        Human-readable message
    details : Any
        ``error.details`` or ``error.innererror`` content
    raw : Any
        Decoded payload, or the raw text when it was not JSON
    """
    code: str
    message: str
    details: Any = field(default_factory=dict)
    raw: Any = None

    def summary(self) -> str:
        parts = []
        if self.code:
            parts.append(f"code={self.code}")
        if self.message:
            parts.append(f"message={self.message}")
        return " | ".join(parts)


def parse_error(body: Body, status: int, headers: Headers = None) -> ErrorDetail:
    """
    Normalize an error response. Never raises.

    Handles both ``{"error": {"message": "..."}}`` (V4) and
    ``{"error": {"message": {"lang": "en", "value": "..."}}}`` (V2).
    """
    try:
        decoded, raw = decode_body(body)
    except MalformedResponse as e:
        return ErrorDetail(
            code=str(status),
            message="Failed to parse error response.",
            details={"raw_body": e.raw_body, "parse_error": str(e)},
            raw=e.raw_body,
        )

    err = decoded.get("error") if isinstance(decoded, dict) else None
    if not isinstance(err, dict):
        return ErrorDetail(
            code=str(status),
            message="An HTTP error occurred.",
            details={"raw_body": raw},
            raw=raw,
        )

    message = err.get("message")
    if isinstance(message, dict):
        message = message.get("value")
    details = err.get("details")
    if details is None:
        details = err.get("innererror") or err.get("innerError") or {}
    return ErrorDetail(
        code=str(err.get("code") or status),
        message=str(message) if message else "Unknown OData error.",
        details=details,
        raw=decoded,
    )


def _parse_count_value(body: Body, count_key: str) -> int:
    if isinstance(body, (str, bytes, bytearray)):
        text = body.decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else body
        stripped = text.strip()
        if _COUNT_RE.match(stripped):
            return int(stripped)
    decoded, raw = decode_body(body)
    if isinstance(decoded, int) and not isinstance(decoded, bool):
        return decoded
    if isinstance(decoded, dict):
        wrapper = decoded.get(V2_WRAPPER)
        for container in (decoded, wrapper):
            if isinstance(container, dict) and count_key in container:
                value = _optional_int(container[count_key])
                if value is not None:
                    return value
    raise MalformedResponse("Failed to parse count from response.", raw)


def _with_value_unwrapped(decoded: Any) -> Any:
    if isinstance(decoded, dict) and ODATA_VALUE in decoded:
        return decoded[ODATA_VALUE]
    return decoded


# ---------------------------------------------------------------------------
# parser contract
# ---------------------------------------------------------------------------

class ResponseParser(Protocol):
    """Operations every protocol-specific normalizer provides."""

    version: ProtocolVersion

    def parse_collection(self, body: Body, headers: Headers = None) -> EntityCollection: ...

    def parse_entity(self, body: Body, headers: Headers = None) -> Entity: ...

    def parse_value(self, body: Body, headers: Headers = None) -> Any: ...

    def parse_count(self, body: Body, headers: Headers = None) -> int: ...

    def parse_error(self, body: Body, status: int, headers: Headers = None) -> ErrorDetail: ...

    def extract_next_link(self, body: Body, headers: Headers = None) -> Optional[str]: ...

    def extract_delta_link(self, body: Body, headers: Headers = None) -> Optional[str]: ...

    def extract_inline_count(self, body: Body, headers: Headers = None) -> Optional[int]: ...


# ---------------------------------------------------------------------------
# V2
# ---------------------------------------------------------------------------

class V2ResponseParser:
    """Normalizer for the V2 ``{"d": ...}`` JSON dialect."""

    version = ProtocolVersion.V2

    def parse_collection(self, body: Body, headers: Headers = None) -> EntityCollection:
        """
        Parse a V2 collection payload.

        Accepts ``d.results`` (regular), a bare ``d`` list (V1 style) or a
        top-level list. Anything else raises ``MalformedResponse``.
        """
        decoded, raw = decode_body(body)
        wrapper = decoded.get(V2_WRAPPER) if isinstance(decoded, dict) else None

        if isinstance(wrapper, dict) and isinstance(wrapper.get(V2_RESULTS), list):
            items = wrapper[V2_RESULTS]
        elif wrapper is not None and _is_list_shaped(wrapper):
            items, wrapper = _as_list(wrapper), {}
        elif wrapper is None and _is_list_shaped(decoded):
            logger.debug("V2 collection without 'd' wrapper; using top-level list")
            items, wrapper = _as_list(decoded), {}
        else:
            raise MalformedResponse(
                'OData V2 collection response is missing "d.results" or is not structured as expected.',
                raw,
            )

        entities = []
        for item in items:
            if isinstance(item, dict):
                entities.append(self._parse_entity_object(item))
            else:
                logger.debug("skipping non-object collection item %r", item)

        return EntityCollection(
            entities,
            total_count=_optional_int(wrapper.get(V2_COUNT)),
            next_link=_optional_str(wrapper.get(V2_NEXT)),
            delta_link=_optional_str(wrapper.get(V2_DELTA)),
        )

    def parse_entity(self, body: Body, headers: Headers = None) -> Entity:
        decoded, raw = decode_body(body)
        data = decoded.get(V2_WRAPPER, decoded) if isinstance(decoded, dict) else decoded
        if not isinstance(data, dict):
            raise MalformedResponse("OData V2 response for entity is not a valid object structure.", raw)
        if isinstance(data.get(V2_RESULTS), list):
            raise MalformedResponse(
                "OData V2 response appears to be a collection, but an entity was expected.", raw
            )
        return self._parse_entity_object(data, fallback_etag=_header(headers, "ETag"))

    def parse_value(self, body: Body, headers: Headers = None) -> Any:
        if isinstance(body, str) and not body.strip():
            return None
        decoded, _ = decode_body(body)
        if isinstance(decoded, dict) and V2_WRAPPER in decoded:
            decoded = decoded[V2_WRAPPER]
            if isinstance(decoded, dict) and V2_RESULTS in decoded:
                return decoded[V2_RESULTS]
        return _with_value_unwrapped(decoded)

    def parse_count(self, body: Body, headers: Headers = None) -> int:
        return _parse_count_value(body, V2_COUNT)

    def parse_error(self, body: Body, status: int, headers: Headers = None) -> ErrorDetail:
        return parse_error(body, status, headers)

    def extract_next_link(self, body: Body, headers: Headers = None) -> Optional[str]:
        return _optional_str(self._wrapper(body).get(V2_NEXT))

    def extract_delta_link(self, body: Body, headers: Headers = None) -> Optional[str]:
        return _optional_str(self._wrapper(body).get(V2_DELTA))

    def extract_inline_count(self, body: Body, headers: Headers = None) -> Optional[int]:
        return _optional_int(self._wrapper(body).get(V2_COUNT))

    # ---------------- internals ----------------

    @staticmethod
    def _wrapper(body: Body) -> Dict[str, Any]:
        decoded, _ = decode_body(body)
        wrapper = decoded.get(V2_WRAPPER) if isinstance(decoded, dict) else None
        return wrapper if isinstance(wrapper, dict) else {}

    def _parse_entity_object(self, data: Dict[str, Any], fallback_etag: Optional[str] = None) -> Entity:
        metadata = data.get(V2_METADATA)
        if not isinstance(metadata, dict):
            metadata = {}
        uri = _optional_str(metadata.get("uri"))
        etag = _optional_str(metadata.get("etag")) or fallback_etag
        qualified = _optional_str(metadata.get("type"))

        entity_type = simple_type_name(qualified) if qualified else None
        if not entity_type and uri:
            entity_type = type_from_uri(uri)
        if not entity_type:
            logger.debug("could not infer V2 entity type (uri=%r)", uri)

        # deferred and expanded navigation links stay plain properties here
        properties = {k: v for k, v in data.items() if k != V2_METADATA}
        entity_id = key_from_resource_path(urlparse(uri).path) if uri else None

        return Entity(entity_type or UNKNOWN_TYPE, properties, entity_id, etag)


# ---------------------------------------------------------------------------
# V4
# ---------------------------------------------------------------------------

class V4ResponseParser:
    """Normalizer for the V4 ``@odata``-annotated JSON dialect."""

    version = ProtocolVersion.V4

    def parse_collection(self, body: Body, headers: Headers = None) -> EntityCollection:
        """
        Parse a V4 collection payload from its ``value`` array (or a bare list).
        """
        decoded, raw = decode_body(body)

        if isinstance(decoded, dict) and isinstance(decoded.get(ODATA_VALUE), list):
            items, meta = decoded[ODATA_VALUE], decoded
        elif _is_list_shaped(decoded):
            logger.debug("V4 collection without 'value'; using top-level list")
            items, meta = _as_list(decoded), {}
        else:
            raise MalformedResponse(
                'OData V4 collection response is missing "value" array or is not structured as expected.',
                raw,
            )

        context = _optional_str(meta.get(ODATA_CONTEXT))
        entities = []
        for item in items:
            if isinstance(item, dict):
                entities.append(self._parse_entity_object(item, context))
            else:
                logger.debug("skipping non-object collection item %r", item)

        return EntityCollection(
            entities,
            total_count=_optional_int(meta.get(ODATA_COUNT)),
            next_link=_optional_str(meta.get(ODATA_NEXT_LINK)),
            delta_link=_optional_str(meta.get(ODATA_DELTA_LINK)),
        )

    def parse_entity(self, body: Body, headers: Headers = None) -> Entity:
        decoded, raw = decode_body(body)
        if not isinstance(decoded, dict):
            raise MalformedResponse("OData V4 response for entity is not a valid object structure.", raw)
        return self._parse_entity_object(
            decoded,
            _optional_str(decoded.get(ODATA_CONTEXT)),
            fallback_etag=_header(headers, "ETag"),
        )

    def parse_value(self, body: Body, headers: Headers = None) -> Any:
        if isinstance(body, str) and not body.strip():
            return None
        decoded, _ = decode_body(body)
        return _with_value_unwrapped(decoded)

    def parse_count(self, body: Body, headers: Headers = None) -> int:
        return _parse_count_value(body, ODATA_COUNT)

    def parse_error(self, body: Body, status: int, headers: Headers = None) -> ErrorDetail:
        return parse_error(body, status, headers)

    def extract_next_link(self, body: Body, headers: Headers = None) -> Optional[str]:
        return _optional_str(self._top_level(body).get(ODATA_NEXT_LINK))

    def extract_delta_link(self, body: Body, headers: Headers = None) -> Optional[str]:
        return _optional_str(self._top_level(body).get(ODATA_DELTA_LINK))

    def extract_inline_count(self, body: Body, headers: Headers = None) -> Optional[int]:
        return _optional_int(self._top_level(body).get(ODATA_COUNT))

    # ---------------- internals ----------------

    @staticmethod
    def _top_level(body: Body) -> Dict[str, Any]:
        decoded, _ = decode_body(body)
        return decoded if isinstance(decoded, dict) else {}

    def _parse_entity_object(
        self,
        data: Dict[str, Any],
        context: Optional[str] = None,
        fallback_etag: Optional[str] = None,
    ) -> Entity:
        etag = _optional_str(data.get(ODATA_ETAG)) or fallback_etag
        odata_id = _optional_str(data.get(ODATA_ID))
        odata_type = _optional_str(data.get(ODATA_TYPE))

        entity_id = key_from_resource_path(odata_id) if odata_id else None
        entity_type = simple_type_name(odata_type) if odata_type else None
        if not entity_type and context:
            entity_type = type_from_context(context)
        if not entity_type:
            logger.debug("could not infer V4 entity type (context=%r)", context)

        properties: Dict[str, Any] = {}
        navigation: Dict[str, Union[Entity, EntityCollection]] = {}
        for key, value in data.items():
            # instance annotations (@odata.id) and property annotations (Orders@odata.count)
            if key.startswith(ODATA_PREFIX) or ODATA_PREFIX in key:
                continue
            if isinstance(value, list) and value and isinstance(value[0], dict):
                navigation[key] = EntityCollection(
                    [self._parse_entity_object(v) for v in value if isinstance(v, dict)],
                    total_count=_optional_int(data.get(f"{key}{ODATA_COUNT}")),
                    next_link=_optional_str(data.get(f"{key}{ODATA_NEXT_LINK}")),
                )
            elif isinstance(value, dict) and value:
                navigation[key] = self._parse_entity_object(value)
            else:
                properties[key] = value

        known = (
            entity_id is not None
            or etag is not None
            or bool(properties)
            or entity_type is not None
        )
        entity = Entity(entity_type or UNKNOWN_TYPE, properties, entity_id, etag, is_new=not known)
        for name, target in navigation.items():
            entity.set_navigation_property(name, target)
        return entity


_PARSERS = {
    ProtocolVersion.V2: V2ResponseParser,
    ProtocolVersion.V4: V4ResponseParser,
}


def response_parser_for(version: Union[ProtocolVersion, str, int]) -> ResponseParser:
    """Return the normalizer for a protocol version."""
    try:
        return _PARSERS[ProtocolVersion.parse(version)]()
    except KeyError:  # pragma: no cover - parse() already rejects unknown versions
        raise InvalidArgument(f"No response parser for OData version {version!r}") from None
