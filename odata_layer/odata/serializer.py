"""
odata_layer.odata.serializer - JSON request bodies
==================================================
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
import json
from typing import Any, Dict, Iterable, Mapping, Union

from odata_layer.core.errors import SerializationError
from odata_layer.odata.entity import Entity
from odata_layer.odata.literals import format_datetime

JSON_CONTENT_TYPE = "application/json;charset=utf-8"


def _default(value: Any) -> Any:
    if isinstance(value, date):
        return format_datetime(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Entity):
        return value.to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonSerializer:
    """
    Encode entities and JSON batch payloads.

    Parameters
    ----------
    content_type : str
        Value sent as Content-Type with serialized bodies

    Notes
    -----
    Only flat properties are written. To link an existing entity, put an
    ``"Nav@odata.bind": "Set('key')"`` property on the entity.
    """

    def __init__(self, content_type: str = JSON_CONTENT_TYPE) -> None:
        self._content_type = content_type

    @property
    def content_type(self) -> str:
        return self._content_type

    def dumps(self, data: Any, what: str = "payload") -> str:
        """Encode any JSON-compatible value (dates, Decimals and entities included)."""
        try:
            return json.dumps(data, default=_default, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to JSON encode {what}: {e}", data) from e

    def serialize_entity(self, entity: Union[Entity, Mapping[str, Any]]) -> str:
        data = entity.to_dict() if isinstance(entity, Entity) else dict(entity)
        return self.dumps(data, "entity")

    def serialize_batch(self, requests: Iterable[Mapping[str, Any]]) -> str:
        """
        Encode request definitions as a V4 JSON batch.

        Each item needs ``method`` and ``url``; ``id``, ``headers``,
        ``body`` and ``atomicityGroup`` are optional. Ids default to the
        1-based position.

        Examples
        --------
        >>> JsonSerializer().serialize_batch([{"method": "get", "url": "Products(1)"}])
        '{"requests": [{"id": "1", "method": "GET", "url": "Products(1)"}]}'
        """
        out = []
        for item in requests:
            if not isinstance(item, Mapping) or "method" not in item or "url" not in item:
                raise SerializationError("Each batch request item must have 'method' and 'url' keys.", item)

            part: Dict[str, Any] = {
                "id": str(len(out) + 1 if item.get("id") is None else item["id"]),
                "method": str(item["method"]).upper(),
                "url": str(item["url"]).lstrip("/"),
            }
            if item.get("atomicityGroup") is not None:
                part["atomicityGroup"] = item["atomicityGroup"]

            headers = dict(item.get("headers") or {})
            if "body" in item:
                body = item["body"]
                if isinstance(body, Entity):
                    body = body.to_dict()
                if isinstance(body, (Mapping, list)):
                    if not any(k.lower() == "content-type" for k in headers):
                        headers["Content-Type"] = self._content_type
                part["body"] = body
            if headers:
                part["headers"] = headers
            out.append(part)

        return self.dumps({"requests": out}, "batch request")
