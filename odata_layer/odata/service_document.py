"""
odata_layer.odata.service_document - Service document models
=============================================================

The service root lists what a service exposes. V4 returns typed entries
(entity sets, singletons, function and action imports); V2 JSON only lists
entity set names under ``d.EntitySets``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from odata_layer.core.config import ProtocolVersion
from odata_layer.core.errors import MalformedResponse
from odata_layer.odata.parsing import Body, decode_body

logger = logging.getLogger("odata_layer.parsing")

KIND_ENTITY_SET = "EntitySet"
KIND_SINGLETON = "Singleton"
KIND_FUNCTION_IMPORT = "FunctionImport"
KIND_ACTION_IMPORT = "ActionImport"


class ServiceDocumentEntry(BaseModel):
    """One resource listed in a service document."""

    name: str = Field(description="Resource name, e.g. People")
    # entity sets may omit kind in V4 JSON
    kind: str = Field(default=KIND_ENTITY_SET, description="EntitySet, Singleton, FunctionImport or ActionImport")
    url: str = Field(description="URL relative to the service root")
    title: Optional[str] = Field(default=None, description="Human-readable title (V4 only)")


class ServiceDocument(BaseModel):
    """
    Parsed service document.

    Examples
    --------
    >>> doc = ServiceDocument.parse({"d": {"EntitySets": ["Customers"]}}, "v2")
    >>> doc.entity_set_names()
    ['Customers']
    """

    version: ProtocolVersion
    context_url: Optional[str] = None
    entity_sets: List[ServiceDocumentEntry] = Field(default_factory=list)
    singletons: List[ServiceDocumentEntry] = Field(default_factory=list)
    function_imports: List[ServiceDocumentEntry] = Field(default_factory=list)
    action_imports: List[ServiceDocumentEntry] = Field(default_factory=list)
    raw: Any = None

    @classmethod
    def parse(cls, body: Body, version: Union[ProtocolVersion, str, int]) -> "ServiceDocument":
        """
        Build a ServiceDocument from a service root response.

        Raises
        ------
        MalformedResponse
            When the body lacks the structure the protocol version requires
        """
        version = ProtocolVersion.parse(version)
        decoded, raw = decode_body(body)
        if version is ProtocolVersion.V2:
            return cls._parse_v2(decoded, raw)
        return cls._parse_v4(decoded, raw)

    @classmethod
    def _parse_v4(cls, decoded: Any, raw: str) -> "ServiceDocument":
        values = decoded.get("value") if isinstance(decoded, dict) else None
        if not isinstance(values, list):
            raise MalformedResponse('OData V4 service document is missing "value" array.', raw)

        buckets: Dict[str, List[ServiceDocumentEntry]] = {
            KIND_ENTITY_SET: [],
            KIND_SINGLETON: [],
            KIND_FUNCTION_IMPORT: [],
            KIND_ACTION_IMPORT: [],
        }
        for item in values:
            if not isinstance(item, dict):
                continue
            try:
                entry = ServiceDocumentEntry.model_validate(item)
            except ValidationError:
                logger.debug("skipping malformed service document entry %r", item)
                continue
            bucket = buckets.get(entry.kind)
            if bucket is None:
                logger.debug("skipping service document entry of unknown kind %r", entry.kind)
                continue
            bucket.append(entry)

        context = decoded.get("@odata.context")
        return cls(
            version=ProtocolVersion.V4,
            context_url=context if isinstance(context, str) else None,
            entity_sets=buckets[KIND_ENTITY_SET],
            singletons=buckets[KIND_SINGLETON],
            function_imports=buckets[KIND_FUNCTION_IMPORT],
            action_imports=buckets[KIND_ACTION_IMPORT],
            raw=decoded,
        )

    @classmethod
    def _parse_v2(cls, decoded: Any, raw: str) -> "ServiceDocument":
        wrapper = decoded.get("d") if isinstance(decoded, dict) else None
        if not isinstance(wrapper, dict):
            raise MalformedResponse('OData V2 service document is missing "d" wrapper.', raw)
        names = wrapper.get("EntitySets")
        if not isinstance(names, list):
            raise MalformedResponse('OData V2 service document "d.EntitySets" is missing or not a list.', raw)

        entries = [
            ServiceDocumentEntry(name=name, kind=KIND_ENTITY_SET, url=name)
            for name in names
            if isinstance(name, str)
        ]
        return cls(version=ProtocolVersion.V2, entity_sets=entries, raw=decoded)

    # ---------------- lookups ----------------

    def entity_set_names(self) -> List[str]:
        return [e.name for e in self.entity_sets]

    def find(self, name: str) -> Optional[ServiceDocumentEntry]:
        """Look up any entry by name, entity sets first."""
        for bucket in (self.entity_sets, self.singletons, self.function_imports, self.action_imports):
            for entry in bucket:
                if entry.name == name:
                    return entry
        return None
