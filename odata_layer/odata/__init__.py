"""
odata_layer.odata - Protocol adaptation for OData V2/V4
=======================================================

- literals: Python value <-> OData literal text, key segments, URL helpers
- FilterBuilder: Fluent $filter expressions
- QueryOptions: System query options with V2/V4 count and search rules
- V2ResponseParser / V4ResponseParser: Response normalization
- Entity / EntityCollection: Normalized result model
- ODataService: Service-scoped client

"""

from odata_layer.odata.entity import Entity, EntityCollection, NavigationKind, NavigationLink
from odata_layer.odata.filters import FilterBuilder
from odata_layer.odata.literals import (
    combine_url,
    decode_literal,
    encode_key_segment,
    encode_literal,
    escape_odata_literal,
)
from odata_layer.odata.parsing import (
    ErrorDetail,
    V2ResponseParser,
    V4ResponseParser,
    response_parser_for,
)
from odata_layer.odata.query import QueryOptions, V2Policy, V4Policy, query_options_for
from odata_layer.odata.serializer import JsonSerializer
from odata_layer.odata.service import ODataService
from odata_layer.odata.service_document import ServiceDocument, ServiceDocumentEntry

__all__ = [
    "encode_literal",
    "decode_literal",
    "escape_odata_literal",
    "encode_key_segment",
    "combine_url",
    "FilterBuilder",
    "QueryOptions",
    "V2Policy",
    "V4Policy",
    "query_options_for",
    "ErrorDetail",
    "V2ResponseParser",
    "V4ResponseParser",
    "response_parser_for",
    "Entity",
    "EntityCollection",
    "NavigationKind",
    "NavigationLink",
    "JsonSerializer",
    "ServiceDocument",
    "ServiceDocumentEntry",
    "ODataService",
]
