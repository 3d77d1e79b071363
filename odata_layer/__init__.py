"""
OData protocol adaptation layer (odata_layer)
=============================================

Speak OData V2 and V4 through one API: build $filter expressions and query
options, send them, and get normalized entities back.

Usage
-----
>>> from odata_layer import ConnectionContext, FilterBuilder
>>>
>>> with ConnectionContext("https://services.odata.org/", version="v4") as conn:
...     svc = conn.get_service("V4/TripPinServiceRW")
...     people = svc.find(
...         "People",
...         lambda q: q.filter(FilterBuilder().where("FirstName").equals("Russell")).top(5),
...     )
...     for person in people:
...         print(person.id, person["LastName"])

Subpackages
-----------
- odata_layer.core: Configuration, errors, HTTP session, connection context
- odata_layer.odata: Literal codec, filters, query options, response
  normalizers, entity model and the service client

"""

__version__ = "0.3.0"

# Core exports - available at package root
from odata_layer.core import (
    ConnectionContext,
    InvalidArgument,
    MalformedResponse,
    ODataAuth,
    ODataConfig,
    ODataError,
    ODataSession,
    ODataUpstreamError,
    ProtocolVersion,
)

# Convenience re-exports
from odata_layer.odata import (
    Entity,
    EntityCollection,
    FilterBuilder,
    ODataService,
    QueryOptions,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "ProtocolVersion",
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ConnectionContext",
    "ODataError",
    "InvalidArgument",
    "MalformedResponse",
    "ODataUpstreamError",
    # OData
    "FilterBuilder",
    "QueryOptions",
    "Entity",
    "EntityCollection",
    "ODataService",
]
