"""
odata_layer.odata.query - Query option assembler
================================================

Collects system query options ($select, $filter, ...) for one request.
Counting and free-text search differ between protocol versions; the
difference lives in two small policy objects chosen from the configured
``ProtocolVersion`` when the assembler is created.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Union

from odata_layer.core.config import ProtocolVersion
from odata_layer.core.errors import InvalidArgument
from odata_layer.odata.filters import FilterBuilder
from odata_layer.odata.literals import format_query_string

PARAM_SELECT = "$select"
PARAM_FILTER = "$filter"
PARAM_ORDERBY = "$orderby"
PARAM_TOP = "$top"
PARAM_SKIP = "$skip"
PARAM_EXPAND = "$expand"
PARAM_COUNT = "$count"
PARAM_INLINE_COUNT = "$inlinecount"
PARAM_SEARCH = "$search"
PARAM_FORMAT = "$format"

RESERVED_PREFIX = "$"

Names = Union[str, Sequence[str]]


def _join_csv(items: Names) -> str:
    """Join a name or list of names with commas, keeping caller order."""
    if isinstance(items, str):
        return items
    return ",".join(items)


def _non_negative(name: str, number: Any) -> int:
    if isinstance(number, bool) or not isinstance(number, int):
        raise InvalidArgument(f"{name} must be an integer, got {type(number).__name__}.")
    if number < 0:
        raise InvalidArgument(f"{name} value cannot be negative.")
    return number


class V2Policy:
    """OData V2: ``$inlinecount=allpages``; no ``$search``."""

    version = ProtocolVersion.V2

    def apply_count(self, params: Dict[str, Any], include: bool) -> None:
        if include:
            params[PARAM_INLINE_COUNT] = "allpages"
        else:
            params.pop(PARAM_INLINE_COUNT, None)
        params.pop(PARAM_COUNT, None)

    def apply_search(self, params: Dict[str, Any], term: str) -> None:
        raise InvalidArgument("$search query option is not supported in OData V2.")


class V4Policy:
    """OData V4: ``$count=true|false`` and ``$search``."""

    version = ProtocolVersion.V4

    def apply_count(self, params: Dict[str, Any], include: bool) -> None:
        params[PARAM_COUNT] = "true" if include else "false"
        params.pop(PARAM_INLINE_COUNT, None)

    def apply_search(self, params: Dict[str, Any], term: str) -> None:
        params[PARAM_SEARCH] = term


_POLICIES = {
    ProtocolVersion.V2: V2Policy(),
    ProtocolVersion.V4: V4Policy(),
}


class QueryOptions:
    """
    Fluent assembler for OData query options.

    Parameters
    ----------
    version : ProtocolVersion or str
        Protocol version whose count/search conventions apply
    entity_set : str, optional
        Resource the options are meant for (informational)

    Examples
    --------
    >>> q = (QueryOptions("v4")
    ...     .select(["Name", "Price"])
    ...     .filter("Price gt 10")
    ...     .order_by("Name")
    ...     .top(5)
    ...     .count())
    >>> q.get_query_string()
    '?$select=Name%2CPrice&$filter=Price%20gt%2010&$orderby=Name%20asc&$top=5&$count=true'
    """

    def __init__(
        self,
        version: Union[ProtocolVersion, str] = ProtocolVersion.V4,
        entity_set: Optional[str] = None,
    ) -> None:
        self.version = ProtocolVersion.parse(version)
        self._policy = _POLICIES[self.version]
        self._params: Dict[str, Any] = {}
        self.entity_set = entity_set

    def select(self, fields: Names) -> "QueryOptions":
        self._params[PARAM_SELECT] = _join_csv(fields)
        return self

    def expand(self, relations: Names) -> "QueryOptions":
        self._params[PARAM_EXPAND] = _join_csv(relations)
        return self

    def filter(self, expression: Union[str, FilterBuilder]) -> "QueryOptions":
        """Store a filter expression verbatim (a FilterBuilder is built first)."""
        if isinstance(expression, FilterBuilder):
            expression = expression.build()
        self._params[PARAM_FILTER] = expression
        return self

    def order_by(self, field: str, direction: str = "asc") -> "QueryOptions":
        """Append an ordering clause; repeated calls accumulate."""
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise InvalidArgument('Order by direction must be "asc" or "desc".')
        clause = f"{field} {direction}"
        existing = self._params.get(PARAM_ORDERBY)
        self._params[PARAM_ORDERBY] = f"{existing},{clause}" if existing else clause
        return self

    def top(self, number: int) -> "QueryOptions":
        self._params[PARAM_TOP] = _non_negative("Top", number)
        return self

    def skip(self, number: int) -> "QueryOptions":
        self._params[PARAM_SKIP] = _non_negative("Skip", number)
        return self

    def count(self, include: bool = True) -> "QueryOptions":
        self._policy.apply_count(self._params, include)
        return self

    def search(self, term: str) -> "QueryOptions":
        self._policy.apply_search(self._params, term)
        return self

    def format(self, value: str) -> "QueryOptions":
        self._params[PARAM_FORMAT] = value
        return self

    def custom(self, name: str, value: Any) -> "QueryOptions":
        """Add a non-system option such as ``sap-client``."""
        if name.startswith(RESERVED_PREFIX):
            raise InvalidArgument(f'Custom parameter name should not start with "{RESERVED_PREFIX}": {name}')
        self._params[name] = value
        return self

    def set_entity_set(self, entity_set: str) -> "QueryOptions":
        self.entity_set = entity_set
        return self

    def reset(self) -> "QueryOptions":
        self._params = {}
        return self

    def get_options(self) -> Dict[str, Any]:
        """Return a copy of the accumulated options."""
        return dict(self._params)

    def get_query_string(self) -> str:
        """Render ``?k=v&...`` (empty string when no option is set)."""
        if not self._params:
            return ""
        return "?" + format_query_string(self._params)

    def __repr__(self) -> str:
        return f"QueryOptions(version={self.version.name}, options={self._params!r})"


def query_options_for(
    version: Union[ProtocolVersion, str],
    entity_set: Optional[str] = None,
) -> QueryOptions:
    """Create an assembler for the given protocol version."""
    return QueryOptions(version, entity_set)
