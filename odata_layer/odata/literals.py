"""
odata_layer.odata.literals - OData literal codec and URL helpers
================================================================

Converts Python primitives to the literal text used in $filter expressions
and key segments, and back.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal
import math
import re
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote, urlencode

from odata_layer.core.errors import InvalidArgument, UnsupportedValue

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_INT_RE = re.compile(r"^[+-]?\d+$")
_QUOTED_RE = re.compile(r"'((?:[^']|'')*)'")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")

KeyValue = Union[str, int, float, bool, Decimal, datetime, date, None]


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use inside a quoted OData literal.

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def format_datetime(value: date) -> str:
    """
    Render a date or datetime as a UTC ``YYYY-MM-DDTHH:MM:SSZ`` literal.

    Naive datetimes are taken to be UTC already; plain dates become
    midnight UTC.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time(0, 0), tzinfo=timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DATETIME_FORMAT)


def _format_number(value: Union[int, float, Decimal]) -> str:
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnsupportedValue(f"Non-finite number has no OData literal: {value!r}")
        value = Decimal(repr(value))
    if not value.is_finite():
        raise UnsupportedValue(f"Non-finite number has no OData literal: {value!r}")
    return format(value, "f")


def encode_literal(value: Any) -> str:
    """
    Encode a Python value as OData literal text.

    Parameters
    ----------
    value : str, int, float, Decimal, bool, None, date or datetime
        The value to encode

    Returns
    -------
    str
        Literal text, e.g. ``'O''Malley'``, ``42``, ``true``, ``null``

    Raises
    ------
    UnsupportedValue
        For non-finite numbers and any other type

    Examples
    --------
    >>> encode_literal("O'Malley")
    "'O''Malley'"
    >>> encode_literal(True)
    'true'
    """
    if isinstance(value, str):
        return f"'{escape_odata_literal(value)}'"
    # bool is an int subclass, so it is checked first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _format_number(value)
    if value is None:
        return "null"
    if isinstance(value, date):
        return format_datetime(value)
    raise UnsupportedValue(f"Unsupported value type for OData literal: {type(value).__name__}")


def decode_literal(text: str) -> Any:
    """
    Decode OData literal text produced by ``encode_literal``.

    Datetime literals come back as timezone-aware UTC datetimes.

    Raises
    ------
    InvalidArgument
        When the text is not a recognised literal
    """
    text = text.strip()
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return text[1:-1].replace("''", "'")
    lowered = text.lower()
    if lowered == "null":
        return None
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_RE.match(text):
        return int(text)
    if _DECIMAL_RE.match(text):
        return Decimal(text)
    if _DATETIME_RE.match(text):
        return datetime.strptime(text, DATETIME_FORMAT).replace(tzinfo=timezone.utc)
    raise InvalidArgument(f"Not an OData literal: {text!r}")


def encode_key_segment(key: Union[KeyValue, Mapping[str, KeyValue]]) -> str:
    """
    Encode an entity key for use inside ``EntitySet(...)``.

    Examples
    --------
    >>> encode_key_segment("ALFKI")
    "'ALFKI'"
    >>> encode_key_segment({"OrderID": 10248, "ProductID": 11})
    'OrderID=10248,ProductID=11'
    """
    if isinstance(key, Mapping):
        return ",".join(f"{name}={encode_literal(value)}" for name, value in key.items())
    return encode_literal(key)


def parse_key_segment(text: str) -> Union[str, int]:
    """
    Best-effort decoding of the text between the parentheses of a key.

    Single-quoted keys are unquoted, bare integers become ``int``, anything
    else (composite keys, typed literals such as guid'...') is kept as-is.
    """
    text = text.strip()
    quoted = _QUOTED_RE.fullmatch(text)
    if quoted:
        return quoted.group(1).replace("''", "'")
    if _INT_RE.match(text):
        return int(text)
    return text


def build_path(*segments: str) -> str:
    """
    Join path segments with single slashes, dropping empty ones.

    Examples
    --------
    >>> build_path("Products(1)", "/Category/")
    'Products(1)/Category'
    """
    parts = [s.strip("/") for s in segments if s]
    return "/".join(p for p in parts if p)


def format_query_string(params: Mapping[str, Any]) -> str:
    """
    Render query options with RFC3986 percent-encoding.

    Spaces become ``%20`` rather than ``+``; ``$`` in option names is kept.
    """
    return urlencode(
        {k: _render_option(v) for k, v in params.items()},
        quote_via=quote,
        safe="$",
    )


def _render_option(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def combine_url(base_url: str, relative_path: str = "", params: Optional[Dict[str, Any]] = None) -> str:
    """
    Combine a base URL, a relative path and optional query options.

    Examples
    --------
    >>> combine_url("https://host/svc/", "Customers", {"$top": 5})
    'https://host/svc/Customers?$top=5'
    """
    url = base_url.rstrip("/") + "/"
    if relative_path:
        url += build_path(relative_path)
    if params:
        url += "?" + format_query_string(params)
    return url
