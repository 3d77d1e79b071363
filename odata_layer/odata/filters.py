"""
odata_layer.odata.filters - Fluent $filter expression builder
=============================================================
"""

from __future__ import annotations

import re
from typing import Any, Callable, List, Optional

from odata_layer.core.errors import MissingFieldContext
from odata_layer.odata.literals import encode_literal

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_WORDS = {"true", "false", "null"}


def _format_func_arg(arg: Any) -> str:
    if isinstance(arg, str) and _IDENTIFIER_RE.match(arg) and arg.lower() not in _RESERVED_WORDS:
        return arg
    return encode_literal(arg)


class FilterBuilder:
    """
    Fluent builder for OData ``$filter`` expressions.

    Conditions are emitted as flat text parts and joined with spaces by
    ``build()``. ``where()`` names the field for the next condition,
    ``not_()`` negates the next condition or group, and ``group()`` nests a
    parenthesized sub-expression.

    A builder is a mutable, single-use object: build one per query and do
    not share it between threads.

    Examples
    --------
    >>> (FilterBuilder()
    ...     .where("Country").equals("DE")
    ...     .and_()
    ...     .group(lambda g: g.where("City").equals("Berlin").or_().where("City").equals("Hamburg"))
    ...     .build())
    "Country eq 'DE' and (City eq 'Berlin' or City eq 'Hamburg')"
    >>> FilterBuilder().not_().where("Discontinued").equals(True).build()
    'not (Discontinued eq true)'
    """

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._current_field: Optional[str] = None
        self._negate_next = False

    @classmethod
    def new(cls) -> "FilterBuilder":
        return cls()

    # ---------------- field context ----------------

    def where(self, field: str) -> "FilterBuilder":
        """Set the field (or property path) the next condition applies to."""
        self._current_field = field
        return self

    def func(self, name: str, *args: Any) -> "FilterBuilder":
        """
        Use a function call as the left-hand side of the next comparison.

        Arguments that look like bare identifiers are passed through as
        property names; everything else is encoded as a literal.

        Examples
        --------
        >>> FilterBuilder().func("length", "Name").equals(10).build()
        'length(Name) eq 10'
        >>> FilterBuilder().func("indexof", "Name", "van der").greater_than(0).build()
        "indexof(Name,'van der') gt 0"
        """
        formatted = ",".join(_format_func_arg(a) for a in args)
        self._current_field = f"{name}({formatted})"
        return self

    # ---------------- comparisons ----------------

    def equals(self, value: Any) -> "FilterBuilder":
        return self._add_condition("eq", value)

    def not_equals(self, value: Any) -> "FilterBuilder":
        return self._add_condition("ne", value)

    def greater_than(self, value: Any) -> "FilterBuilder":
        return self._add_condition("gt", value)

    def greater_than_or_equals(self, value: Any) -> "FilterBuilder":
        return self._add_condition("ge", value)

    def less_than(self, value: Any) -> "FilterBuilder":
        return self._add_condition("lt", value)

    def less_than_or_equals(self, value: Any) -> "FilterBuilder":
        return self._add_condition("le", value)

    # ---------------- string predicates ----------------

    def starts_with(self, value: Any) -> "FilterBuilder":
        field = self._require_field()
        return self._emit_unit(f"startswith({field},{encode_literal(value)})")

    def ends_with(self, value: Any) -> "FilterBuilder":
        field = self._require_field()
        return self._emit_unit(f"endswith({field},{encode_literal(value)})")

    def contains(self, value: Any) -> "FilterBuilder":
        """V4 ``contains(field,'value')``; use ``substring_of`` for V2."""
        field = self._require_field()
        return self._emit_unit(f"contains({field},{encode_literal(value)})")

    def substring_of(self, value: Any) -> "FilterBuilder":
        """V2 ``substringof('value',field)``; note the reversed argument order."""
        field = self._require_field()
        return self._emit_unit(f"substringof({encode_literal(value)},{field})")

    # ---------------- logic ----------------

    def and_(self) -> "FilterBuilder":
        self._parts.append("and")
        return self

    def or_(self) -> "FilterBuilder":
        self._parts.append("or")
        return self

    def not_(self) -> "FilterBuilder":
        """Negate the next condition, predicate or group."""
        self._negate_next = True
        return self

    def group(self, callback: Callable[["FilterBuilder"], Any]) -> "FilterBuilder":
        """
        Add a parenthesized group built by ``callback``.

        The callback receives a fresh builder; its return value is ignored.
        An empty group emits nothing and leaves a pending ``not_()`` in place.
        """
        sub = FilterBuilder()
        callback(sub)
        content = sub.build()
        if content:
            if self._negate_next:
                self._parts.append(f"not ({content})")
                self._negate_next = False
            else:
                self._parts.append(f"({content})")
        return self

    def build(self) -> str:
        """Join all emitted parts; an untouched builder yields ``""``."""
        return " ".join(self._parts)

    def __str__(self) -> str:
        return self.build()

    # ---------------- internals ----------------

    def _require_field(self) -> str:
        if self._current_field is None:
            raise MissingFieldContext(
                "A field must be specified using where() before adding a condition or function."
            )
        return self._current_field

    def _add_condition(self, operator: str, value: Any) -> "FilterBuilder":
        field = self._require_field()
        return self._emit_unit(f"{field} {operator} {encode_literal(value)}")

    def _emit_unit(self, unit: str) -> "FilterBuilder":
        if self._negate_next:
            unit = f"not ({unit})"
            self._negate_next = False
        self._parts.append(unit)
        self._current_field = None
        return self
