"""
Tests for odata_layer.odata.literals.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from odata_layer.core.errors import InvalidArgument, UnsupportedValue
from odata_layer.odata.literals import (
    build_path,
    combine_url,
    decode_literal,
    encode_key_segment,
    encode_literal,
    escape_odata_literal,
    format_query_string,
    parse_key_segment,
)


class TestEncodeLiteral:
    """Tests for encode_literal."""

    def test_strings_are_quoted_and_escaped(self):
        assert encode_literal("simple") == "'simple'"
        assert encode_literal("O'Malley") == "'O''Malley'"
        assert encode_literal("") == "''"

    @pytest.mark.parametrize("value", ["", "'", "''", "O'Brien", "a'b'c", " padded ", "ünïcödé"])
    def test_string_round_trip(self, value):
        assert decode_literal(encode_literal(value)) == value

    def test_escape_helper(self):
        assert escape_odata_literal("O'Brien") == "O''Brien"
        assert escape_odata_literal("test''double") == "test''''double"

    def test_booleans_and_null(self):
        assert encode_literal(True) == "true"
        assert encode_literal(False) == "false"
        assert encode_literal(None) == "null"

    def test_numbers(self):
        assert encode_literal(42) == "42"
        assert encode_literal(-7) == "-7"
        assert encode_literal(3.5) == "3.5"
        assert encode_literal(0.1) == "0.1"
        assert encode_literal(Decimal("10.50")) == "10.50"

    def test_large_float_has_no_exponent(self):
        assert encode_literal(1e20) == "100000000000000000000"

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), Decimal("Infinity")])
    def test_non_finite_numbers_rejected(self, value):
        with pytest.raises(UnsupportedValue):
            encode_literal(value)

    def test_datetimes_are_utc(self):
        assert encode_literal(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "2024-01-02T03:04:05Z"
        plus_two = timezone(timedelta(hours=2))
        assert encode_literal(datetime(2024, 1, 2, 5, 4, 5, tzinfo=plus_two)) == "2024-01-02T03:04:05Z"

    def test_naive_datetime_taken_as_utc(self):
        assert encode_literal(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05Z"

    def test_date_is_midnight_utc(self):
        assert encode_literal(date(2024, 1, 2)) == "2024-01-02T00:00:00Z"

    @pytest.mark.parametrize("value", [object(), [1, 2], {"a": 1}, b"bytes"])
    def test_unsupported_types(self, value):
        with pytest.raises(UnsupportedValue, match="Unsupported value type"):
            encode_literal(value)

    def test_unsupported_value_is_type_error(self):
        with pytest.raises(TypeError):
            encode_literal(object())


class TestDecodeLiteral:
    """Tests for decode_literal."""

    def test_scalars(self):
        assert decode_literal("null") is None
        assert decode_literal("true") is True
        assert decode_literal("false") is False
        assert decode_literal("42") == 42
        assert decode_literal("3.5") == Decimal("3.5")

    def test_datetime(self):
        assert decode_literal("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_unknown_text_rejected(self):
        with pytest.raises(InvalidArgument):
            decode_literal("Name eq 1")


class TestKeySegments:
    """Tests for key segment helpers."""

    def test_encode_single_key(self):
        assert encode_key_segment("ALFKI") == "'ALFKI'"
        assert encode_key_segment(5) == "5"

    def test_encode_composite_key(self):
        assert encode_key_segment({"OrderID": 10248, "ProductID": 11}) == "OrderID=10248,ProductID=11"

    def test_parse_key_segment(self):
        assert parse_key_segment("'ALFKI'") == "ALFKI"
        assert parse_key_segment("'O''Brien'") == "O'Brien"
        assert parse_key_segment("42") == 42
        assert parse_key_segment("OrderID=1,ProductID=2") == "OrderID=1,ProductID=2"
        assert parse_key_segment("guid'abc'") == "guid'abc'"
        assert parse_key_segment("'Smith, John'") == "Smith, John"
        assert parse_key_segment("'A (B)'") == "A (B)"
        assert parse_key_segment("'a',Id='b'") == "'a',Id='b'"



class TestUrlHelpers:
    """Tests for path and query string helpers."""

    def test_build_path(self):
        assert build_path("Products(1)", "/Category/") == "Products(1)/Category"
        assert build_path("", "People") == "People"

    def test_format_query_string_uses_percent_twenty(self):
        qs = format_query_string({"$filter": "Name eq 'A'", "$top": 5})
        assert qs == "$filter=Name%20eq%20%27A%27&$top=5"
        assert "+" not in qs

    def test_format_query_string_booleans(self):
        assert format_query_string({"$count": True}) == "$count=true"

    def test_combine_url(self):
        assert combine_url("https://host/svc/", "Customers", {"$top": 5}) == "https://host/svc/Customers?$top=5"
        assert combine_url("https://host/svc") == "https://host/svc/"
