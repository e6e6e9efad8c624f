"""Unit tests for LINE parameter and value parsing."""

import math

import pytest

from integrations.line.parser import (
    coerce_number,
    coerce_str,
    is_status_read,
    parse_int,
    parse_parameter,
)


class TestParseParameter:
    """Tests for tab-delimited parameter decoding."""

    def test_pairs(self):
        """Decodes alternating key/value fields."""
        assert parse_parameter("STKPKGID\t123\tSTKID\t456") == {"STKPKGID": "123", "STKID": "456"}

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty_input(self, raw):
        """None and empty input yield an empty mapping."""
        assert parse_parameter(raw) == {}

    def test_non_string_input(self):
        """Non-string values are treated as empty."""
        assert parse_parameter(12345) == {}

    def test_trailing_key_gets_empty_value(self):
        """An odd trailing key maps to an empty string."""
        assert parse_parameter("A\t1\tB") == {"A": "1", "B": ""}

    def test_empty_key_is_skipped(self):
        """Pairs whose key is empty are dropped."""
        assert parse_parameter("\tignored\tB\t2") == {"B": "2"}

    def test_last_duplicate_wins(self):
        """A later duplicate key overwrites the earlier value."""
        assert parse_parameter("A\t1\tA\t2") == {"A": "2"}

    def test_entry_count_matches_pairs(self):
        """2n well-formed fields decode to n entries."""
        fields = []
        for i in range(7):
            fields.extend([f"K{i}", f"v{i}"])
        assert len(parse_parameter("\t".join(fields))) == 7

    def test_values_may_contain_spaces(self):
        """Only tabs delimit fields."""
        assert parse_parameter("text\thello world") == {"text": "hello world"}


class TestParseInt:
    """Tests for lenient integer parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (42, 42),
            ("42", 42),
            ("  -7", -7),
            ("+8", 8),
            ("120abc", 120),
            (3.9, 3),
        ],
    )
    def test_parses(self, value, expected):
        """Reads the leading integer."""
        assert parse_int(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", True, math.inf, math.nan, b"12"])
    def test_default(self, value):
        """Unparseable values return the default."""
        assert parse_int(value) is None
        assert parse_int(value, 0) == 0


class TestCoerceStr:
    """Tests for string coercion."""

    def test_passthrough(self):
        assert coerce_str("abc") == "abc"

    def test_numbers_are_rendered(self):
        """Integers and integral floats render without a fraction."""
        assert coerce_str(12) == "12"
        assert coerce_str(12.0) == "12"
        assert coerce_str(1.5) == "1.5"

    @pytest.mark.parametrize("value", [None, b"bytes", False, [1]])
    def test_default(self, value):
        assert coerce_str(value) is None
        assert coerce_str(value, "x") == "x"


class TestCoerceNumber:
    """Tests for numeric coercion."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(5, 5), (2.5, 2.5), ("10", 10), (" 3.25 ", 3.25)],
    )
    def test_parses(self, value, expected):
        assert coerce_number(value) == expected

    @pytest.mark.parametrize("value", [None, "", "nope", "inf", math.nan, True])
    def test_rejects(self, value):
        """Non-numeric and non-finite values fall back to the default."""
        assert coerce_number(value) is None
        assert coerce_number(value, 0.0) == 0.0


class TestIsStatusRead:
    """Tests for read-status mapping."""

    @pytest.mark.parametrize("raw", [3, "3", 3.0])
    def test_read(self, raw):
        assert is_status_read(raw) is True

    @pytest.mark.parametrize("raw", [None, 0, 1, 2, 7, "sent"])
    def test_not_read(self, raw):
        assert is_status_read(raw) is False
