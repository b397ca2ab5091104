"""
Unit tests for money coercion and month keys.

Verifies:
- Fail-soft coercion (aggregation) vs sentinel-preserving parsing (entry)
- Rounding determinism
- Month key validation and arithmetic
- Record-level money validation
"""

from decimal import Decimal

import pytest

from phasing_kernel.domain.plan import CostLine, MonthlyEntry, Resource
from phasing_kernel.domain.values import (
    add_months,
    coerce_amount,
    floor_money,
    is_unset_or_zero,
    is_valid_month_key,
    make_month_key,
    parse_amount,
    parse_flag,
    parse_month_key,
    quantize_money,
)
from phasing_kernel.exceptions import InvalidMonthKeyError


class TestCoerceAmount:
    """Tests for coerce_amount."""

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "NaN", "Infinity", True, [], {}])
    def test_unusable_values_are_zero(self, raw):
        assert coerce_amount(raw) == Decimal("0")

    def test_float_goes_through_str(self):
        """0.1 must not become its binary expansion."""
        assert coerce_amount(0.1) == Decimal("0.1")

    def test_thousands_separator(self):
        assert coerce_amount("12,500.75") == Decimal("12500.75")

    def test_negative_kept_for_aggregation(self):
        assert coerce_amount("-5") == Decimal("-5")


class TestParseAmount:
    """Tests for parse_amount."""

    def test_blank_is_unset(self):
        assert parse_amount("") is None
        assert parse_amount(None) is None

    def test_negative_is_unset(self):
        assert parse_amount("-0.01") is None

    def test_zero_is_not_unset(self):
        assert parse_amount("0") == Decimal("0")

    def test_no_rounding(self):
        assert parse_amount("10.005") == Decimal("10.005")

    def test_is_unset_or_zero(self):
        assert is_unset_or_zero(None)
        assert is_unset_or_zero(Decimal("0.00"))
        assert not is_unset_or_zero(Decimal("0.01"))


class TestParseFlag:

    @pytest.mark.parametrize("raw, expected", [
        ("true", True), (" Yes ", True), ("1", True), ("y", True),
        ("false", False), ("no", False), ("", False), (None, False),
        (True, True), (0, False),
    ])
    def test_parse_flag(self, raw, expected):
        assert parse_flag(raw) is expected


class TestRounding:

    def test_quantize_half_up(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money(Decimal("2.344")) == Decimal("2.34")

    def test_floor_truncates(self):
        assert floor_money(Decimal("83.3333")) == Decimal("83.33")
        assert floor_money(Decimal("83.339")) == Decimal("83.33")


class TestMonthKeys:
    """Tests for month key helpers."""

    def test_make_month_key_pads(self):
        assert make_month_key(2024, 4) == "2024-04"

    @pytest.mark.parametrize("key", ["2024-00", "2024-13", "2024-4", "24-04", "2024/04", None, 202404])
    def test_invalid_keys(self, key):
        assert not is_valid_month_key(key)
        with pytest.raises(InvalidMonthKeyError):
            parse_month_key(key)

    def test_parse_month_key(self):
        assert parse_month_key("2025-03") == (2025, 3)

    @pytest.mark.parametrize("key, n, expected", [
        ("2024-11", 2, "2025-01"),
        ("2024-01", -1, "2023-12"),
        ("2024-04", 0, "2024-04"),
        ("2024-04", 24, "2026-04"),
    ])
    def test_add_months(self, key, n, expected):
        assert add_months(key, n) == expected

    def test_string_order_is_chronological(self):
        keys = ["2025-01", "2024-12", "2024-04", "2024-10"]

        assert sorted(keys) == ["2024-04", "2024-10", "2024-12", "2025-01"]


class TestRecordMoney:
    """Records reject negative money at construction."""

    def test_cost_line_negative(self):
        with pytest.raises(ValueError):
            CostLine(id="cl-1", actual=Decimal("-1"))

    def test_monthly_entry_negative(self):
        with pytest.raises(ValueError):
            MonthlyEntry(forecast=Decimal("-500"))

    def test_monthly_entry_merge_validates(self):
        with pytest.raises(ValueError):
            MonthlyEntry(budget=Decimal("10")).merged(budget=Decimal("-1"))

    def test_resource_negative_months(self):
        with pytest.raises(ValueError):
            Resource(id="r1", planned_months=-2)

    def test_cost_line_label_falls_back_to_category(self):
        assert CostLine(id="cl-1").label == "other"
