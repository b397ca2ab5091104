"""
Tests for the FY calendar.

Tests cover:
- Month key generation and year wrap
- Degenerate FY configurations
- Quarter partitioning and fiscal-year labels
- Visible window selection
"""

import pytest

from phasing_engines.calendar import (
    ViewWindow,
    build_month_keys,
    build_quarters,
    fiscal_year_of,
    is_current_month,
    is_past_month,
    visible_month_keys,
)
from phasing_kernel.domain.plan import FYConfig
from phasing_kernel.exceptions import InvalidFYConfigError


class TestBuildMonthKeys:
    """Tests for build_month_keys."""

    def test_april_start_wraps_into_next_year(self):
        keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024))

        assert len(keys) == 12
        assert keys[0] == "2024-04"
        assert keys[8] == "2024-12"
        assert keys[9] == "2025-01"
        assert keys[-1] == "2025-03"

    def test_january_start_stays_in_one_year(self):
        keys = build_month_keys(FYConfig(fy_start_month=1, fy_start_year=2025))

        assert keys[0] == "2025-01"
        assert keys[-1] == "2025-12"

    def test_keys_strictly_increasing(self):
        keys = build_month_keys(FYConfig(fy_start_month=7, fy_start_year=2023, num_months=30))

        assert len(keys) == 30
        assert keys == sorted(keys)
        assert len(set(keys)) == 30

    def test_zero_months_yields_empty(self):
        assert build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024, num_months=0)) == []

    def test_negative_months_yields_empty(self):
        assert build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024, num_months=-3)) == []

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_out_of_range_start_month_yields_empty(self, month):
        assert build_month_keys(FYConfig(fy_start_month=month, fy_start_year=2024)) == []

    def test_non_integer_field_raises(self):
        with pytest.raises(InvalidFYConfigError) as exc_info:
            FYConfig(fy_start_month="4", fy_start_year=2024)
        assert exc_info.value.field == "fy_start_month"

    def test_bool_field_rejected(self):
        with pytest.raises(InvalidFYConfigError):
            FYConfig(fy_start_month=4, fy_start_year=2024, num_months=True)


class TestBuildQuarters:
    """Tests for build_quarters."""

    def setup_method(self):
        self.keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024))

    def test_four_quarters_of_three(self):
        quarters = build_quarters(self.keys, fy_start_month=4)

        assert len(quarters) == 4
        assert [len(q.months) for q in quarters] == [3, 3, 3, 3]

    def test_first_quarter_label(self):
        quarters = build_quarters(self.keys, fy_start_month=4)

        assert quarters[0].label == "Q1 FY2024/25"
        assert quarters[0].months == ("2024-04", "2024-05", "2024-06")

    def test_last_quarter_keeps_fiscal_year(self):
        """Jan-Mar belongs to the FY that started the previous April."""
        quarters = build_quarters(self.keys, fy_start_month=4)

        assert quarters[3].label == "Q4 FY2024/25"
        assert quarters[3].months == ("2025-01", "2025-02", "2025-03")

    def test_quarters_cover_every_key_once(self):
        quarters = build_quarters(self.keys, fy_start_month=4)
        flattened = [mk for q in quarters for mk in q.months]

        assert flattened == self.keys

    def test_partial_final_quarter(self):
        keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024, num_months=14))
        quarters = build_quarters(keys, fy_start_month=4)

        assert len(quarters) == 5
        assert quarters[-1].months == ("2025-04", "2025-05")
        assert quarters[-1].label == "Q5 FY2025/26"

    def test_century_label_is_two_digits(self):
        keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2099, num_months=3))

        assert build_quarters(keys, fy_start_month=4)[0].label == "Q1 FY2099/00"

    def test_empty_keys(self):
        assert build_quarters([], fy_start_month=4) == []

    def test_fiscal_year_property(self):
        quarters = build_quarters(self.keys, fy_start_month=4)

        assert quarters[2].fiscal_year == "FY2024/25"


class TestFiscalYearOf:

    def test_before_start_month_is_previous_year(self):
        assert fiscal_year_of("2025-02", fy_start_month=4) == 2024

    def test_on_start_month_is_same_year(self):
        assert fiscal_year_of("2025-04", fy_start_month=4) == 2025


class TestMonthPredicates:

    def test_past_and_current(self):
        assert is_past_month("2024-04", "2024-06")
        assert not is_past_month("2024-06", "2024-06")
        assert is_current_month("2024-06", "2024-06")
        assert not is_current_month("2024-07", "2024-06")


class TestVisibleMonthKeys:
    """Tests for visible_month_keys."""

    def setup_method(self):
        self.keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024, num_months=24))

    def test_all_returns_everything(self):
        visible = visible_month_keys(self.keys, 4, ViewWindow.ALL, "2024-06")

        assert visible == self.keys

    def test_three_month_rolling_window(self):
        visible = visible_month_keys(self.keys, 4, ViewWindow.THREE_MONTHS, "2024-06")

        assert visible == ["2024-06", "2024-07", "2024-08"]

    def test_rolling_window_clipped_to_fy(self):
        visible = visible_month_keys(self.keys, 4, ViewWindow.SIX_MONTHS, "2026-01")

        assert visible == ["2026-01", "2026-02", "2026-03"]

    def test_financial_year_window_of_current_quarter(self):
        visible = visible_month_keys(self.keys, 4, ViewWindow.FINANCIAL_YEAR, "2025-08")

        assert visible[0] == "2025-04"
        assert visible[-1] == "2026-03"
        assert len(visible) == 12

    def test_financial_year_window_outside_fy_uses_first_quarter(self):
        visible = visible_month_keys(self.keys, 4, ViewWindow.FINANCIAL_YEAR, "2030-01")

        assert visible[0] == "2024-04"
        assert visible[-1] == "2025-03"

    def test_custom_window(self):
        visible = visible_month_keys(
            self.keys, 4, ViewWindow.CUSTOM, "2024-06",
            custom_start="2024-10", custom_end="2024-12",
        )

        assert visible == ["2024-10", "2024-11", "2024-12"]

    def test_custom_window_open_end(self):
        visible = visible_month_keys(
            self.keys, 4, ViewWindow.CUSTOM, "2024-06", custom_start="2026-02",
        )

        assert visible == ["2026-02", "2026-03"]

    def test_empty_keys(self):
        assert visible_month_keys([], 4, ViewWindow.ALL, "2024-06") == []
