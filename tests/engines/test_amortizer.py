"""
Tests for the resource amortizer.

Tests cover:
- Day-rate and monthly-cost rate models
- Start-month positioning and window clipping
- Rounding residual handling
- Uncostable resources
"""

from decimal import Decimal

import pytest

from phasing_engines.amortizer import (
    AmortizationPolicy,
    Amortizer,
    amortize,
    resource_breakdown,
)
from phasing_engines.calendar import build_month_keys
from phasing_kernel.domain.plan import FYConfig, RateType, Resource


KEYS = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024))


def _day_rate(rate, days, months=None, start="2024-04", rid="r1"):
    return Resource(
        id=rid,
        rate_type=RateType.DAY_RATE,
        day_rate=Decimal(rate),
        planned_days=Decimal(days),
        planned_months=months,
        start_month=start,
    )


def _monthly(cost, months, start="2024-04", rid="r1"):
    return Resource(
        id=rid,
        rate_type=RateType.MONTHLY_COST,
        monthly_cost=Decimal(cost),
        planned_months=months,
        start_month=start,
    )


class TestDayRate:
    """Tests for the day-rate model."""

    def test_forty_days_at_500_over_two_months(self):
        result = amortize(_day_rate("500", "40"), KEYS)

        assert result.duration_months == 2
        assert result.monthly_cost == Decimal("10000.00")
        assert result.total_cost == Decimal("20000")
        assert result.schedule == {
            "2024-04": Decimal("10000.00"),
            "2024-05": Decimal("10000.00"),
        }

    def test_partial_month_rounds_duration_up(self):
        result = amortize(_day_rate("400", "25"), KEYS)

        assert result.duration_months == 2
        assert sum(result.schedule.values()) == Decimal("10000")

    def test_explicit_planned_months_override_days_per_month(self):
        result = amortize(_day_rate("500", "40", months=4), KEYS)

        assert result.duration_months == 4
        assert list(result.schedule.values()) == [Decimal("5000.00")] * 4

    def test_custom_days_per_month_policy(self):
        policy = AmortizationPolicy(days_per_month=Decimal("10"))
        result = amortize(_day_rate("500", "40"), KEYS, policy=policy)

        assert result.duration_months == 4

    def test_minimum_one_month(self):
        result = amortize(_day_rate("500", "1"), KEYS)

        assert result.duration_months == 1
        assert result.schedule == {"2024-04": Decimal("500")}

    def test_policy_rejects_non_positive_days(self):
        with pytest.raises(ValueError):
            AmortizationPolicy(days_per_month=Decimal("0"))


class TestMonthlyCost:
    """Tests for the monthly-cost model."""

    def test_flat_monthly_schedule(self):
        result = amortize(_monthly("3000", 3, start="2024-06"), KEYS)

        assert result.schedule == {
            "2024-06": Decimal("3000.00"),
            "2024-07": Decimal("3000.00"),
            "2024-08": Decimal("3000"),
        }
        assert result.total_cost == Decimal("9000")

    def test_missing_planned_months_is_uncostable(self):
        resource = Resource(id="r1", rate_type=RateType.MONTHLY_COST, monthly_cost=Decimal("3000"))

        assert amortize(resource, KEYS) is None


class TestRounding:
    """The schedule always sums to exactly total_cost."""

    def test_residual_lands_in_last_month(self):
        result = amortize(_day_rate("100", "1", months=3), KEYS)

        values = list(result.schedule.values())
        assert values[:2] == [Decimal("33.33"), Decimal("33.33")]
        assert values[2] == Decimal("33.34")
        assert sum(values) == Decimal("100")

    def test_monthly_cost_rounds_down(self):
        breakdown = resource_breakdown(_day_rate("0.05", "1", months=2))

        assert breakdown.monthly_cost == Decimal("0.02")

    def test_sub_cent_monthly_cost_never_goes_negative(self):
        """0.005 a month for 10 months: the cents all land in the last month."""
        resource = Resource(
            id="r1", rate_type=RateType.MONTHLY_COST,
            monthly_cost=Decimal("0.005"), planned_months=10,
        )

        result = amortize(resource, KEYS)

        values = list(result.schedule.values())
        assert all(v >= Decimal("0") for v in values)
        assert values[:9] == [Decimal("0.00")] * 9
        assert values[9] == Decimal("0.050")
        assert sum(values) == result.total_cost

    def test_clipped_tail_never_goes_negative(self):
        result = amortize(_day_rate("0.07", "1", months=24), KEYS)

        assert result.is_clipped
        assert min(result.schedule.values()) >= Decimal("0")
        assert sum(result.schedule.values()) == Decimal("0.07")


class TestPositioning:
    """Start month positioning and window clipping."""

    def test_start_month_offsets_schedule(self):
        result = amortize(_day_rate("500", "40", start="2024-09"), KEYS)

        assert list(result.schedule) == ["2024-09", "2024-10"]

    def test_unset_start_month_uses_first_fy_month(self):
        result = amortize(_day_rate("500", "40", start=None), KEYS)

        assert list(result.schedule) == ["2024-04", "2024-05"]

    def test_out_of_window_start_uses_first_fy_month(self):
        result = amortize(_day_rate("500", "40", start="2023-01"), KEYS)

        assert list(result.schedule) == ["2024-04", "2024-05"]

    def test_clipped_schedule_keeps_total(self):
        result = amortize(_monthly("1000", 6, start="2025-01"), KEYS)

        assert result.is_clipped
        assert result.included_months == 3
        assert list(result.schedule) == ["2025-01", "2025-02", "2025-03"]
        assert result.schedule["2025-03"] == Decimal("4000.00")
        assert sum(result.schedule.values()) == Decimal("6000")

    def test_clip_is_logged(self, captured_logs):
        amortize(_monthly("1000", 6, start="2025-01"), KEYS)

        messages = [r["message"] for r in captured_logs()]
        assert "amortization_clipped_to_window" in messages


class TestUncostable:

    @pytest.mark.parametrize("resource", [
        Resource(id="r", rate_type=RateType.DAY_RATE, planned_days=Decimal("10")),
        Resource(id="r", rate_type=RateType.DAY_RATE, day_rate=Decimal("500")),
        Resource(id="r", rate_type=RateType.DAY_RATE, day_rate=Decimal("0"), planned_days=Decimal("10")),
        Resource(id="r", rate_type=RateType.MONTHLY_COST, monthly_cost=Decimal("0"), planned_months=3),
    ])
    def test_returns_none(self, resource):
        assert amortize(resource, KEYS) is None
        assert not Amortizer().is_costable(resource)

    def test_no_months_returns_none(self):
        assert amortize(_day_rate("500", "40"), []) is None

    def test_engine_trace_emitted(self, captured_logs):
        Amortizer().amortize(resource=_day_rate("500", "40"), month_keys=KEYS)

        traces = [r for r in captured_logs() if r["message"] == "PHASING_ENGINE_TRACE"]
        assert traces
        assert traces[0]["engine_name"] == "amortizer"
        assert len(traces[0]["input_fingerprint"]) == 16
