"""
Read-only derived totals over the monthly phasing grid.

Month and quarter sums, month-over-month forecast movement, margin and
grand totals across a visible window.  Everything here is recomputed on
demand from the current snapshot; nothing is cached.

Unparseable or unset cells count as zero.  Ratios that cannot be computed
(margin with no revenue) are ``None``, never NaN and never an exception.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from phasing_engines.calendar import Quarter
from phasing_engines.phase_store import sum_field
from phasing_kernel.domain.plan import MonthlyEntry
from phasing_kernel.domain.values import ZERO, MonthKey

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PeriodTotals:
    """Per-field sums over a set of lines for one month or quarter."""

    budget: Decimal = ZERO
    actual: Decimal = ZERO
    forecast: Decimal = ZERO
    revenue: Decimal = ZERO

    def __add__(self, other: PeriodTotals) -> PeriodTotals:
        return PeriodTotals(
            budget=self.budget + other.budget,
            actual=self.actual + other.actual,
            forecast=self.forecast + other.forecast,
            revenue=self.revenue + other.revenue,
        )


@dataclass(frozen=True)
class GrandTotals:
    """Totals across the visible window, with margin on forecast cost."""

    budget: Decimal
    actual: Decimal
    forecast: Decimal
    revenue: Decimal
    margin: Decimal | None


def _period_totals(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    months: Sequence[MonthKey],
) -> PeriodTotals:
    line_ids = tuple(line_ids)
    return PeriodTotals(
        budget=sum_field(monthly_data, line_ids, months, "budget"),
        actual=sum_field(monthly_data, line_ids, months, "actual"),
        forecast=sum_field(monthly_data, line_ids, months, "forecast"),
        revenue=sum_field(monthly_data, line_ids, months, "customer_rate"),
    )


def month_total(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    month_key: MonthKey,
) -> PeriodTotals:
    """Sum budget/actual/forecast/revenue over *line_ids* for one month.

    Revenue is the sum of ``customer_rate``.
    """
    return _period_totals(monthly_data, line_ids, (month_key,))


def quarter_total(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    quarter: Quarter,
) -> PeriodTotals:
    """Sum of the quarter's month totals."""
    return _period_totals(monthly_data, line_ids, quarter.months)


def forecast_movement(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    visible_keys: Sequence[MonthKey],
    month_key: MonthKey,
) -> Decimal | None:
    """Forecast change from the previous visible month.

    Args:
        monthly_data: The phasing grid.
        line_ids: Lines to include.
        visible_keys: The ordered visible window.
        month_key: Month to compare against its predecessor.

    Returns:
        ``forecast(month_key) - forecast(previous visible month)``, or
        ``None`` for the first visible month or a key outside the window.
    """
    if month_key not in visible_keys:
        return None
    index = list(visible_keys).index(month_key)
    if index == 0:
        return None
    line_ids = tuple(line_ids)
    current = sum_field(monthly_data, line_ids, (month_key,), "forecast")
    previous = sum_field(monthly_data, line_ids, (visible_keys[index - 1],), "forecast")
    return current - previous


def margin(revenue: Decimal, cost: Decimal) -> Decimal | None:
    """Margin percentage ``(revenue - cost) / revenue * 100``; None if revenue <= 0."""
    if revenue <= ZERO:
        return None
    return (revenue - cost) / revenue * _HUNDRED


def grand_totals(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    visible_keys: Sequence[MonthKey],
) -> GrandTotals:
    """Totals across the full visible window; margin is on forecast cost."""
    totals = _period_totals(monthly_data, line_ids, visible_keys)
    return GrandTotals(
        budget=totals.budget,
        actual=totals.actual,
        forecast=totals.forecast,
        revenue=totals.revenue,
        margin=margin(totals.revenue, totals.forecast),
    )
