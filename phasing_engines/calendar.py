"""
Module: phasing_engines.calendar
Responsibility:
    Generate the ordered month-key sequence for a financial-year
    configuration, partition it into fiscal quarters, and select the
    visible sub-window a presentation layer asks for.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import phasing_kernel.

Invariants enforced:
    - ``build_month_keys`` output is contiguous and strictly increasing,
      wrapping December to January with year + 1.
    - ``build_quarters`` covers every key exactly once, in order, in
      groups of at most three.
    - Invalid FY values (num_months <= 0, start month outside 1-12) yield
      an empty list; nothing here raises on bad values.
    - Purity: "now" is always an explicit ``as_of_month`` argument.

Usage:
    from phasing_engines.calendar import build_month_keys, build_quarters
    from phasing_kernel.domain.plan import FYConfig

    keys = build_month_keys(FYConfig(fy_start_month=4, fy_start_year=2024))
    quarters = build_quarters(keys, fy_start_month=4)
    quarters[0].label  # "Q1 FY2024/25"
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from phasing_kernel.domain.plan import FYConfig
from phasing_kernel.domain.values import (
    MonthKey,
    add_months,
    make_month_key,
    parse_month_key,
)
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.calendar")


@dataclass(frozen=True)
class Quarter:
    """A fiscal quarter: up to three consecutive FY months."""

    index: int  # 1-based position within the FY window
    label: str
    months: tuple[MonthKey, ...]

    @property
    def fiscal_year(self) -> str:
        """The "FY2024/25" part of the label."""
        return self.label.split(" ", 1)[1]


class ViewWindow(str, Enum):
    """Preset month windows offered by a hosting editor."""

    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    TWELVE_MONTHS = "12m"
    FINANCIAL_YEAR = "fy"
    ALL = "all"
    CUSTOM = "custom"


_ROLLING_SPAN = {
    ViewWindow.THREE_MONTHS: 3,
    ViewWindow.SIX_MONTHS: 6,
    ViewWindow.TWELVE_MONTHS: 12,
}


def build_month_keys(cfg: FYConfig) -> list[MonthKey]:
    """
    Emit ``cfg.num_months`` consecutive month keys from the FY start.

    Postconditions:
        - ``len(result) == cfg.num_months`` for a valid config.
        - Empty list for ``num_months <= 0`` or a start month outside 1-12.
    """
    if not cfg.is_valid:
        logger.debug("month_keys_invalid_config", extra={
            "fy_start_month": cfg.fy_start_month,
            "fy_start_year": cfg.fy_start_year,
            "num_months": cfg.num_months,
        })
        return []

    keys: list[MonthKey] = []
    year, month = cfg.fy_start_year, cfg.fy_start_month
    for _ in range(cfg.num_months):
        keys.append(make_month_key(year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return keys


def fiscal_year_of(month_key: MonthKey, fy_start_month: int) -> int:
    """Calendar year in which the fiscal year containing *month_key* starts."""
    year, month = parse_month_key(month_key)
    return year if month >= fy_start_month else year - 1


def build_quarters(keys: Sequence[MonthKey], fy_start_month: int) -> list[Quarter]:
    """
    Group month keys into fiscal quarters of up to three months.

    The label names the fiscal year, not the calendar year: a chunk that
    starts in a month before ``fy_start_month`` belongs to the fiscal year
    that began the previous calendar year.
    """
    quarters: list[Quarter] = []
    for i in range(0, len(keys), 3):
        chunk = tuple(keys[i:i + 3])
        fy_year = fiscal_year_of(chunk[0], fy_start_month)
        label = f"Q{i // 3 + 1} FY{fy_year}/{(fy_year + 1) % 100:02d}"
        quarters.append(Quarter(index=i // 3 + 1, label=label, months=chunk))
    return quarters


def is_past_month(month_key: MonthKey, as_of_month: MonthKey) -> bool:
    """True if *month_key* is strictly before *as_of_month*."""
    return month_key < as_of_month


def is_current_month(month_key: MonthKey, as_of_month: MonthKey) -> bool:
    return month_key == as_of_month


def visible_month_keys(
    keys: Sequence[MonthKey],
    fy_start_month: int,
    window: ViewWindow,
    as_of_month: MonthKey,
    custom_start: MonthKey | None = None,
    custom_end: MonthKey | None = None,
) -> list[MonthKey]:
    """
    Select the sub-window of FY keys shown for *window*.

    Rolling windows (3/6/12 months) start at ``as_of_month``.  The
    financial-year window shows every quarter sharing the fiscal year of
    the quarter containing ``as_of_month`` (the first quarter when
    ``as_of_month`` is outside the FY).  Only keys inside the FY window are
    ever returned.
    """
    if not keys:
        return []

    start, end = keys[0], keys[-1]
    if window == ViewWindow.CUSTOM:
        start = custom_start or start
        end = custom_end or end
    elif window in _ROLLING_SPAN:
        start = as_of_month
        end = add_months(as_of_month, _ROLLING_SPAN[window] - 1)
    elif window == ViewWindow.FINANCIAL_YEAR:
        quarters = build_quarters(keys, fy_start_month)
        current = next((q for q in quarters if as_of_month in q.months), quarters[0])
        fy_months = [
            mk for q in quarters if q.fiscal_year == current.fiscal_year for mk in q.months
        ]
        start, end = fy_months[0], fy_months[-1]

    return [mk for mk in keys if start <= mk <= end]
