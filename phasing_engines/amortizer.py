"""
Module: phasing_engines.amortizer
Responsibility:
    Convert one staffed resource into a per-month cost schedule over the
    financial-year window.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import phasing_kernel.

Invariants enforced:
    - A resource missing its rate or its quantity is not costable and
      yields ``None`` (never a zero schedule).
    - Monthly cost is rounded down to two decimal places; the last
      included month absorbs the residual (never negative), so the schedule always sums to
      exactly ``total_cost`` -- including when the schedule is clipped by
      the end of the FY window, in which case the clipped tail lands in
      the last visible month.
    - Start month outside the window (or unset) starts the schedule at the
      first FY month.
    - Purity: no clock access, no I/O.

Failure modes:
    - None.  Uncostable resources and empty month lists return ``None``.

Usage:
    from phasing_engines.amortizer import amortize

    result = amortize(resource=resource, month_keys=keys)
    if result is not None:
        result.schedule  # {"2024-04": Decimal("10000.00"), ...}
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from phasing_engines.tracer import traced_engine
from phasing_kernel.domain.plan import RateType, Resource
from phasing_kernel.domain.values import ZERO, MonthKey, floor_money
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.amortizer")


@dataclass(frozen=True)
class AmortizationPolicy:
    """Engine parameters for converting day rates into monthly cost."""

    days_per_month: Decimal = Decimal("20")

    def __post_init__(self) -> None:
        if self.days_per_month <= ZERO:
            raise ValueError("days_per_month must be positive")


@dataclass(frozen=True)
class Breakdown:
    """Rate model reduced to a monthly cost over a number of months."""

    monthly_cost: Decimal
    duration_months: int
    total_cost: Decimal


@dataclass(frozen=True)
class Amortization:
    """
    Per-month cost schedule for one resource.

    Contract:
        ``schedule`` holds one amount per included FY month, in order.
    Guarantees:
        - ``sum(schedule.values()) == total_cost``.
        - ``len(schedule) <= duration_months``; fewer means the window
          clipped the schedule.
    """

    resource_id: str
    monthly_cost: Decimal
    duration_months: int
    total_cost: Decimal
    schedule: dict[MonthKey, Decimal] = field(default_factory=dict)

    @property
    def included_months(self) -> int:
        return len(self.schedule)

    @property
    def is_clipped(self) -> bool:
        """True when the FY window ends before the resource does."""
        return self.included_months < self.duration_months


class Amortizer:
    """
    Pure calculator turning a resource's rate model into a schedule.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        - ``monthly_cost`` rate type: ``monthly_cost x planned_months``.
        - ``day_rate`` rate type: ``day_rate x planned_days`` spread over
          ``planned_months`` if given, else ``ceil(planned_days /
          days_per_month)`` months (at least one).
    Non-goals:
        - Does not look at cost lines; linkage is the rollup's concern.
    """

    def __init__(self, policy: AmortizationPolicy | None = None) -> None:
        self._policy = policy or AmortizationPolicy()

    @property
    def policy(self) -> AmortizationPolicy:
        return self._policy

    def breakdown(self, resource: Resource) -> Breakdown | None:
        """
        Reduce a resource to ``(monthly_cost, duration_months, total_cost)``.

        Returns None when the resource lacks a positive rate or quantity.
        """
        if resource.rate_type == RateType.MONTHLY_COST:
            cost = resource.monthly_cost or ZERO
            months = resource.planned_months or 0
            if cost <= ZERO or months <= 0:
                return None
            return Breakdown(
                monthly_cost=floor_money(cost),
                duration_months=months,
                total_cost=cost * months,
            )

        rate = resource.day_rate or ZERO
        days = resource.planned_days or ZERO
        if rate <= ZERO or days <= ZERO:
            return None
        total = rate * days
        explicit_months = resource.planned_months or 0
        if explicit_months > 0:
            duration = explicit_months
        else:
            duration = max(1, math.ceil(days / self._policy.days_per_month))
        return Breakdown(
            monthly_cost=floor_money(total / duration),
            duration_months=duration,
            total_cost=total,
        )

    def is_costable(self, resource: Resource) -> bool:
        return self.breakdown(resource) is not None

    @traced_engine("amortizer", "1.0", fingerprint_fields=("resource", "month_keys"))
    def amortize(
        self,
        resource: Resource,
        month_keys: Sequence[MonthKey],
    ) -> Amortization | None:
        """
        Spread a resource's cost across the FY month keys.

        Preconditions:
            month_keys is the ordered FY key list (see calendar).

        Postconditions:
            - None if the resource is not costable or there are no months.
            - Otherwise every included month except the last carries
              ``monthly_cost``; the last carries
              ``total_cost - monthly_cost * (included - 1)``.
        """
        breakdown = self.breakdown(resource)
        if breakdown is None:
            logger.debug("amortization_skipped_uncostable", extra={
                "resource_id": resource.id,
                "rate_type": resource.rate_type.value,
            })
            return None
        if not month_keys:
            logger.debug("amortization_skipped_no_months", extra={
                "resource_id": resource.id,
            })
            return None

        start = 0
        if resource.start_month and resource.start_month in month_keys:
            start = list(month_keys).index(resource.start_month)
        last_index = len(month_keys) - 1
        end = min(start + breakdown.duration_months - 1, last_index)
        included = end - start + 1

        schedule: dict[MonthKey, Decimal] = {}
        for i in range(start, end + 1):
            if i == end:
                schedule[month_keys[i]] = (
                    breakdown.total_cost - breakdown.monthly_cost * (included - 1)
                )
            else:
                schedule[month_keys[i]] = breakdown.monthly_cost

        if included < breakdown.duration_months:
            logger.info("amortization_clipped_to_window", extra={
                "resource_id": resource.id,
                "duration_months": breakdown.duration_months,
                "included_months": included,
            })

        return Amortization(
            resource_id=resource.id,
            monthly_cost=breakdown.monthly_cost,
            duration_months=breakdown.duration_months,
            total_cost=breakdown.total_cost,
            schedule=schedule,
        )


def resource_breakdown(
    resource: Resource,
    policy: AmortizationPolicy | None = None,
) -> Breakdown | None:
    return Amortizer(policy).breakdown(resource)


def amortize(
    resource: Resource,
    month_keys: Sequence[MonthKey],
    policy: AmortizationPolicy | None = None,
) -> Amortization | None:
    """Module-level convenience wrapper around ``Amortizer.amortize``."""
    return Amortizer(policy).amortize(resource=resource, month_keys=month_keys)
