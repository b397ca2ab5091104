"""
Module: phasing_engines.health
Responsibility:
    Condense a plan snapshot and its signals into the headline figures a
    weekly report or dashboard shows: ledger totals against the approved
    budget, change exposure, top spending categories and a RAG status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ledger totals and signal output; produces presentation-ready
    values but no formatting (currency symbols belong to the host).

Invariants enforced:
    - Percentages needing the approved budget are ``None`` without one.
    - RAG from the snapshot: red when forecast is more than
      ``red_variance_pct`` over the approved budget or pending exposure
      exceeds ``pending_exposure_ratio`` of it; amber when over budget at
      all or any exposure is pending; green otherwise.
    - RAG from signals: red with any critical signal, amber with any
      signal, green with none.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from phasing_engines.ledger import ledger_totals
from phasing_engines.signals import Signal, SignalCode, SignalScope, SignalSeverity
from phasing_kernel.domain.plan import ChangeExposure, ChangeStatus, FinancialPlan
from phasing_kernel.domain.values import ZERO, coerce_amount

_HUNDRED = Decimal("100")

TOP_CATEGORY_COUNT = 4
DRIVER_COUNT = 3


class RagStatus(str, Enum):
    RED = "red"
    AMBER = "amber"
    GREEN = "green"


@dataclass(frozen=True)
class HealthThresholds:
    """
    Snapshot RAG limits.

    ``red_variance_pct`` is a percentage of the approved budget (5 means
    5%); ``pending_exposure_ratio`` is a fraction of it.
    """

    red_variance_pct: Decimal = Decimal("5")
    pending_exposure_ratio: Decimal = Decimal("0.10")

    def __post_init__(self) -> None:
        if self.red_variance_pct < ZERO or self.pending_exposure_ratio < ZERO:
            raise ValueError("health thresholds cannot be negative")


@dataclass(frozen=True)
class CategoryShare:
    """Forecast held by one cost category and its share of the total."""

    category: str
    forecast: Decimal
    pct: Decimal


@dataclass(frozen=True)
class FinancialSnapshot:
    """
    Headline financial figures for one plan.

    ``forecast_variance`` is ``total_forecast - approved_budget``;
    ``util_pct`` and ``spent_pct`` are forecast and actual as whole
    percentages of the approved budget.
    """

    currency: str
    approved_budget: Decimal
    total_budgeted: Decimal
    total_actual: Decimal
    total_forecast: Decimal
    forecast_variance: Decimal | None
    forecast_variance_pct: Decimal | None
    util_pct: Decimal | None
    spent_pct: Decimal | None
    pending_exposure: Decimal
    approved_exposure: Decimal
    over_budget: bool
    top_categories: tuple[CategoryShare, ...]
    rag_status: RagStatus
    summary: str = ""
    variance_narrative: str = ""
    last_updated_at: datetime | None = None

    @property
    def total_exposure(self) -> Decimal:
        return self.approved_exposure + self.pending_exposure


@dataclass(frozen=True)
class HealthDriver:
    """A signal promoted to a headline driver."""

    title: str
    explanation: str
    severity: SignalSeverity
    quarter: str | None
    recommended_action: str


@dataclass(frozen=True)
class PlanHealthSummary:
    headline: str
    rag: RagStatus
    narrative: str
    drivers: tuple[HealthDriver, ...]
    actions: tuple[str, ...]


def _whole_pct(part: Decimal, whole: Decimal) -> Decimal:
    return (part / whole * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _exposure(items: Sequence[ChangeExposure], status: ChangeStatus) -> Decimal:
    return sum((coerce_amount(ce.cost_impact) for ce in items if ce.status == status), ZERO)


def extract_financial_snapshot(
    plan: FinancialPlan,
    thresholds: HealthThresholds | None = None,
) -> FinancialSnapshot:
    """Build the headline figures for *plan*.

    Args:
        plan: The plan snapshot.
        thresholds: RAG limits; defaults to ``HealthThresholds()``.

    Returns:
        A FinancialSnapshot.  Budget-relative figures are ``None`` when the
        plan has no positive approved budget.
    """
    thresholds = thresholds or HealthThresholds()
    approved = coerce_amount(plan.total_approved_budget)
    totals = ledger_totals(plan.cost_lines)
    has_budget = approved > ZERO

    variance = totals.forecast - approved if has_budget else None
    variance_pct = variance / approved * _HUNDRED if variance is not None else None
    util_pct = _whole_pct(totals.forecast, approved) if has_budget else None
    spent_pct = _whole_pct(totals.actual, approved) if has_budget else None

    pending = _exposure(plan.change_exposure, ChangeStatus.PENDING)
    approved_exposure = _exposure(plan.change_exposure, ChangeStatus.APPROVED)

    by_category: dict[str, Decimal] = {}
    for line in plan.cost_lines:
        key = line.category.value
        by_category[key] = by_category.get(key, ZERO) + coerce_amount(line.forecast)
    ranked = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    top_categories = tuple(
        CategoryShare(
            category=category,
            forecast=forecast,
            pct=_whole_pct(forecast, totals.forecast) if totals.forecast > ZERO else ZERO,
        )
        for category, forecast in ranked[:TOP_CATEGORY_COUNT]
    )

    over_budget = variance is not None and variance > ZERO
    if (variance_pct is not None and variance_pct > thresholds.red_variance_pct) or (
        pending > approved * thresholds.pending_exposure_ratio
    ):
        rag = RagStatus.RED
    elif over_budget or pending > ZERO:
        rag = RagStatus.AMBER
    else:
        rag = RagStatus.GREEN

    return FinancialSnapshot(
        currency=plan.currency,
        approved_budget=approved,
        total_budgeted=totals.budgeted,
        total_actual=totals.actual,
        total_forecast=totals.forecast,
        forecast_variance=variance,
        forecast_variance_pct=variance_pct,
        util_pct=util_pct,
        spent_pct=spent_pct,
        pending_exposure=pending,
        approved_exposure=approved_exposure,
        over_budget=over_budget,
        top_categories=top_categories,
        rag_status=rag,
        summary=plan.summary,
        variance_narrative=plan.variance_narrative,
        last_updated_at=plan.last_updated_at,
    )


_RECOMMENDED_ACTIONS = {
    SignalCode.PLAN_OVER_BUDGET: "Agree savings or raise a change request for additional budget.",
    SignalCode.LINE_OVER_BUDGET: "Review the line forecast with its budget holder.",
    SignalCode.QUARTER_OVER_BUDGET: "Rephase or reduce spend in the quarter.",
    SignalCode.MONTH_OVER_BUDGET: "Check the month's forecast against committed spend.",
    SignalCode.QUARTER_FORECAST_TRENDING: "Monitor the quarter before it tips over budget.",
    SignalCode.UNRECONCILED_LINE: "Distribute the line total evenly or correct the monthly phasing.",
    SignalCode.STALE_PLAN: "Update monthly actuals and forecasts.",
    SignalCode.UNLINKED_RESOURCE_COST: "Link resources to a cost line so their cost is phased.",
    SignalCode.PENDING_CHANGE_EXPOSURE: "Chase decisions on pending change requests.",
    SignalCode.PHASING_NOT_SET_UP: "Phase cost line totals across the financial year.",
    SignalCode.APPROVAL_DELAY_COST_RISK: "Escalate delayed approvals that are holding spend.",
}

_DEFAULT_ACTIONS = ("Update monthly actuals", "Review quarter-on-quarter variances")


def summarize_signals(signals: Sequence[Signal]) -> PlanHealthSummary:
    """Rule-based narrative over sorted signals: headline, RAG, top drivers."""
    criticals = [s for s in signals if s.severity == SignalSeverity.CRITICAL]
    if criticals:
        rag = RagStatus.RED
        headline = "Critical financial risks detected"
    elif signals:
        rag = RagStatus.AMBER
        headline = "Financial plan needs attention"
    else:
        rag = RagStatus.GREEN
        headline = "Financial plan stable"

    drivers = tuple(
        HealthDriver(
            title=s.title,
            explanation=s.detail,
            severity=s.severity,
            quarter=s.scope_key if s.scope == SignalScope.QUARTER else None,
            recommended_action=_RECOMMENDED_ACTIONS[s.code],
        )
        for s in signals[:DRIVER_COUNT]
    )

    actions: list[str] = []
    for s in signals:
        action = _RECOMMENDED_ACTIONS[s.code]
        if action not in actions:
            actions.append(action)
    if not actions:
        actions = list(_DEFAULT_ACTIONS)

    narrative = (
        f"Detected {len(signals)} signal(s): {len(criticals)} critical, "
        f"{sum(1 for s in signals if s.severity == SignalSeverity.WARNING)} warning, "
        f"{sum(1 for s in signals if s.severity == SignalSeverity.INFO)} info."
    )
    return PlanHealthSummary(
        headline=headline,
        rag=rag,
        narrative=narrative,
        drivers=drivers,
        actions=tuple(actions),
    )
