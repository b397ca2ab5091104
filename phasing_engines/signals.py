"""
Module: phasing_engines.signals
Responsibility:
    Deterministic rule evaluation over a plan snapshot, producing
    severity-tagged findings about budget health scoped to the plan, a
    quarter, a month or a cost line.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Reads the ledger, the monthly grid, the roster and optional external
    context.  Thresholds arrive as a ``SignalThresholds`` value object
    (built from configuration by phasing_config.bridges); "now" arrives
    as the explicit ``as_of`` argument.

Invariants enforced:
    - Each rule is evaluated independently; no rule reads another's output.
    - Output order: severity (critical > warning > info), then scope
      (plan > quarter > month > line), then rule order, then ledger or
      calendar order.  Same input, same output.
    - A rule whose inputs are missing (no approved budget, no ``as_of``,
      no ``last_updated_at``) is skipped rather than guessed.
    - Signals are ephemeral; nothing here stores them.

Failure modes:
    - None for well-typed snapshots.  Unparseable amounts have already
      been coerced to zero or unset at the boundary.

Usage:
    from phasing_engines.signals import evaluate_signals

    signals = evaluate_signals(
        cost_lines, resources, monthly_data, fy_config, last_updated_at,
        external_context,
        total_approved_budget=Decimal("100000"),
        as_of=clock.now(),
    )
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum

from phasing_engines.amortizer import Amortizer
from phasing_engines.calendar import build_month_keys, build_quarters
from phasing_engines.ledger import unlinked_resources
from phasing_engines.phase_store import has_any_value, line_field_total, sum_field
from phasing_engines.reconciliation import ReconciliationAnalyzer
from phasing_engines.tracer import traced_engine
from phasing_kernel.domain.plan import (
    ChangeStatus,
    CostLine,
    ExternalContext,
    FYConfig,
    MonthlyEntry,
    Resource,
)
from phasing_kernel.domain.values import ZERO, MonthKey, coerce_amount
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.signals")


class SignalCode(str, Enum):
    PLAN_OVER_BUDGET = "PLAN_OVER_BUDGET"
    LINE_OVER_BUDGET = "LINE_OVER_BUDGET"
    QUARTER_OVER_BUDGET = "QUARTER_OVER_BUDGET"
    MONTH_OVER_BUDGET = "MONTH_OVER_BUDGET"
    QUARTER_FORECAST_TRENDING = "QUARTER_FORECAST_TRENDING"
    UNRECONCILED_LINE = "UNRECONCILED_LINE"
    STALE_PLAN = "STALE_PLAN"
    UNLINKED_RESOURCE_COST = "UNLINKED_RESOURCE_COST"
    PENDING_CHANGE_EXPOSURE = "PENDING_CHANGE_EXPOSURE"
    PHASING_NOT_SET_UP = "PHASING_NOT_SET_UP"
    APPROVAL_DELAY_COST_RISK = "APPROVAL_DELAY_COST_RISK"


class SignalSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class SignalScope(str, Enum):
    PLAN = "plan"
    QUARTER = "quarter"
    MONTH = "month"
    LINE = "line"


_SEVERITY_RANK = {
    SignalSeverity.CRITICAL: 0,
    SignalSeverity.WARNING: 1,
    SignalSeverity.INFO: 2,
}

_SCOPE_RANK = {
    SignalScope.PLAN: 0,
    SignalScope.QUARTER: 1,
    SignalScope.MONTH: 2,
    SignalScope.LINE: 3,
}


@dataclass(frozen=True)
class Signal:
    """
    One rule finding.

    ``scope_key`` identifies the scoped item: the plan id (or ``"plan"``),
    a quarter label, a month key, or a cost-line id.  ``value`` and
    ``threshold`` carry the measured figure and the limit it crossed,
    where the rule has them.
    """

    code: SignalCode
    severity: SignalSeverity
    scope: SignalScope
    scope_key: str
    title: str
    detail: str
    value: Decimal | None = None
    threshold: Decimal | None = None
    affected_lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class SignalThresholds:
    """
    Rule thresholds.  Defaults mirror ``phasing_config/sets/default.yaml``.

    Ratios are fractions (0.20 means 20%).
    """

    overrun_critical_ratio: Decimal = Decimal("0.20")
    stale_plan_days: int = 14
    pending_exposure_ratio: Decimal = Decimal("0.10")
    reconciliation_tolerance: Decimal = Decimal("1")
    quarter_trending_ratio: Decimal = Decimal("0.90")
    approval_delay_days: int = 10

    def __post_init__(self) -> None:
        if self.overrun_critical_ratio < ZERO:
            raise ValueError("overrun_critical_ratio cannot be negative")
        if self.pending_exposure_ratio < ZERO:
            raise ValueError("pending_exposure_ratio cannot be negative")
        if self.reconciliation_tolerance < ZERO:
            raise ValueError("reconciliation_tolerance cannot be negative")
        if not ZERO < self.quarter_trending_ratio <= Decimal("1"):
            raise ValueError("quarter_trending_ratio must be in (0, 1]")
        if self.stale_plan_days < 0 or self.approval_delay_days < 0:
            raise ValueError("day thresholds cannot be negative")


def sort_signals(signals: Sequence[Signal]) -> list[Signal]:
    """Severity first, then scope; stable for ties."""
    return sorted(
        signals,
        key=lambda s: (_SEVERITY_RANK[s.severity], _SCOPE_RANK[s.scope]),
    )


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def _rule_skipped(code: SignalCode, reason: str) -> list[Signal]:
    logger.debug("signal_rule_skipped", extra={"rule": code.value, "reason": reason})
    return []


class SignalEngine:
    """
    Evaluates the budget-health rule set.

    Contract:
        ``evaluate`` is a pure function of its arguments and the
        thresholds given at construction.
    Guarantees:
        - Sorted output (see module invariants).
    Non-goals:
        - No persistence, deduplication or acknowledgement of signals.
        - No currency conversion; all amounts are in the plan currency.
    """

    def __init__(
        self,
        thresholds: SignalThresholds | None = None,
        amortizer: Amortizer | None = None,
    ) -> None:
        self._thresholds = thresholds or SignalThresholds()
        self._amortizer = amortizer or Amortizer()

    @property
    def thresholds(self) -> SignalThresholds:
        return self._thresholds

    def _overrun_severity(self, budget: Decimal, forecast: Decimal) -> SignalSeverity:
        overrun = (forecast - budget) / budget
        if overrun <= self._thresholds.overrun_critical_ratio:
            return SignalSeverity.WARNING
        return SignalSeverity.CRITICAL

    @traced_engine(
        "signals", "1.0",
        fingerprint_fields=("cost_lines", "resources", "fy_config", "total_approved_budget"),
    )
    def evaluate(
        self,
        cost_lines: Sequence[CostLine],
        resources: Sequence[Resource],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
        last_updated_at: datetime | None,
        external_context: ExternalContext | None = None,
        *,
        total_approved_budget: Decimal | None = None,
        as_of: datetime | None = None,
        plan_id: str = "",
    ) -> tuple[Signal, ...]:
        """
        Run every rule and return the sorted findings.

        Args:
            cost_lines: The ledger.
            resources: The roster.
            monthly_data: The phasing grid.
            fy_config: Financial-year window.
            last_updated_at: When the plan was last edited, if known.
            external_context: Change exposure and approval delays, if any
                (RAID items are carried for the host and not read).
            total_approved_budget: Plan-level approved budget, if any.
                PLAN_OVER_BUDGET and PENDING_CHANGE_EXPOSURE need it above
                zero.
            as_of: "Now" for staleness.  STALE_PLAN is only evaluated
                when both *as_of* and *last_updated_at* are given; the
                engine never reads the clock itself.
            plan_id: Used as the scope key of plan-scoped signals.

        A rule skipped for missing input logs ``signal_rule_skipped`` at
        debug level with the rule code and the reason.
        """
        t0 = time.monotonic()
        month_keys = build_month_keys(fy_config)
        line_ids = [line.id for line in cost_lines]
        context = external_context or ExternalContext()
        approved = coerce_amount(total_approved_budget)
        plan_key = plan_id or "plan"

        signals: list[Signal] = []
        signals.extend(self._plan_over_budget(monthly_data, line_ids, month_keys, approved, plan_key))
        signals.extend(self._line_over_budget(cost_lines))
        signals.extend(self._quarter_rules(monthly_data, line_ids, month_keys, fy_config))
        signals.extend(self._month_over_budget(monthly_data, line_ids, month_keys))
        signals.extend(self._unreconciled_lines(cost_lines, monthly_data, fy_config))
        signals.extend(self._stale_plan(last_updated_at, as_of, plan_key))
        signals.extend(self._unlinked_resource_cost(resources, cost_lines, plan_key))
        signals.extend(self._pending_change_exposure(context, approved, plan_key))
        signals.extend(self._phasing_not_set_up(cost_lines, monthly_data, month_keys, plan_key))
        signals.extend(self._approval_delay_cost_risk(context, plan_key))

        result = tuple(sort_signals(signals))

        logger.info("signals_evaluated", extra={
            "signal_count": len(result),
            "critical_count": sum(1 for s in result if s.severity == SignalSeverity.CRITICAL),
            "warning_count": sum(1 for s in result if s.severity == SignalSeverity.WARNING),
            "info_count": sum(1 for s in result if s.severity == SignalSeverity.INFO),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    # -------------------------------------------------------------------------
    # Budget rules
    # -------------------------------------------------------------------------

    def _plan_over_budget(
        self,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        line_ids: Sequence[str],
        month_keys: Sequence[MonthKey],
        approved: Decimal,
        plan_key: str,
    ) -> list[Signal]:
        if approved <= ZERO:
            return _rule_skipped(SignalCode.PLAN_OVER_BUDGET, "no_approved_budget")
        total_forecast = sum_field(monthly_data, line_ids, month_keys, "forecast")
        if total_forecast <= approved:
            return []
        return [Signal(
            code=SignalCode.PLAN_OVER_BUDGET,
            severity=SignalSeverity.CRITICAL,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title="Plan forecast exceeds approved budget",
            detail=(
                f"Total monthly forecast {total_forecast} exceeds the approved "
                f"budget {approved} by {total_forecast - approved}."
            ),
            value=total_forecast,
            threshold=approved,
        )]

    def _line_over_budget(self, cost_lines: Sequence[CostLine]) -> list[Signal]:
        signals = []
        for line in cost_lines:
            budget = coerce_amount(line.budgeted)
            forecast = coerce_amount(line.forecast)
            if budget <= ZERO or forecast <= budget:
                continue
            signals.append(Signal(
                code=SignalCode.LINE_OVER_BUDGET,
                severity=self._overrun_severity(budget, forecast),
                scope=SignalScope.LINE,
                scope_key=line.id,
                title=f"{line.label} forecast exceeds budget",
                detail=f"Forecast {forecast} against budget {budget}.",
                value=forecast,
                threshold=budget,
                affected_lines=(line.id,),
            ))
        return signals

    def _lines_over_in(
        self,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        line_ids: Sequence[str],
        months: Sequence[MonthKey],
    ) -> tuple[str, ...]:
        return tuple(
            lid for lid in line_ids
            if line_field_total(monthly_data, lid, months, "forecast")
            > line_field_total(monthly_data, lid, months, "budget")
        )

    def _quarter_rules(
        self,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        line_ids: Sequence[str],
        month_keys: Sequence[MonthKey],
        fy_config: FYConfig,
    ) -> list[Signal]:
        signals = []
        trending = self._thresholds.quarter_trending_ratio
        for quarter in build_quarters(month_keys, fy_config.fy_start_month):
            budget = sum_field(monthly_data, line_ids, quarter.months, "budget")
            forecast = sum_field(monthly_data, line_ids, quarter.months, "forecast")
            if budget <= ZERO:
                continue
            if forecast > budget:
                signals.append(Signal(
                    code=SignalCode.QUARTER_OVER_BUDGET,
                    severity=self._overrun_severity(budget, forecast),
                    scope=SignalScope.QUARTER,
                    scope_key=quarter.label,
                    title=f"{quarter.label} forecast exceeds budget",
                    detail=f"Quarter forecast {forecast} against phased budget {budget}.",
                    value=forecast,
                    threshold=budget,
                    affected_lines=self._lines_over_in(monthly_data, line_ids, quarter.months),
                ))
            elif forecast / budget >= trending:
                signals.append(Signal(
                    code=SignalCode.QUARTER_FORECAST_TRENDING,
                    severity=SignalSeverity.WARNING,
                    scope=SignalScope.QUARTER,
                    scope_key=quarter.label,
                    title=f"{quarter.label} forecast approaching budget",
                    detail=(
                        f"Quarter forecast {forecast} has reached "
                        f"{(forecast / budget * 100).quantize(Decimal('0.1'))}% "
                        f"of phased budget {budget}."
                    ),
                    value=forecast,
                    threshold=budget * trending,
                ))
        return signals

    def _month_over_budget(
        self,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        line_ids: Sequence[str],
        month_keys: Sequence[MonthKey],
    ) -> list[Signal]:
        signals = []
        for mk in month_keys:
            budget = sum_field(monthly_data, line_ids, (mk,), "budget")
            forecast = sum_field(monthly_data, line_ids, (mk,), "forecast")
            if budget <= ZERO or forecast <= budget:
                continue
            signals.append(Signal(
                code=SignalCode.MONTH_OVER_BUDGET,
                severity=self._overrun_severity(budget, forecast),
                scope=SignalScope.MONTH,
                scope_key=mk,
                title=f"{mk} forecast exceeds budget",
                detail=f"Month forecast {forecast} against phased budget {budget}.",
                value=forecast,
                threshold=budget,
                affected_lines=self._lines_over_in(monthly_data, line_ids, (mk,)),
            ))
        return signals

    # -------------------------------------------------------------------------
    # Consistency rules
    # -------------------------------------------------------------------------

    def _unreconciled_lines(
        self,
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> list[Signal]:
        analyzer = ReconciliationAnalyzer(self._thresholds.reconciliation_tolerance)
        rows = analyzer.reconcile(
            cost_lines=cost_lines,
            monthly_data=monthly_data,
            fy_config=fy_config,
        )
        signals = []
        for row in rows:
            if not row.has_any_cb or row.all_ok:
                continue
            parts = []
            if not row.budget_ok:
                parts.append(f"budget phased {row.phased_budget} vs line {row.cb_budget}")
            if not row.forecast_ok:
                parts.append(f"forecast phased {row.phased_forecast} vs line {row.cb_forecast}")
            signals.append(Signal(
                code=SignalCode.UNRECONCILED_LINE,
                severity=SignalSeverity.WARNING,
                scope=SignalScope.LINE,
                scope_key=row.line_id,
                title=f"{row.line_label} monthly phasing does not match line totals",
                detail="; ".join(parts) + ".",
                value=row.forecast_diff if not row.forecast_ok else row.budget_diff,
                threshold=analyzer.tolerance,
                affected_lines=(row.line_id,),
            ))
        return signals

    def _stale_plan(
        self,
        last_updated_at: datetime | None,
        as_of: datetime | None,
        plan_key: str,
    ) -> list[Signal]:
        if as_of is None:
            return _rule_skipped(SignalCode.STALE_PLAN, "no_as_of")
        if last_updated_at is None:
            return _rule_skipped(SignalCode.STALE_PLAN, "no_last_updated_at")
        age = _as_utc(as_of) - _as_utc(last_updated_at)
        limit = timedelta(days=self._thresholds.stale_plan_days)
        if age <= limit:
            return []
        return [Signal(
            code=SignalCode.STALE_PLAN,
            severity=SignalSeverity.INFO,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title="Financial plan has not been updated recently",
            detail=f"Last updated {age.days} days ago.",
            value=Decimal(age.days),
            threshold=Decimal(self._thresholds.stale_plan_days),
        )]

    def _unlinked_resource_cost(
        self,
        resources: Sequence[Resource],
        cost_lines: Sequence[CostLine],
        plan_key: str,
    ) -> list[Signal]:
        orphaned = []
        total = ZERO
        for resource in unlinked_resources(resources, cost_lines):
            breakdown = self._amortizer.breakdown(resource)
            if breakdown is None:
                continue
            orphaned.append(resource)
            total += breakdown.total_cost
        if not orphaned:
            return []
        names = ", ".join(r.name or r.id for r in orphaned)
        return [Signal(
            code=SignalCode.UNLINKED_RESOURCE_COST,
            severity=SignalSeverity.INFO,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title=f"{len(orphaned)} costed resource(s) not linked to a cost line",
            detail=f"Cost of {total} is excluded from the phasing: {names}.",
            value=total,
        )]

    # -------------------------------------------------------------------------
    # External-context rules
    # -------------------------------------------------------------------------

    def _pending_change_exposure(
        self,
        context: ExternalContext,
        approved: Decimal,
        plan_key: str,
    ) -> list[Signal]:
        if approved <= ZERO:
            return _rule_skipped(SignalCode.PENDING_CHANGE_EXPOSURE, "no_approved_budget")
        pending = sum(
            (coerce_amount(ce.cost_impact) for ce in context.change_exposure
             if ce.status == ChangeStatus.PENDING),
            ZERO,
        )
        limit = approved * self._thresholds.pending_exposure_ratio
        if pending <= limit:
            return []
        return [Signal(
            code=SignalCode.PENDING_CHANGE_EXPOSURE,
            severity=SignalSeverity.WARNING,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title="Pending change requests carry significant cost exposure",
            detail=f"Pending cost impact {pending} exceeds {limit} of approved budget {approved}.",
            value=pending,
            threshold=limit,
        )]

    def _phasing_not_set_up(
        self,
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        month_keys: Sequence[MonthKey],
        plan_key: str,
    ) -> list[Signal]:
        budgeted = [
            line.id for line in cost_lines
            if coerce_amount(line.budgeted) > ZERO or coerce_amount(line.forecast) > ZERO
        ]
        if not budgeted or not month_keys:
            return []
        if has_any_value(monthly_data, [line.id for line in cost_lines], month_keys):
            return []
        return [Signal(
            code=SignalCode.PHASING_NOT_SET_UP,
            severity=SignalSeverity.WARNING,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title="Monthly phasing has not been set up",
            detail="Cost lines carry totals but no month has a budget, actual or forecast.",
            affected_lines=tuple(budgeted),
        )]

    def _approval_delay_cost_risk(
        self,
        context: ExternalContext,
        plan_key: str,
    ) -> list[Signal]:
        limit = self._thresholds.approval_delay_days
        delayed = [
            d for d in context.approval_delays
            if d.days_pending > limit and coerce_amount(d.cost_impact) > ZERO
        ]
        if not delayed:
            return []
        total = sum((coerce_amount(d.cost_impact) for d in delayed), ZERO)
        titles = ", ".join(d.title for d in delayed)
        return [Signal(
            code=SignalCode.APPROVAL_DELAY_COST_RISK,
            severity=SignalSeverity.WARNING,
            scope=SignalScope.PLAN,
            scope_key=plan_key,
            title=f"{len(delayed)} approval(s) pending over {limit} days with cost impact",
            detail=f"Delayed approvals holding {total} of cost: {titles}.",
            value=total,
            threshold=Decimal(limit),
        )]


def evaluate_signals(
    cost_lines: Sequence[CostLine],
    resources: Sequence[Resource],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
    last_updated_at: datetime | None,
    external_context: ExternalContext | None = None,
    *,
    total_approved_budget: Decimal | None = None,
    as_of: datetime | None = None,
    thresholds: SignalThresholds | None = None,
    plan_id: str = "",
) -> tuple[Signal, ...]:
    """
    Module-level convenience wrapper around ``SignalEngine.evaluate``.

    Pass *as_of* to get STALE_PLAN: without it the rule is skipped (see
    ``SignalEngine.evaluate`` for every input-dependent rule).
    """
    return SignalEngine(thresholds).evaluate(
        cost_lines=cost_lines,
        resources=resources,
        monthly_data=monthly_data,
        fy_config=fy_config,
        last_updated_at=last_updated_at,
        external_context=external_context,
        total_approved_budget=total_approved_budget,
        as_of=as_of,
        plan_id=plan_id,
    )
