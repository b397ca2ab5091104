"""
phasing_services.plan_service -- Plan editing commands and analysis.

Responsibility:
    The imperative shell around the pure phasing engines.  Applies editing
    commands to a plan snapshot, stamps ``last_updated_at`` from an
    injected clock, publishes a ``PlanMutated`` event to the host-owned
    persistence port, and assembles the full analysis (signals,
    reconciliation, snapshot, summary) for a plan.

Architecture position:
    Services layer.  May import from phasing_engines, phasing_kernel,
    phasing_config and phasing_ingestion (edit patches are parsed with the
    same value rules as plan documents).  Holds no plan state between
    calls: the host owns the current snapshot, save timing and conflict
    policy.

Invariants enforced:
    - Every successful command returns a NEW snapshot and publishes
      exactly one PlanMutated event carrying it.
    - A rejected command (unknown id, duplicate id, bad month key)
      publishes nothing and leaves the caller's snapshot untouched.
    - "Now" is read from the clock once per command / analysis.
    - Edit patches never place a raw host value in a record: bad amounts
      become unset and are logged as issues, unknown fields raise
      MalformedRecordError.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Protocol, runtime_checkable

from phasing_config.bridges import (
    build_amortization_policy,
    build_health_thresholds,
    build_signal_thresholds,
)
from phasing_config.schema import PhasingConfig
from phasing_engines.amortizer import AmortizationPolicy, Amortizer
from phasing_engines.health import (
    FinancialSnapshot,
    HealthThresholds,
    PlanHealthSummary,
    extract_financial_snapshot,
    summarize_signals,
)
from phasing_engines.ledger import (
    add_cost_line,
    add_resource,
    link_resource,
    remove_cost_line,
    remove_resource,
    set_override,
    update_cost_line,
    update_resource,
)
from phasing_engines.phase_store import write_entry
from phasing_engines.reconciliation import ReconciliationAnalyzer, ReconciliationRow
from phasing_engines.rollup import RollupEngine, RollupPreviewRow
from phasing_engines.signals import Signal, SignalEngine, SignalThresholds
from phasing_ingestion.domain.parsers import (
    parse_cost_line_changes,
    parse_monthly_changes,
    parse_resource_changes,
)
from phasing_ingestion.domain.types import ParseIssue
from phasing_kernel.domain.clock import Clock, SystemClock
from phasing_kernel.domain.plan import (
    CostLine,
    ExternalContext,
    FinancialPlan,
    Resource,
)
from phasing_kernel.domain.values import MonthKey, parse_month_key
from phasing_kernel.exceptions import CostLineNotFoundError, PhasingError
from phasing_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.plan_service")


def _log_patch_issues(issues: list[ParseIssue]) -> None:
    for issue in issues:
        logger.warning("plan_command_value_degraded", extra={
            "issue_code": issue.code,
            "field": issue.field,
            "detail": issue.message,
        })


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddCostLine:
    name: ClassVar[str] = "add_cost_line"
    line: CostLine


@dataclass(frozen=True)
class UpdateCostLine:
    name: ClassVar[str] = "update_cost_line"
    line_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoveCostLine:
    name: ClassVar[str] = "remove_cost_line"
    line_id: str


@dataclass(frozen=True)
class SetOverride:
    name: ClassVar[str] = "set_override"
    line_id: str
    override: bool


@dataclass(frozen=True)
class AddResource:
    name: ClassVar[str] = "add_resource"
    resource: Resource


@dataclass(frozen=True)
class UpdateResource:
    name: ClassVar[str] = "update_resource"
    resource_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoveResource:
    name: ClassVar[str] = "remove_resource"
    resource_id: str


@dataclass(frozen=True)
class LinkResource:
    """Link a resource to a line; ``line_id=None`` unlinks it."""

    name: ClassVar[str] = "link_resource"
    resource_id: str
    line_id: str | None


@dataclass(frozen=True)
class UpdateMonthlyEntry:
    """Merge ``changes`` into one (line, month) cell of the grid."""

    name: ClassVar[str] = "update_monthly_entry"
    line_id: str
    month_key: MonthKey
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncResources:
    """Roll resource costs up into the monthly grid."""

    name: ClassVar[str] = "sync_resources"


@dataclass(frozen=True)
class DistributeEvenly:
    name: ClassVar[str] = "distribute_evenly"
    line_id: str


PlanCommand = (
    AddCostLine | UpdateCostLine | RemoveCostLine | SetOverride
    | AddResource | UpdateResource | RemoveResource | LinkResource
    | UpdateMonthlyEntry | SyncResources | DistributeEvenly
)


# ---------------------------------------------------------------------------
# Mutation events and the persistence port
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanMutated:
    """A command produced a new snapshot the host should persist."""

    plan_id: str
    command: str
    plan: FinancialPlan
    occurred_at: datetime
    actor_id: str | None = None


@runtime_checkable
class MutationSink(Protocol):
    """Host-owned adapter that persists new snapshots (save timing is its concern)."""

    def publish(self, event: PlanMutated) -> None: ...


class InMemoryMutationSink:
    """Keeps published events in order; for embedding hosts and tests."""

    def __init__(self) -> None:
        self.events: list[PlanMutated] = []

    def publish(self, event: PlanMutated) -> None:
        self.events.append(event)

    @property
    def latest(self) -> PlanMutated | None:
        return self.events[-1] if self.events else None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanAnalysis:
    """Everything a host shows about a plan's financial health."""

    as_of: datetime
    signals: tuple[Signal, ...]
    reconciliation: tuple[ReconciliationRow, ...]
    snapshot: FinancialSnapshot
    summary: PlanHealthSummary


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PlanEditingService:
    """
    Applies editing commands to plan snapshots and analyses plans.

    Contract:
        ``apply`` is snapshot in, snapshot out.  Side effects are limited
        to logging and one ``MutationSink.publish`` per successful command.
    Guarantees:
        - ``last_updated_at`` of the returned plan is ``clock.now()``.
        - Typed ``PhasingError`` subclasses propagate unchanged.
    Non-goals:
        - No persistence, debouncing or merge of concurrent edits.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        sink: MutationSink | None = None,
        thresholds: SignalThresholds | None = None,
        amortization_policy: AmortizationPolicy | None = None,
        health_thresholds: HealthThresholds | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._sink = sink
        self._thresholds = thresholds or SignalThresholds()
        self._amortizer = Amortizer(amortization_policy)
        self._rollup = RollupEngine(self._amortizer)
        self._reconciliation = ReconciliationAnalyzer(self._thresholds.reconciliation_tolerance)
        self._signals = SignalEngine(self._thresholds, self._amortizer)
        self._health_thresholds = health_thresholds or HealthThresholds()
        self._handlers: dict[type, Callable[[FinancialPlan, Any], FinancialPlan]] = {
            AddCostLine: self._add_cost_line,
            UpdateCostLine: self._update_cost_line,
            RemoveCostLine: self._remove_cost_line,
            SetOverride: self._set_override,
            AddResource: self._add_resource,
            UpdateResource: self._update_resource,
            RemoveResource: self._remove_resource,
            LinkResource: self._link_resource,
            UpdateMonthlyEntry: self._update_monthly_entry,
            SyncResources: self._sync_resources,
            DistributeEvenly: self._distribute_evenly,
        }

    @classmethod
    def from_config(
        cls,
        config: PhasingConfig,
        clock: Clock | None = None,
        sink: MutationSink | None = None,
    ) -> PlanEditingService:
        """Build a service with every threshold taken from *config*."""
        return cls(
            clock=clock,
            sink=sink,
            thresholds=build_signal_thresholds(config),
            amortization_policy=build_amortization_policy(config),
            health_thresholds=build_health_thresholds(config),
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def apply(
        self,
        plan: FinancialPlan,
        command: PlanCommand,
        actor_id: str | None = None,
    ) -> FinancialPlan:
        """
        Apply one command and publish the resulting snapshot.

        Raises:
            LedgerError: unknown or duplicate line/resource ids.
            InvalidMonthKeyError: malformed month key in UpdateMonthlyEntry.
            MalformedRecordError: an edit patch names an unknown or read-only
                field.
            TypeError: *command* is not a known command type.
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown plan command: {type(command).__name__}")

        with LogContext.bind(plan_id=plan.plan_id or None, command=command.name, actor_id=actor_id):
            t0 = time.monotonic()
            try:
                updated = handler(plan, command)
            except PhasingError as exc:
                logger.warning("plan_command_rejected", extra={
                    "error_code": exc.code,
                    "error": str(exc),
                })
                raise

            now = self._clock.now()
            updated = updated.with_changes(last_updated_at=now)

            logger.info("plan_command_applied", extra={
                "line_count": len(updated.cost_lines),
                "resource_count": len(updated.resources),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })

            if self._sink is not None:
                self._sink.publish(PlanMutated(
                    plan_id=updated.plan_id,
                    command=command.name,
                    plan=updated,
                    occurred_at=now,
                    actor_id=actor_id,
                ))
        return updated

    def apply_all(
        self,
        plan: FinancialPlan,
        commands: Iterable[PlanCommand],
        actor_id: str | None = None,
    ) -> FinancialPlan:
        """Apply commands in order; stops at (and raises) the first rejection."""
        for command in commands:
            plan = self.apply(plan, command, actor_id=actor_id)
        return plan

    def _add_cost_line(self, plan: FinancialPlan, cmd: AddCostLine) -> FinancialPlan:
        return add_cost_line(plan, cmd.line)

    def _update_cost_line(self, plan: FinancialPlan, cmd: UpdateCostLine) -> FinancialPlan:
        issues: list[ParseIssue] = []
        changes = parse_cost_line_changes(cmd.changes, cmd.line_id, issues)
        _log_patch_issues(issues)
        return update_cost_line(plan, cmd.line_id, **changes)

    def _remove_cost_line(self, plan: FinancialPlan, cmd: RemoveCostLine) -> FinancialPlan:
        return remove_cost_line(plan, cmd.line_id)

    def _set_override(self, plan: FinancialPlan, cmd: SetOverride) -> FinancialPlan:
        return set_override(plan, cmd.line_id, cmd.override)

    def _add_resource(self, plan: FinancialPlan, cmd: AddResource) -> FinancialPlan:
        return add_resource(plan, cmd.resource)

    def _update_resource(self, plan: FinancialPlan, cmd: UpdateResource) -> FinancialPlan:
        issues: list[ParseIssue] = []
        changes = parse_resource_changes(cmd.changes, cmd.resource_id, issues)
        _log_patch_issues(issues)
        return update_resource(plan, cmd.resource_id, **changes)

    def _remove_resource(self, plan: FinancialPlan, cmd: RemoveResource) -> FinancialPlan:
        return remove_resource(plan, cmd.resource_id)

    def _link_resource(self, plan: FinancialPlan, cmd: LinkResource) -> FinancialPlan:
        return link_resource(plan, cmd.resource_id, cmd.line_id)

    def _update_monthly_entry(self, plan: FinancialPlan, cmd: UpdateMonthlyEntry) -> FinancialPlan:
        if plan.get_line(cmd.line_id) is None:
            raise CostLineNotFoundError(cmd.line_id)
        parse_month_key(cmd.month_key)
        issues: list[ParseIssue] = []
        changes = parse_monthly_changes(cmd.changes, cmd.line_id, cmd.month_key, issues)
        _log_patch_issues(issues)
        return plan.with_changes(monthly_data=write_entry(
            plan.monthly_data, cmd.line_id, cmd.month_key, **changes,
        ))

    def _sync_resources(self, plan: FinancialPlan, cmd: SyncResources) -> FinancialPlan:
        return plan.with_changes(monthly_data=self._rollup.rollup(
            resources=plan.resources,
            cost_lines=plan.cost_lines,
            monthly_data=plan.monthly_data,
            fy_config=plan.fy_config,
        ))

    def _distribute_evenly(self, plan: FinancialPlan, cmd: DistributeEvenly) -> FinancialPlan:
        if plan.get_line(cmd.line_id) is None:
            raise CostLineNotFoundError(cmd.line_id)
        return plan.with_changes(monthly_data=self._reconciliation.distribute_evenly(
            line_id=cmd.line_id,
            cost_lines=plan.cost_lines,
            monthly_data=plan.monthly_data,
            fy_config=plan.fy_config,
        ))

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def preview_sync(self, plan: FinancialPlan) -> tuple[RollupPreviewRow, ...]:
        """What SyncResources would change, without changing anything."""
        return self._rollup.preview(
            resources=plan.resources,
            cost_lines=plan.cost_lines,
            monthly_data=plan.monthly_data,
            fy_config=plan.fy_config,
        )

    def analyse(
        self,
        plan: FinancialPlan,
        external_context: ExternalContext | None = None,
    ) -> PlanAnalysis:
        """
        Evaluate signals as of ``clock.now()`` plus reconciliation,
        snapshot and summary.

        The plan's own change exposure is used unless *external_context*
        supplies some.
        """
        context = external_context or ExternalContext()
        if not context.change_exposure:
            context = ExternalContext(
                change_exposure=plan.change_exposure,
                approval_delays=context.approval_delays,
                raid_items=context.raid_items,
            )
        as_of = self._clock.now()

        with LogContext.bind(plan_id=plan.plan_id or None, command="analyse"):
            signals = self._signals.evaluate(
                cost_lines=plan.cost_lines,
                resources=plan.resources,
                monthly_data=plan.monthly_data,
                fy_config=plan.fy_config,
                last_updated_at=plan.last_updated_at,
                external_context=context,
                total_approved_budget=plan.total_approved_budget,
                as_of=as_of,
                plan_id=plan.plan_id,
            )
            reconciliation = self._reconciliation.reconcile(
                cost_lines=plan.cost_lines,
                monthly_data=plan.monthly_data,
                fy_config=plan.fy_config,
            )
            snapshot = extract_financial_snapshot(plan, self._health_thresholds)
            summary = summarize_signals(signals)

            logger.info("plan_analysed", extra={
                "signal_count": len(signals),
                "rag": summary.rag.value,
                "snapshot_rag": snapshot.rag_status.value,
            })

        return PlanAnalysis(
            as_of=as_of,
            signals=signals,
            reconciliation=reconciliation,
            snapshot=snapshot,
            summary=summary,
        )
