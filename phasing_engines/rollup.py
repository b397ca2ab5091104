"""
Module: phasing_engines.rollup
Responsibility:
    Aggregate every linked resource's amortized schedule into the monthly
    phasing grid, per cost line, unless the line is manually overridden.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Composes the Amortizer (per resource) and the PhaseSynchronizer
    (merge into the grid).

Invariants enforced:
    - A cost line with ``override=True`` is never written.
    - Unlinked resources, resources linked to a line that does not exist,
      and uncostable resources contribute nothing.
    - Lines with no contributing resource are neither zeroed nor created.
    - Forecast is always proposed for months with a positive rolled-up
      cost; budget only where the current budget is unset or zero.
    - Idempotent: rolling up an unchanged snapshot twice yields the same
      grid, because the second pass sees the budgets the first one set.

Failure modes:
    - None.  ``rollup`` is total: at worst it returns an equal copy.

Usage:
    from phasing_engines.rollup import rollup

    new_data = rollup(resources, cost_lines, monthly_data, fy_config)
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from phasing_engines.amortizer import Amortizer
from phasing_engines.calendar import build_month_keys
from phasing_engines.phase_store import copy_monthly_data, get_entry, line_field_total
from phasing_engines.synchronizer import PhaseProposal, PhaseSynchronizer
from phasing_engines.tracer import traced_engine
from phasing_kernel.domain.plan import CostLine, FYConfig, MonthlyData, MonthlyEntry, Resource
from phasing_kernel.domain.values import ZERO, MonthKey, is_unset_or_zero, quantize_money
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.rollup")


@dataclass(frozen=True)
class RollupPreviewRow:
    """What a rollup would change on one cost line's forecast."""

    line_id: str
    line_label: str
    total_before: Decimal
    total_after: Decimal
    months_affected: int

    @property
    def change(self) -> Decimal:
        return self.total_after - self.total_before


class RollupEngine:
    """
    Derives monthly budget/forecast proposals from the resource roster.

    Contract:
        Pure functions over an immutable snapshot.  No I/O.
    Guarantees:
        - See module invariants.
    Non-goals:
        - Does not touch the line-level ledger totals; reconciling those
          with the grid is the ReconciliationAnalyzer's job.
    """

    def __init__(
        self,
        amortizer: Amortizer | None = None,
        synchronizer: PhaseSynchronizer | None = None,
    ) -> None:
        self._amortizer = amortizer or Amortizer()
        self._synchronizer = synchronizer or PhaseSynchronizer()

    def group_resources(
        self,
        resources: Sequence[Resource],
        cost_lines: Sequence[CostLine],
    ) -> dict[str, list[Resource]]:
        """Linked resources per eligible (existing, non-override) line."""
        lines = {line.id: line for line in cost_lines}
        groups: dict[str, list[Resource]] = {}
        for resource in resources:
            if not resource.cost_line_id:
                continue
            line = lines.get(resource.cost_line_id)
            if line is None or line.override:
                continue
            groups.setdefault(line.id, []).append(resource)
        return groups

    def line_schedule(
        self,
        resources: Sequence[Resource],
        month_keys: Sequence[MonthKey],
    ) -> dict[MonthKey, Decimal]:
        """Sum of amortized schedules, one amount per FY month."""
        totals = {mk: ZERO for mk in month_keys}
        for resource in resources:
            amortization = self._amortizer.amortize(resource=resource, month_keys=month_keys)
            if amortization is None:
                continue
            for mk, amount in amortization.schedule.items():
                totals[mk] += amount
        return totals

    @traced_engine("rollup", "1.0", fingerprint_fields=("resources", "cost_lines", "fy_config"))
    def propose(
        self,
        resources: Sequence[Resource],
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> tuple[PhaseProposal, ...]:
        """
        Build the (line, month) proposals a rollup would apply.

        Postconditions:
            - Proposals only target lines present in ``cost_lines`` with
              ``override=False`` and at least one linked resource.
            - ``budget`` is set only where the current budget is unset/zero.
        """
        month_keys = build_month_keys(fy_config)
        if not month_keys:
            return ()

        groups = self.group_resources(resources, cost_lines)
        proposals: list[PhaseProposal] = []
        for line in cost_lines:
            line_resources = groups.get(line.id)
            if not line_resources:
                continue
            schedule = self.line_schedule(line_resources, month_keys)
            for mk in month_keys:
                cost = quantize_money(schedule[mk])
                if cost <= ZERO:
                    continue
                existing = get_entry(monthly_data, line.id, mk)
                current_budget = existing.budget if existing is not None else None
                proposals.append(PhaseProposal(
                    line_id=line.id,
                    month_key=mk,
                    forecast=cost,
                    budget=cost if is_unset_or_zero(current_budget) else None,
                ))
        return tuple(proposals)

    @traced_engine("rollup", "1.0", fingerprint_fields=("resources", "cost_lines", "fy_config"))
    def rollup(
        self,
        resources: Sequence[Resource],
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> MonthlyData:
        """Apply resource-derived proposals and return a new MonthlyData."""
        t0 = time.monotonic()
        logger.info("rollup_started", extra={
            "resource_count": len(resources),
            "line_count": len(cost_lines),
        })

        proposals = self.propose(
            resources=resources,
            cost_lines=cost_lines,
            monthly_data=monthly_data,
            fy_config=fy_config,
        )
        if not proposals:
            logger.info("rollup_no_proposals", extra={})
            return copy_monthly_data(monthly_data)

        result = self._synchronizer.synchronize(
            monthly_data=monthly_data,
            proposals=proposals,
        )

        logger.info("rollup_completed", extra={
            "proposal_count": len(proposals),
            "lines_written": len({p.line_id for p in proposals}),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    @traced_engine("rollup_preview", "1.0", fingerprint_fields=("resources", "cost_lines", "fy_config"))
    def preview(
        self,
        resources: Sequence[Resource],
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> tuple[RollupPreviewRow, ...]:
        """
        Summarize, per non-override line, how a rollup would move the
        forecast total.  Lines whose total would not change are omitted.
        """
        synced = self.rollup(
            resources=resources,
            cost_lines=cost_lines,
            monthly_data=monthly_data,
            fy_config=fy_config,
        )
        month_keys = build_month_keys(fy_config)

        rows: list[RollupPreviewRow] = []
        for line in cost_lines:
            if line.override:
                continue
            before = line_field_total(monthly_data, line.id, month_keys, "forecast")
            after = line_field_total(synced, line.id, month_keys, "forecast")
            if before == after:
                continue
            affected = sum(
                1 for mk in month_keys
                if line_field_total(monthly_data, line.id, (mk,), "forecast")
                != line_field_total(synced, line.id, (mk,), "forecast")
            )
            rows.append(RollupPreviewRow(
                line_id=line.id,
                line_label=line.label,
                total_before=before,
                total_after=after,
                months_affected=affected,
            ))
        return tuple(rows)


def propose_rollup(
    resources: Sequence[Resource],
    cost_lines: Sequence[CostLine],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
    amortizer: Amortizer | None = None,
) -> tuple[PhaseProposal, ...]:
    return RollupEngine(amortizer).propose(
        resources=resources,
        cost_lines=cost_lines,
        monthly_data=monthly_data,
        fy_config=fy_config,
    )


def rollup(
    resources: Sequence[Resource],
    cost_lines: Sequence[CostLine],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
    amortizer: Amortizer | None = None,
) -> MonthlyData:
    """Module-level convenience wrapper around ``RollupEngine.rollup``."""
    return RollupEngine(amortizer).rollup(
        resources=resources,
        cost_lines=cost_lines,
        monthly_data=monthly_data,
        fy_config=fy_config,
    )


def preview_rollup(
    resources: Sequence[Resource],
    cost_lines: Sequence[CostLine],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
    amortizer: Amortizer | None = None,
) -> tuple[RollupPreviewRow, ...]:
    return RollupEngine(amortizer).preview(
        resources=resources,
        cost_lines=cost_lines,
        monthly_data=monthly_data,
        fy_config=fy_config,
    )
