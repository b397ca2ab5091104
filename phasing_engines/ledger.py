"""
Module: phasing_engines.ledger
Responsibility:
    Pure editing operations on a plan's cost-line ledger and resource
    roster.  Each operation takes a ``FinancialPlan`` snapshot and returns
    a new one.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Called by phasing_services command handlers; never stamps timestamps
    (the service owns the clock).

Invariants enforced:
    - Cost-line ids and resource ids are unique within a plan.
    - Removing a cost line cascades: resources linked to it become
      unlinked and its monthly entries are discarded.
    - A resource may only be linked to a cost line that exists.
    - Snapshots are never mutated in place.

Failure modes:
    - CostLineNotFoundError / ResourceNotFoundError for unknown ids.
    - DuplicateCostLineError / DuplicateResourceError for id collisions.
    - ValueError (from the record types) for negative money.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from phasing_engines.phase_store import discard_line
from phasing_kernel.domain.plan import CostLine, FinancialPlan, Resource
from phasing_kernel.domain.values import ZERO, coerce_amount
from phasing_kernel.exceptions import (
    CostLineNotFoundError,
    DuplicateCostLineError,
    DuplicateResourceError,
    ResourceNotFoundError,
)
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


@dataclass(frozen=True)
class LedgerTotals:
    """Line-level totals summed across the ledger."""

    budgeted: Decimal
    actual: Decimal
    forecast: Decimal

    @property
    def variance(self) -> Decimal:
        """Forecast minus budgeted; positive means overspend."""
        return self.forecast - self.budgeted


# ---------------------------------------------------------------------------
# Cost lines
# ---------------------------------------------------------------------------


def _require_line(plan: FinancialPlan, line_id: str) -> CostLine:
    line = plan.get_line(line_id)
    if line is None:
        raise CostLineNotFoundError(line_id)
    return line


def _require_resource(plan: FinancialPlan, resource_id: str) -> Resource:
    resource = plan.get_resource(resource_id)
    if resource is None:
        raise ResourceNotFoundError(resource_id)
    return resource


def add_cost_line(plan: FinancialPlan, line: CostLine) -> FinancialPlan:
    """Append *line* to the ledger."""
    if plan.get_line(line.id) is not None:
        raise DuplicateCostLineError(line.id)
    logger.info("cost_line_added", extra={
        "line_id": line.id,
        "category": line.category.value,
    })
    return plan.with_changes(cost_lines=plan.cost_lines + (line,))


def update_cost_line(plan: FinancialPlan, line_id: str, **changes: object) -> FinancialPlan:
    """
    Replace fields of one cost line.

    ``id`` cannot be changed; pass a different line to add_cost_line
    instead.
    """
    if "id" in changes:
        raise ValueError("Cost line id cannot be changed")
    current = _require_line(plan, line_id)
    updated = replace(current, **changes)
    logger.debug("cost_line_updated", extra={
        "line_id": line_id,
        "fields": sorted(changes),
    })
    return plan.with_changes(cost_lines=tuple(
        updated if line.id == line_id else line for line in plan.cost_lines
    ))


def remove_cost_line(plan: FinancialPlan, line_id: str) -> FinancialPlan:
    """
    Remove a cost line and cascade.

    Postconditions:
        - No resource references *line_id*.
        - ``monthly_data`` has no entries for *line_id*.
    """
    _require_line(plan, line_id)
    unlinked = 0
    resources: list[Resource] = []
    for resource in plan.resources:
        if resource.cost_line_id == line_id:
            resources.append(replace(resource, cost_line_id=None))
            unlinked += 1
        else:
            resources.append(resource)

    logger.info("cost_line_removed", extra={
        "line_id": line_id,
        "resources_unlinked": unlinked,
        "had_monthly_data": line_id in plan.monthly_data,
    })
    return plan.with_changes(
        cost_lines=tuple(line for line in plan.cost_lines if line.id != line_id),
        resources=tuple(resources),
        monthly_data=discard_line(plan.monthly_data, line_id),
    )


def set_override(plan: FinancialPlan, line_id: str, override: bool) -> FinancialPlan:
    """Switch automatic resource rollup off (True) or on (False) for a line."""
    return update_cost_line(plan, line_id, override=override)


def ledger_totals(cost_lines: Iterable[CostLine]) -> LedgerTotals:
    """Sum line totals, counting unset amounts as zero."""
    budgeted = actual = forecast = ZERO
    for line in cost_lines:
        budgeted += coerce_amount(line.budgeted)
        actual += coerce_amount(line.actual)
        forecast += coerce_amount(line.forecast)
    return LedgerTotals(budgeted=budgeted, actual=actual, forecast=forecast)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def add_resource(plan: FinancialPlan, resource: Resource) -> FinancialPlan:
    """Append *resource* to the roster; its link, if any, must resolve."""
    if plan.get_resource(resource.id) is not None:
        raise DuplicateResourceError(resource.id)
    if resource.cost_line_id:
        _require_line(plan, resource.cost_line_id)
    logger.info("resource_added", extra={
        "resource_id": resource.id,
        "rate_type": resource.rate_type.value,
        "cost_line_id": resource.cost_line_id,
    })
    return plan.with_changes(resources=plan.resources + (resource,))


def update_resource(plan: FinancialPlan, resource_id: str, **changes: object) -> FinancialPlan:
    if "id" in changes:
        raise ValueError("Resource id cannot be changed")
    current = _require_resource(plan, resource_id)
    new_link = changes.get("cost_line_id")
    if new_link:
        _require_line(plan, str(new_link))
    updated = replace(current, **changes)
    logger.debug("resource_updated", extra={
        "resource_id": resource_id,
        "fields": sorted(changes),
    })
    return plan.with_changes(resources=tuple(
        updated if r.id == resource_id else r for r in plan.resources
    ))


def remove_resource(plan: FinancialPlan, resource_id: str) -> FinancialPlan:
    """
    Remove a resource from the roster.

    Monthly entries it once contributed to are left in place; the next
    rollup recomputes the line from the remaining resources.
    """
    _require_resource(plan, resource_id)
    logger.info("resource_removed", extra={"resource_id": resource_id})
    return plan.with_changes(resources=tuple(
        r for r in plan.resources if r.id != resource_id
    ))


def link_resource(
    plan: FinancialPlan,
    resource_id: str,
    line_id: str | None,
) -> FinancialPlan:
    """Point a resource at a cost line, or unlink it with ``line_id=None``."""
    return update_resource(plan, resource_id, cost_line_id=line_id or None)


def unlinked_resources(
    resources: Sequence[Resource],
    cost_lines: Sequence[CostLine],
) -> list[Resource]:
    """Resources with no link, or a link to a line that does not exist."""
    line_ids = {line.id for line in cost_lines}
    return [
        r for r in resources
        if not r.cost_line_id or r.cost_line_id not in line_ids
    ]
