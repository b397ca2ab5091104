"""
Plan -- Immutable records that make up a financial plan snapshot.

Responsibility:
    Defines the validated record types every engine consumes: the
    financial-year configuration, cost lines (the ledger), staffed
    resources (the roster), the monthly phasing grid, external exposure
    context, and the ``FinancialPlan`` snapshot that bundles them.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  Loosely-typed host rows are
    parsed into these types by ``phasing_ingestion`` before reaching any
    engine.

Invariants enforced:
    - FYConfig fields are integers (InvalidFYConfigError otherwise); their
      *values* are not range-checked -- bad values yield no months.
    - Money fields are ``Decimal | None`` and never negative (ValueError).
    - A Resource's ``cost_line_id`` is a weak reference: lookup only.

Failure modes:
    - InvalidFYConfigError on non-integer FY fields.
    - ValueError on negative money or non-positive planned quantities.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from phasing_kernel.domain.values import ZERO, MonthKey
from phasing_kernel.exceptions import InvalidFYConfigError


# =============================================================================
# Financial year
# =============================================================================


@dataclass(frozen=True)
class FYConfig:
    """
    Financial-year window configuration.

    Contract:
        Determines a contiguous, strictly increasing sequence of month keys
        starting at (fy_start_month, fy_start_year) for num_months months.
    Guarantees:
        - All three fields are ``int`` (bool rejected).
    Non-goals:
        - Does not reject out-of-range values; the calendar degrades them
          to an empty month list.
    """

    fy_start_month: int
    fy_start_year: int
    num_months: int = 12

    def __post_init__(self) -> None:
        for name in ("fy_start_month", "fy_start_year", "num_months"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidFYConfigError(name, value)

    @property
    def is_valid(self) -> bool:
        """True when the config yields at least one month."""
        return 1 <= self.fy_start_month <= 12 and self.num_months > 0


# =============================================================================
# Cost-line ledger
# =============================================================================


class CostCategory(str, Enum):
    """Budget category of a cost line."""

    PEOPLE = "people"
    TOOLS_LICENCES = "tools_licences"
    INFRASTRUCTURE = "infrastructure"
    EXTERNAL_VENDORS = "external_vendors"
    TRAVEL = "travel"
    CONTINGENCY = "contingency"
    OTHER = "other"


def _check_money(owner: str, name: str, value: Decimal | None) -> None:
    if value is not None and value < ZERO:
        raise ValueError(f"{owner}.{name} cannot be negative: {value}")


@dataclass(frozen=True)
class CostLine:
    """
    One budget category row with line-level totals.

    Contract:
        ``budgeted``/``actual``/``forecast`` are the ledger totals the
        monthly grid is reconciled against.  ``override=True`` removes the
        line from automatic resource rollup.
    Guarantees:
        - Money fields are Decimal or None (unset), never negative.
    """

    id: str
    category: CostCategory = CostCategory.OTHER
    description: str = ""
    budgeted: Decimal | None = None
    actual: Decimal | None = None
    forecast: Decimal | None = None
    notes: str = ""
    override: bool = False

    def __post_init__(self) -> None:
        for name in ("budgeted", "actual", "forecast"):
            _check_money("CostLine", name, getattr(self, name))

    @property
    def label(self) -> str:
        """Description if present, else the category value."""
        return self.description or self.category.value


# =============================================================================
# Resource roster
# =============================================================================


class RateType(str, Enum):
    """How a resource is costed."""

    DAY_RATE = "day_rate"
    MONTHLY_COST = "monthly_cost"


class ResourceType(str, Enum):
    """Engagement type of a staffed resource."""

    INTERNAL = "internal"
    CONTRACTOR = "contractor"
    VENDOR = "vendor"
    CONSULTANT = "consultant"


@dataclass(frozen=True)
class Resource:
    """
    A staffed resource with a rate model.

    Contract:
        ``cost_line_id`` is a weak reference to a CostLine; the roster never
        owns the line and the link is cleared when the line is removed.
        ``start_month`` positions the resource inside the FY window.
    """

    id: str
    name: str = ""
    role: str = ""
    type: ResourceType = ResourceType.INTERNAL
    rate_type: RateType = RateType.DAY_RATE
    day_rate: Decimal | None = None
    planned_days: Decimal | None = None
    monthly_cost: Decimal | None = None
    planned_months: int | None = None
    cost_line_id: str | None = None
    start_month: MonthKey | None = None
    user_id: str | None = None
    notes: str = ""

    def __post_init__(self) -> None:
        for name in ("day_rate", "planned_days", "monthly_cost"):
            _check_money("Resource", name, getattr(self, name))
        if self.planned_months is not None and self.planned_months < 0:
            raise ValueError(f"Resource.planned_months cannot be negative: {self.planned_months}")

    @property
    def is_linked(self) -> bool:
        return bool(self.cost_line_id)


# =============================================================================
# Monthly phasing grid
# =============================================================================


@dataclass(frozen=True)
class MonthlyEntry:
    """
    One (line, month) cell of the phasing grid.

    ``locked`` is carried as data for the presentation layer; no engine
    enforces it.
    """

    budget: Decimal | None = None
    actual: Decimal | None = None
    forecast: Decimal | None = None
    customer_rate: Decimal | None = None
    locked: bool = False

    def __post_init__(self) -> None:
        for name in MONTHLY_FIELDS:
            _check_money("MonthlyEntry", name, getattr(self, name))

    def merged(self, **patch: object) -> MonthlyEntry:
        """Return a copy with *patch* fields replaced."""
        return replace(self, **patch)


MONTHLY_FIELDS: tuple[str, ...] = ("budget", "actual", "forecast", "customer_rate")

MonthlyData = dict[str, dict[MonthKey, MonthlyEntry]]


# =============================================================================
# External exposure context
# =============================================================================


class ChangeStatus(str, Enum):
    """Lifecycle status of a change request's cost exposure."""

    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ChangeExposure:
    """Cost impact of a change request against this plan."""

    id: str
    change_ref: str = ""
    title: str = ""
    cost_impact: Decimal | None = None
    status: ChangeStatus = ChangeStatus.PENDING
    notes: str = ""


@dataclass(frozen=True)
class ApprovalDelay:
    """A pending approval that is holding up spend."""

    title: str
    days_pending: int
    cost_impact: Decimal | None = None


@dataclass(frozen=True)
class RaidItem:
    """
    A risk/assumption/issue/dependency row relevant to cost.

    Host pass-through data: parsed and carried on ExternalContext so a
    host can show it beside the signals.  No rule reads it.
    """

    type: str
    title: str
    severity: str = ""
    status: str = ""


@dataclass(frozen=True)
class ExternalContext:
    """
    Context supplied by collaborators outside the phasing core.

    ``change_exposure`` and ``approval_delays`` feed signal rules;
    ``raid_items`` is carried through untouched for the host.
    """

    change_exposure: tuple[ChangeExposure, ...] = ()
    approval_delays: tuple[ApprovalDelay, ...] = ()
    raid_items: tuple[RaidItem, ...] = ()


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class FinancialPlan:
    """
    Immutable snapshot of one project's financial plan.

    Contract:
        Every editing or recomputation operation takes a snapshot and
        returns a new one.  ``monthly_data`` is never mutated in place.
    Non-goals:
        - Does not carry persistence identity beyond ``plan_id``.
        - ``currency`` is an opaque label; nothing converts between
          currencies.
    """

    fy_config: FYConfig
    plan_id: str = ""
    currency: str = "GBP"
    total_approved_budget: Decimal | None = None
    cost_lines: tuple[CostLine, ...] = ()
    resources: tuple[Resource, ...] = ()
    change_exposure: tuple[ChangeExposure, ...] = ()
    monthly_data: MonthlyData = field(default_factory=dict)
    last_updated_at: datetime | None = None
    summary: str = ""
    variance_narrative: str = ""
    assumptions: str = ""

    @property
    def line_ids(self) -> list[str]:
        return [line.id for line in self.cost_lines]

    def get_line(self, line_id: str) -> CostLine | None:
        for line in self.cost_lines:
            if line.id == line_id:
                return line
        return None

    def get_resource(self, resource_id: str) -> Resource | None:
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None

    def with_changes(self, **changes: object) -> FinancialPlan:
        """Return a new snapshot with *changes* applied."""
        return replace(self, **changes)
