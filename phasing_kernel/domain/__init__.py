"""
Pure domain layer.

Plan records, money/month-key primitives and the clock abstraction, with
NO dependencies on I/O, persistence or wall-clock time (SystemClock aside).
All records are immutable and deterministic.
"""

from phasing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from phasing_kernel.domain.plan import (
    MONTHLY_FIELDS,
    ApprovalDelay,
    ChangeExposure,
    ChangeStatus,
    CostCategory,
    CostLine,
    ExternalContext,
    FinancialPlan,
    FYConfig,
    MonthlyData,
    MonthlyEntry,
    RaidItem,
    RateType,
    Resource,
    ResourceType,
)
from phasing_kernel.domain.values import (
    MONEY_PLACES,
    ZERO,
    MonthKey,
    add_months,
    coerce_amount,
    floor_money,
    is_unset_or_zero,
    is_valid_month_key,
    make_month_key,
    parse_amount,
    parse_flag,
    parse_month_key,
    quantize_money,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Plan records
    "FYConfig",
    "CostCategory",
    "CostLine",
    "RateType",
    "ResourceType",
    "Resource",
    "MonthlyEntry",
    "MonthlyData",
    "MONTHLY_FIELDS",
    "ChangeStatus",
    "ChangeExposure",
    "ApprovalDelay",
    "RaidItem",
    "ExternalContext",
    "FinancialPlan",
    # Values
    "MonthKey",
    "ZERO",
    "MONEY_PLACES",
    "coerce_amount",
    "parse_amount",
    "parse_flag",
    "is_unset_or_zero",
    "quantize_money",
    "floor_money",
    "make_month_key",
    "is_valid_month_key",
    "parse_month_key",
    "add_months",
]
