"""
Module: phasing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    phasing engines.  This is the canonical import surface for higher
    layers (phasing_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import phasing_kernel (and sibling engine modules).
    MUST NOT import phasing_config, phasing_ingestion or phasing_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      "Now" is passed in explicitly (``as_of``, ``as_of_month``).
    - Decimal-only arithmetic for money.
    - Snapshots in, new snapshots out: no engine mutates its inputs.

Audit relevance:
    Public engine operations are wrapped by ``@traced_engine`` (see
    ``phasing_engines.tracer``), emitting PHASING_ENGINE_TRACE records
    with engine name, version, input fingerprint and duration.

Usage:
    from phasing_engines import build_month_keys, rollup, reconcile
    from phasing_engines import evaluate_signals, grand_totals
"""

from phasing_kernel.logging_config import get_logger

logger = get_logger("engines")

from phasing_engines.aggregation import (
    GrandTotals,
    PeriodTotals,
    forecast_movement,
    grand_totals,
    margin,
    month_total,
    quarter_total,
)
from phasing_engines.amortizer import (
    Amortization,
    AmortizationPolicy,
    Amortizer,
    Breakdown,
    amortize,
    resource_breakdown,
)
from phasing_engines.calendar import (
    Quarter,
    ViewWindow,
    build_month_keys,
    build_quarters,
    fiscal_year_of,
    is_current_month,
    is_past_month,
    visible_month_keys,
)
from phasing_engines.health import (
    CategoryShare,
    FinancialSnapshot,
    HealthDriver,
    HealthThresholds,
    PlanHealthSummary,
    RagStatus,
    extract_financial_snapshot,
    summarize_signals,
)
from phasing_engines.ledger import (
    LedgerTotals,
    add_cost_line,
    add_resource,
    ledger_totals,
    link_resource,
    remove_cost_line,
    remove_resource,
    set_override,
    unlinked_resources,
    update_cost_line,
    update_resource,
)
from phasing_engines.phase_store import (
    copy_monthly_data,
    discard_line,
    get_entry,
    has_any_value,
    line_field_total,
    sum_field,
    write_entry,
)
from phasing_engines.reconciliation import (
    ReconciliationAnalyzer,
    ReconciliationRow,
    distribute_evenly,
    reconcile,
    unreconciled_rows,
)
from phasing_engines.rollup import (
    RollupEngine,
    RollupPreviewRow,
    preview_rollup,
    propose_rollup,
    rollup,
)
from phasing_engines.signals import (
    Signal,
    SignalCode,
    SignalEngine,
    SignalScope,
    SignalSeverity,
    SignalThresholds,
    evaluate_signals,
    sort_signals,
)
from phasing_engines.synchronizer import PhaseProposal, PhaseSynchronizer, synchronize
from phasing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Calendar
    "Quarter",
    "ViewWindow",
    "build_month_keys",
    "build_quarters",
    "fiscal_year_of",
    "is_current_month",
    "is_past_month",
    "visible_month_keys",
    # Amortizer
    "Amortization",
    "AmortizationPolicy",
    "Amortizer",
    "Breakdown",
    "amortize",
    "resource_breakdown",
    # Phase store
    "copy_monthly_data",
    "discard_line",
    "get_entry",
    "has_any_value",
    "line_field_total",
    "sum_field",
    "write_entry",
    # Synchronizer / rollup
    "PhaseProposal",
    "PhaseSynchronizer",
    "synchronize",
    "RollupEngine",
    "RollupPreviewRow",
    "preview_rollup",
    "propose_rollup",
    "rollup",
    # Ledger / roster
    "LedgerTotals",
    "add_cost_line",
    "add_resource",
    "ledger_totals",
    "link_resource",
    "remove_cost_line",
    "remove_resource",
    "set_override",
    "unlinked_resources",
    "update_cost_line",
    "update_resource",
    # Reconciliation
    "ReconciliationAnalyzer",
    "ReconciliationRow",
    "distribute_evenly",
    "reconcile",
    "unreconciled_rows",
    # Signals
    "Signal",
    "SignalCode",
    "SignalEngine",
    "SignalScope",
    "SignalSeverity",
    "SignalThresholds",
    "evaluate_signals",
    "sort_signals",
    # Aggregation
    "GrandTotals",
    "PeriodTotals",
    "forecast_movement",
    "grand_totals",
    "margin",
    "month_total",
    "quarter_total",
    # Health
    "CategoryShare",
    "FinancialSnapshot",
    "HealthDriver",
    "HealthThresholds",
    "PlanHealthSummary",
    "RagStatus",
    "extract_financial_snapshot",
    "summarize_signals",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]

logger.debug("engines_package_loaded", extra={
    "module_count": 11,
    "modules": [
        "calendar", "amortizer", "phase_store", "synchronizer", "rollup",
        "ledger", "reconciliation", "signals", "aggregation", "health",
        "tracer",
    ],
})
