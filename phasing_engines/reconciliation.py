"""
Module: phasing_engines.reconciliation
Responsibility:
    Compare each cost line's ledger totals against the sum of its monthly
    phasing, and repair drift on request by distributing the ledger totals
    evenly across the financial year.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Read by the signal engine (UNRECONCILED_LINE) and by the services
    layer for its reconciliation report.

Invariants enforced:
    - A field reconciles when its ledger value is zero, or when
      ``|phased - ledger| <= tolerance`` (one currency unit by default).
    - ``distribute_evenly`` reproduces each positive ledger total to the
      cent: every month gets ``floor_2dp(total / n)`` and the final month
      absorbs the remainder.
    - ``distribute_evenly`` writes only ``budget`` and ``forecast``, and
      only for fields whose ledger value is positive.
    - Reconciliation is never automatic; repair is an explicit call.

Failure modes:
    - None.  ``distribute_evenly`` is a no-op (returns an equal copy) for
      an unknown line, an empty FY window, or a line with nothing to
      distribute.

Usage:
    from phasing_engines.reconciliation import distribute_evenly, reconcile

    rows = reconcile(cost_lines, monthly_data, fy_config)
    repaired = distribute_evenly("cl-1", cost_lines, monthly_data, fy_config)
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from phasing_engines.calendar import build_month_keys
from phasing_engines.phase_store import copy_monthly_data, line_field_total
from phasing_engines.tracer import traced_engine
from phasing_kernel.domain.plan import CostLine, FYConfig, MonthlyData, MonthlyEntry
from phasing_kernel.domain.values import ZERO, MonthKey, coerce_amount, floor_money
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

DEFAULT_TOLERANCE = Decimal("1")


@dataclass(frozen=True)
class ReconciliationRow:
    """
    Ledger-vs-phased comparison for one cost line.

    Diffs are ``phased - ledger``: positive means the months hold more
    than the line total.
    """

    line_id: str
    line_label: str
    cb_budget: Decimal
    cb_forecast: Decimal
    phased_budget: Decimal
    phased_forecast: Decimal
    budget_ok: bool
    forecast_ok: bool

    @property
    def all_ok(self) -> bool:
        return self.budget_ok and self.forecast_ok

    @property
    def budget_diff(self) -> Decimal:
        return self.phased_budget - self.cb_budget

    @property
    def forecast_diff(self) -> Decimal:
        return self.phased_forecast - self.cb_forecast

    @property
    def has_any_cb(self) -> bool:
        """True when the ledger holds a non-zero budget or forecast."""
        return self.cb_budget != ZERO or self.cb_forecast != ZERO

    @property
    def has_any_phased(self) -> bool:
        return self.phased_budget != ZERO or self.phased_forecast != ZERO


class ReconciliationAnalyzer:
    """
    Detects and repairs drift between the ledger and the monthly grid.

    Contract:
        Pure functions over immutable snapshots.
    Non-goals:
        - Does not reconcile ``actual``; actuals are recorded, not phased.
        - Does not choose which side is right; repair always treats the
          ledger as the source of truth.
    """

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> None:
        if tolerance < ZERO:
            raise ValueError("tolerance cannot be negative")
        self._tolerance = tolerance

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def _field_ok(self, cb: Decimal, phased: Decimal) -> bool:
        return cb == ZERO or abs(phased - cb) <= self._tolerance

    def row_for(
        self,
        line: CostLine,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        month_keys: Sequence[MonthKey],
    ) -> ReconciliationRow:
        cb_budget = coerce_amount(line.budgeted)
        cb_forecast = coerce_amount(line.forecast)
        phased_budget = line_field_total(monthly_data, line.id, month_keys, "budget")
        phased_forecast = line_field_total(monthly_data, line.id, month_keys, "forecast")
        return ReconciliationRow(
            line_id=line.id,
            line_label=line.label,
            cb_budget=cb_budget,
            cb_forecast=cb_forecast,
            phased_budget=phased_budget,
            phased_forecast=phased_forecast,
            budget_ok=self._field_ok(cb_budget, phased_budget),
            forecast_ok=self._field_ok(cb_forecast, phased_forecast),
        )

    @traced_engine("reconciliation", "1.0", fingerprint_fields=("cost_lines", "fy_config"))
    def reconcile(
        self,
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> tuple[ReconciliationRow, ...]:
        """One row per cost line, in ledger order."""
        month_keys = build_month_keys(fy_config)
        rows = tuple(self.row_for(line, monthly_data, month_keys) for line in cost_lines)

        drifted = [r.line_id for r in rows if r.has_any_cb and not r.all_ok]
        if drifted:
            logger.info("reconciliation_drift_detected", extra={
                "line_count": len(rows),
                "drifted_lines": drifted,
                "tolerance": str(self._tolerance),
            })
        return rows

    @traced_engine("distribute_evenly", "1.0", fingerprint_fields=("line_id", "cost_lines", "fy_config"))
    def distribute_evenly(
        self,
        line_id: str,
        cost_lines: Sequence[CostLine],
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        fy_config: FYConfig,
    ) -> MonthlyData:
        """
        Spread the line's ledger budget and forecast across every FY month.

        Postconditions:
            For each field with a positive ledger value ``cb``, the
            monthly values sum to exactly ``cb``.  ``actual``,
            ``customer_rate`` and ``locked`` are preserved.
        """
        t0 = time.monotonic()
        result = copy_monthly_data(monthly_data)

        line = next((cl for cl in cost_lines if cl.id == line_id), None)
        if line is None:
            logger.warning("distribute_evenly_unknown_line", extra={"line_id": line_id})
            return result

        month_keys = build_month_keys(fy_config)
        if not month_keys:
            logger.debug("distribute_evenly_no_months", extra={"line_id": line_id})
            return result

        targets = {
            name: amount
            for name, amount in (
                ("budget", coerce_amount(line.budgeted)),
                ("forecast", coerce_amount(line.forecast)),
            )
            if amount > ZERO
        }
        if not targets:
            logger.debug("distribute_evenly_nothing_to_distribute", extra={"line_id": line_id})
            return result

        n = len(month_keys)
        splits = {name: _even_split(total, n) for name, total in targets.items()}

        months = result.setdefault(line_id, {})
        for i, mk in enumerate(month_keys):
            existing = months.get(mk) or MonthlyEntry()
            months[mk] = existing.merged(**{name: split[i] for name, split in splits.items()})

        logger.info("distribute_evenly_completed", extra={
            "line_id": line_id,
            "fields": sorted(targets),
            "months": n,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result


def _even_split(total: Decimal, n: int) -> list[Decimal]:
    """``n`` floored shares of *total*, the last one taking the remainder."""
    per_month = floor_money(total / n)
    return [per_month] * (n - 1) + [total - per_month * (n - 1)]


def reconcile(
    cost_lines: Sequence[CostLine],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[ReconciliationRow, ...]:
    """Module-level convenience wrapper around ``ReconciliationAnalyzer.reconcile``."""
    return ReconciliationAnalyzer(tolerance).reconcile(
        cost_lines=cost_lines,
        monthly_data=monthly_data,
        fy_config=fy_config,
    )


def distribute_evenly(
    line_id: str,
    cost_lines: Sequence[CostLine],
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    fy_config: FYConfig,
) -> MonthlyData:
    return ReconciliationAnalyzer().distribute_evenly(
        line_id=line_id,
        cost_lines=cost_lines,
        monthly_data=monthly_data,
        fy_config=fy_config,
    )


def unreconciled_rows(rows: Iterable[ReconciliationRow]) -> list[ReconciliationRow]:
    """Rows with a non-zero ledger value that fail reconciliation."""
    return [r for r in rows if r.has_any_cb and not r.all_ok]
