"""
Module: phasing_engines.phase_store
Responsibility:
    Copy-on-write access to the monthly phasing grid (``MonthlyData``):
    the per-(line, month) entries holding budget, actual, forecast,
    customer rate and the presentation lock flag.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The shared primitive under rollup, synchronization, reconciliation
    and aggregation.

Invariants enforced:
    - Entries are created lazily on first write and merged (never wholly
      overwritten) on later writes.
    - No function here mutates its input; writers return a new mapping
      that shares untouched entries (entries are frozen).
    - Reads fail soft: a missing line, month or value sums as zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from phasing_kernel.domain.plan import MONTHLY_FIELDS, MonthlyData, MonthlyEntry
from phasing_kernel.domain.values import ZERO, MonthKey, coerce_amount


def copy_monthly_data(monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]]) -> MonthlyData:
    """Shallow two-level copy: new dicts, same (immutable) entries."""
    return {line_id: dict(months) for line_id, months in monthly_data.items()}


def get_entry(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_id: str,
    month_key: MonthKey,
) -> MonthlyEntry | None:
    return monthly_data.get(line_id, {}).get(month_key)


def write_entry(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_id: str,
    month_key: MonthKey,
    **patch: object,
) -> MonthlyData:
    """
    Merge *patch* into the (line, month) entry, creating it if absent.

    Raises:
        ValueError: if *patch* names a field MonthlyEntry does not have.
    """
    unknown = set(patch) - set(MONTHLY_FIELDS) - {"locked"}
    if unknown:
        raise ValueError(f"Unknown monthly entry fields: {sorted(unknown)}")
    result = copy_monthly_data(monthly_data)
    months = result.setdefault(line_id, {})
    existing = months.get(month_key) or MonthlyEntry()
    months[month_key] = existing.merged(**patch)
    return result


def discard_line(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_id: str,
) -> MonthlyData:
    """Drop every entry of *line_id*."""
    return {
        lid: dict(months)
        for lid, months in monthly_data.items()
        if lid != line_id
    }


def entry_value(entry: MonthlyEntry | None, field_name: str) -> Decimal:
    """Fail-soft numeric read of one entry field."""
    if entry is None:
        return ZERO
    return coerce_amount(getattr(entry, field_name, None))


def line_field_total(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_id: str,
    months: Iterable[MonthKey],
    field_name: str,
) -> Decimal:
    """Sum one field of one line over *months*."""
    line = monthly_data.get(line_id, {})
    return sum((entry_value(line.get(mk), field_name) for mk in months), ZERO)


def sum_field(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    months: Iterable[MonthKey],
    field_name: str,
) -> Decimal:
    """Sum one field over a set of lines and months."""
    months = tuple(months)
    return sum(
        (line_field_total(monthly_data, lid, months, field_name) for lid in line_ids),
        ZERO,
    )


def has_any_value(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    line_ids: Iterable[str],
    months: Iterable[MonthKey],
) -> bool:
    """True if any budget, actual or forecast cell has been entered."""
    months = tuple(months)
    for lid in line_ids:
        line = monthly_data.get(lid, {})
        for mk in months:
            entry = line.get(mk)
            if entry is None:
                continue
            if entry.budget is not None or entry.actual is not None or entry.forecast is not None:
                return True
    return False
