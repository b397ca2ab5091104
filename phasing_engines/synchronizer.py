"""
Module: phasing_engines.synchronizer
Responsibility:
    Merge rollup proposals into the monthly phasing grid without
    clobbering fields that are edited independently.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by the rollup engine; usable on its own for any proposal set.

Invariants enforced:
    - Only ``forecast`` (always) and ``budget`` (when proposed) change;
      ``actual``, ``customer_rate`` and ``locked`` are preserved.
    - Entries and lines absent from the proposal set are left untouched;
      nothing is ever deleted.
    - The input mapping is not mutated.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from phasing_engines.phase_store import copy_monthly_data
from phasing_engines.tracer import traced_engine
from phasing_kernel.domain.plan import MonthlyData, MonthlyEntry
from phasing_kernel.domain.values import MonthKey
from phasing_kernel.logging_config import get_logger

logger = get_logger("engines.synchronizer")


@dataclass(frozen=True)
class PhaseProposal:
    """
    Proposed values for one (line, month) cell.

    ``budget=None`` means "leave the existing budget alone".
    """

    line_id: str
    month_key: MonthKey
    forecast: Decimal
    budget: Decimal | None = None


class PhaseSynchronizer:
    """
    Applies proposals to a monthly-data snapshot.

    Contract:
        Pure, deterministic; returns a new MonthlyData.
    Non-goals:
        - Does not decide what to propose (see RollupEngine).
        - Does not honour ``locked``; locking is presentation-only.
    """

    @traced_engine("phase_synchronizer", "1.0", fingerprint_fields=("proposals",))
    def synchronize(
        self,
        monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
        proposals: Iterable[PhaseProposal],
    ) -> MonthlyData:
        """
        Merge *proposals* into a copy of *monthly_data*.

        Postconditions:
            For each proposal the target entry exists, its forecast equals
            the proposed forecast, and its budget equals the proposed
            budget when one was given.  Every other field and entry is
            unchanged.
        """
        t0 = time.monotonic()
        result = copy_monthly_data(monthly_data)
        created = 0
        updated = 0

        for proposal in proposals:
            months = result.setdefault(proposal.line_id, {})
            existing = months.get(proposal.month_key)
            if existing is None:
                existing = MonthlyEntry()
                created += 1
            else:
                updated += 1

            patch: dict[str, object] = {"forecast": proposal.forecast}
            if proposal.budget is not None:
                patch["budget"] = proposal.budget
            months[proposal.month_key] = existing.merged(**patch)

        logger.info("phase_synchronization_completed", extra={
            "entries_created": created,
            "entries_updated": updated,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result


def synchronize(
    monthly_data: Mapping[str, Mapping[MonthKey, MonthlyEntry]],
    proposals: Iterable[PhaseProposal],
) -> MonthlyData:
    """Module-level convenience wrapper around ``PhaseSynchronizer.synchronize``."""
    return PhaseSynchronizer().synchronize(monthly_data=monthly_data, proposals=proposals)
