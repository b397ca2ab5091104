"""
phasing_ingestion.domain.types -- Pure frozen dataclasses for plan parsing.

ZERO I/O. Imports only from phasing_kernel/domain/.
"""

from __future__ import annotations

from dataclasses import dataclass

from phasing_kernel.domain.plan import ExternalContext, FinancialPlan


@dataclass(frozen=True)
class ParseIssue:
    """
    A value that could not be used as given and was degraded.

    Contract:
        Carries a machine-readable code, a human-readable message and the
        location of the offending value.
    Non-goals:
        - Does NOT raise; structural faults raise typed errors instead.
    """

    code: str
    message: str
    record_type: str
    record_id: str | None = None
    field: str | None = None


@dataclass(frozen=True)
class ParseResult:
    """A parsed plan plus the issues degraded along the way."""

    plan: FinancialPlan
    issues: tuple[ParseIssue, ...] = ()
    external_context: ExternalContext | None = None

    @property
    def is_clean(self) -> bool:
        return not self.issues

    def issues_for(self, record_type: str) -> list[ParseIssue]:
        return [i for i in self.issues if i.record_type == record_type]
