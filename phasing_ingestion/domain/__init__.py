"""
phasing_ingestion.domain -- Pure parsers and result types for plan documents.

ZERO I/O. Imports only from phasing_kernel/domain/.
"""

from phasing_ingestion.domain.parsers import (
    parse_change_exposure,
    parse_cost_line,
    parse_cost_line_changes,
    parse_external_context,
    parse_fy_config,
    parse_monthly_changes,
    parse_monthly_data,
    parse_monthly_entry,
    parse_plan,
    parse_resource,
    parse_resource_changes,
)
from phasing_ingestion.domain.types import ParseIssue, ParseResult

__all__ = [
    "ParseIssue",
    "ParseResult",
    "parse_change_exposure",
    "parse_cost_line",
    "parse_cost_line_changes",
    "parse_external_context",
    "parse_fy_config",
    "parse_monthly_changes",
    "parse_monthly_data",
    "parse_monthly_entry",
    "parse_plan",
    "parse_resource",
    "parse_resource_changes",
]
