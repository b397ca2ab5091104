"""
phasing_ingestion.domain.parsers -- Parse loosely-typed host rows into plan records.

Rows arrive as whatever the host's document store returns: numbers as
strings, ``""`` for "nothing entered", unknown enum spellings.  Parsing
follows two rules:

* Bad *values* degrade: an amount that is not a non-negative number
  becomes unset, an unknown category falls back to ``other``, and a
  ``ParseIssue`` is recorded.  The plan always loads.
* Bad *shape* raises: a row that is not a mapping, a record without an
  id, or financial-year fields that are not integers surface as
  ``MalformedRecordError`` / ``InvalidFYConfigError``.

Architecture: phasing_ingestion/domain. ZERO I/O. Imports only from
phasing_kernel.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from phasing_ingestion.domain.types import ParseIssue, ParseResult
from phasing_kernel.domain.plan import (
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
from phasing_kernel.domain.values import is_valid_month_key, parse_amount, parse_flag
from phasing_kernel.exceptions import MalformedRecordError
from phasing_kernel.logging_config import get_logger

logger = get_logger("ingestion.parsers")

E = TypeVar("E", bound=Enum)


class _Issues:
    """Collector bound to one record so call sites stay short."""

    def __init__(self, sink: list[ParseIssue] | None, record_type: str, record_id: str | None):
        self._sink = sink if sink is not None else []
        self.record_type = record_type
        self.record_id = record_id

    def add(self, code: str, field: str, message: str) -> None:
        self._sink.append(ParseIssue(
            code=code,
            message=message,
            record_type=self.record_type,
            record_id=self.record_id,
            field=field,
        ))


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _require_mapping(row: Any, record_type: str) -> Mapping[str, Any]:
    if not isinstance(row, Mapping):
        raise MalformedRecordError(record_type, f"expected a mapping, got {type(row).__name__}")
    return row


def _require_id(row: Mapping[str, Any], record_type: str, key: str = "id") -> str:
    value = row.get(key)
    if value is None or not str(value).strip():
        raise MalformedRecordError(record_type, f"missing '{key}'")
    return str(value).strip()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _money(row: Mapping[str, Any], key: str, issues: _Issues) -> Decimal | None:
    raw = row.get(key)
    if _is_blank(raw):
        return None
    amount = parse_amount(raw)
    if amount is None:
        issues.add("INVALID_AMOUNT", key, f"{key}={raw!r} is not a non-negative number; left unset")
    return amount


def _text(row: Mapping[str, Any], key: str) -> str:
    raw = row.get(key)
    return "" if raw is None else str(raw)


def _optional_text(row: Mapping[str, Any], key: str) -> str | None:
    raw = row.get(key)
    if _is_blank(raw):
        return None
    return str(raw).strip()


def _enum(cls: type[E], row: Mapping[str, Any], key: str, default: E, issues: _Issues) -> E:
    raw = row.get(key)
    if _is_blank(raw):
        return default
    if isinstance(raw, cls):
        return raw
    try:
        return cls(str(raw).strip().lower())
    except ValueError:
        issues.add("UNKNOWN_ENUM_VALUE", key, f"{key}={raw!r} is not recognised; using {default.value!r}")
        return default


def _whole_number(row: Mapping[str, Any], key: str, issues: _Issues) -> int | None:
    raw = row.get(key)
    if _is_blank(raw):
        return None
    amount = parse_amount(raw)
    if amount is None or amount != amount.to_integral_value():
        issues.add("INVALID_INTEGER", key, f"{key}={raw!r} is not a whole number; left unset")
        return None
    return int(amount)


def _month_key(row: Mapping[str, Any], key: str, issues: _Issues) -> str | None:
    raw = _optional_text(row, key)
    if raw is None:
        return None
    if not is_valid_month_key(raw):
        issues.add("INVALID_MONTH_KEY", key, f"{key}={raw!r} is not YYYY-MM; left unset")
        return None
    return raw


# ---------------------------------------------------------------------------
# Record parsers
# ---------------------------------------------------------------------------


def parse_fy_config(raw: Any) -> FYConfig:
    """
    Parse the financial-year configuration.

    Raises:
        MalformedRecordError: if *raw* is not a mapping.
        InvalidFYConfigError: if a field is missing or not an integer.
    """
    row = _require_mapping(raw, "fy_config")
    return FYConfig(
        fy_start_month=row.get("fy_start_month"),
        fy_start_year=row.get("fy_start_year"),
        num_months=row.get("num_months", 12),
    )


def parse_cost_line(row: Any, issues: list[ParseIssue] | None = None) -> CostLine:
    """Parse one cost-line row; bad amounts become unset."""
    row = _require_mapping(row, "cost_line")
    line_id = _require_id(row, "cost_line")
    collector = _Issues(issues, "cost_line", line_id)
    return CostLine(
        id=line_id,
        category=_enum(CostCategory, row, "category", CostCategory.OTHER, collector),
        description=_text(row, "description"),
        budgeted=_money(row, "budgeted", collector),
        actual=_money(row, "actual", collector),
        forecast=_money(row, "forecast", collector),
        notes=_text(row, "notes"),
        override=parse_flag(row.get("override", False)),
    )


def parse_resource(row: Any, issues: list[ParseIssue] | None = None) -> Resource:
    """Parse one resource row; the cost-line link is kept even if dangling."""
    row = _require_mapping(row, "resource")
    resource_id = _require_id(row, "resource")
    collector = _Issues(issues, "resource", resource_id)
    return Resource(
        id=resource_id,
        name=_text(row, "name"),
        role=_text(row, "role"),
        type=_enum(ResourceType, row, "type", ResourceType.INTERNAL, collector),
        rate_type=_enum(RateType, row, "rate_type", RateType.DAY_RATE, collector),
        day_rate=_money(row, "day_rate", collector),
        planned_days=_money(row, "planned_days", collector),
        monthly_cost=_money(row, "monthly_cost", collector),
        planned_months=_whole_number(row, "planned_months", collector),
        cost_line_id=_optional_text(row, "cost_line_id"),
        start_month=_month_key(row, "start_month", collector),
        user_id=_optional_text(row, "user_id"),
        notes=_text(row, "notes"),
    )


def parse_monthly_entry(
    raw: Any,
    line_id: str,
    month_key: str,
    issues: list[ParseIssue] | None = None,
) -> MonthlyEntry:
    row = _require_mapping(raw, "monthly_entry")
    collector = _Issues(issues, "monthly_entry", f"{line_id}/{month_key}")
    return MonthlyEntry(
        budget=_money(row, "budget", collector),
        actual=_money(row, "actual", collector),
        forecast=_money(row, "forecast", collector),
        customer_rate=_money(row, "customer_rate", collector),
        locked=parse_flag(row.get("locked", False)),
    )


def parse_monthly_data(raw: Any, issues: list[ParseIssue] | None = None) -> MonthlyData:
    """
    Parse ``{line_id: {"YYYY-MM": entry}}``.

    A line or cell that is not a mapping, or a malformed month key, is
    skipped with an issue.  ``None`` parses as an empty grid.
    """
    if raw is None:
        return {}
    grid = _require_mapping(raw, "monthly_data")
    collector = _Issues(issues, "monthly_data", None)
    result: MonthlyData = {}
    for line_id, months in grid.items():
        if not isinstance(months, Mapping):
            collector.add("MALFORMED_LINE", str(line_id), f"months for {line_id!r} are not a mapping; skipped")
            continue
        parsed: dict[str, MonthlyEntry] = {}
        for mk, cell in months.items():
            if not is_valid_month_key(mk):
                collector.add("INVALID_MONTH_KEY", f"{line_id}/{mk}", f"month key {mk!r} is not YYYY-MM; skipped")
                continue
            if not isinstance(cell, Mapping):
                collector.add("MALFORMED_ENTRY", f"{line_id}/{mk}", "entry is not a mapping; skipped")
                continue
            parsed[mk] = parse_monthly_entry(cell, str(line_id), mk, issues)
        result[str(line_id)] = parsed
    return result


def parse_change_exposure(row: Any, issues: list[ParseIssue] | None = None) -> ChangeExposure:
    row = _require_mapping(row, "change_exposure")
    exposure_id = _require_id(row, "change_exposure")
    collector = _Issues(issues, "change_exposure", exposure_id)
    return ChangeExposure(
        id=exposure_id,
        change_ref=_text(row, "change_ref"),
        title=_text(row, "title"),
        cost_impact=_money(row, "cost_impact", collector),
        status=_enum(ChangeStatus, row, "status", ChangeStatus.PENDING, collector),
        notes=_text(row, "notes"),
    )


def parse_external_context(raw: Any, issues: list[ParseIssue] | None = None) -> ExternalContext:
    """
    Parse context supplied by collaborators outside the plan document:
    ``change_exposure``, ``approval_delays`` and ``raid_items`` lists.
    """
    if raw is None:
        return ExternalContext()
    data = _require_mapping(raw, "external_context")

    delays = []
    for item in data.get("approval_delays") or ():
        row = _require_mapping(item, "approval_delay")
        collector = _Issues(issues, "approval_delay", _optional_text(row, "title"))
        days = _whole_number(row, "days_pending", collector)
        delays.append(ApprovalDelay(
            title=_text(row, "title"),
            days_pending=days or 0,
            cost_impact=_money(row, "cost_impact", collector),
        ))

    raid_items = []
    for item in data.get("raid_items") or ():
        row = _require_mapping(item, "raid_item")
        raid_items.append(RaidItem(
            type=_text(row, "type"),
            title=_text(row, "title"),
            severity=_text(row, "severity"),
            status=_text(row, "status"),
        ))

    return ExternalContext(
        change_exposure=tuple(
            parse_change_exposure(item, issues) for item in data.get("change_exposure") or ()
        ),
        approval_delays=tuple(delays),
        raid_items=tuple(raid_items),
    )


# ---------------------------------------------------------------------------
# Edit patches
# ---------------------------------------------------------------------------
#
# A patch carries only the fields being edited.  Each present key follows
# the value rules of the matching full-row parser.


def _parse_patch(
    changes: Any,
    record_type: str,
    record_id: str | None,
    issues: list[ParseIssue] | None,
    *,
    money: tuple[str, ...] = (),
    flags: tuple[str, ...] = (),
    whole: tuple[str, ...] = (),
    months: tuple[str, ...] = (),
    optional: tuple[str, ...] = (),
    text: tuple[str, ...] = (),
    enums: Mapping[str, tuple[type[Enum], Enum]] | None = None,
) -> dict[str, Any]:
    row = _require_mapping(changes, f"{record_type}_changes")
    enums = enums or {}
    allowed = set(money) | set(flags) | set(whole) | set(months) | set(optional) | set(text) | set(enums)
    unknown = sorted(set(row) - allowed)
    if unknown:
        raise MalformedRecordError(f"{record_type}_changes", f"unknown or read-only fields {unknown}")

    collector = _Issues(issues, record_type, record_id)
    parsed: dict[str, Any] = {}
    for key in row:
        if key in money:
            parsed[key] = _money(row, key, collector)
        elif key in flags:
            parsed[key] = parse_flag(row[key])
        elif key in whole:
            parsed[key] = _whole_number(row, key, collector)
        elif key in months:
            parsed[key] = _month_key(row, key, collector)
        elif key in optional:
            parsed[key] = _optional_text(row, key)
        elif key in enums:
            cls, default = enums[key]
            parsed[key] = _enum(cls, row, key, default, collector)
        else:
            parsed[key] = _text(row, key)
    return parsed


def parse_cost_line_changes(
    changes: Any,
    line_id: str,
    issues: list[ParseIssue] | None = None,
) -> dict[str, Any]:
    """
    Parse an edit patch for one cost line.

    Amounts that are blank, non-numeric or negative become unset with an
    issue.  ``id`` and unknown keys raise MalformedRecordError.
    """
    return _parse_patch(
        changes, "cost_line", line_id, issues,
        money=("budgeted", "actual", "forecast"),
        flags=("override",),
        text=("description", "notes"),
        enums={"category": (CostCategory, CostCategory.OTHER)},
    )


def parse_resource_changes(
    changes: Any,
    resource_id: str,
    issues: list[ParseIssue] | None = None,
) -> dict[str, Any]:
    """Parse an edit patch for one resource (same value rules as parse_resource)."""
    return _parse_patch(
        changes, "resource", resource_id, issues,
        money=("day_rate", "planned_days", "monthly_cost"),
        whole=("planned_months",),
        months=("start_month",),
        optional=("cost_line_id", "user_id"),
        text=("name", "role", "notes"),
        enums={
            "type": (ResourceType, ResourceType.INTERNAL),
            "rate_type": (RateType, RateType.DAY_RATE),
        },
    )


def parse_monthly_changes(
    changes: Any,
    line_id: str,
    month_key: str,
    issues: list[ParseIssue] | None = None,
) -> dict[str, Any]:
    return _parse_patch(
        changes, "monthly_entry", f"{line_id}/{month_key}", issues,
        money=("budget", "actual", "forecast", "customer_rate"),
        flags=("locked",),
    )


# ---------------------------------------------------------------------------
# Plan document
# ---------------------------------------------------------------------------


def _timestamp(row: Mapping[str, Any], key: str, issues: _Issues) -> datetime | None:
    raw = row.get(key)
    if _is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw).strip())
    except ValueError:
        issues.add("INVALID_TIMESTAMP", key, f"{key}={raw!r} is not an ISO-8601 timestamp; left unset")
        return None


def _dedupe(records: list[Any], record_type: str, issues: _Issues) -> tuple[Any, ...]:
    seen: set[str] = set()
    kept = []
    for record in records:
        if record.id in seen:
            issues.add("DUPLICATE_ID", "id", f"duplicate {record_type} id {record.id!r}; later row dropped")
            continue
        seen.add(record.id)
        kept.append(record)
    return tuple(kept)


def parse_plan(raw: Any, default_fy_config: FYConfig | None = None) -> ParseResult:
    """
    Parse a whole financial-plan document.

    Args:
        raw: The plan document as decoded JSON.
        default_fy_config: Used when the document carries no
            ``fy_config`` (new plans).

    Returns:
        ParseResult with the plan, every degraded value as an issue, and
        the document's ``external_context`` when present.

    Raises:
        MalformedRecordError: if the document or a row is not a mapping,
            a row has no id, or no FY config is available.
        InvalidFYConfigError: if FY fields are not integers.
    """
    doc = _require_mapping(raw, "financial_plan")
    issues: list[ParseIssue] = []
    plan_issues = _Issues(issues, "financial_plan", _optional_text(doc, "plan_id"))

    if doc.get("fy_config") is not None:
        fy_config = parse_fy_config(doc["fy_config"])
    elif default_fy_config is not None:
        fy_config = default_fy_config
    else:
        raise MalformedRecordError("financial_plan", "missing 'fy_config'")

    cost_lines = _dedupe(
        [parse_cost_line(row, issues) for row in doc.get("cost_lines") or ()],
        "cost_line", plan_issues,
    )
    resources = _dedupe(
        [parse_resource(row, issues) for row in doc.get("resources") or ()],
        "resource", plan_issues,
    )
    change_exposure = tuple(
        parse_change_exposure(row, issues) for row in doc.get("change_exposure") or ()
    )

    plan = FinancialPlan(
        fy_config=fy_config,
        plan_id=_text(doc, "plan_id"),
        currency=_optional_text(doc, "currency") or "GBP",
        total_approved_budget=_money(doc, "total_approved_budget", plan_issues),
        cost_lines=cost_lines,
        resources=resources,
        change_exposure=change_exposure,
        monthly_data=parse_monthly_data(doc.get("monthly_data"), issues),
        last_updated_at=_timestamp(doc, "last_updated_at", plan_issues),
        summary=_text(doc, "summary"),
        variance_narrative=_text(doc, "variance_narrative"),
        assumptions=_text(doc, "assumptions"),
    )

    external_context = None
    if doc.get("external_context") is not None:
        external_context = parse_external_context(doc["external_context"], issues)

    logger.info("plan_parsed", extra={
        "plan_id": plan.plan_id,
        "line_count": len(cost_lines),
        "resource_count": len(resources),
        "issue_count": len(issues),
    })
    return ParseResult(plan=plan, issues=tuple(issues), external_context=external_context)
