"""
Tests for boundary parsing of host plan documents.

Tests cover:
- Bad values degrade with a ParseIssue; the plan still loads
- Bad shapes raise typed errors
- Monthly grid, external context and whole-document parsing
- Edit patches follow the same value rules as full rows
"""

from datetime import datetime
from decimal import Decimal

import pytest

from phasing_ingestion.domain.parsers import (
    parse_cost_line,
    parse_cost_line_changes,
    parse_external_context,
    parse_fy_config,
    parse_monthly_changes,
    parse_monthly_data,
    parse_plan,
    parse_resource,
    parse_resource_changes,
)
from phasing_kernel.domain.plan import (
    ChangeStatus,
    CostCategory,
    FYConfig,
    MonthlyEntry,
    RateType,
    ResourceType,
)
from phasing_kernel.exceptions import InvalidFYConfigError, MalformedRecordError


class TestParseFYConfig:

    def test_defaults_to_twelve_months(self):
        fy = parse_fy_config({"fy_start_month": 4, "fy_start_year": 2024})

        assert fy == FYConfig(fy_start_month=4, fy_start_year=2024, num_months=12)

    def test_string_field_raises(self):
        with pytest.raises(InvalidFYConfigError):
            parse_fy_config({"fy_start_month": "April", "fy_start_year": 2024})

    def test_missing_field_raises(self):
        with pytest.raises(InvalidFYConfigError) as exc_info:
            parse_fy_config({"fy_start_month": 4})
        assert exc_info.value.field == "fy_start_year"

    def test_not_a_mapping_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_fy_config([4, 2024])


class TestParseCostLine:
    """Tests for parse_cost_line."""

    def test_string_amounts(self):
        line = parse_cost_line({
            "id": "cl-1", "category": "People", "description": "Team",
            "budgeted": "1,200.50", "actual": 300, "forecast": "",
        })

        assert line.category == CostCategory.PEOPLE
        assert line.budgeted == Decimal("1200.50")
        assert line.actual == Decimal("300")
        assert line.forecast is None

    def test_bad_amount_becomes_unset_with_issue(self):
        issues = []

        line = parse_cost_line({"id": "cl-1", "budgeted": "lots", "forecast": "-5"}, issues)

        assert line.budgeted is None
        assert line.forecast is None
        assert [(i.code, i.field) for i in issues] == [
            ("INVALID_AMOUNT", "budgeted"),
            ("INVALID_AMOUNT", "forecast"),
        ]
        assert issues[0].record_id == "cl-1"

    def test_unknown_category_falls_back_to_other(self):
        issues = []

        line = parse_cost_line({"id": "cl-1", "category": "snacks"}, issues)

        assert line.category == CostCategory.OTHER
        assert issues[0].code == "UNKNOWN_ENUM_VALUE"

    @pytest.mark.parametrize("raw, expected", [
        (True, True), ("true", True), ("Yes", True), ("1", True),
        (False, False), ("false", False), ("", False), (None, False),
    ])
    def test_override_flag(self, raw, expected):
        assert parse_cost_line({"id": "cl-1", "override": raw}).override is expected

    def test_missing_id_raises(self):
        with pytest.raises(MalformedRecordError, match="missing 'id'"):
            parse_cost_line({"description": "nameless"})

    def test_not_a_mapping_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_cost_line("cl-1")


class TestParseResource:
    """Tests for parse_resource."""

    def test_day_rate_resource(self):
        resource = parse_resource({
            "id": "r1", "name": "Alex", "type": "contractor", "rate_type": "day_rate",
            "day_rate": "500", "planned_days": "40", "cost_line_id": "cl-1",
            "start_month": "2024-05",
        })

        assert resource.type == ResourceType.CONTRACTOR
        assert resource.rate_type == RateType.DAY_RATE
        assert resource.day_rate == Decimal("500")
        assert resource.planned_days == Decimal("40")
        assert resource.start_month == "2024-05"

    def test_planned_months_whole_number(self):
        issues = []

        ok = parse_resource({"id": "r1", "planned_months": "6"}, issues)
        bad = parse_resource({"id": "r2", "planned_months": "2.5"}, issues)

        assert ok.planned_months == 6
        assert bad.planned_months is None
        assert issues[0].code == "INVALID_INTEGER"

    def test_invalid_start_month(self):
        issues = []

        resource = parse_resource({"id": "r1", "start_month": "May 2024"}, issues)

        assert resource.start_month is None
        assert issues[0].code == "INVALID_MONTH_KEY"

    def test_blank_link_is_unlinked(self):
        assert parse_resource({"id": "r1", "cost_line_id": "  "}).cost_line_id is None

    def test_dangling_link_kept(self):
        assert parse_resource({"id": "r1", "cost_line_id": "cl-ghost"}).cost_line_id == "cl-ghost"


class TestParseMonthlyData:
    """Tests for parse_monthly_data."""

    def test_valid_grid(self):
        data = parse_monthly_data({
            "cl-1": {"2024-04": {"budget": "100", "forecast": 120, "locked": True}},
        })

        assert data == {"cl-1": {"2024-04": MonthlyEntry(
            budget=Decimal("100"), forecast=Decimal("120"), locked=True,
        )}}

    def test_none_is_empty(self):
        assert parse_monthly_data(None) == {}

    def test_bad_keys_and_cells_skipped(self):
        issues = []

        data = parse_monthly_data({
            "cl-1": {"2024-13": {"budget": 1}, "2024-04": "oops", "2024-05": {"budget": "x"}},
            "cl-2": ["not", "a", "mapping"],
        }, issues)

        assert data == {"cl-1": {"2024-05": MonthlyEntry()}}
        codes = sorted(i.code for i in issues)
        assert codes == ["INVALID_AMOUNT", "INVALID_MONTH_KEY", "MALFORMED_ENTRY", "MALFORMED_LINE"]


class TestParseExternalContext:

    def test_all_sections(self):
        context = parse_external_context({
            "change_exposure": [{"id": "cr-1", "cost_impact": "5000", "status": "approved"}],
            "approval_delays": [{"title": "PO", "days_pending": "12", "cost_impact": 900}],
            "raid_items": [{"type": "risk", "title": "Vendor slip", "severity": "high"}],
        })

        assert context.change_exposure[0].status == ChangeStatus.APPROVED
        assert context.approval_delays[0].days_pending == 12
        assert context.approval_delays[0].cost_impact == Decimal("900")
        assert context.raid_items[0].severity == "high"

    def test_none_is_empty(self):
        context = parse_external_context(None)

        assert context.change_exposure == ()
        assert context.approval_delays == ()


class TestParsePlan:
    """Tests for whole-document parsing."""

    def setup_method(self):
        self.doc = {
            "plan_id": "plan-1",
            "currency": "EUR",
            "total_approved_budget": "150000",
            "fy_config": {"fy_start_month": 4, "fy_start_year": 2024},
            "cost_lines": [
                {"id": "cl-1", "category": "people", "budgeted": "120000"},
                {"id": "cl-2", "category": "travel", "budgeted": "5000"},
            ],
            "resources": [
                {"id": "r1", "day_rate": "500", "planned_days": "40", "cost_line_id": "cl-1"},
            ],
            "monthly_data": {"cl-1": {"2024-04": {"forecast": "10000"}}},
            "change_exposure": [{"id": "cr-1", "cost_impact": "2000"}],
            "last_updated_at": "2024-06-01T10:00:00+00:00",
        }

    def test_clean_document(self):
        result = parse_plan(self.doc)

        plan = result.plan
        assert result.is_clean
        assert plan.plan_id == "plan-1"
        assert plan.currency == "EUR"
        assert plan.total_approved_budget == Decimal("150000")
        assert plan.line_ids == ["cl-1", "cl-2"]
        assert plan.resources[0].cost_line_id == "cl-1"
        assert plan.change_exposure[0].status == ChangeStatus.PENDING
        assert plan.last_updated_at == datetime.fromisoformat("2024-06-01T10:00:00+00:00")
        assert result.external_context is None

    def test_currency_defaults_to_gbp(self):
        del self.doc["currency"]

        assert parse_plan(self.doc).plan.currency == "GBP"

    def test_default_fy_config_used_when_absent(self):
        del self.doc["fy_config"]
        default = FYConfig(fy_start_month=1, fy_start_year=2025)

        assert parse_plan(self.doc, default_fy_config=default).plan.fy_config == default

    def test_missing_fy_config_without_default_raises(self):
        del self.doc["fy_config"]

        with pytest.raises(MalformedRecordError, match="fy_config"):
            parse_plan(self.doc)

    def test_duplicate_ids_keep_first(self):
        self.doc["cost_lines"].append({"id": "cl-1", "budgeted": "1"})

        result = parse_plan(self.doc)

        assert result.plan.get_line("cl-1").budgeted == Decimal("120000")
        assert len(result.plan.cost_lines) == 2
        assert result.issues_for("financial_plan")[0].code == "DUPLICATE_ID"

    def test_bad_values_degrade(self):
        self.doc["total_approved_budget"] = "TBC"
        self.doc["last_updated_at"] = "last tuesday"

        result = parse_plan(self.doc)

        assert result.plan.total_approved_budget is None
        assert result.plan.last_updated_at is None
        assert {i.code for i in result.issues} == {"INVALID_AMOUNT", "INVALID_TIMESTAMP"}

    def test_external_context_parsed(self):
        self.doc["external_context"] = {"approval_delays": [{"title": "PO", "days_pending": 3}]}

        result = parse_plan(self.doc)

        assert result.external_context.approval_delays[0].title == "PO"

    def test_not_a_mapping_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_plan(["plan"])

    def test_parse_logged(self, captured_logs):
        parse_plan(self.doc)

        record = next(r for r in captured_logs() if r["message"] == "plan_parsed")
        assert record["line_count"] == 2
        assert record["issue_count"] == 0


class TestParseChanges:
    """Edit patches: only present keys are parsed, same rules as full rows."""

    @pytest.mark.parametrize("raw, expected", [
        ("", None),
        ("   ", None),
        ("1,000", Decimal("1000")),
        (Decimal("250.50"), Decimal("250.50")),
        (12, Decimal("12")),
    ])
    def test_cost_line_amounts(self, raw, expected):
        assert parse_cost_line_changes({"budgeted": raw}, "cl-1") == {"budgeted": expected}

    @pytest.mark.parametrize("raw", ["abc", "-5", Decimal("-0.01")])
    def test_unusable_amount_unset_with_issue(self, raw):
        issues = []

        changes = parse_cost_line_changes({"forecast": raw}, "cl-1", issues)

        assert changes == {"forecast": None}
        assert [(i.code, i.record_id, i.field) for i in issues] == [("INVALID_AMOUNT", "cl-1", "forecast")]

    def test_only_present_keys_returned(self):
        assert parse_cost_line_changes({"notes": "n"}, "cl-1") == {"notes": "n"}

    @pytest.mark.parametrize("raw, expected", [("false", False), ("TRUE", True), (0, False)])
    def test_override_flag(self, raw, expected):
        assert parse_cost_line_changes({"override": raw}, "cl-1")["override"] is expected

    def test_category_accepts_member_and_spelling(self):
        assert parse_cost_line_changes({"category": CostCategory.TRAVEL}, "cl-1")["category"] is CostCategory.TRAVEL
        assert parse_cost_line_changes({"category": "Travel"}, "cl-1")["category"] is CostCategory.TRAVEL

    @pytest.mark.parametrize("changes", [{"id": "cl-2"}, {"budget": "1"}])
    def test_read_only_or_unknown_field_raises(self, changes):
        with pytest.raises(MalformedRecordError):
            parse_cost_line_changes(changes, "cl-1")

    def test_patch_not_a_mapping_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_cost_line_changes([("budgeted", "1")], "cl-1")

    def test_resource_changes(self):
        issues = []

        changes = parse_resource_changes({
            "day_rate": "650",
            "planned_months": "3",
            "start_month": "2024-4",
            "cost_line_id": "  ",
            "rate_type": "monthly_cost",
        }, "res-1", issues)

        assert changes == {
            "day_rate": Decimal("650"),
            "planned_months": 3,
            "start_month": None,
            "cost_line_id": None,
            "rate_type": RateType.MONTHLY_COST,
        }
        assert [i.code for i in issues] == ["INVALID_MONTH_KEY"]

    def test_monthly_changes(self):
        issues = []

        changes = parse_monthly_changes(
            {"budget": "", "forecast": "-500", "locked": "false"}, "cl-1", "2024-04", issues,
        )

        assert changes == {"budget": None, "forecast": None, "locked": False}
        assert [(i.record_id, i.field) for i in issues] == [("cl-1/2024-04", "forecast")]
