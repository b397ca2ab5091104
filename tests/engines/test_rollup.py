"""
Tests for the resource rollup engine.

Tests cover:
- Aggregating several resources into one line
- Budget seeding only where unset or zero
- Override, unlinked and dangling-link exclusions
- Field preservation and idempotence
- Preview rows
"""

from decimal import Decimal

from phasing_engines.rollup import (
    RollupEngine,
    preview_rollup,
    propose_rollup,
    rollup,
)
from phasing_kernel.domain.plan import (
    CostLine,
    FYConfig,
    MonthlyEntry,
    RateType,
    Resource,
)


FY = FYConfig(fy_start_month=4, fy_start_year=2024)


def _monthly(rid, cost, months, line_id="cl-1", start="2024-04"):
    return Resource(
        id=rid,
        rate_type=RateType.MONTHLY_COST,
        monthly_cost=Decimal(cost),
        planned_months=months,
        cost_line_id=line_id,
        start_month=start,
    )


class TestRollupAggregation:
    """Tests for combining linked resources per line."""

    def setup_method(self):
        self.lines = (CostLine(id="cl-1", description="People"),)
        self.resources = (
            _monthly("r1", "1000", 3),
            _monthly("r2", "2000", 2),
        )

    def test_two_resources_sum_per_month(self):
        data = rollup(self.resources, self.lines, {}, FY)

        line = data["cl-1"]
        assert line["2024-04"].forecast == Decimal("3000")
        assert line["2024-05"].forecast == Decimal("3000")
        assert line["2024-06"].forecast == Decimal("1000")
        assert "2024-07" not in line

    def test_budget_seeded_when_unset(self):
        data = rollup(self.resources, self.lines, {}, FY)

        assert data["cl-1"]["2024-04"].budget == Decimal("3000")

    def test_budget_seeded_when_zero(self):
        existing = {"cl-1": {"2024-04": MonthlyEntry(budget=Decimal("0"))}}

        data = rollup(self.resources, self.lines, existing, FY)

        assert data["cl-1"]["2024-04"].budget == Decimal("3000")

    def test_existing_budget_kept(self):
        existing = {"cl-1": {"2024-04": MonthlyEntry(budget=Decimal("2500"))}}

        data = rollup(self.resources, self.lines, existing, FY)

        assert data["cl-1"]["2024-04"].budget == Decimal("2500")
        assert data["cl-1"]["2024-04"].forecast == Decimal("3000")

    def test_input_not_mutated(self):
        existing = {"cl-1": {"2024-04": MonthlyEntry(budget=Decimal("2500"))}}

        rollup(self.resources, self.lines, existing, FY)

        assert existing == {"cl-1": {"2024-04": MonthlyEntry(budget=Decimal("2500"))}}

    def test_proposals_only_for_positive_months(self):
        proposals = propose_rollup(self.resources, self.lines, {}, FY)

        assert [p.month_key for p in proposals] == ["2024-04", "2024-05", "2024-06"]


class TestRollupExclusions:
    """Lines and resources that a rollup never touches."""

    def test_override_line_never_written(self):
        lines = (CostLine(id="cl-1", override=True),)
        existing = {"cl-1": {"2024-04": MonthlyEntry(forecast=Decimal("42"))}}

        data = rollup((_monthly("r1", "1000", 3),), lines, existing, FY)

        assert data == existing

    def test_unlinked_resource_ignored(self):
        lines = (CostLine(id="cl-1"),)
        resource = _monthly("r1", "1000", 3, line_id=None)

        assert rollup((resource,), lines, {}, FY) == {}

    def test_dangling_link_ignored(self):
        lines = (CostLine(id="cl-1"),)
        resource = _monthly("r1", "1000", 3, line_id="cl-gone")

        assert rollup((resource,), lines, {}, FY) == {}

    def test_uncostable_resource_contributes_nothing(self):
        lines = (CostLine(id="cl-1"),)
        resource = Resource(id="r1", rate_type=RateType.DAY_RATE, cost_line_id="cl-1")

        assert rollup((resource,), lines, {}, FY) == {}

    def test_line_without_resources_not_zeroed(self):
        lines = (CostLine(id="cl-1"), CostLine(id="cl-2"))
        existing = {"cl-2": {"2024-04": MonthlyEntry(forecast=Decimal("900"))}}

        data = rollup((_monthly("r1", "1000", 1),), lines, existing, FY)

        assert data["cl-2"]["2024-04"].forecast == Decimal("900")

    def test_invalid_fy_config_is_noop(self):
        lines = (CostLine(id="cl-1"),)
        bad = FYConfig(fy_start_month=13, fy_start_year=2024)

        assert rollup((_monthly("r1", "1000", 3),), lines, {}, bad) == {}

    def test_group_resources(self):
        lines = (CostLine(id="cl-1"), CostLine(id="cl-2", override=True))
        resources = (
            _monthly("r1", "1", 1, line_id="cl-1"),
            _monthly("r2", "1", 1, line_id="cl-2"),
            _monthly("r3", "1", 1, line_id=None),
        )

        groups = RollupEngine().group_resources(resources, lines)

        assert list(groups) == ["cl-1"]
        assert [r.id for r in groups["cl-1"]] == ["r1"]


class TestRollupPreservation:
    """Fields that are edited independently survive a rollup."""

    def test_actual_customer_rate_and_lock_preserved(self):
        lines = (CostLine(id="cl-1"),)
        existing = {"cl-1": {"2024-04": MonthlyEntry(
            actual=Decimal("800"),
            customer_rate=Decimal("650"),
            locked=True,
        )}}

        data = rollup((_monthly("r1", "1000", 1),), lines, existing, FY)

        entry = data["cl-1"]["2024-04"]
        assert entry.actual == Decimal("800")
        assert entry.customer_rate == Decimal("650")
        assert entry.locked is True
        assert entry.forecast == Decimal("1000")

    def test_rollup_is_idempotent(self):
        lines = (CostLine(id="cl-1"),)
        resources = (_monthly("r1", "1000", 3), _monthly("r2", "2000", 2))

        once = rollup(resources, lines, {}, FY)
        twice = rollup(resources, lines, once, FY)

        assert twice == once

    def test_completion_logged(self, captured_logs):
        rollup((_monthly("r1", "1000", 3),), (CostLine(id="cl-1"),), {}, FY)

        records = {r["message"]: r for r in captured_logs()}
        assert records["rollup_completed"]["proposal_count"] == 3
        assert records["rollup_completed"]["lines_written"] == 1


class TestRollupPreview:
    """Tests for preview_rollup."""

    def test_preview_reports_change(self):
        lines = (CostLine(id="cl-1", description="People"),)
        existing = {"cl-1": {"2024-04": MonthlyEntry(forecast=Decimal("500"))}}

        rows = preview_rollup((_monthly("r1", "1000", 2),), lines, existing, FY)

        assert len(rows) == 1
        row = rows[0]
        assert row.line_label == "People"
        assert row.total_before == Decimal("500")
        assert row.total_after == Decimal("2000")
        assert row.change == Decimal("1500")
        assert row.months_affected == 2

    def test_preview_omits_unchanged_lines(self):
        lines = (CostLine(id="cl-1"),)
        resources = (_monthly("r1", "1000", 2),)
        synced = rollup(resources, lines, {}, FY)

        assert preview_rollup(resources, lines, synced, FY) == ()

    def test_preview_skips_override_lines(self):
        lines = (CostLine(id="cl-1", override=True),)

        assert preview_rollup((_monthly("r1", "1000", 2),), lines, {}, FY) == ()
