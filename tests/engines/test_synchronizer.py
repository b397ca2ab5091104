"""Tests for merging rollup proposals into the monthly grid."""

from decimal import Decimal

from phasing_engines.synchronizer import PhaseProposal, PhaseSynchronizer, synchronize
from phasing_kernel.domain.plan import MonthlyEntry


class TestPhaseSynchronizer:
    """Tests for PhaseSynchronizer.synchronize."""

    def setup_method(self):
        self.synchronizer = PhaseSynchronizer()
        self.data = {
            "cl-1": {
                "2024-04": MonthlyEntry(
                    budget=Decimal("100"),
                    actual=Decimal("95"),
                    forecast=Decimal("100"),
                    customer_rate=Decimal("700"),
                    locked=True,
                ),
            },
            "cl-2": {"2024-04": MonthlyEntry(forecast=Decimal("5"))},
        }

    def test_forecast_overwritten_other_fields_kept(self):
        result = self.synchronizer.synchronize(
            monthly_data=self.data,
            proposals=[PhaseProposal("cl-1", "2024-04", forecast=Decimal("250"))],
        )

        entry = result["cl-1"]["2024-04"]
        assert entry.forecast == Decimal("250")
        assert entry.budget == Decimal("100")
        assert entry.actual == Decimal("95")
        assert entry.customer_rate == Decimal("700")
        assert entry.locked is True

    def test_budget_written_when_proposed(self):
        result = self.synchronizer.synchronize(
            monthly_data=self.data,
            proposals=[PhaseProposal("cl-1", "2024-04", forecast=Decimal("250"), budget=Decimal("250"))],
        )

        assert result["cl-1"]["2024-04"].budget == Decimal("250")

    def test_missing_entry_created(self):
        result = synchronize(
            self.data,
            [PhaseProposal("cl-3", "2024-06", forecast=Decimal("10"), budget=Decimal("10"))],
        )

        assert result["cl-3"]["2024-06"] == MonthlyEntry(budget=Decimal("10"), forecast=Decimal("10"))

    def test_untouched_lines_preserved(self):
        result = synchronize(self.data, [PhaseProposal("cl-1", "2024-04", forecast=Decimal("1"))])

        assert result["cl-2"] == self.data["cl-2"]

    def test_input_not_mutated(self):
        synchronize(self.data, [PhaseProposal("cl-1", "2024-04", forecast=Decimal("1"))])

        assert self.data["cl-1"]["2024-04"].forecast == Decimal("100")

    def test_empty_proposals_returns_equal_copy(self):
        result = synchronize(self.data, [])

        assert result == self.data
        assert result is not self.data

    def test_counts_logged(self, captured_logs):
        synchronize(self.data, [
            PhaseProposal("cl-1", "2024-04", forecast=Decimal("1")),
            PhaseProposal("cl-1", "2024-05", forecast=Decimal("1")),
        ])

        record = next(r for r in captured_logs() if r["message"] == "phase_synchronization_completed")
        assert record["entries_created"] == 1
        assert record["entries_updated"] == 1
