"""
Pytest fixtures for the phasing core test suite.

Provides:
- Structured logging for the session and per-test LogContext isolation
- ``captured_logs`` for asserting on emitted log records
- A deterministic clock
- Plan-building fixtures (FY config, cost lines, resources)
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from phasing_kernel.domain.clock import DeterministicClock
from phasing_kernel.domain.plan import (
    CostCategory,
    CostLine,
    FinancialPlan,
    FYConfig,
    RateType,
    Resource,
)
from phasing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture phasing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            rollup(...)
            logs = captured_logs()
            assert any(r["message"] == "rollup_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("phasing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2024-06-15 09:00 UTC (inside FY 2024/25)."""
    return DeterministicClock(datetime(2024, 6, 15, 9, 0, tzinfo=UTC))


# =============================================================================
# Plan fixtures
# =============================================================================


@pytest.fixture
def fy_config() -> FYConfig:
    """April-start financial year 2024/25."""
    return FYConfig(fy_start_month=4, fy_start_year=2024, num_months=12)


@pytest.fixture
def people_line() -> CostLine:
    return CostLine(
        id="cl-people",
        category=CostCategory.PEOPLE,
        description="People & Contractors",
        budgeted=Decimal("120000"),
        forecast=Decimal("120000"),
    )


@pytest.fixture
def tools_line() -> CostLine:
    return CostLine(
        id="cl-tools",
        category=CostCategory.TOOLS_LICENCES,
        description="Tools & Licences",
        budgeted=Decimal("12000"),
        forecast=Decimal("12000"),
    )


@pytest.fixture
def contractor() -> Resource:
    """Day-rate contractor: 500 x 40 days = 20000 over 2 months from April."""
    return Resource(
        id="res-1",
        name="Alex Contractor",
        role="Developer",
        rate_type=RateType.DAY_RATE,
        day_rate=Decimal("500"),
        planned_days=Decimal("40"),
        cost_line_id="cl-people",
        start_month="2024-04",
    )


@pytest.fixture
def plan(fy_config, people_line, tools_line, contractor) -> FinancialPlan:
    return FinancialPlan(
        fy_config=fy_config,
        plan_id="plan-1",
        total_approved_budget=Decimal("150000"),
        cost_lines=(people_line, tools_line),
        resources=(contractor,),
    )
