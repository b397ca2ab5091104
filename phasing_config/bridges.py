"""
Config -> Engine Bridges.

Functions that convert a ``PhasingConfig`` into engine parameter objects.
They live in phasing_config (the producer) because engines must NEVER
import phasing_config.

Usage:
    from phasing_config import get_active_config
    from phasing_config.bridges import build_signal_thresholds

    config = get_active_config()
    thresholds = build_signal_thresholds(config)
"""

from __future__ import annotations

from phasing_config.schema import PhasingConfig
from phasing_engines.amortizer import AmortizationPolicy
from phasing_engines.health import HealthThresholds
from phasing_engines.signals import SignalThresholds
from phasing_kernel.domain.plan import FYConfig


def build_signal_thresholds(config: PhasingConfig) -> SignalThresholds:
    s = config.signals
    return SignalThresholds(
        overrun_critical_ratio=s.overrun_critical_ratio,
        stale_plan_days=s.stale_plan_days,
        pending_exposure_ratio=s.pending_exposure_ratio,
        reconciliation_tolerance=s.reconciliation_tolerance,
        quarter_trending_ratio=s.quarter_trending_ratio,
        approval_delay_days=s.approval_delay_days,
    )


def build_amortization_policy(config: PhasingConfig) -> AmortizationPolicy:
    return AmortizationPolicy(days_per_month=config.amortization.days_per_month)


def build_health_thresholds(config: PhasingConfig) -> HealthThresholds:
    return HealthThresholds(
        red_variance_pct=config.health.red_variance_pct,
        pending_exposure_ratio=config.health.pending_exposure_ratio,
    )


def build_default_fy_config(config: PhasingConfig, fy_start_year: int) -> FYConfig:
    """FYConfig for a new plan starting in *fy_start_year*."""
    return FYConfig(
        fy_start_month=config.fy_defaults.fy_start_month,
        fy_start_year=fy_start_year,
        num_months=config.fy_defaults.num_months,
    )
