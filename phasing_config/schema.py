"""
PhasingConfig schema.

Defines the human-authored, reviewable configuration for the phasing
core.  YAML sets under ``phasing_config/sets/`` are parsed into these types
by the loader; the bridges translate them into engine parameter objects.

Every ratio is a fraction (0.20 means 20%) except ``red_variance_pct``,
which is a percentage.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class SignalThresholdsDef:
    """Signal rule thresholds as authored."""

    overrun_critical_ratio: Decimal
    stale_plan_days: int
    pending_exposure_ratio: Decimal
    reconciliation_tolerance: Decimal
    quarter_trending_ratio: Decimal
    approval_delay_days: int


@dataclass(frozen=True)
class AmortizationDef:
    """Rate-conversion parameters."""

    days_per_month: Decimal


@dataclass(frozen=True)
class FYDefaultsDef:
    """Financial-year defaults for plans that do not carry their own."""

    fy_start_month: int
    num_months: int


@dataclass(frozen=True)
class HealthDef:
    """RAG limits for the financial snapshot."""

    red_variance_pct: Decimal
    pending_exposure_ratio: Decimal


@dataclass(frozen=True)
class PhasingConfig:
    """
    A loaded and validated configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON form of the raw YAML
    document, so identical sources always produce identical checksums.
    """

    config_id: str
    version: int
    signals: SignalThresholdsDef
    amortization: AmortizationDef
    fy_defaults: FYDefaultsDef
    health: HealthDef
    description: str = ""
    checksum: str = ""
