"""
Configuration Loader (``phasing_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed
``phasing_config.schema`` dataclasses.  This is internal tooling; the
single public entry point for runtime config is
``phasing_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on
``phasing_kernel.exceptions`` only; never on engines or services.

Invariants enforced
-------------------
* Required keys have no silent defaults: a missing key raises
  ``ConfigLoadError`` naming the key.
* Numeric values are parsed as ``Decimal`` via ``str`` so YAML floats do
  not leak binary rounding into thresholds.
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys or invalid values  -> ``ConfigLoadError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from phasing_config.schema import (
    AmortizationDef,
    FYDefaultsDef,
    HealthDef,
    PhasingConfig,
    SignalThresholdsDef,
)
from phasing_kernel.exceptions import ConfigLoadError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], key: str, source: str) -> dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise ConfigLoadError(source, f"missing section '{key}'")
    return value


def _require(data: dict[str, Any], key: str, source: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigLoadError(source, f"missing key '{key}'")
    return data[key]


def parse_decimal(value: Any, key: str, source: str) -> Decimal:
    """Parse a non-negative Decimal from a YAML scalar."""
    if isinstance(value, bool):
        raise ConfigLoadError(source, f"'{key}' must be a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ConfigLoadError(source, f"'{key}' must be a number, got {value!r}") from None
    if not result.is_finite() or result < 0:
        raise ConfigLoadError(source, f"'{key}' must be a non-negative number, got {value!r}")
    return result


def parse_int(value: Any, key: str, source: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigLoadError(source, f"'{key}' must be an integer, got {value!r}")
    if value < 0:
        raise ConfigLoadError(source, f"'{key}' cannot be negative, got {value!r}")
    return value


def parse_signal_thresholds(data: dict[str, Any], source: str) -> SignalThresholdsDef:
    """
    Parse the ``signals`` section.

    Raises:
        ConfigLoadError: on a missing key, a non-numeric value, or a
            trending ratio outside (0, 1].
    """
    trending = parse_decimal(
        _require(data, "quarter_trending_ratio", source), "quarter_trending_ratio", source,
    )
    if not 0 < trending <= 1:
        raise ConfigLoadError(source, f"'quarter_trending_ratio' must be in (0, 1], got {trending}")
    return SignalThresholdsDef(
        overrun_critical_ratio=parse_decimal(
            _require(data, "overrun_critical_ratio", source), "overrun_critical_ratio", source,
        ),
        stale_plan_days=parse_int(
            _require(data, "stale_plan_days", source), "stale_plan_days", source,
        ),
        pending_exposure_ratio=parse_decimal(
            _require(data, "pending_exposure_ratio", source), "pending_exposure_ratio", source,
        ),
        reconciliation_tolerance=parse_decimal(
            _require(data, "reconciliation_tolerance", source), "reconciliation_tolerance", source,
        ),
        quarter_trending_ratio=trending,
        approval_delay_days=parse_int(
            _require(data, "approval_delay_days", source), "approval_delay_days", source,
        ),
    )


def parse_amortization(data: dict[str, Any], source: str) -> AmortizationDef:
    days = parse_decimal(_require(data, "days_per_month", source), "days_per_month", source)
    if days == 0:
        raise ConfigLoadError(source, "'days_per_month' must be positive")
    return AmortizationDef(days_per_month=days)


def parse_fy_defaults(data: dict[str, Any], source: str) -> FYDefaultsDef:
    start = parse_int(_require(data, "fy_start_month", source), "fy_start_month", source)
    months = parse_int(_require(data, "num_months", source), "num_months", source)
    if not 1 <= start <= 12:
        raise ConfigLoadError(source, f"'fy_start_month' must be 1-12, got {start}")
    if months == 0:
        raise ConfigLoadError(source, "'num_months' must be positive")
    return FYDefaultsDef(fy_start_month=start, num_months=months)


def parse_health(data: dict[str, Any], source: str) -> HealthDef:
    return HealthDef(
        red_variance_pct=parse_decimal(
            _require(data, "red_variance_pct", source), "red_variance_pct", source,
        ),
        pending_exposure_ratio=parse_decimal(
            _require(data, "pending_exposure_ratio", source), "pending_exposure_ratio", source,
        ),
    )


def parse_config(data: dict[str, Any], source: str = "<memory>") -> PhasingConfig:
    """
    Parse a whole configuration document.

    Postconditions:
        - Returns a frozen ``PhasingConfig`` whose ``checksum`` is
          ``compute_checksum(data)``.
    Raises:
        ConfigLoadError: if a section or key is missing or invalid.
    """
    version = _require(data, "version", source)
    return PhasingConfig(
        config_id=str(_require(data, "config_id", source)),
        version=parse_int(version, "version", source),
        signals=parse_signal_thresholds(_section(data, "signals", source), source),
        amortization=parse_amortization(_section(data, "amortization", source), source),
        fy_defaults=parse_fy_defaults(_section(data, "fy_defaults", source), source),
        health=parse_health(_section(data, "health", source), source),
        description=str(data.get("description", "")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> PhasingConfig:
    """Load and parse one YAML configuration set."""
    return parse_config(load_yaml_file(path), source=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
