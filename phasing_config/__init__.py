"""
phasing_config -- single public entrypoint for phasing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.  YAML loading is internal
    tooling and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven thresholds, load-time validation.
    This package sits above ``phasing_kernel`` and ``phasing_engines`` and
    below ``phasing_services``.  Engines MUST NEVER import from
    ``phasing_config``; bridges in this package translate the loaded
    config into engine parameter objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: every required key is present and in range
      before a ``PhasingConfig`` is produced.
    - Deterministic checksum: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigLoadError`` -- missing keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PHASING_CONFIG_TRACE`` log entry carrying the config id, version and
    checksum, tying every signal evaluation to the thresholds in force.
"""

from __future__ import annotations

from pathlib import Path

from phasing_config.loader import load_config_file
from phasing_config.schema import PhasingConfig
from phasing_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> PhasingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        name: Configuration set name; loads ``<config_dir>/<name>.yaml``.
        config_dir: Override path to the configuration sets directory.
            Defaults to phasing_config/sets/.

    Returns:
        PhasingConfig -- validated, frozen, checksummed.

    Raises:
        FileNotFoundError: If no configuration set has that name.
        ConfigLoadError: If the set is missing keys or holds bad values.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = load_config_file(path)

    _logger.info(
        "PHASING_CONFIG_TRACE",
        extra={
            "trace_type": "PHASING_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
        },
    )
    return config


__all__ = ["get_active_config", "PhasingConfig"]
