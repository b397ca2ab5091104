"""
JSON plan-document adapter.

Reads a financial-plan document (one JSON object) from disk and hands it
to the pure parsers.  File I/O only; all validation lives in
``phasing_ingestion.domain.parsers``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from phasing_ingestion.domain.parsers import parse_plan
from phasing_ingestion.domain.types import ParseResult
from phasing_kernel.domain.plan import FYConfig
from phasing_kernel.logging_config import get_logger

logger = get_logger("ingestion.json_adapter")


def read_plan_document(path: Path, encoding: str = "utf-8") -> Any:
    """Decode the JSON document at *path*; decode errors propagate."""
    with path.open("r", encoding=encoding) as f:
        return json.load(f)


def load_plan_file(
    path: Path | str,
    default_fy_config: FYConfig | None = None,
    encoding: str = "utf-8",
) -> ParseResult:
    """
    Load and parse a plan document.

    Raises:
        FileNotFoundError: if *path* does not exist.
        json.JSONDecodeError: if the file is not valid JSON.
        MalformedRecordError / InvalidFYConfigError: on structural faults.
    """
    path = Path(path)
    result = parse_plan(read_plan_document(path, encoding), default_fy_config=default_fy_config)
    logger.info("plan_file_loaded", extra={
        "source": str(path),
        "issue_count": len(result.issues),
    })
    return result
