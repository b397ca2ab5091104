"""Source adapters for plan documents (file I/O only)."""

from phasing_ingestion.adapters.json_adapter import load_plan_file, read_plan_document

__all__ = [
    "load_plan_file",
    "read_plan_document",
]
