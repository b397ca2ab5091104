"""
Typed Exception Hierarchy for the Phasing Kernel.

===============================================================================
TWO ERROR PATHS
===============================================================================

The phasing core behaves like a spreadsheet: malformed *values* never crash
a plan.  Non-numeric amounts coerce to zero (for aggregation) or to the
unset sentinel (for display), an out-of-range financial-year configuration
yields no months, and division by zero yields ``None``.  None of those paths
raise.

What DOES raise is a malformed *shape* at the boundary -- a financial-year
configuration whose fields are not integers, a row that is not a mapping,
a cost line without an id -- and editing operations that reference ids that
do not exist.  Those surface as the typed exceptions below.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PhasingError:

    PhasingError (base)
    |
    +-- PlanConfigurationError
    |   +-- InvalidFYConfigError
    |
    +-- RecordError
    |   +-- MalformedRecordError
    |   +-- InvalidMonthKeyError
    |
    +-- LedgerError
    |   +-- CostLineNotFoundError
    |   +-- DuplicateCostLineError
    |   +-- ResourceNotFoundError
    |   +-- DuplicateResourceError
    |
    +-- ConfigError
        +-- ConfigLoadError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Plan config     | INVALID_FY_CONFIG           | FY fields are not integers
----------------|-----------------------------|-----------------------------------------
Record          | MALFORMED_RECORD            | Row is not a mapping / identity missing
                | INVALID_MONTH_KEY           | Month key is not "YYYY-MM"
----------------|-----------------------------|-----------------------------------------
Ledger          | COST_LINE_NOT_FOUND         | Line id does not exist in the plan
                | DUPLICATE_COST_LINE         | Line id already exists
                | RESOURCE_NOT_FOUND          | Resource id does not exist
                | DUPLICATE_RESOURCE          | Resource id already exists
----------------|-----------------------------|-----------------------------------------
Config          | CONFIG_LOAD_FAILED          | YAML config missing keys / bad values

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        plan = service.apply(plan, RemoveCostLine(line_id="cl-9"))
    except CostLineNotFoundError as e:
        return {"error": e.code, "line_id": e.line_id}
"""


class PhasingError(Exception):
    """
    Base exception for all phasing kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PHASING_ERROR"


# Plan configuration


class PlanConfigurationError(PhasingError):
    """Base exception for structurally invalid plan configuration."""

    code: str = "PLAN_CONFIGURATION_ERROR"


class InvalidFYConfigError(PlanConfigurationError):
    """
    Financial-year configuration has the wrong field types.

    Out-of-range *values* (month 13, zero months) are not errors; they
    degrade to an empty month list.  Only non-integer fields are fatal.
    """

    code: str = "INVALID_FY_CONFIG"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid FY config: {field} must be an integer, got {type(value).__name__} ({value!r})"
        )


# Record-level (ingestion boundary)


class RecordError(PhasingError):
    """Base exception for malformed external rows."""

    code: str = "RECORD_ERROR"


class MalformedRecordError(RecordError):
    """A row cannot be parsed into a record at all."""

    code: str = "MALFORMED_RECORD"

    def __init__(self, record_type: str, reason: str):
        self.record_type = record_type
        self.reason = reason
        super().__init__(f"Malformed {record_type}: {reason}")


class InvalidMonthKeyError(RecordError):
    """Month key is not of the form YYYY-MM."""

    code: str = "INVALID_MONTH_KEY"

    def __init__(self, month_key: object):
        self.month_key = month_key
        super().__init__(f"Invalid month key: {month_key!r} (expected YYYY-MM)")


# Ledger editing


class LedgerError(PhasingError):
    """Base exception for cost-line ledger and resource roster edits."""

    code: str = "LEDGER_ERROR"


class CostLineNotFoundError(LedgerError):
    """Cost line with given id was not found."""

    code: str = "COST_LINE_NOT_FOUND"

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Cost line not found: {line_id}")


class DuplicateCostLineError(LedgerError):
    """Cost line with given id already exists."""

    code: str = "DUPLICATE_COST_LINE"

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Cost line already exists: {line_id}")


class ResourceNotFoundError(LedgerError):
    """Resource with given id was not found."""

    code: str = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource not found: {resource_id}")


class DuplicateResourceError(LedgerError):
    """Resource with given id already exists."""

    code: str = "DUPLICATE_RESOURCE"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource already exists: {resource_id}")


# Configuration


class ConfigError(PhasingError):
    """Base exception for phasing configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigLoadError(ConfigError):
    """A configuration set is missing required keys or holds invalid values."""

    code: str = "CONFIG_LOAD_FAILED"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot load phasing config {source}: {reason}")
