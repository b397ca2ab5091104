"""
phasing_services -- Package init and public API.

Responsibility:
    The imperative shell over the pure phasing engines: command
    application, clock reads, mutation events to the host's persistence
    adapter.  This is the **only** layer that reads the clock.

Architecture position:
    Services -- orchestration over engines + kernel + config.

    Dependency direction (enforced by tests/architecture/test_import_boundaries.py):
        phasing_services/ -> phasing_engines/  (allowed)
        phasing_services/ -> phasing_kernel/   (allowed)
        phasing_services/ -> phasing_config/   (allowed)
        phasing_engines/  -> phasing_services/ (FORBIDDEN)
        phasing_kernel/   -> phasing_services/ (FORBIDDEN)
"""

from phasing_kernel.logging_config import get_logger

logger = get_logger("services")

from phasing_services.plan_service import (
    AddCostLine,
    AddResource,
    DistributeEvenly,
    InMemoryMutationSink,
    LinkResource,
    MutationSink,
    PlanAnalysis,
    PlanCommand,
    PlanEditingService,
    PlanMutated,
    RemoveCostLine,
    RemoveResource,
    SetOverride,
    SyncResources,
    UpdateCostLine,
    UpdateMonthlyEntry,
    UpdateResource,
)

__all__ = [
    "PlanEditingService",
    "PlanAnalysis",
    "PlanMutated",
    "MutationSink",
    "InMemoryMutationSink",
    "PlanCommand",
    "AddCostLine",
    "UpdateCostLine",
    "RemoveCostLine",
    "SetOverride",
    "AddResource",
    "UpdateResource",
    "RemoveResource",
    "LinkResource",
    "UpdateMonthlyEntry",
    "SyncResources",
    "DistributeEvenly",
]
