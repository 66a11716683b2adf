"""
Work Item Application Layer
===========================

Application layer for the work item lifecycle module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Validated caller input for create and update operations
- Audit: Best-effort history recording
- Stats: Grouped counts over a filtered population

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.workitems.application.audit import AuditRecorder, render_value
from src.workitems.application.dto import (
    TicketCreateDTO,
    TicketUpdateDTO,
    AlertCreateDTO,
    AlertUpdateDTO,
)
from src.workitems.application.services import (
    WorkItemService,
    TicketService,
    AlertService,
    IWorkItemRepository,
    ITicketRepository,
    IAlertRepository,
    IHistoryRepository,
    ISLAPolicyProvider,
)
from src.workitems.application.stats import StatsAggregator

__all__ = [
    # DTOs
    "TicketCreateDTO",
    "TicketUpdateDTO",
    "AlertCreateDTO",
    "AlertUpdateDTO",
    # Services
    "WorkItemService",
    "TicketService",
    "AlertService",
    "AuditRecorder",
    "StatsAggregator",
    "render_value",
    # Interfaces
    "IWorkItemRepository",
    "ITicketRepository",
    "IAlertRepository",
    "IHistoryRepository",
    "ISLAPolicyProvider",
]
