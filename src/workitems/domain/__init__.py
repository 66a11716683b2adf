"""
Work Item Domain Layer
======================

Domain layer for the work item lifecycle module.

Contains:
- Entities: Core business objects with identity (Ticket, Alert, HistoryEntry)
- Value Objects: Immutable objects defined by attributes (FilterSpec, SLAStatusInfo, SLAPolicy)
- Domain Services: Stateless business logic (SLAClock, PredicateBuilder, Lifecycle)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.workitems.domain.entities import (
    WorkItem,
    Ticket,
    Alert,
    HistoryEntry,
    ItemStats,
    ItemPage,
    TrendPoint,
)
from src.workitems.domain.lifecycle import (
    Transition,
    Lifecycle,
    TICKET_LIFECYCLE,
    ALERT_LIFECYCLE,
    lifecycle_for,
)
from src.workitems.domain.predicates import (
    Predicate,
    PredicateBuilder,
    Equals,
    OneOf,
    NoneOf,
    IsNull,
    AtLeast,
    AtMost,
    Before,
    ContainsText,
)
from src.workitems.domain.value_objects import (
    FilterSpec,
    SLAClock,
    SLAPolicy,
    SLAStatusInfo,
    bucket_start,
)

__all__ = [
    # Entities
    "WorkItem",
    "Ticket",
    "Alert",
    "HistoryEntry",
    "ItemStats",
    "ItemPage",
    "TrendPoint",
    # Lifecycle
    "Transition",
    "Lifecycle",
    "TICKET_LIFECYCLE",
    "ALERT_LIFECYCLE",
    "lifecycle_for",
    # Predicates
    "Predicate",
    "PredicateBuilder",
    "Equals",
    "OneOf",
    "NoneOf",
    "IsNull",
    "AtLeast",
    "AtMost",
    "Before",
    "ContainsText",
    # Value Objects & Services
    "FilterSpec",
    "SLAClock",
    "SLAPolicy",
    "SLAStatusInfo",
    "bucket_start",
]
