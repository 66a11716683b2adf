"""
Work Item Domain Entities
=========================

Pure Python domain entities for work item tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Tickets and alerts
share one ``WorkItem`` shape; the subclasses only add their own fields.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Generic, List, Optional, Set, TypeVar

from src.config import (
    AlertSource, AlertStatus, AlertType, HistoryAction, ItemKind, Priority,
    Severity, TicketSource, TicketStatus, TicketType,
)


@dataclass(kw_only=True)
class WorkItem:
    """
    Fields and behaviour common to every tracked item.

    ``deleted_at`` is the soft-delete marker: ``None`` means live.
    """

    kind: ClassVar[ItemKind]

    # Identity
    id: str
    title: str
    description: str = ""

    # Classification
    status: str
    type: str
    source: str
    priority: Priority = Priority.MEDIUM
    severity: Severity = Severity.MEDIUM
    category: Optional[str] = None
    subcategory: Optional[str] = None

    # Content
    tags: Set[str] = field(default_factory=set)
    labels: Dict[str, str] = field(default_factory=dict)
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    # Actors
    reporter_id: Optional[str] = None
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None

    # Linkage
    rule_id: Optional[str] = None

    # Timestamps
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    reopen_count: int = 0
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate invariants on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

        if self.reopen_count < 0:
            raise ValueError("reopen_count cannot be negative")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_assigned(self) -> bool:
        return bool(self.assignee_id)

    def is_overdue(self, now: datetime, terminal: Set[str]) -> bool:
        """Past its due date while still in a non-terminal status."""
        return (
            self.due_date is not None
            and self.due_date < now
            and self.status not in terminal
        )


@dataclass(kw_only=True)
class Ticket(WorkItem):
    """
    Ticket entity representing a unit of operational work.

    Tickets walk Open -> Assigned -> InProgress -> Resolved -> Closed and
    may be reopened from Resolved or Closed.
    """

    kind: ClassVar[ItemKind] = ItemKind.TICKET

    number: str
    status: TicketStatus = TicketStatus.OPEN
    type: TicketType = TicketType.INCIDENT
    source: TicketSource = TicketSource.MANUAL

    alert_id: Optional[str] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    closed_by: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.resolved_at is not None and self.status not in (
            TicketStatus.RESOLVED, TicketStatus.CLOSED
        ):
            raise ValueError("resolved_at is only set on resolved or closed tickets")

    @property
    def is_open(self) -> bool:
        """Check if ticket is still being worked on."""
        return self.status in (
            TicketStatus.OPEN, TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS
        )

    @property
    def is_resolved(self) -> bool:
        """Check if ticket has been resolved."""
        return self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)


@dataclass(kw_only=True)
class Alert(WorkItem):
    """
    Alert entity raised by a rule evaluation or an external monitor.

    ``fingerprint`` is the deduplication key: at most one unresolved, live
    alert carries a given fingerprint.
    """

    kind: ClassVar[ItemKind] = ItemKind.ALERT

    fingerprint: str
    status: AlertStatus = AlertStatus.FIRING
    type: AlertType = AlertType.RULE
    source: AlertSource = AlertSource.CUSTOM

    expression: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    silence_id: Optional[str] = None
    silenced_until: Optional[datetime] = None
    acked_by: Optional[str] = None
    acked_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.resolved_at is not None and self.status != AlertStatus.RESOLVED:
            raise ValueError("resolved_at is only set on resolved alerts")

    @property
    def is_active(self) -> bool:
        return self.status in (AlertStatus.FIRING, AlertStatus.PENDING)

    @property
    def is_critical(self) -> bool:
        return self.is_active and self.severity == Severity.CRITICAL


@dataclass
class HistoryEntry:
    """
    Immutable audit record of one mutation.

    Written exactly once; ``id`` and ``created_at`` are assigned by the
    recorder when absent.
    """
    item_kind: ItemKind
    item_id: str
    action: HistoryAction
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    actor_id: Optional[str] = None
    comment: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "item_kind": self.item_kind.value,
            "item_id": self.item_id,
            "action": self.action.value,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "actor_id": self.actor_id,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ItemStats:
    """Aggregated counts over a filtered item population."""
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)
    unassigned: int = 0
    overdue: int = 0
    due_soon: int = 0
    # Alert-only; None for tickets
    active: Optional[int] = None
    critical: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_priority": dict(self.by_priority),
            "by_severity": dict(self.by_severity),
            "by_category": dict(self.by_category),
            "by_type": dict(self.by_type),
            "by_source": dict(self.by_source),
            "unassigned": self.unassigned,
            "overdue": self.overdue,
            "due_soon": self.due_soon,
        }
        if self.active is not None:
            data["active"] = self.active
            data["critical"] = self.critical
        return data


@dataclass
class TrendPoint:
    """Items counted in one time bucket, split by current status."""
    bucket: datetime
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket.isoformat(),
            "total": self.total,
            "by_status": dict(self.by_status),
        }


ItemT = TypeVar("ItemT", bound=WorkItem)


@dataclass
class ItemPage(Generic[ItemT]):
    """One page of a filtered listing plus the unpaginated total."""
    items: List[ItemT]
    total: int
    page: int
    page_size: Optional[int]

    @property
    def total_pages(self) -> int:
        if not self.page_size:
            return 1 if self.total else 0
        return math.ceil(self.total / self.page_size)
