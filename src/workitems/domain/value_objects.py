"""
Work Item Value Objects
=======================

Immutable value objects for the work item domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.config import PRIORITY_ORDER, Priority, Severity, SLAState, TrendInterval
from src.core import Clock, utc_now

SortField = Literal[
    "created_at", "updated_at", "due_date", "sla_deadline",
    "priority", "severity", "status", "title",
]
SortOrder = Literal["asc", "desc"]


class FilterSpec(BaseModel):
    """
    Caller-supplied query constraints.

    Every field is optional and ``None`` means "no constraint". Transient:
    never persisted. ``page_size=None`` lifts the page limit entirely; when
    ``page_size`` is left unset the listing service applies its configured
    default, and it enforces the configured maximum.
    """

    model_config = ConfigDict(frozen=True)

    keyword: Optional[str] = Field(None, description="Case-insensitive substring of title or description")

    # Exact-match filters
    status: Optional[str] = None
    priority: Optional[Priority] = None
    severity: Optional[Severity] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    type: Optional[str] = None
    source: Optional[str] = None
    reporter_id: Optional[str] = None
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    alert_id: Optional[str] = None
    rule_id: Optional[str] = None

    unassigned: bool = Field(False, description="Only items without an assignee")
    overdue: bool = Field(False, description="Only items past due in a non-terminal status")

    # Inclusive ranges
    created_start: Optional[datetime] = None
    created_end: Optional[datetime] = None
    due_start: Optional[datetime] = None
    due_end: Optional[datetime] = None

    # Ordering & pagination
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=20, ge=1)

    @field_validator("keyword")
    @classmethod
    def strip_keyword(cls, v: Optional[str]) -> Optional[str]:
        """Blank keywords impose no constraint."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def validate_ranges(self) -> "FilterSpec":
        """Reject inverted ranges and contradictory assignee filters."""
        if self.created_start and self.created_end and self.created_start > self.created_end:
            raise ValueError("created_start must not be after created_end")
        if self.due_start and self.due_end and self.due_start > self.due_end:
            raise ValueError("due_start must not be after due_end")
        if self.unassigned and self.assignee_id:
            raise ValueError("unassigned and assignee_id are mutually exclusive")
        return self

    @property
    def offset(self) -> int:
        if self.page_size is None:
            return 0
        return (self.page - 1) * self.page_size


def bucket_start(moment: datetime, interval: TrendInterval) -> datetime:
    """
    Start of the UTC bucket containing ``moment``.

    Weeks start on Monday, matching PostgreSQL's ``date_trunc('week', ...)``.
    """
    moment = moment.astimezone(timezone.utc)
    hour = moment.replace(minute=0, second=0, microsecond=0)
    if interval == TrendInterval.HOUR:
        return hour
    day = hour.replace(hour=0)
    if interval == TrendInterval.DAY:
        return day
    if interval == TrendInterval.WEEK:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


@dataclass(frozen=True)
class SLAStatusInfo:
    """
    SLA classification of one item at one instant.

    Never persisted; recomputed on every read.
    """
    state: SLAState
    deadline: Optional[datetime]
    remaining: timedelta
    evaluated_at: datetime

    @property
    def is_breached(self) -> bool:
        return self.state == SLAState.BREACHED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "remaining_seconds": int(self.remaining.total_seconds()),
            "is_breached": self.is_breached,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


class SLAClock:
    """
    Read-time SLA classification.

    ``classify`` is a pure function of (deadline, now); the instance form
    simply supplies ``now`` from the injected clock.
    """

    AT_RISK_THRESHOLD = timedelta(hours=2)

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    @staticmethod
    def classify(
        deadline: Optional[datetime],
        now: datetime,
        at_risk_threshold: timedelta = AT_RISK_THRESHOLD
    ) -> SLAStatusInfo:
        """
        Classify an SLA deadline.

        Args:
            deadline: The item's SLA deadline, if any
            now: Evaluation time
            at_risk_threshold: Remaining time at or below which the SLA is at risk

        Returns:
            SLAStatusInfo: no_sla, breached (remaining 0), at_risk or on_track
        """
        if deadline is None:
            return SLAStatusInfo(SLAState.NO_SLA, None, timedelta(0), now)

        if now >= deadline:
            return SLAStatusInfo(SLAState.BREACHED, deadline, timedelta(0), now)

        remaining = deadline - now
        if remaining <= at_risk_threshold:
            return SLAStatusInfo(SLAState.AT_RISK, deadline, remaining, now)
        return SLAStatusInfo(SLAState.ON_TRACK, deadline, remaining, now)

    def compute_sla_status(self, item) -> SLAStatusInfo:
        """Classify ``item.sla_deadline`` against the current time."""
        return self.classify(item.sla_deadline, self._clock())


class SLAPolicy(BaseModel):
    """
    Priority-derived SLA resolution targets.

    Loaded from YAML; missing priorities fall back to the defaults.
    """

    resolution_minutes: Dict[Priority, int] = Field(
        default_factory=lambda: {
            Priority.CRITICAL: 240,
            Priority.HIGH: 480,
            Priority.MEDIUM: 1440,
            Priority.LOW: 4320,
        }
    )

    @field_validator("resolution_minutes")
    @classmethod
    def validate_targets(cls, v: Dict[Priority, int]) -> Dict[Priority, int]:
        """Require positive targets and fill any priority left out."""
        defaults = {
            Priority.CRITICAL: 240,
            Priority.HIGH: 480,
            Priority.MEDIUM: 1440,
            Priority.LOW: 4320,
        }
        for priority, minutes in v.items():
            if minutes <= 0:
                raise ValueError(f"resolution target for {priority.value} must be positive")
        return {p: v.get(p, defaults[p]) for p in PRIORITY_ORDER}

    def get_resolution_minutes(self, priority: Priority) -> int:
        """Get the resolution target for ``priority`` in minutes."""
        return self.resolution_minutes[Priority(priority)]

    def derive_deadline(self, priority: Priority, start: datetime) -> datetime:
        """Deadline for an item of ``priority`` opened at ``start``."""
        return start + timedelta(minutes=self.get_resolution_minutes(priority))
