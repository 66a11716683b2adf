"""
Work Item Application DTOs
==========================

Data Transfer Objects for the work item services.

These Pydantic models validate caller input before anything reaches the
domain or the database. Following YAGNI - only what's needed.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from src.config import (
    AlertSource, AlertType, Priority, Severity, TicketSource, TicketType,
)


# ========== Type Aliases for Literals ==========
InitialAlertStatusStr = Literal["firing", "pending"]


def _normalise_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return None
    return sorted({tag.strip() for tag in v if tag and tag.strip()})


def _strip_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("title cannot be blank")
    return v


def _explicit_changes(dto: BaseModel, non_nullable: tuple) -> Dict[str, Any]:
    # Explicit None on a non-nullable column means "leave unchanged"
    data = dto.model_dump(exclude_unset=True)
    for name in non_nullable:
        if name in data and data[name] is None:
            data.pop(name)
    return data


# ========== Ticket DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for creating a ticket."""
    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    description: str = Field(default="", max_length=20000)
    type: TicketType = Field(default=TicketType.INCIDENT)
    priority: Priority = Field(default=Priority.MEDIUM)
    severity: Severity = Field(default=Severity.MEDIUM)
    source: TicketSource = Field(default=TicketSource.MANUAL)
    category: Optional[str] = Field(None, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    tags: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    reporter_id: str = Field(..., min_length=1, description="User opening the ticket")
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    alert_id: Optional[str] = None
    rule_id: Optional[str] = None
    due_date: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Trim, de-duplicate and sort tags."""
        return _normalise_tags(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Reject whitespace-only titles."""
        return _strip_title(v)


class TicketUpdateDTO(BaseModel):
    """
    DTO for updating a ticket.

    Only fields explicitly set are applied; status and SLA changes go through
    their dedicated operations.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=20000)
    type: Optional[TicketType] = None
    priority: Optional[Priority] = None
    severity: Optional[Severity] = None
    category: Optional[str] = Field(None, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    labels: Optional[Dict[str, str]] = None
    custom_fields: Optional[Dict[str, Any]] = None
    team_id: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Trim, de-duplicate and sort tags."""
        return _normalise_tags(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller set explicitly, including explicit ``None``."""
        return _explicit_changes(
            self,
            ("title", "description", "type", "priority", "severity",
             "tags", "labels", "custom_fields"),
        )


# ========== Alert DTOs ==========

class AlertCreateDTO(BaseModel):
    """DTO for raising an alert."""
    title: str = Field(..., min_length=1, max_length=500, description="Alert name")
    description: str = Field(default="", max_length=20000)
    type: AlertType = Field(default=AlertType.RULE)
    severity: Severity = Field(default=Severity.MEDIUM)
    priority: Priority = Field(default=Priority.MEDIUM)
    source: AlertSource = Field(default=AlertSource.CUSTOM)
    status: InitialAlertStatusStr = Field(default="firing")
    fingerprint: Optional[str] = Field(None, min_length=1, max_length=64)
    category: Optional[str] = Field(None, max_length=100)
    tags: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    rule_id: Optional[str] = None
    reporter_id: Optional[str] = None
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    expression: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None
    starts_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Trim, de-duplicate and sort tags."""
        return _normalise_tags(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _strip_title(v)


class AlertUpdateDTO(BaseModel):
    """DTO for updating an alert's descriptive fields."""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=20000)
    severity: Optional[Severity] = None
    priority: Optional[Priority] = None
    category: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    labels: Optional[Dict[str, str]] = None
    custom_fields: Optional[Dict[str, Any]] = None
    team_id: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None
    due_date: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Trim, de-duplicate and sort tags."""
        return _normalise_tags(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller set explicitly, including explicit ``None``."""
        return _explicit_changes(
            self,
            ("title", "description", "severity", "priority",
             "tags", "labels", "custom_fields"),
        )
