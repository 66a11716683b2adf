"""
Work Item Infrastructure Models
===============================

SQLAlchemy ORM models for the work item module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
Tags, labels and custom fields are stored as JSON text produced by
``codec``; enums are stored by value.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base, UTCDateTime


class WorkItemColumns:
    """Columns shared by every work item table."""

    # Identity
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Classification
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Content (JSON text)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    labels: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    custom_fields: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    # Actors
    reporter_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assignee_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    team_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Linkage
    rule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopened_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Soft delete marker (NULL = live)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)


class TicketModel(WorkItemColumns, Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    alert_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    closed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class AlertModel(WorkItemColumns, Base):
    """
    Database model for Alert entity.

    Maps to the 'alerts' table.
    """
    __tablename__ = "alerts"

    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expression: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    starts_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    silence_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    silenced_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    acked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    acked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class HistoryModel(Base):
    """
    Database model for HistoryEntry.

    Maps to the 'work_item_history' table. Rows are inserted once and
    never updated; ``seq`` orders entries that share a timestamp.
    """
    __tablename__ = "work_item_history"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)

    item_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    field: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_work_item_history_item", "item_kind", "item_id", "created_at"),
    )
