"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Also hosts the closed vocabularies (statuses, priorities, severities, ...)
shared by every layer of the work item context.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="workitem-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/workitems",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    db_echo: bool = Field(default=False, description="Echo SQL statements")
    operation_timeout_seconds: Optional[float] = Field(
        default=10.0,
        description="Deadline applied to every service operation (None disables it)",
        gt=0
    )

    # ========== SLA Configuration ==========
    sla_policy_path: Path = Field(
        default=Path("sla_policy.yaml"),
        description="Path to SLA policy YAML file"
    )
    sla_policy_watch: bool = Field(
        default=False,
        description="Hot-reload the SLA policy file when it changes"
    )
    sla_auto_assign: bool = Field(
        default=False,
        description="Derive an SLA deadline from priority when a ticket is created without one"
    )

    # ========== Queries ==========
    due_soon_hours: int = Field(
        default=24,
        description="Window used by the due-soon statistic",
        ge=1
    )
    default_page_size: int = Field(default=20, description="Page size used when a filter sets none", ge=1)
    max_page_size: int = Field(default=100, description="Largest page a caller may request", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level '{v}'")
        return level

    @model_validator(mode="after")
    def validate_page_sizes(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class ItemKind(str, Enum):
    """The two specialisations of a work item."""
    TICKET = "ticket"
    ALERT = "alert"


class Priority(str, Enum):
    """Ordered priority levels: low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return PRIORITY_ORDER.index(self)


class Severity(str, Enum):
    """Ordered severity levels: info < low < medium < high < critical."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class AlertStatus(str, Enum):
    """Alert lifecycle statuses."""
    FIRING = "firing"
    PENDING = "pending"
    ACKED = "acked"
    SILENCED = "silenced"
    RESOLVED = "resolved"


class TicketType(str, Enum):
    """Ticket classification."""
    INCIDENT = "incident"
    REQUEST = "request"
    PROBLEM = "problem"
    CHANGE = "change"
    MAINTENANCE = "maintenance"


class AlertType(str, Enum):
    """How an alert came to exist."""
    RULE = "rule"           # Raised by a rule evaluation
    EXTERNAL = "external"   # Pushed by an external monitoring system


class TicketSource(str, Enum):
    """Channel a ticket was opened through."""
    MANUAL = "manual"
    ALERT = "alert"
    API = "api"
    EMAIL = "email"
    WEBHOOK = "webhook"
    SCHEDULED = "scheduled"


class AlertSource(str, Enum):
    """Monitoring system that produced an alert."""
    PROMETHEUS = "prometheus"
    GRAFANA = "grafana"
    ZABBIX = "zabbix"
    CUSTOM = "custom"
    SYSTEM = "system"


class SLAState(str, Enum):
    """SLA status states."""
    NO_SLA = "no_sla"
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


class HistoryAction(str, Enum):
    """Action tags recorded in the audit trail."""
    UPDATED = "updated"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    STATUS_CHANGED = "status_changed"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    CANCELLED = "cancelled"
    ACKNOWLEDGED = "acknowledged"
    SILENCED = "silenced"
    UNSILENCED = "unsilenced"
    SLA_UPDATED = "sla_updated"
    DELETED = "deleted"


class TrendInterval(str, Enum):
    """Bucket width for time-series counts."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# ========== Ordering (lowest first) ==========

PRIORITY_ORDER = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]
SEVERITY_ORDER = [
    Severity.INFO, Severity.LOW, Severity.MEDIUM,
    Severity.HIGH, Severity.CRITICAL
]
