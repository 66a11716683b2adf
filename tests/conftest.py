"""Shared fixtures for work item engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
import pytest_asyncio

from src.config import Settings
from src.main import create_application, shutdown
from src.workitems.application import AlertCreateDTO, TicketCreateDTO

START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


# ── Deterministic providers ─────────────────────────────────────────────


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class SequentialIds:
    """UUID-shaped ids counting up from 1."""

    def __init__(self):
        self.issued = 0

    def __call__(self) -> str:
        self.issued += 1
        return str(UUID(int=self.issued))


# ── Helper: DTOs with sensible defaults ─────────────────────────────────


def make_ticket_dto(**overrides) -> TicketCreateDTO:
    data = {
        "title": "Checkout latency above 2s",
        "description": "p95 latency on /checkout regressed after deploy",
        "priority": "high",
        "severity": "high",
        "category": "performance",
        "reporter_id": "user-reporter",
        "tags": ["checkout", "latency"],
    }
    data.update(overrides)
    return TicketCreateDTO(**data)


def make_alert_dto(**overrides) -> AlertCreateDTO:
    data = {
        "title": "HighErrorRate",
        "description": "5xx ratio above threshold",
        "severity": "high",
        "source": "prometheus",
        "rule_id": "rule-5xx",
        "labels": {"service": "checkout", "env": "prod"},
        "expression": "rate(http_5xx[5m]) > 0.05",
        "value": 0.09,
        "threshold": 0.05,
    }
    data.update(overrides)
    return AlertCreateDTO(**data)


# ── Application fixtures ────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'workitems.db'}",
        sla_policy_path=tmp_path / "sla_policy.yaml",
        operation_timeout_seconds=10.0,
    )


@pytest_asyncio.fixture
async def app(settings, clock, ids):
    application = await create_application(
        settings,
        clock=clock,
        id_factory=ids,
        create_schema=True,
        configure_logging=False,
    )
    yield application
    await shutdown(application)


@pytest.fixture
def tickets(app):
    return app.tickets


@pytest.fixture
def alerts(app):
    return app.alerts
