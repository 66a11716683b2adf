"""Tests for src.workitems.application.audit: history recording."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from src.config import HistoryAction, ItemKind, Priority, TicketStatus
from src.core import RepositoryException
from src.workitems.application import render_value
from src.workitems.domain import HistoryEntry
from src.workitems.infrastructure import SQLAlchemyHistoryRepository
from tests.conftest import make_ticket_dto


class TestRenderValue:
    def test_none(self):
        assert render_value(None) is None

    def test_enum_by_value(self):
        assert render_value(TicketStatus.IN_PROGRESS) == "in_progress"

    def test_datetime_iso(self):
        value = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        assert render_value(value) == "2026-03-02T09:00:00+00:00"

    def test_mapping_as_sorted_json(self):
        assert render_value({"tags": {"b", "a"}, "priority": Priority.LOW}) == (
            '{"priority": "low", "tags": ["a", "b"]}'
        )


class TestAuditRecorder:
    async def test_add_history_assigns_id_and_time(self, app, clock, ids):
        entry = await app.audit.add_history(
            HistoryEntry(item_kind=ItemKind.TICKET, item_id="t-1", action=HistoryAction.UPDATED)
        )
        assert entry.id is not None
        assert entry.created_at == clock.now

        stored = await app.audit.get_history(ItemKind.TICKET, "t-1")
        assert [e.id for e in stored] == [entry.id]

    async def test_history_is_scoped_by_kind(self, app):
        await app.audit.add_history(
            HistoryEntry(item_kind=ItemKind.ALERT, item_id="same-id", action=HistoryAction.RESOLVED)
        )
        assert await app.audit.get_history(ItemKind.TICKET, "same-id") == []

    async def test_history_for_unknown_item_is_empty(self, tickets):
        assert await tickets.get_history("never-existed") == []

    async def test_failed_audit_does_not_undo_mutation(self, tickets, monkeypatch, caplog):
        ticket = await tickets.create(make_ticket_dto())

        async def broken_add(self, entry):
            raise RepositoryException("history.add", "disk full")

        monkeypatch.setattr(SQLAlchemyHistoryRepository, "add", broken_add)
        with caplog.at_level(logging.ERROR):
            resolved = await tickets.resolve(ticket.id, "agent")

        assert resolved.status == TicketStatus.RESOLVED
        assert (await tickets.get_by_id(ticket.id)).status == TicketStatus.RESOLVED
        assert "Failed to record history entry" in caplog.text

        monkeypatch.undo()
        assert await tickets.get_history(ticket.id) == []

    async def test_record_many_counts_stored(self, app):
        entries = [
            HistoryEntry(item_kind=ItemKind.TICKET, item_id="t-1", action=HistoryAction.ASSIGNED),
            HistoryEntry(item_kind=ItemKind.TICKET, item_id="t-2", action=HistoryAction.ASSIGNED),
        ]
        assert await app.audit.record_many(entries) == 2

    async def test_add_history_raises(self, app, monkeypatch):
        async def broken_add(self, entry):
            raise RepositoryException("history.add", "disk full")

        monkeypatch.setattr(SQLAlchemyHistoryRepository, "add", broken_add)
        with pytest.raises(RepositoryException):
            await app.audit.add_history(
                HistoryEntry(item_kind=ItemKind.TICKET, item_id="t-1", action=HistoryAction.UPDATED)
            )
