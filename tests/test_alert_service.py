"""Tests for AlertService: deduplication, acknowledge, silence, resolve."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.config import AlertStatus, HistoryAction
from src.core import (
    ConflictException, InvalidTransitionException, ResourceNotFoundException,
    ValidationException,
)
from src.workitems.application import AlertService, AlertUpdateDTO
from src.workitems.domain import FilterSpec
from tests.conftest import make_alert_dto


# ═══════════════════════════════════════════════════════════════════════════
#  Create & fingerprint
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:
    async def test_create_defaults(self, alerts, clock):
        alert = await alerts.create(make_alert_dto())
        assert alert.status == AlertStatus.FIRING
        assert alert.starts_at == clock.now
        assert len(alert.fingerprint) == 32

        stored = await alerts.get_by_id(alert.id)
        assert stored.labels == {"service": "checkout", "env": "prod"}
        assert stored.value == pytest.approx(0.09)

    async def test_create_pending(self, alerts):
        alert = await alerts.create(make_alert_dto(status="pending"))
        assert alert.status == AlertStatus.PENDING

    async def test_fingerprint_is_stable(self):
        first = AlertService.compute_fingerprint("r1", "CPU", {"b": "2", "a": "1"})
        second = AlertService.compute_fingerprint("r1", "CPU", {"a": "1", "b": "2"})
        assert first == second
        assert first != AlertService.compute_fingerprint("r2", "CPU", {"a": "1", "b": "2"})

    async def test_duplicate_active_alert_conflicts(self, alerts):
        original = await alerts.create(make_alert_dto())
        with pytest.raises(ConflictException) as exc:
            await alerts.create(make_alert_dto())
        assert exc.value.details["alert_id"] == original.id
        assert await alerts.count() == 1

    async def test_duplicate_allowed_after_resolution(self, alerts, clock):
        original = await alerts.create(make_alert_dto())
        await alerts.resolve(original.id, "sre")
        clock.advance(minutes=5)
        again = await alerts.create(make_alert_dto())

        assert again.fingerprint == original.fingerprint
        found = await alerts.get_by_fingerprint(original.fingerprint)
        assert found.id == again.id

    async def test_duplicate_detected_when_timestamps_tie(self, alerts):
        original = await alerts.create(make_alert_dto())
        await alerts.resolve(original.id, "sre")
        again = await alerts.create(make_alert_dto())

        with pytest.raises(ConflictException) as exc:
            await alerts.create(make_alert_dto())
        assert exc.value.details["alert_id"] == again.id
        assert (await alerts.get_by_fingerprint(original.fingerprint)).id == again.id

    async def test_explicit_fingerprint(self, alerts):
        alert = await alerts.create(make_alert_dto(fingerprint="abc123"))
        assert (await alerts.get_by_fingerprint("abc123")).id == alert.id

    async def test_unknown_fingerprint(self, alerts):
        with pytest.raises(ResourceNotFoundException):
            await alerts.get_by_fingerprint("nope")

    async def test_alerts_have_no_alert_id_filter(self, alerts):
        await alerts.create(make_alert_dto())
        with pytest.raises(ValidationException):
            await alerts.list(FilterSpec(alert_id="a-1"))


# ═══════════════════════════════════════════════════════════════════════════
#  Lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestLifecycle:
    async def test_acknowledge(self, alerts, clock):
        alert = await alerts.create(make_alert_dto())
        clock.advance(minutes=3)
        acked = await alerts.acknowledge(alert.id, "sre-1", comment="looking")

        assert acked.status == AlertStatus.ACKED
        assert acked.acked_by == "sre-1"
        assert acked.acked_at == clock.now

        history = await alerts.get_history(alert.id)
        assert history[0].action == HistoryAction.ACKNOWLEDGED
        assert history[0].comment == "looking"

    async def test_acknowledge_requires_actor(self, alerts):
        alert = await alerts.create(make_alert_dto())
        with pytest.raises(ValidationException):
            await alerts.acknowledge(alert.id, " ")

    async def test_acknowledge_twice_fails(self, alerts):
        alert = await alerts.create(make_alert_dto())
        await alerts.acknowledge(alert.id, "sre-1")
        with pytest.raises(InvalidTransitionException):
            await alerts.acknowledge(alert.id, "sre-2")

    async def test_silence_and_unsilence(self, alerts, clock):
        alert = await alerts.create(make_alert_dto())
        silenced = await alerts.silence(alert.id, "sil-42", timedelta(hours=2), "sre-1")

        assert silenced.status == AlertStatus.SILENCED
        assert silenced.silence_id == "sil-42"
        assert silenced.silenced_until == clock.now + timedelta(hours=2)

        firing = await alerts.unsilence(alert.id, "sre-1")
        assert firing.status == AlertStatus.FIRING
        assert firing.silence_id is None
        assert firing.silenced_until is None

        history = await alerts.get_history(alert.id)
        assert [h.action for h in history] == [HistoryAction.UNSILENCED, HistoryAction.SILENCED]

    @pytest.mark.parametrize(
        "silence_id, duration",
        [("", timedelta(hours=1)), ("sil-1", timedelta(0)), ("sil-1", timedelta(minutes=-5))],
    )
    async def test_silence_arguments_validated(self, alerts, silence_id, duration):
        alert = await alerts.create(make_alert_dto())
        with pytest.raises(ValidationException):
            await alerts.silence(alert.id, silence_id, duration)
        assert (await alerts.get_by_id(alert.id)).status == AlertStatus.FIRING

    async def test_unsilence_requires_silenced(self, alerts):
        alert = await alerts.create(make_alert_dto(status="pending"))
        with pytest.raises(InvalidTransitionException):
            await alerts.unsilence(alert.id)

    async def test_silence_only_through_dedicated_operation(self, alerts):
        alert = await alerts.create(make_alert_dto())
        with pytest.raises(ValidationException):
            await alerts.update_status(alert.id, AlertStatus.SILENCED)

    async def test_pending_and_firing_toggle(self, alerts):
        alert = await alerts.create(make_alert_dto())
        assert (await alerts.update_status(alert.id, "pending")).status == AlertStatus.PENDING
        assert (await alerts.update_status(alert.id, "firing")).status == AlertStatus.FIRING

    async def test_resolve_stamps_ends_at(self, alerts, clock):
        alert = await alerts.create(make_alert_dto())
        await alerts.acknowledge(alert.id, "sre-1")
        clock.advance(minutes=20)
        resolved = await alerts.resolve(alert.id, "sre-1")

        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_at == clock.now
        assert resolved.ends_at == clock.now
        assert resolved.resolved_by == "sre-1"

        with pytest.raises(InvalidTransitionException):
            await alerts.resolve(alert.id)

    async def test_update_descriptive_fields(self, alerts):
        alert = await alerts.create(make_alert_dto())
        updated = await alerts.update(alert.id, AlertUpdateDTO(value=0.2, severity="critical"))
        assert updated.value == pytest.approx(0.2)
        assert updated.is_critical

    async def test_null_description_leaves_it_unchanged(self, alerts):
        alert = await alerts.create(make_alert_dto(description="p99 above budget"))
        updated = await alerts.update(alert.id, AlertUpdateDTO(description=None, value=0.3))
        assert updated.description == "p99 above budget"
        assert updated.value == pytest.approx(0.3)

    @pytest.mark.parametrize("title", ["", "  ", "\n"])
    async def test_blank_update_title_rejected(self, title):
        with pytest.raises(ValidationError):
            AlertUpdateDTO(title=title)


# ═══════════════════════════════════════════════════════════════════════════
#  Batch & counts
# ═══════════════════════════════════════════════════════════════════════════

class TestBatchAndCounts:
    async def test_batch_acknowledge(self, alerts):
        first = await alerts.create(make_alert_dto(title="A"))
        second = await alerts.create(make_alert_dto(title="B"))
        done = await alerts.create(make_alert_dto(title="C"))
        await alerts.resolve(done.id)

        updated = await alerts.batch_acknowledge([first.id, second.id, done.id], "sre-1")
        assert updated == 2
        assert (await alerts.get_by_id(first.id)).acked_by == "sre-1"
        assert len(await alerts.get_history(second.id)) == 1

    async def test_batch_resolve_nothing_matched(self, alerts):
        done = await alerts.create(make_alert_dto())
        await alerts.resolve(done.id)
        with pytest.raises(ResourceNotFoundException):
            await alerts.batch_resolve([done.id, "missing"])

    async def test_batch_requires_ids(self, alerts):
        with pytest.raises(ValidationException):
            await alerts.batch_resolve([])

    async def test_active_and_critical_counts(self, alerts):
        await alerts.create(make_alert_dto(title="A", severity="critical"))
        await alerts.create(make_alert_dto(title="B", severity="critical", status="pending"))
        acked = await alerts.create(make_alert_dto(title="C", severity="critical"))
        await alerts.create(make_alert_dto(title="D", severity="low"))
        await alerts.acknowledge(acked.id, "sre-1")

        assert await alerts.get_active_count() == 3
        assert await alerts.get_critical_count() == 2

    async def test_cleanup_resolved(self, alerts, clock):
        old = await alerts.create(make_alert_dto(title="old"))
        await alerts.resolve(old.id)
        clock.advance(days=10)
        live = await alerts.create(make_alert_dto(title="live"))

        removed = await alerts.cleanup_resolved(clock.now - timedelta(days=7))
        assert removed == 1
        assert await alerts.exists(old.id) is False
        assert await alerts.exists(live.id) is True

    async def test_cleanup_expired(self, alerts, clock):
        old = await alerts.create(make_alert_dto(title="old"))
        await alerts.resolve(old.id)
        clock.advance(days=8)
        recent = await alerts.create(make_alert_dto(title="recent"))
        await alerts.resolve(recent.id)
        firing = await alerts.create(make_alert_dto(title="firing"))

        removed = await alerts.cleanup_expired()
        assert removed == 1
        assert await alerts.exists(old.id) is False
        assert await alerts.exists(recent.id) is True
        assert await alerts.exists(firing.id) is True

    async def test_cleanup_expired_custom_retention(self, alerts, clock):
        done = await alerts.create(make_alert_dto())
        await alerts.resolve(done.id)
        clock.advance(hours=2)

        assert await alerts.cleanup_expired(timedelta(hours=3)) == 0
        assert await alerts.cleanup_expired(timedelta(hours=1)) == 1

    async def test_batch_soft_delete(self, alerts):
        first = await alerts.create(make_alert_dto(title="A"))
        second = await alerts.create(make_alert_dto(title="B"))

        deleted = await alerts.batch_soft_delete([first.id, second.id, "missing"], "sre-1")
        assert deleted == 2
        assert await alerts.count() == 0
        history = await alerts.get_history(first.id)
        assert history[0].action == HistoryAction.DELETED
