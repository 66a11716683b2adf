"""Tests for src.workitems.domain.value_objects: SLA clock and policy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.config import Priority, SLAState
from src.workitems.domain import SLAClock, SLAPolicy

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestClassify:
    def test_no_deadline(self):
        info = SLAClock.classify(None, NOW)
        assert info.state == SLAState.NO_SLA
        assert info.deadline is None
        assert info.remaining == timedelta(0)

    def test_deadline_equal_to_now_is_breached(self):
        info = SLAClock.classify(NOW, NOW)
        assert info.state == SLAState.BREACHED
        assert info.is_breached
        assert info.remaining == timedelta(0)

    def test_past_deadline_is_breached_with_zero_remaining(self):
        info = SLAClock.classify(NOW - timedelta(minutes=5), NOW)
        assert info.state == SLAState.BREACHED
        assert info.remaining == timedelta(0)

    def test_within_two_hours_is_at_risk(self):
        info = SLAClock.classify(NOW + timedelta(hours=1), NOW)
        assert info.state == SLAState.AT_RISK
        assert info.remaining == timedelta(hours=1)

    def test_exactly_two_hours_is_at_risk(self):
        assert SLAClock.classify(NOW + timedelta(hours=2), NOW).state == SLAState.AT_RISK

    def test_beyond_two_hours_is_on_track(self):
        info = SLAClock.classify(NOW + timedelta(hours=2, seconds=1), NOW)
        assert info.state == SLAState.ON_TRACK

    def test_classify_is_pure(self):
        deadline = NOW + timedelta(minutes=30)
        assert SLAClock.classify(deadline, NOW) == SLAClock.classify(deadline, NOW)

    def test_to_dict(self):
        data = SLAClock.classify(NOW + timedelta(hours=1), NOW).to_dict()
        assert data["state"] == "at_risk"
        assert data["remaining_seconds"] == 3600


class TestSLAPolicy:
    def test_defaults(self):
        policy = SLAPolicy()
        assert policy.get_resolution_minutes(Priority.CRITICAL) == 240
        assert policy.get_resolution_minutes(Priority.HIGH) == 480
        assert policy.get_resolution_minutes(Priority.MEDIUM) == 1440
        assert policy.get_resolution_minutes(Priority.LOW) == 4320

    def test_partial_override_keeps_other_defaults(self):
        policy = SLAPolicy(resolution_minutes={"critical": 60})
        assert policy.get_resolution_minutes("critical") == 60
        assert policy.get_resolution_minutes("low") == 4320

    def test_derive_deadline(self):
        assert SLAPolicy().derive_deadline(Priority.HIGH, NOW) == NOW + timedelta(hours=8)

    def test_non_positive_target_rejected(self):
        with pytest.raises(ValidationError):
            SLAPolicy(resolution_minutes={"high": 0})
