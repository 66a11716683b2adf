"""Tests for grouped statistics over tickets and alerts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.config import TrendInterval
from src.core import ValidationException
from src.workitems.domain import FilterSpec, bucket_start
from tests.conftest import make_alert_dto, make_ticket_dto


class TestTicketStats:
    async def test_groupings_and_derived_counts(self, tickets, clock):
        now = clock.now
        a = await tickets.create(make_ticket_dto(
            priority="high", category="network", due_date=now - timedelta(hours=1)
        ))
        await tickets.create(make_ticket_dto(
            priority="high", category="network", due_date=now + timedelta(hours=3)
        ))
        await tickets.create(make_ticket_dto(
            priority="low", category=None, type="request", due_date=now + timedelta(hours=30)
        ))
        d = await tickets.create(make_ticket_dto(
            priority="critical", category="database", due_date=now - timedelta(hours=2)
        ))
        await tickets.assign(a.id, "agent-1")
        await tickets.resolve(d.id)

        stats = await tickets.get_stats()

        assert stats.total == 4
        assert stats.by_status == {"open": 2, "assigned": 1, "resolved": 1}
        assert stats.by_priority == {"high": 2, "low": 1, "critical": 1}
        assert stats.by_category == {"network": 2, "database": 1}
        assert stats.by_type == {"incident": 3, "request": 1}
        assert stats.by_source == {"manual": 4}
        assert stats.unassigned == 3
        assert stats.overdue == 1
        assert stats.due_soon == 1
        assert stats.active is None
        assert "active" not in stats.to_dict()

    async def test_total_agrees_with_count(self, tickets):
        for priority in ("high", "low", "high"):
            await tickets.create(make_ticket_dto(priority=priority))
        spec = FilterSpec(priority="high")
        stats = await tickets.get_stats(spec)
        assert stats.total == await tickets.count(spec) == 2
        assert stats.by_priority == {"high": 2}

    async def test_empty_population(self, tickets):
        stats = await tickets.get_stats()
        assert stats.total == 0
        assert stats.by_status == {}


class TestAlertStats:
    async def test_active_and_critical(self, alerts):
        await alerts.create(make_alert_dto(title="A", severity="critical"))
        await alerts.create(make_alert_dto(title="B", severity="high", status="pending"))
        done = await alerts.create(make_alert_dto(title="C", severity="critical"))
        await alerts.resolve(done.id)

        stats = await alerts.get_stats()

        assert stats.total == 3
        assert stats.by_status == {"firing": 1, "pending": 1, "resolved": 1}
        assert stats.by_severity == {"critical": 2, "high": 1}
        assert stats.by_source == {"prometheus": 3}
        assert stats.active == 2
        assert stats.critical == 1
        assert stats.to_dict()["critical"] == 1


# ═══════════════════════════════════════════════════════════════════════════
#  Trends
# ═══════════════════════════════════════════════════════════════════════════

def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestTrend:
    @pytest.fixture
    async def spread(self, tickets, clock):
        # 09:00, 09:30 and 11:30 on Monday 2 March, then 11:30 on Tuesday
        first = await tickets.create(make_ticket_dto(priority="high"))
        clock.advance(minutes=30)
        await tickets.create(make_ticket_dto(priority="low"))
        clock.advance(hours=2)
        await tickets.create(make_ticket_dto(priority="high"))
        clock.advance(days=1)
        await tickets.create(make_ticket_dto(priority="high"))
        await tickets.resolve(first.id)
        return first

    async def test_hourly_buckets(self, tickets, spread):
        points = await tickets.get_trend(
            _utc(2026, 3, 2), _utc(2026, 3, 4), TrendInterval.HOUR
        )

        assert [p.bucket for p in points] == [
            _utc(2026, 3, 2, 9), _utc(2026, 3, 2, 11), _utc(2026, 3, 3, 11),
        ]
        assert points[0].total == 2
        assert points[0].by_status == {"open": 1, "resolved": 1}
        assert points[1].to_dict() == {
            "bucket": "2026-03-02T11:00:00+00:00",
            "total": 1,
            "by_status": {"open": 1},
        }

    async def test_daily_weekly_monthly(self, tickets, spread):
        start, end = _utc(2026, 3, 1), _utc(2026, 3, 31)

        daily = await tickets.get_trend(start, end, "day")
        assert [(p.bucket.day, p.total) for p in daily] == [(2, 3), (3, 1)]

        weekly = await tickets.get_trend(start, end, "week")
        assert [(p.bucket, p.total) for p in weekly] == [(_utc(2026, 3, 2), 4)]

        monthly = await tickets.get_trend(start, end, TrendInterval.MONTH)
        assert [(p.bucket, p.total) for p in monthly] == [(_utc(2026, 3, 1), 4)]

    async def test_window_bounds_are_inclusive(self, tickets, spread):
        points = await tickets.get_trend(
            _utc(2026, 3, 2, 9, 30), _utc(2026, 3, 2, 11, 30), TrendInterval.HOUR
        )
        assert [(p.bucket.hour, p.total) for p in points] == [(9, 1), (11, 1)]

    async def test_filter_applies(self, tickets, spread):
        points = await tickets.get_trend(
            _utc(2026, 3, 1), _utc(2026, 3, 31), "day", FilterSpec(priority="high")
        )
        assert [p.total for p in points] == [2, 1]

    async def test_empty_window(self, tickets, spread):
        assert await tickets.get_trend(_utc(2025, 1, 1), _utc(2025, 2, 1)) == []

    async def test_alerts_bucket_on_start_time(self, alerts, clock):
        await alerts.create(make_alert_dto(title="A"))
        await alerts.create(make_alert_dto(
            title="B", starts_at=clock.now - timedelta(days=3)
        ))

        points = await alerts.get_trend(
            _utc(2026, 2, 1), _utc(2026, 3, 31), TrendInterval.DAY
        )
        assert [(p.bucket, p.total) for p in points] == [
            (_utc(2026, 2, 27), 1), (_utc(2026, 3, 2), 1),
        ]
        assert points[0].by_status == {"firing": 1}

    async def test_unknown_interval_rejected(self, tickets):
        with pytest.raises(ValidationException) as exc:
            await tickets.get_trend(_utc(2026, 3, 1), _utc(2026, 3, 2), "fortnight")
        assert "week" in exc.value.details["allowed"]

    async def test_inverted_window_rejected(self, tickets):
        with pytest.raises(ValidationException):
            await tickets.get_trend(_utc(2026, 3, 2), _utc(2026, 3, 1))


class TestBucketStart:
    @pytest.mark.parametrize("interval, expected", [
        (TrendInterval.HOUR, _utc(2026, 3, 4, 1)),
        (TrendInterval.DAY, _utc(2026, 3, 4)),
        (TrendInterval.WEEK, _utc(2026, 3, 2)),
        (TrendInterval.MONTH, _utc(2026, 3, 1)),
    ])
    def test_truncates_in_utc(self, interval, expected):
        # 20:15 on Tuesday 3 March at UTC-5 is 01:15 on Wednesday in UTC
        moment = datetime(2026, 3, 3, 20, 15, tzinfo=timezone(timedelta(hours=-5)))
        assert bucket_start(moment, interval) == expected
