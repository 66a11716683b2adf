"""
Statistics aggregation over a filtered work item population.
"""

from datetime import datetime, timedelta
from typing import Dict, List

from src.config import TrendInterval
from src.shared.infrastructure.logging import get_logger, log_latency
from src.workitems.domain import (
    FilterSpec, ItemStats, Lifecycle, PredicateBuilder, TrendPoint, bucket_start,
)
from src.workitems.domain.predicates import AtLeast, AtMost, IsNull

logger = get_logger(__name__)

_GROUPINGS = {
    "by_status": "status",
    "by_priority": "priority",
    "by_severity": "severity",
    "by_category": "category",
    "by_type": "type",
    "by_source": "source",
}


class StatsAggregator:
    """
    Computes ``ItemStats`` with grouped COUNT queries.

    Every figure is derived from the same base predicate, so ``total``
    agrees with ``count(spec)`` for the same filter.
    """

    def __init__(self, lifecycle: Lifecycle, due_soon_window: timedelta = timedelta(hours=24)):
        self._lifecycle = lifecycle
        self._predicates = PredicateBuilder(lifecycle)
        self._due_soon_window = due_soon_window

    async def compute(self, repository, spec: FilterSpec, now: datetime) -> ItemStats:
        base = self._predicates.build(spec, now)
        stats = ItemStats()

        with log_latency(logger, f"{self._lifecycle.kind.value}.stats"):
            stats.total = await repository.count(base)
            for attribute, field in _GROUPINGS.items():
                setattr(stats, attribute, await repository.group_counts(base, field))

            stats.unassigned = await repository.count(base.and_(IsNull("assignee_id")))
            stats.overdue = await repository.count(
                base.and_(*self._predicates.overdue_clauses(now))
            )
            stats.due_soon = await repository.count(
                base.and_(*self._predicates.due_soon_clauses(now, self._due_soon_window))
            )

            if self._lifecycle.active:
                stats.active = await repository.count(
                    base.and_(*self._predicates.active_clauses())
                )
                stats.critical = await repository.count(
                    base.and_(*self._predicates.critical_clauses())
                )

        return stats

    async def trend(
        self,
        repository,
        spec: FilterSpec,
        now: datetime,
        field: str,
        start: datetime,
        end: datetime,
        interval: TrendInterval,
    ) -> List[TrendPoint]:
        """
        Items per time bucket of ``field`` within ``[start, end]``.

        Only buckets that contain at least one item are returned, oldest first.
        """
        predicate = self._predicates.build(spec, now).and_(
            AtLeast(field, start), AtMost(field, end)
        )
        points: Dict[datetime, TrendPoint] = {}

        with log_latency(logger, f"{self._lifecycle.kind.value}.trend", interval=interval.value):
            rows = await repository.timeline(predicate, field)

        for moment, status in rows:
            bucket = bucket_start(moment, interval)
            point = points.setdefault(bucket, TrendPoint(bucket=bucket))
            point.total += 1
            point.by_status[status] = point.by_status.get(status, 0) + 1

        return [points[bucket] for bucket in sorted(points)]
