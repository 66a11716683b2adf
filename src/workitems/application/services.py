"""
Work Item Application Services
==============================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Every public operation runs inside its own transaction under an optional
deadline. Lifecycle moves are checked against the transition table before
the guarded UPDATE; history is appended after commit and never rolls the
mutation back.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import (
    Any, AsyncGenerator, Callable, Dict, Iterable, List, Optional, Tuple,
)

from src.config import (
    AlertStatus, HistoryAction, ItemKind, TicketSource, TicketStatus, TrendInterval,
)
from src.core import (
    Clock, ConflictException, IdFactory, InvalidTransitionException,
    ResourceNotFoundException, ValidationException, new_id, utc_now,
)
from src.infrastructure.database import Database, deadline
from src.shared.infrastructure.logging import get_logger
from src.workitems.application.audit import AuditRecorder, render_value
from src.workitems.application.dto import (
    AlertCreateDTO, AlertUpdateDTO, TicketCreateDTO, TicketUpdateDTO,
)
from src.workitems.application.stats import StatsAggregator
from src.workitems.domain import (
    ALERT_LIFECYCLE, TICKET_LIFECYCLE, Alert, FilterSpec, HistoryEntry,
    ItemPage, ItemStats, Lifecycle, Predicate, PredicateBuilder, SLAClock,
    SLAPolicy, SLAStatusInfo, Ticket, Transition, TrendPoint, WorkItem,
)
from src.workitems.domain.predicates import LIVE, Before, Equals, NoneOf

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IWorkItemRepository(ABC):
    """Interface for work item data access."""

    @abstractmethod
    async def get_by_id(self, item_id: str) -> Optional[WorkItem]:
        """Get a live item by ID."""

    @abstractmethod
    async def exists(self, item_id: str) -> bool:
        """Check if a live item exists."""

    @abstractmethod
    async def list(self, predicate: Predicate, spec: FilterSpec) -> Tuple[List[WorkItem], int]:
        """One page of matching items and the total match count."""

    @abstractmethod
    async def count(self, predicate: Predicate) -> int:
        """Count matching items."""

    @abstractmethod
    async def find(
        self,
        predicate: Predicate,
        order_field: str = "created_at",
        ascending: bool = False,
        limit: Optional[int] = None,
    ) -> List[WorkItem]:
        """Unpaginated matching items in a fixed order."""

    @abstractmethod
    async def group_counts(self, predicate: Predicate, field: str) -> Dict[str, int]:
        """Counts per distinct value of a field."""

    @abstractmethod
    async def timeline(self, predicate: Predicate, field: str) -> List[Tuple[datetime, str]]:
        """(timestamp, status) of every matching item that has ``field`` set."""

    @abstractmethod
    async def create(self, item: WorkItem) -> WorkItem:
        """Insert a new item."""

    @abstractmethod
    async def update_fields(self, item_id: str, changes: Dict[str, Any], now: datetime) -> int:
        """Overwrite plain fields of a live item; returns affected rows."""

    @abstractmethod
    async def apply_transition(
        self,
        item_id: str,
        transition: Transition,
        now: datetime,
        actor_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        expected: Optional[Iterable[Any]] = None,
    ) -> int:
        """Guarded status change; returns affected rows."""

    @abstractmethod
    async def assign(
        self,
        item_id: str,
        assignee_id: Optional[str],
        now: datetime,
        advance: Optional[Tuple[Any, Any]] = None,
    ) -> int:
        """Set or clear the assignee; returns affected rows."""

    @abstractmethod
    async def soft_delete(self, item_id: str, now: datetime) -> int:
        """Mark a live item deleted; returns affected rows."""

    @abstractmethod
    async def delete(self, item_id: str) -> int:
        """Hard-delete an item and its history; returns affected rows."""

    @abstractmethod
    async def purge(self, predicate: Predicate) -> int:
        """Hard-delete all matching items and their history."""


class ITicketRepository(IWorkItemRepository):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_number(self, number: str) -> Optional[Ticket]:
        """Get a live ticket by its human-readable number."""


class IAlertRepository(IWorkItemRepository):
    """Interface for alert data access."""

    @abstractmethod
    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Alert]:
        """Most recent live alert with the given fingerprint."""


class IHistoryRepository(ABC):
    """Interface for the append-only history store."""

    @abstractmethod
    async def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Insert one entry."""

    @abstractmethod
    async def list_for(self, item_kind: ItemKind, item_id: str) -> List[HistoryEntry]:
        """Entries for one item, most recent first."""


class ISLAPolicyProvider(ABC):
    """Interface for SLA policy access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get current SLA policy."""


# ========== Application Services ==========

# Ticket priority for a ticket opened from an alert of a given severity
_PRIORITY_FOR_SEVERITY = {
    "critical": "critical",
    "high": "high",
    "medium": "medium",
    "low": "low",
    "info": "low",
}

# Marks an optional argument the caller left out
_UNSET: Any = object()


class WorkItemService:
    """
    Operations shared by tickets and alerts.

    Subclasses bind the lifecycle and add their kind-specific operations.
    """

    lifecycle: Lifecycle
    # Timestamp the trend buckets are built from
    trend_field: str = "created_at"

    def __init__(
        self,
        database: Database,
        repository_factory: Callable[..., IWorkItemRepository],
        audit: AuditRecorder,
        *,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
        operation_timeout: Optional[float] = None,
        due_soon_window: timedelta = timedelta(hours=24),
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self._database = database
        self._repository_factory = repository_factory
        self._audit = audit
        self._clock = clock
        self._id_factory = id_factory
        self._timeout = operation_timeout
        self._predicates = PredicateBuilder(self.lifecycle)
        self._stats = StatsAggregator(self.lifecycle, due_soon_window)
        self._sla_clock = SLAClock(clock)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    @property
    def kind(self) -> ItemKind:
        return self.lifecycle.kind

    @property
    def resource_type(self) -> str:
        return self.lifecycle.resource_type

    # ========== Plumbing ==========

    def _op(self, name: str) -> str:
        return f"{self.kind.value}.{name}"

    @asynccontextmanager
    async def _repository(self, operation: str) -> AsyncGenerator[IWorkItemRepository, None]:
        """Transaction-scoped repository bounded by the operation deadline."""
        async with deadline(self._timeout, operation):
            async with self._database.session(operation) as session:
                yield self._repository_factory(session)

    async def _require(self, repository: IWorkItemRepository, item_id: str) -> WorkItem:
        item = await repository.get_by_id(item_id)
        if item is None:
            raise ResourceNotFoundException(self.resource_type, item_id)
        return item

    async def _ensure_applied(
        self,
        repository: IWorkItemRepository,
        rows: int,
        item_id: str,
        operation: str,
    ) -> None:
        """
        Turn a zero-row guarded update into the matching error.

        Raises:
            ResourceNotFoundException: If the item vanished or was deleted
            ConflictException: If the item is live but no longer matches the guard
        """
        if rows:
            return
        if await repository.exists(item_id):
            logger.warning(
                "Guarded update lost a concurrent race",
                extra={"operation": operation, "item_id": item_id}
            )
            raise ConflictException(
                f"{self.resource_type} '{item_id}' changed concurrently",
                {"operation": operation, "item_id": item_id}
            )
        raise ResourceNotFoundException(self.resource_type, item_id)

    def _entry(
        self,
        item_id: str,
        action: HistoryAction,
        *,
        field: Optional[str] = None,
        old: Any = None,
        new: Any = None,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            item_kind=self.kind,
            item_id=item_id,
            action=action,
            field=field,
            old_value=render_value(old),
            new_value=render_value(new),
            actor_id=actor_id,
            comment=comment,
        )

    def _paged(self, spec: FilterSpec) -> FilterSpec:
        """Apply the configured default page size and enforce the maximum."""
        if "page_size" not in spec.model_fields_set:
            spec = spec.model_copy(update={"page_size": self._default_page_size})
        if spec.page_size is not None and spec.page_size > self._max_page_size:
            raise ValidationException(
                f"page_size must not exceed {self._max_page_size}",
                {"page_size": spec.page_size, "max_page_size": self._max_page_size}
            )
        return spec

    @staticmethod
    def _require_text(value: Optional[str], name: str) -> str:
        if value is None or not value.strip():
            raise ValidationException(f"{name} is required", {"field": name})
        return value.strip()

    @staticmethod
    def _require_ids(item_ids: Iterable[str]) -> List[str]:
        ids = list(dict.fromkeys(i for i in item_ids if i))
        if not ids:
            raise ValidationException("At least one id is required", {"field": "ids"})
        return ids

    async def _insert(self, item: WorkItem, actor_id: Optional[str]) -> WorkItem:
        operation = self._op("create")
        async with self._repository(operation) as repository:
            await repository.create(item)
        logger.info(
            f"{self.resource_type} created",
            extra={
                "item_id": item.id,
                "status": item.status.value,
                "priority": item.priority.value,
                "actor_id": actor_id or item.reporter_id,
            }
        )
        return item

    # ========== Reads ==========

    async def get_by_id(self, item_id: str) -> WorkItem:
        """
        Get a live item.

        Raises:
            ResourceNotFoundException: If the item is absent or soft-deleted
        """
        async with self._repository(self._op("get_by_id")) as repository:
            return await self._require(repository, item_id)

    async def exists(self, item_id: str) -> bool:
        async with self._repository(self._op("exists")) as repository:
            return await repository.exists(item_id)

    async def list(self, spec: Optional[FilterSpec] = None) -> ItemPage:
        """
        Filtered, ordered, paginated listing.

        Count and page are computed from the same predicate, so ``total``
        equals the length of the unpaginated listing.
        """
        spec = self._paged(spec or FilterSpec())
        predicate = self._predicates.build(spec, self._clock())
        async with self._repository(self._op("list")) as repository:
            items, total = await repository.list(predicate, spec)
        return ItemPage(items=items, total=total, page=spec.page, page_size=spec.page_size)

    async def count(self, spec: Optional[FilterSpec] = None) -> int:
        """Number of live items matching ``spec``; paging fields are ignored."""
        predicate = self._predicates.build(spec or FilterSpec(), self._clock())
        async with self._repository(self._op("count")) as repository:
            return await repository.count(predicate)

    async def get_stats(self, spec: Optional[FilterSpec] = None) -> ItemStats:
        """Grouped counts and derived metrics over the filtered population."""
        async with self._repository(self._op("stats")) as repository:
            return await self._stats.compute(repository, spec or FilterSpec(), self._clock())

    async def get_overdue_count(self) -> int:
        return await self.count(FilterSpec(overdue=True))

    async def get_history(self, item_id: str) -> List[HistoryEntry]:
        """Audit trail of one item, most recent first."""
        return await self._audit.get_history(self.kind, item_id)

    async def get_trend(
        self,
        start: datetime,
        end: datetime,
        interval: Any = TrendInterval.DAY,
        spec: Optional[FilterSpec] = None,
    ) -> List[TrendPoint]:
        """
        Item counts per hour, day, week or month bucket.

        Buckets are keyed on ``trend_field`` and split by current status.
        Paging fields of ``spec`` are ignored.

        Raises:
            ValidationException: If the window is inverted or the interval unknown
        """
        if start > end:
            raise ValidationException(
                "start must not be after end",
                {"start": start.isoformat(), "end": end.isoformat()}
            )
        try:
            interval = TrendInterval(getattr(interval, "value", interval))
        except ValueError:
            raise ValidationException(
                f"Unknown trend interval '{interval}'",
                {"interval": str(interval), "allowed": [i.value for i in TrendInterval]}
            )

        async with self._repository(self._op("trend")) as repository:
            return await self._stats.trend(
                repository, spec or FilterSpec(), self._clock(),
                self.trend_field, start, end, interval,
            )

    # ========== SLA ==========

    async def get_sla_status(self, item_id: str) -> SLAStatusInfo:
        """Classify the item's SLA deadline against the current time."""
        item = await self.get_by_id(item_id)
        return self._sla_clock.compute_sla_status(item)

    async def get_overdue_sla(self, limit: Optional[int] = None) -> List[WorkItem]:
        """Live, non-terminal items past their SLA deadline, earliest first."""
        predicate = Predicate((LIVE,) + self._predicates.sla_overdue_clauses(self._clock()))
        async with self._repository(self._op("overdue_sla")) as repository:
            return await repository.find(
                predicate, order_field="sla_deadline", ascending=True, limit=limit
            )

    async def update_sla(
        self,
        item_id: str,
        sla_deadline: Optional[datetime],
        due_date: Optional[datetime] = _UNSET,
        actor_id: Optional[str] = None,
    ) -> WorkItem:
        """
        Administrative override of the SLA deadline and due date.

        Values are stored as given; no check against priority defaults or
        the current time is made. ``due_date`` is left untouched unless
        passed; pass ``None`` to clear it.
        """
        operation = self._op("update_sla")
        async with self._repository(operation) as repository:
            before = await self._require(repository, item_id)
            changes = {"sla_deadline": sla_deadline}
            if due_date is not _UNSET:
                changes["due_date"] = due_date
            rows = await repository.update_fields(item_id, changes, self._clock())
            await self._ensure_applied(repository, rows, item_id, operation)
            item = await self._require(repository, item_id)

        await self._audit.record(self._entry(
            item_id,
            HistoryAction.SLA_UPDATED,
            field=",".join(sorted(changes)),
            old={name: getattr(before, name) for name in changes},
            new=changes,
            actor_id=actor_id,
        ))
        return item

    # ========== Generic update ==========

    async def _update(self, item_id: str, changes: Dict[str, Any], actor_id: Optional[str]) -> WorkItem:
        operation = self._op("update")
        async with self._repository(operation) as repository:
            before = await self._require(repository, item_id)
            diff = {}
            for name, value in changes.items():
                current = getattr(before, name)
                if name == "tags":
                    value = set(value)
                if current != value:
                    diff[name] = (current, value)
            if not diff:
                return before

            rows = await repository.update_fields(
                item_id, {name: new for name, (_, new) in diff.items()}, self._clock()
            )
            await self._ensure_applied(repository, rows, item_id, operation)
            item = await self._require(repository, item_id)

        await self._audit.record(self._entry(
            item_id,
            HistoryAction.UPDATED,
            field=",".join(sorted(diff)),
            old={name: old for name, (old, _) in diff.items()},
            new={name: new for name, (_, new) in diff.items()},
            actor_id=actor_id,
        ))
        return item

    # ========== Lifecycle ==========

    async def _transition(
        self,
        item_id: str,
        target: Any,
        actor_id: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
        action: Optional[HistoryAction] = None,
    ) -> WorkItem:
        """
        Move one item into ``target`` under the transition guard.

        Raises:
            ResourceNotFoundException: If the item is absent or soft-deleted
            InvalidTransitionException: If ``target`` is not reachable from the current status
            ConflictException: If the status changed between read and update
        """
        target = self.lifecycle.coerce(target)
        operation = self._op(f"transition_to_{target.value}")
        async with self._repository(operation) as repository:
            before = await self._require(repository, item_id)
            transition = self.lifecycle.transition_to(item_id, before.status, target)
            now = now or self._clock()
            rows = await repository.apply_transition(
                item_id, transition, now, actor_id=actor_id, extra=extra
            )
            await self._ensure_applied(repository, rows, item_id, operation)
            item = await self._require(repository, item_id)

        logger.info(
            f"{self.resource_type} status changed",
            extra={
                "item_id": item_id,
                "from_status": before.status.value,
                "to_status": target.value,
                "actor_id": actor_id,
            }
        )
        await self._audit.record(self._entry(
            item_id,
            action or transition.action,
            field="status",
            old=before.status,
            new=target,
            actor_id=actor_id,
            comment=comment,
        ))
        return item

    async def update_status(
        self,
        item_id: str,
        status: Any,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> WorkItem:
        """Generic move into ``status`` using that status's transition."""
        target = self.lifecycle.coerce(status)
        if target in self.lifecycle.argument_targets:
            raise ValidationException(
                f"Status '{target.value}' requires its dedicated operation",
                {"status": target.value}
            )
        return await self._transition(item_id, target, actor_id, comment=comment)

    async def assign(self, item_id: str, assignee_id: str, actor_id: Optional[str] = None) -> WorkItem:
        """
        Set the assignee; tickets in Open advance to Assigned.

        Raises:
            ValidationException: If ``assignee_id`` is empty
            ResourceNotFoundException: If the item is absent or soft-deleted
        """
        assignee_id = self._require_text(assignee_id, "assignee_id")
        operation = self._op("assign")
        async with self._repository(operation) as repository:
            before = await self._require(repository, item_id)
            rows = await repository.assign(
                item_id, assignee_id, self._clock(), advance=self.lifecycle.assign_advance
            )
            await self._ensure_applied(repository, rows, item_id, operation)
            item = await self._require(repository, item_id)

        logger.info(
            f"{self.resource_type} assigned",
            extra={"item_id": item_id, "assignee_id": assignee_id, "actor_id": actor_id}
        )
        comment = None
        if item.status != before.status:
            comment = f"status {before.status.value} -> {item.status.value}"
        await self._audit.record(self._entry(
            item_id,
            HistoryAction.ASSIGNED,
            field="assignee_id",
            old=before.assignee_id,
            new=assignee_id,
            actor_id=actor_id,
            comment=comment,
        ))
        return item

    async def unassign(self, item_id: str, actor_id: Optional[str] = None) -> WorkItem:
        """Clear the assignee; status is unchanged."""
        operation = self._op("unassign")
        async with self._repository(operation) as repository:
            before = await self._require(repository, item_id)
            if before.assignee_id is None:
                return before
            rows = await repository.assign(item_id, None, self._clock())
            await self._ensure_applied(repository, rows, item_id, operation)
            item = await self._require(repository, item_id)

        await self._audit.record(self._entry(
            item_id,
            HistoryAction.UNASSIGNED,
            field="assignee_id",
            old=before.assignee_id,
            actor_id=actor_id,
        ))
        return item

    async def soft_delete(self, item_id: str, actor_id: Optional[str] = None) -> None:
        """
        Hide an item from every read and mutation.

        Raises:
            ResourceNotFoundException: If the item is absent or already deleted
        """
        operation = self._op("soft_delete")
        async with self._repository(operation) as repository:
            rows = await repository.soft_delete(item_id, self._clock())
            if not rows:
                raise ResourceNotFoundException(self.resource_type, item_id)

        logger.info(f"{self.resource_type} soft-deleted", extra={"item_id": item_id})
        await self._audit.record(
            self._entry(item_id, HistoryAction.DELETED, actor_id=actor_id)
        )

    async def delete(self, item_id: str) -> None:
        """
        Permanently remove an item and its history.

        Raises:
            ResourceNotFoundException: If no row has this id
        """
        async with self._repository(self._op("delete")) as repository:
            rows = await repository.delete(item_id)
            if not rows:
                raise ResourceNotFoundException(self.resource_type, item_id)
        logger.info(f"{self.resource_type} deleted", extra={"item_id": item_id})

    # ========== Batch ==========

    async def batch_assign(
        self,
        item_ids: Iterable[str],
        assignee_id: str,
        actor_id: Optional[str] = None,
    ) -> int:
        """
        Assign several items inside one transaction.

        IDs that are missing or deleted are skipped.

        Returns:
            int: Number of items updated

        Raises:
            ValidationException: If no ids or no assignee are given
            ResourceNotFoundException: If no item matched at all
        """
        ids = self._require_ids(item_ids)
        assignee_id = self._require_text(assignee_id, "assignee_id")
        operation = self._op("batch_assign")
        applied: List[HistoryEntry] = []

        async with self._repository(operation) as repository:
            now = self._clock()
            for item_id in ids:
                before = await repository.get_by_id(item_id)
                if before is None:
                    continue
                rows = await repository.assign(
                    item_id, assignee_id, now, advance=self.lifecycle.assign_advance
                )
                if rows:
                    applied.append(self._entry(
                        item_id,
                        HistoryAction.ASSIGNED,
                        field="assignee_id",
                        old=before.assignee_id,
                        new=assignee_id,
                        actor_id=actor_id,
                    ))
            if not applied:
                raise ResourceNotFoundException(
                    self.resource_type, None, {"ids": ids, "operation": operation}
                )

        logger.info(
            f"{self.resource_type} batch assigned",
            extra={"requested": len(ids), "updated": len(applied), "assignee_id": assignee_id}
        )
        await self._audit.record_many(applied)
        return len(applied)

    async def batch_update_status(
        self,
        item_ids: Iterable[str],
        status: Any,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> int:
        """
        Move several items into ``status`` inside one transaction.

        Items whose current status cannot reach ``status`` are skipped like
        missing ones; the transaction commits if at least one row changed.

        Returns:
            int: Number of items updated

        Raises:
            ValidationException: If no ids are given or the status is invalid
            ResourceNotFoundException: If no item matched at all
        """
        ids = self._require_ids(item_ids)
        target = self.lifecycle.coerce(status)
        if target in self.lifecycle.argument_targets:
            raise ValidationException(
                f"Status '{target.value}' requires its dedicated operation",
                {"status": target.value}
            )
        transition = self.lifecycle.transitions[target]

        operation = self._op("batch_update_status")
        applied: List[HistoryEntry] = []

        async with self._repository(operation) as repository:
            now = self._clock()
            for item_id in ids:
                before = await repository.get_by_id(item_id)
                if before is None or not transition.allows(before.status):
                    continue
                rows = await repository.apply_transition(
                    item_id, transition, now, actor_id=actor_id, expected={before.status}
                )
                if rows:
                    applied.append(self._entry(
                        item_id,
                        transition.action,
                        field="status",
                        old=before.status,
                        new=target,
                        actor_id=actor_id,
                        comment=comment,
                    ))
            if not applied:
                raise ResourceNotFoundException(
                    self.resource_type, None, {"ids": ids, "operation": operation}
                )

        logger.info(
            f"{self.resource_type} batch status update",
            extra={"requested": len(ids), "updated": len(applied), "to_status": target.value}
        )
        await self._audit.record_many(applied)
        return len(applied)

    async def batch_soft_delete(self, item_ids: Iterable[str], actor_id: Optional[str] = None) -> int:
        """
        Soft-delete several items inside one transaction.

        IDs that are missing or already deleted are skipped.

        Returns:
            int: Number of items deleted

        Raises:
            ValidationException: If no ids are given
            ResourceNotFoundException: If no item matched at all
        """
        ids = self._require_ids(item_ids)
        operation = self._op("batch_soft_delete")
        applied: List[HistoryEntry] = []

        async with self._repository(operation) as repository:
            now = self._clock()
            for item_id in ids:
                if await repository.soft_delete(item_id, now):
                    applied.append(
                        self._entry(item_id, HistoryAction.DELETED, actor_id=actor_id)
                    )
            if not applied:
                raise ResourceNotFoundException(
                    self.resource_type, None, {"ids": ids, "operation": operation}
                )

        logger.info(
            f"{self.resource_type} batch soft-deleted",
            extra={"requested": len(ids), "deleted": len(applied)}
        )
        await self._audit.record_many(applied)
        return len(applied)


class TicketService(WorkItemService):
    """
    Ticket lifecycle: Open -> Assigned -> InProgress -> Resolved -> Closed,
    reopenable from Resolved or Closed, cancellable while being worked.
    """

    lifecycle = TICKET_LIFECYCLE

    def __init__(
        self,
        database: Database,
        repository_factory: Callable[..., ITicketRepository],
        audit: AuditRecorder,
        *,
        policy_provider: Optional[ISLAPolicyProvider] = None,
        auto_assign_sla: bool = False,
        **kwargs: Any,
    ):
        super().__init__(database, repository_factory, audit, **kwargs)
        self._policy_provider = policy_provider
        self._auto_assign_sla = auto_assign_sla

    def _ticket_number(self, item_id: str, now: datetime) -> str:
        suffix = item_id.replace("-", "")[-6:].upper()
        return f"TK-{now:%Y%m%d-%H%M%S}-{suffix}"

    async def create(self, dto: TicketCreateDTO, actor_id: Optional[str] = None) -> Ticket:
        """
        Open a new ticket.

        When SLA auto-assignment is enabled and no deadline is given, the
        deadline is derived from the priority.
        """
        now = self._clock()
        item_id = self._id_factory()
        sla_deadline = dto.sla_deadline
        if sla_deadline is None and self._auto_assign_sla and self._policy_provider:
            sla_deadline = self._policy_provider.get_policy().derive_deadline(dto.priority, now)

        ticket = Ticket(
            id=item_id,
            number=self._ticket_number(item_id, now),
            title=dto.title,
            description=dto.description,
            status=self.lifecycle.initial,
            type=dto.type,
            source=dto.source,
            priority=dto.priority,
            severity=dto.severity,
            category=dto.category,
            subcategory=dto.subcategory,
            tags=set(dto.tags),
            labels=dict(dto.labels),
            custom_fields=dict(dto.custom_fields),
            reporter_id=dto.reporter_id,
            assignee_id=dto.assignee_id,
            team_id=dto.team_id,
            alert_id=dto.alert_id,
            rule_id=dto.rule_id,
            due_date=dto.due_date,
            sla_deadline=sla_deadline,
            created_at=now,
            updated_at=now,
        )
        return await self._insert(ticket, actor_id)

    async def create_from_alert(
        self,
        alert: Alert,
        reporter_id: str,
        title: Optional[str] = None,
    ) -> Ticket:
        """Open an incident ticket linked to ``alert``."""
        dto = TicketCreateDTO(
            title=title or f"[{alert.severity.value.upper()}] {alert.title}",
            description=alert.description,
            priority=_PRIORITY_FOR_SEVERITY.get(alert.severity.value, alert.priority),
            severity=alert.severity,
            source=TicketSource.ALERT,
            category=alert.category,
            tags=sorted(alert.tags),
            labels=dict(alert.labels),
            reporter_id=reporter_id,
            team_id=alert.team_id,
            alert_id=alert.id,
            rule_id=alert.rule_id,
        )
        return await self.create(dto, actor_id=reporter_id)

    async def update(self, item_id: str, dto: TicketUpdateDTO, actor_id: Optional[str] = None) -> Ticket:
        """Apply the explicitly set descriptive fields."""
        return await self._update(item_id, dto.changes(), actor_id)

    async def get_by_number(self, number: str) -> Ticket:
        async with self._repository(self._op("get_by_number")) as repository:
            ticket = await repository.get_by_number(number)
        if ticket is None:
            raise ResourceNotFoundException(self.resource_type, number)
        return ticket

    async def get_by_alert_id(self, alert_id: str) -> List[Ticket]:
        """Live tickets opened from ``alert_id``, newest first."""
        predicate = Predicate((LIVE, Equals("alert_id", alert_id)))
        async with self._repository(self._op("get_by_alert_id")) as repository:
            return await repository.find(predicate)

    async def start_progress(self, item_id: str, actor_id: Optional[str] = None) -> Ticket:
        return await self._transition(item_id, TicketStatus.IN_PROGRESS, actor_id)

    async def resolve(
        self,
        item_id: str,
        actor_id: Optional[str] = None,
        resolution: Optional[str] = None,
    ) -> Ticket:
        """
        Resolve a ticket that is still being worked.

        Raises:
            InvalidTransitionException: If already resolved, closed or cancelled
        """
        return await self._transition(
            item_id, TicketStatus.RESOLVED, actor_id,
            extra={"resolution": resolution}, comment=resolution,
        )

    async def close(self, item_id: str, actor_id: Optional[str] = None, comment: Optional[str] = None) -> Ticket:
        """Close a resolved ticket."""
        return await self._transition(item_id, TicketStatus.CLOSED, actor_id, comment=comment)

    async def reopen(self, item_id: str, actor_id: Optional[str] = None, comment: Optional[str] = None) -> Ticket:
        """Reopen a resolved or closed ticket, bumping ``reopen_count``."""
        return await self._transition(item_id, TicketStatus.OPEN, actor_id, comment=comment)

    async def cancel(self, item_id: str, actor_id: Optional[str] = None, comment: Optional[str] = None) -> Ticket:
        return await self._transition(item_id, TicketStatus.CANCELLED, actor_id, comment=comment)

    async def get_open_count(self) -> int:
        """Tickets still being worked (open, assigned, in progress)."""
        predicate = Predicate((LIVE, NoneOf("status", tuple(sorted(self.lifecycle.terminal)))))
        async with self._repository(self._op("open_count")) as repository:
            return await repository.count(predicate)

    async def cleanup_closed(self, before: datetime) -> int:
        """Hard-delete tickets closed before ``before``, with their history."""
        predicate = Predicate((
            Equals("status", TicketStatus.CLOSED),
            Before("closed_at", before),
        ))
        async with self._repository(self._op("cleanup_closed")) as repository:
            removed = await repository.purge(predicate)
        logger.info("Closed tickets purged", extra={"before": before.isoformat(), "removed": removed})
        return removed


class AlertService(WorkItemService):
    """
    Alert lifecycle: Firing <-> Pending, Acked, Silenced, Resolved.

    Alerts are deduplicated by fingerprint while unresolved.
    """

    lifecycle = ALERT_LIFECYCLE
    trend_field = "starts_at"

    @staticmethod
    def compute_fingerprint(rule_id: Optional[str], title: str, labels: Dict[str, str]) -> str:
        """Stable deduplication key from the rule, name and labels."""
        payload = json.dumps(
            {"rule_id": rule_id, "title": title, "labels": labels},
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]

    async def create(self, dto: AlertCreateDTO, actor_id: Optional[str] = None) -> Alert:
        """
        Raise a new alert.

        Raises:
            ConflictException: If an unresolved alert with the same fingerprint exists
        """
        now = self._clock()
        fingerprint = dto.fingerprint or self.compute_fingerprint(dto.rule_id, dto.title, dto.labels)

        unresolved = Predicate((
            LIVE,
            Equals("fingerprint", fingerprint),
            NoneOf("status", (AlertStatus.RESOLVED,)),
        ))
        async with self._repository(self._op("dedup")) as repository:
            existing = await repository.find(unresolved, limit=1)
        if existing:
            raise ConflictException(
                f"Alert with fingerprint '{fingerprint}' is already active",
                {"fingerprint": fingerprint, "alert_id": existing[0].id}
            )

        alert = Alert(
            id=self._id_factory(),
            fingerprint=fingerprint,
            title=dto.title,
            description=dto.description,
            status=AlertStatus(dto.status),
            type=dto.type,
            source=dto.source,
            priority=dto.priority,
            severity=dto.severity,
            category=dto.category,
            tags=set(dto.tags),
            labels=dict(dto.labels),
            custom_fields=dict(dto.custom_fields),
            reporter_id=dto.reporter_id,
            assignee_id=dto.assignee_id,
            team_id=dto.team_id,
            rule_id=dto.rule_id,
            expression=dto.expression,
            value=dto.value,
            threshold=dto.threshold,
            starts_at=dto.starts_at or now,
            due_date=dto.due_date,
            sla_deadline=dto.sla_deadline,
            created_at=now,
            updated_at=now,
        )
        return await self._insert(alert, actor_id)

    async def update(self, item_id: str, dto: AlertUpdateDTO, actor_id: Optional[str] = None) -> Alert:
        """Apply the explicitly set descriptive fields."""
        return await self._update(item_id, dto.changes(), actor_id)

    async def get_by_fingerprint(self, fingerprint: str) -> Alert:
        async with self._repository(self._op("get_by_fingerprint")) as repository:
            alert = await repository.get_by_fingerprint(fingerprint)
        if alert is None:
            raise ResourceNotFoundException(self.resource_type, fingerprint)
        return alert

    async def acknowledge(
        self,
        item_id: str,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> Alert:
        """Acknowledge a firing or pending alert."""
        actor_id = self._require_text(actor_id, "actor_id")
        return await self._transition(item_id, AlertStatus.ACKED, actor_id, comment=comment)

    async def resolve(
        self,
        item_id: str,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> Alert:
        """Resolve an alert; ``ends_at`` is stamped with the resolution time."""
        return await self._transition(item_id, AlertStatus.RESOLVED, actor_id, comment=comment)

    async def silence(
        self,
        item_id: str,
        silence_id: str,
        duration: timedelta,
        actor_id: Optional[str] = None,
    ) -> Alert:
        """
        Silence an alert for ``duration`` under the given silence reference.

        Raises:
            ValidationException: If the reference is empty or the duration not positive
        """
        silence_id = self._require_text(silence_id, "silence_id")
        if duration <= timedelta(0):
            raise ValidationException("duration must be positive", {"field": "duration"})
        now = self._clock()
        return await self._transition(
            item_id, AlertStatus.SILENCED, actor_id,
            extra={"silence_id": silence_id, "silenced_until": now + duration},
            comment=f"silence {silence_id} for {duration}",
            now=now,
        )

    async def unsilence(self, item_id: str, actor_id: Optional[str] = None) -> Alert:
        """
        Return a silenced alert to Firing and drop the silence reference.

        Raises:
            InvalidTransitionException: If the alert is not silenced
        """
        current = await self.get_by_id(item_id)
        if current.status != AlertStatus.SILENCED:
            raise InvalidTransitionException(
                self.resource_type, item_id, current.status, AlertStatus.FIRING
            )
        return await self._transition(
            item_id, AlertStatus.FIRING, actor_id, action=HistoryAction.UNSILENCED
        )

    async def batch_acknowledge(self, item_ids: Iterable[str], actor_id: str) -> int:
        actor_id = self._require_text(actor_id, "actor_id")
        return await self.batch_update_status(item_ids, AlertStatus.ACKED, actor_id)

    async def batch_resolve(self, item_ids: Iterable[str], actor_id: Optional[str] = None) -> int:
        return await self.batch_update_status(item_ids, AlertStatus.RESOLVED, actor_id)

    async def get_active_count(self) -> int:
        """Firing or pending alerts."""
        predicate = Predicate((LIVE,) + self._predicates.active_clauses())
        async with self._repository(self._op("active_count")) as repository:
            return await repository.count(predicate)

    async def get_critical_count(self) -> int:
        """Active alerts with critical severity."""
        predicate = Predicate((LIVE,) + self._predicates.critical_clauses())
        async with self._repository(self._op("critical_count")) as repository:
            return await repository.count(predicate)

    async def cleanup_resolved(self, before: datetime) -> int:
        """Hard-delete alerts resolved before ``before``, with their history."""
        predicate = Predicate((
            Equals("status", AlertStatus.RESOLVED),
            Before("resolved_at", before),
        ))
        async with self._repository(self._op("cleanup_resolved")) as repository:
            removed = await repository.purge(predicate)
        logger.info("Resolved alerts purged", extra={"before": before.isoformat(), "removed": removed})
        return removed

    async def cleanup_expired(self, retention: timedelta = timedelta(days=7)) -> int:
        """Hard-delete alerts that ended more than ``retention`` ago, with their history."""
        cutoff = self._clock() - retention
        async with self._repository(self._op("cleanup_expired")) as repository:
            removed = await repository.purge(Predicate((Before("ends_at", cutoff),)))
        logger.info(
            "Expired alerts purged",
            extra={"cutoff": cutoff.isoformat(), "removed": removed}
        )
        return removed
