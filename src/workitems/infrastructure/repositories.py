"""
Work Item Infrastructure Repositories
=====================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Every mutation is a single conditional UPDATE
scoped to live rows (and, for lifecycle moves, to the expected prior
statuses); callers inspect the affected row count to detect lost races.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import (
    AlertSource, AlertStatus, AlertType, HistoryAction, ItemKind, Priority,
    Severity, TicketSource, TicketStatus, TicketType,
)
from src.core import RepositoryException
from src.shared.infrastructure.logging import get_logger, log_latency
from src.workitems.application.services import (
    IAlertRepository, IHistoryRepository, ITicketRepository, IWorkItemRepository,
)
from src.workitems.domain import (
    Alert, FilterSpec, HistoryEntry, Predicate, Ticket, Transition, WorkItem,
)
from src.workitems.domain.predicates import LIVE, Equals
from src.workitems.infrastructure import codec
from src.workitems.infrastructure.models import AlertModel, HistoryModel, TicketModel
from src.workitems.infrastructure.queries import QueryTranslator, plain

logger = get_logger(__name__)


class SQLAlchemyWorkItemRepository(IWorkItemRepository):
    """
    Shared SQLAlchemy persistence for tickets and alerts.

    Subclasses provide the model class and the model/entity mapping.
    """

    model: Any = None
    kind: ItemKind

    def __init__(self, session: AsyncSession):
        self._session = session
        self._queries = QueryTranslator(self.model)

    # ========== Mapping ==========

    def _to_entity(self, model) -> WorkItem:
        raise NotImplementedError

    def _extra_columns(self, item: WorkItem) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def _common_fields(model) -> Dict[str, Any]:
        return {
            "id": model.id,
            "title": model.title,
            "description": model.description,
            "priority": Priority(model.priority),
            "severity": Severity(model.severity),
            "category": model.category,
            "subcategory": model.subcategory,
            "tags": codec.decode_tags(model.tags),
            "labels": codec.decode_labels(model.labels),
            "custom_fields": codec.decode_custom_fields(model.custom_fields),
            "reporter_id": model.reporter_id,
            "assignee_id": model.assignee_id,
            "team_id": model.team_id,
            "rule_id": model.rule_id,
            "created_at": model.created_at,
            "updated_at": model.updated_at,
            "due_date": model.due_date,
            "sla_deadline": model.sla_deadline,
            "resolved_at": model.resolved_at,
            "closed_at": model.closed_at,
            "reopened_at": model.reopened_at,
            "reopen_count": model.reopen_count,
            "deleted_at": model.deleted_at,
        }

    def _to_model(self, item: WorkItem):
        columns = {
            "id": item.id,
            "title": item.title,
            "description": item.description or "",
            "status": plain(item.status),
            "type": plain(item.type),
            "source": plain(item.source),
            "priority": plain(item.priority),
            "severity": plain(item.severity),
            "category": item.category,
            "subcategory": item.subcategory,
            "tags": codec.encode_tags(item.tags),
            "labels": codec.encode_labels(item.labels),
            "custom_fields": codec.encode_custom_fields(item.custom_fields),
            "reporter_id": item.reporter_id,
            "assignee_id": item.assignee_id,
            "team_id": item.team_id,
            "rule_id": item.rule_id,
            "created_at": item.created_at,
            "updated_at": item.updated_at,
            "due_date": item.due_date,
            "sla_deadline": item.sla_deadline,
            "resolved_at": item.resolved_at,
            "closed_at": item.closed_at,
            "reopened_at": item.reopened_at,
            "reopen_count": item.reopen_count,
            "deleted_at": item.deleted_at,
        }
        columns.update(self._extra_columns(item))
        return self.model(**columns)

    def _encode_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        encoded = {}
        for name, value in values.items():
            if name in codec.ENCODERS:
                value = codec.ENCODERS[name](value)
            encoded[name] = plain(value)
        return encoded

    # ========== Execution ==========

    async def _execute(self, operation: str, stmt):
        try:
            return await self._session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Database statement failed",
                extra={"operation": operation, "table": self.model.__tablename__, "error": str(e)}
            )
            raise RepositoryException(operation, str(e)) from e

    def _op(self, name: str) -> str:
        return f"{self.kind.value}.{name}"

    async def _guarded_update(
        self,
        operation: str,
        item_id: str,
        values: Dict[str, Any],
        expected: Optional[Iterable[Any]] = None,
    ) -> int:
        stmt = update(self.model).where(
            self.model.id == item_id,
            self.model.deleted_at.is_(None),
        )
        if expected is not None:
            stmt = stmt.where(self.model.status.in_([plain(s) for s in expected]))
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self._execute(self._op(operation), stmt)
        return result.rowcount

    # ========== Reads ==========

    async def get_by_id(self, item_id: str) -> Optional[WorkItem]:
        """Get a live item by ID."""
        stmt = (
            select(self.model)
            .where(self.model.id == item_id, self.model.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        result = await self._execute(self._op("get_by_id"), stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def exists(self, item_id: str) -> bool:
        """Check if a live item exists."""
        stmt = select(self.model.id).where(
            self.model.id == item_id, self.model.deleted_at.is_(None)
        )
        result = await self._execute(self._op("exists"), stmt)
        return result.scalar_one_or_none() is not None

    async def list(self, predicate: Predicate, spec: FilterSpec) -> Tuple[List[WorkItem], int]:
        """One page of matching items and the total match count."""
        plan = self._queries.plan(predicate, spec)
        with log_latency(logger, self._op("list"), page=spec.page, page_size=spec.page_size):
            total = (await self._execute(self._op("count"), plan.count)).scalar_one()
            result = await self._execute(
                self._op("list"), plan.data.execution_options(populate_existing=True)
            )
            items = [self._to_entity(model) for model in result.scalars().all()]
        return items, total

    async def count(self, predicate: Predicate) -> int:
        """Count matching items."""
        stmt = self._queries.count_statement(self._queries.where(predicate))
        result = await self._execute(self._op("count"), stmt)
        return result.scalar_one()

    async def find(
        self,
        predicate: Predicate,
        order_field: str = "created_at",
        ascending: bool = False,
        limit: Optional[int] = None,
    ) -> List[WorkItem]:
        """Unpaginated matching items in a fixed order."""
        column = self._queries.column(order_field)
        stmt = (
            self._queries.data_statement(self._queries.where(predicate))
            .order_by(*(
                (column.asc(), self.model.id.asc()) if ascending
                else (column.desc(), self.model.id.desc())
            ))
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._execute(self._op("find"), stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def group_counts(self, predicate: Predicate, field: str) -> Dict[str, int]:
        """Counts per distinct value of ``field``; NULL groups are omitted."""
        stmt = self._queries.grouped_count_statement(self._queries.where(predicate), field)
        result = await self._execute(self._op(f"group_by_{field}"), stmt)
        return {key: count for key, count in result.all() if key is not None}

    async def timeline(self, predicate: Predicate, field: str) -> List[Tuple[datetime, str]]:
        """Timestamp and status of each match, oldest first."""
        column = self._queries.column(field)
        stmt = (
            select(column, self.model.status)
            .where(self._queries.where(predicate), column.is_not(None))
            .order_by(column.asc())
        )
        result = await self._execute(self._op(f"timeline_{field}"), stmt)
        return [(moment, status) for moment, status in result.all()]

    # ========== Writes ==========

    async def create(self, item: WorkItem) -> WorkItem:
        """Insert a new item."""
        model = self._to_model(item)
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(self._op("create"), str(e)) from e
        return item

    async def update_fields(self, item_id: str, changes: Dict[str, Any], now: datetime) -> int:
        """Overwrite plain fields of a live item."""
        values = self._encode_values(changes)
        values["updated_at"] = now
        return await self._guarded_update("update", item_id, values)

    async def apply_transition(
        self,
        item_id: str,
        transition: Transition,
        now: datetime,
        actor_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        expected: Optional[Iterable[Any]] = None,
    ) -> int:
        """
        Move a live item into ``transition.target``.

        Args:
            item_id: Item to move
            transition: Transition describing the side-effect columns
            now: Evaluation time for stamped columns
            actor_id: Acting user, written to ``transition.actor_field``
            extra: Additional column values (e.g. resolution text)
            expected: Allowed current statuses; defaults to ``transition.sources``

        Returns:
            int: Number of rows updated (0 or 1)
        """
        values = self._encode_values(transition.values(now, actor_id))
        for column in transition.increment:
            values[column] = getattr(self.model, column) + 1
        if extra:
            values.update(self._encode_values(extra))
        guard = transition.sources if expected is None else expected
        return await self._guarded_update(
            f"transition_to_{plain(transition.target)}", item_id, values, guard
        )

    async def assign(
        self,
        item_id: str,
        assignee_id: Optional[str],
        now: datetime,
        advance: Optional[Tuple[Any, Any]] = None,
    ) -> int:
        """Set or clear the assignee, optionally advancing one status."""
        values: Dict[str, Any] = {"assignee_id": assignee_id, "updated_at": now}
        if advance is not None:
            source, target = plain(advance[0]), plain(advance[1])
            values["status"] = case(
                (self.model.status == source, target),
                else_=self.model.status,
            )
        operation = "assign" if assignee_id else "unassign"
        return await self._guarded_update(operation, item_id, values)

    async def soft_delete(self, item_id: str, now: datetime) -> int:
        """Mark a live item deleted."""
        return await self._guarded_update(
            "soft_delete", item_id, {"deleted_at": now, "updated_at": now}
        )

    async def delete(self, item_id: str) -> int:
        """Hard-delete an item (live or soft-deleted) together with its history."""
        await self._execute(
            self._op("delete_history"),
            delete(HistoryModel)
            .where(
                HistoryModel.item_kind == self.kind.value,
                HistoryModel.item_id == item_id,
            )
            .execution_options(synchronize_session=False),
        )
        result = await self._execute(
            self._op("delete"),
            delete(self.model)
            .where(self.model.id == item_id)
            .execution_options(synchronize_session=False),
        )
        return result.rowcount

    async def purge(self, predicate: Predicate) -> int:
        """Hard-delete every item matching ``predicate`` with its history."""
        where = self._queries.where(predicate)
        ids = select(self.model.id).where(where)
        await self._execute(
            self._op("purge_history"),
            delete(HistoryModel)
            .where(HistoryModel.item_kind == self.kind.value, HistoryModel.item_id.in_(ids))
            .execution_options(synchronize_session=False),
        )
        result = await self._execute(
            self._op("purge"),
            delete(self.model).where(where).execution_options(synchronize_session=False),
        )
        return result.rowcount


class SQLAlchemyTicketRepository(SQLAlchemyWorkItemRepository, ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    model = TicketModel
    kind = ItemKind.TICKET

    def _to_entity(self, model: TicketModel) -> Ticket:
        return Ticket(
            **self._common_fields(model),
            number=model.number,
            status=TicketStatus(model.status),
            type=TicketType(model.type),
            source=TicketSource(model.source),
            alert_id=model.alert_id,
            resolution=model.resolution,
            resolved_by=model.resolved_by,
            closed_by=model.closed_by,
        )

    def _extra_columns(self, item: Ticket) -> Dict[str, Any]:
        return {
            "number": item.number,
            "alert_id": item.alert_id,
            "resolution": item.resolution,
            "resolved_by": item.resolved_by,
            "closed_by": item.closed_by,
        }

    async def get_by_number(self, number: str) -> Optional[Ticket]:
        """Get a live ticket by its human-readable number."""
        items = await self.find(Predicate((LIVE, Equals("number", number))), limit=1)
        return items[0] if items else None


class SQLAlchemyAlertRepository(SQLAlchemyWorkItemRepository, IAlertRepository):
    """
    SQLAlchemy implementation of alert repository.

    Handles persistence of Alert entities using async SQLAlchemy.
    """

    model = AlertModel
    kind = ItemKind.ALERT

    def _to_entity(self, model: AlertModel) -> Alert:
        return Alert(
            **self._common_fields(model),
            fingerprint=model.fingerprint,
            status=AlertStatus(model.status),
            type=AlertType(model.type),
            source=AlertSource(model.source),
            expression=model.expression,
            value=model.value,
            threshold=model.threshold,
            starts_at=model.starts_at,
            ends_at=model.ends_at,
            silence_id=model.silence_id,
            silenced_until=model.silenced_until,
            acked_by=model.acked_by,
            acked_at=model.acked_at,
            resolved_by=model.resolved_by,
        )

    def _extra_columns(self, item: Alert) -> Dict[str, Any]:
        return {
            "fingerprint": item.fingerprint,
            "expression": item.expression,
            "value": item.value,
            "threshold": item.threshold,
            "starts_at": item.starts_at,
            "ends_at": item.ends_at,
            "silence_id": item.silence_id,
            "silenced_until": item.silenced_until,
            "acked_by": item.acked_by,
            "acked_at": item.acked_at,
            "resolved_by": item.resolved_by,
        }

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Alert]:
        """Most recent live alert carrying ``fingerprint``."""
        items = await self.find(
            Predicate((LIVE, Equals("fingerprint", fingerprint))), limit=1
        )
        return items[0] if items else None


class SQLAlchemyHistoryRepository(IHistoryRepository):
    """
    SQLAlchemy implementation of the append-only history store.

    Exposes inserts and reads only; entries are never updated.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Insert one entry; ``id`` and ``created_at`` must already be set."""
        model = HistoryModel(
            id=entry.id,
            item_kind=entry.item_kind.value,
            item_id=entry.item_id,
            action=entry.action.value,
            field=entry.field,
            old_value=entry.old_value,
            new_value=entry.new_value,
            actor_id=entry.actor_id,
            comment=entry.comment,
            created_at=entry.created_at,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException("history.add", str(e)) from e
        return entry

    async def list_for(self, item_kind: ItemKind, item_id: str) -> List[HistoryEntry]:
        """Entries for one item, most recent first."""
        stmt = (
            select(HistoryModel)
            .where(
                HistoryModel.item_kind == item_kind.value,
                HistoryModel.item_id == item_id,
            )
            .order_by(HistoryModel.created_at.desc(), HistoryModel.seq.desc())
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("history.list", str(e)) from e

        return [
            HistoryEntry(
                id=model.id,
                item_kind=ItemKind(model.item_kind),
                item_id=model.item_id,
                action=HistoryAction(model.action),
                field=model.field,
                old_value=model.old_value,
                new_value=model.new_value,
                actor_id=model.actor_id,
                comment=model.comment,
                created_at=model.created_at,
            )
            for model in result.scalars().all()
        ]
