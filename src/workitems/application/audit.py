"""
Audit Recorder
==============

Append-only history of work item mutations.

Services call ``record`` after their own transaction has committed. The
entry is written in a separate transaction and a failure there is logged
and swallowed, so a lost history row never undoes the mutation it
describes.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from src.config import ItemKind
from src.core import ApplicationException, Clock, IdFactory, new_id, utc_now
from src.infrastructure.database import Database
from src.shared.infrastructure.logging import get_logger
from src.workitems.domain import HistoryEntry

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def render_value(value: Any) -> Optional[str]:
    """Text form of a field value as stored in ``old_value``/``new_value``."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return json.dumps(value, default=_json_default, sort_keys=True)


class AuditRecorder:
    """
    Writes and reads history entries.

    Args:
        database: Database handle; every call opens its own session
        repository_factory: Builds a history repository from a session
        clock: Source of ``created_at`` for entries without one
        id_factory: Source of ids for entries without one
    """

    def __init__(
        self,
        database: Database,
        repository_factory: Callable[..., Any],
        *,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
    ):
        self._database = database
        self._repository_factory = repository_factory
        self._clock = clock
        self._id_factory = id_factory

    async def add_history(self, entry: HistoryEntry) -> HistoryEntry:
        """
        Insert one entry, assigning ``id`` and ``created_at`` when absent.

        Raises:
            RepositoryException: If the insert fails
        """
        if entry.id is None:
            entry.id = self._id_factory()
        if entry.created_at is None:
            entry.created_at = self._clock()

        async with self._database.session("history.add") as session:
            await self._repository_factory(session).add(entry)
        return entry

    async def record(self, entry: HistoryEntry) -> Optional[HistoryEntry]:
        """
        Best-effort ``add_history``.

        Returns:
            The stored entry, or None if the write failed
        """
        try:
            return await self.add_history(entry)
        except ApplicationException as e:
            logger.error(
                "Failed to record history entry",
                extra={
                    "item_kind": entry.item_kind.value,
                    "item_id": entry.item_id,
                    "action": entry.action.value,
                    "error": e.message,
                },
                exc_info=True
            )
            return None

    async def record_many(self, entries: Iterable[HistoryEntry]) -> int:
        """Record each entry independently; returns how many were stored."""
        stored = 0
        for entry in entries:
            if await self.record(entry) is not None:
                stored += 1
        return stored

    async def get_history(self, item_kind: ItemKind, item_id: str) -> List[HistoryEntry]:
        """All entries for one item, most recent first."""
        async with self._database.session("history.list") as session:
            return await self._repository_factory(session).list_for(item_kind, item_id)
