"""
Work Item Infrastructure Layer
==============================

Infrastructure implementations for the work item module:
- Models: SQLAlchemy ORM models
- Queries: Predicate to SQLAlchemy translation
- Repositories: Data access layer
- Codec: JSON encoding of tags, labels and custom fields
- External: SLA policy file loading and hot-reload
"""

from src.workitems.infrastructure.models import TicketModel, AlertModel, HistoryModel
from src.workitems.infrastructure.queries import QueryTranslator, QueryPlan
from src.workitems.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyAlertRepository,
    SQLAlchemyHistoryRepository,
)
from src.workitems.infrastructure.external import SLAPolicyManager

__all__ = [
    "TicketModel",
    "AlertModel",
    "HistoryModel",
    "QueryTranslator",
    "QueryPlan",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyAlertRepository",
    "SQLAlchemyHistoryRepository",
    "SLAPolicyManager",
]
