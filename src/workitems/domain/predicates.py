"""
Predicate Builder
=================

Turns a ``FilterSpec`` into a composable, store-agnostic predicate.

A ``Predicate`` is an immutable tuple of typed clauses joined by AND.
Infrastructure translates it once into the store's query form, so the
count query and the data query of a listing always share the exact same
condition.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Tuple, Union

from src.config import Severity
from src.workitems.domain.lifecycle import Lifecycle
from src.workitems.domain.value_objects import FilterSpec


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class OneOf:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class NoneOf:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class IsNull:
    field: str


@dataclass(frozen=True)
class AtLeast:
    """Inclusive lower bound."""
    field: str
    bound: datetime


@dataclass(frozen=True)
class AtMost:
    """Inclusive upper bound."""
    field: str
    bound: datetime


@dataclass(frozen=True)
class Before:
    """Strict upper bound."""
    field: str
    bound: datetime


@dataclass(frozen=True)
class ContainsText:
    """Case-insensitive substring match on any of ``fields``."""
    fields: Tuple[str, ...]
    term: str


Clause = Union[Equals, OneOf, NoneOf, IsNull, AtLeast, AtMost, Before, ContainsText]

LIVE = IsNull("deleted_at")

# FilterSpec attributes that map one-to-one onto equality clauses
EQUALITY_FIELDS = (
    "status", "priority", "severity", "category", "subcategory", "type",
    "source", "reporter_id", "assignee_id", "team_id", "alert_id", "rule_id",
)


@dataclass(frozen=True)
class Predicate:
    """Conjunction of clauses."""
    clauses: Tuple[Clause, ...] = (LIVE,)

    def and_(self, *clauses: Clause) -> "Predicate":
        """Return a new predicate with ``clauses`` appended."""
        return Predicate(self.clauses + tuple(clauses))

    def __len__(self) -> int:
        return len(self.clauses)


class PredicateBuilder:
    """
    Builds predicates for one item kind.

    The lifecycle supplies the terminal and active status sets used by the
    derived predicates (overdue, due soon, active, critical).
    """

    def __init__(self, lifecycle: Lifecycle):
        self._lifecycle = lifecycle

    def build(self, spec: FilterSpec, now: datetime) -> Predicate:
        """
        Translate ``spec`` into a predicate over live items.

        Args:
            spec: Filter criteria; absent fields add nothing
            now: Evaluation time for the overdue constraint

        Returns:
            Predicate: ``deleted_at IS NULL`` followed by one clause per constraint
        """
        clauses = [LIVE]

        for name in EQUALITY_FIELDS:
            value = getattr(spec, name)
            if value is None:
                continue
            if name == "status":
                value = self._lifecycle.coerce(value)
            clauses.append(Equals(name, value))

        if spec.unassigned:
            clauses.append(IsNull("assignee_id"))

        if spec.keyword:
            clauses.append(ContainsText(("title", "description"), spec.keyword))

        if spec.created_start:
            clauses.append(AtLeast("created_at", spec.created_start))
        if spec.created_end:
            clauses.append(AtMost("created_at", spec.created_end))
        if spec.due_start:
            clauses.append(AtLeast("due_date", spec.due_start))
        if spec.due_end:
            clauses.append(AtMost("due_date", spec.due_end))

        if spec.overdue:
            clauses.extend(self.overdue_clauses(now))

        return Predicate(tuple(clauses))

    def overdue_clauses(self, now: datetime) -> Tuple[Clause, ...]:
        """``due_date < now AND status NOT IN terminal``."""
        return (
            Before("due_date", now),
            NoneOf("status", self._terminal()),
        )

    def due_soon_clauses(self, now: datetime, window: timedelta) -> Tuple[Clause, ...]:
        """Due within ``[now, now + window]`` and not yet terminal."""
        return (
            AtLeast("due_date", now),
            AtMost("due_date", now + window),
            NoneOf("status", self._terminal()),
        )

    def sla_overdue_clauses(self, now: datetime) -> Tuple[Clause, ...]:
        """SLA deadline already passed and not yet terminal."""
        return (
            Before("sla_deadline", now),
            NoneOf("status", self._terminal()),
        )

    def active_clauses(self) -> Tuple[Clause, ...]:
        return (OneOf("status", tuple(sorted(self._lifecycle.active))),)

    def critical_clauses(self) -> Tuple[Clause, ...]:
        return self.active_clauses() + (Equals("severity", Severity.CRITICAL),)

    def _terminal(self) -> Tuple[Any, ...]:
        return tuple(sorted(self._lifecycle.terminal))
