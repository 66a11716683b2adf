"""
Predicate Translation
=====================

Translates domain ``Predicate`` objects into SQLAlchemy expressions.

The where-clause is built exactly once per listing and shared by the count
statement and the data statement.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import Select, and_, case, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from src.config import PRIORITY_ORDER, SEVERITY_ORDER
from src.core import ValidationException
from src.workitems.domain.predicates import (
    AtLeast, AtMost, Before, Clause, ContainsText, Equals, IsNull, NoneOf,
    OneOf, Predicate,
)
from src.workitems.domain.value_objects import FilterSpec


def plain(value: Any) -> Any:
    """Enum members are bound by value."""
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class QueryPlan:
    """Count and data statements sharing one where-clause."""
    where: ColumnElement
    count: Select
    data: Select


class QueryTranslator:
    """Predicate-to-SQLAlchemy translation for one mapped model."""

    def __init__(self, model):
        self._model = model
        self._columns = model.__table__.c
        self._resource = model.__tablename__

    def column(self, name: str):
        """
        Resolve a domain field name to a column of the model.

        Raises:
            ValidationException: If the model has no such column
        """
        if name not in self._columns:
            raise ValidationException(
                f"Field '{name}' cannot be filtered on for {self._resource}",
                {"field": name, "resource": self._resource}
            )
        return self._columns[name]

    def where(self, predicate: Predicate) -> ColumnElement:
        """AND of the translated clauses."""
        return and_(*[self._translate(clause) for clause in predicate.clauses])

    def _translate(self, clause: Clause) -> ColumnElement:
        if isinstance(clause, Equals):
            return self.column(clause.field) == plain(clause.value)
        if isinstance(clause, OneOf):
            return self.column(clause.field).in_([plain(v) for v in clause.values])
        if isinstance(clause, NoneOf):
            return self.column(clause.field).not_in([plain(v) for v in clause.values])
        if isinstance(clause, IsNull):
            return self.column(clause.field).is_(None)
        if isinstance(clause, AtLeast):
            return self.column(clause.field) >= clause.bound
        if isinstance(clause, AtMost):
            return self.column(clause.field) <= clause.bound
        if isinstance(clause, Before):
            return self.column(clause.field) < clause.bound
        if isinstance(clause, ContainsText):
            return or_(*[
                self.column(name).icontains(clause.term, autoescape=True)
                for name in clause.fields
            ])
        raise TypeError(f"Unsupported clause {clause!r}")

    def order_by(self, spec: FilterSpec) -> List[ColumnElement]:
        """Requested ordering with ``id`` as a deterministic tie-breaker."""
        if spec.sort_by == "priority":
            key = self._rank("priority", PRIORITY_ORDER)
        elif spec.sort_by == "severity":
            key = self._rank("severity", SEVERITY_ORDER)
        else:
            key = self.column(spec.sort_by)

        id_column = self._columns["id"]
        if spec.sort_order == "asc":
            return [key.asc(), id_column.asc()]
        return [key.desc(), id_column.desc()]

    def _rank(self, name: str, order) -> ColumnElement:
        return case(
            {level.value: index for index, level in enumerate(order)},
            value=self.column(name),
            else_=-1,
        )

    def count_statement(self, where: ColumnElement) -> Select:
        return select(func.count()).select_from(self._model).where(where)

    def data_statement(
        self,
        where: ColumnElement,
        spec: Optional[FilterSpec] = None
    ) -> Select:
        stmt = select(self._model).where(where)
        if spec is None:
            return stmt
        stmt = stmt.order_by(*self.order_by(spec))
        if spec.page_size is not None:
            stmt = stmt.limit(spec.page_size).offset(spec.offset)
        return stmt

    def plan(self, predicate: Predicate, spec: FilterSpec) -> QueryPlan:
        """Build both listing statements from a single where-clause."""
        where = self.where(predicate)
        return QueryPlan(
            where=where,
            count=self.count_statement(where),
            data=self.data_statement(where, spec),
        )

    def grouped_count_statement(self, where: ColumnElement, field: str) -> Select:
        column = self.column(field)
        return select(column, func.count()).where(where).group_by(column)
