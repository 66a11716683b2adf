"""Tests for predicate building and SQL translation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.config import Severity, TicketStatus
from src.core import ValidationException
from src.workitems.domain import (
    ALERT_LIFECYCLE, TICKET_LIFECYCLE, AtLeast, AtMost, Before, ContainsText,
    Equals, FilterSpec, IsNull, NoneOf, OneOf, Predicate, PredicateBuilder,
)
from src.workitems.domain.predicates import LIVE
from src.workitems.infrastructure import AlertModel, QueryTranslator, TicketModel

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
#  FilterSpec validation
# ═══════════════════════════════════════════════════════════════════════════

class TestFilterSpec:
    def test_defaults(self):
        spec = FilterSpec()
        assert spec.page == 1
        assert spec.page_size == 20
        assert spec.sort_by == "created_at"
        assert spec.sort_order == "desc"
        assert spec.offset == 0

    def test_offset(self):
        assert FilterSpec(page=3, page_size=10).offset == 20

    def test_unbounded_page(self):
        assert FilterSpec(page=4, page_size=None).offset == 0

    def test_blank_keyword_is_no_constraint(self):
        assert FilterSpec(keyword="   ").keyword is None

    def test_inverted_range_rejected(self):
        with pytest.raises(ValidationError):
            FilterSpec(created_start=NOW, created_end=NOW - timedelta(days=1))

    def test_unassigned_with_assignee_rejected(self):
        with pytest.raises(ValidationError):
            FilterSpec(unassigned=True, assignee_id="agent-1")

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            FilterSpec(page_size=0)

    def test_page_size_left_unset_is_tracked(self):
        assert "page_size" not in FilterSpec(page=2).model_fields_set
        assert "page_size" in FilterSpec(page_size=None).model_fields_set

    def test_unknown_sort_field_rejected(self):
        with pytest.raises(ValidationError):
            FilterSpec(sort_by="reporter_id")


# ═══════════════════════════════════════════════════════════════════════════
#  PredicateBuilder
# ═══════════════════════════════════════════════════════════════════════════

class TestPredicateBuilder:
    @pytest.fixture
    def builder(self):
        return PredicateBuilder(TICKET_LIFECYCLE)

    def test_empty_spec_is_live_only(self, builder):
        predicate = builder.build(FilterSpec(), NOW)
        assert predicate.clauses == (LIVE,)

    def test_live_clause_always_first(self, builder):
        predicate = builder.build(FilterSpec(priority="high", keyword="disk"), NOW)
        assert predicate.clauses[0] == IsNull("deleted_at")

    def test_equality_and_keyword(self, builder):
        predicate = builder.build(
            FilterSpec(status="open", category="network", keyword="Disk"), NOW
        )
        assert Equals("status", TicketStatus.OPEN) in predicate.clauses
        assert Equals("category", "network") in predicate.clauses
        assert ContainsText(("title", "description"), "Disk") in predicate.clauses

    def test_ranges_are_inclusive(self, builder):
        start, end = NOW - timedelta(days=1), NOW
        predicate = builder.build(FilterSpec(created_start=start, created_end=end), NOW)
        assert AtLeast("created_at", start) in predicate.clauses
        assert AtMost("created_at", end) in predicate.clauses

    def test_overdue(self, builder):
        predicate = builder.build(FilterSpec(overdue=True), NOW)
        assert Before("due_date", NOW) in predicate.clauses
        terminal = [c for c in predicate.clauses if isinstance(c, NoneOf)]
        assert set(terminal[0].values) == {
            TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED,
        }

    def test_unassigned(self, builder):
        predicate = builder.build(FilterSpec(unassigned=True), NOW)
        assert IsNull("assignee_id") in predicate.clauses

    def test_invalid_status_rejected(self, builder):
        with pytest.raises(ValidationException):
            builder.build(FilterSpec(status="firing"), NOW)

    def test_critical_alerts(self):
        clauses = PredicateBuilder(ALERT_LIFECYCLE).critical_clauses()
        assert isinstance(clauses[0], OneOf)
        assert Equals("severity", Severity.CRITICAL) in clauses

    def test_and_returns_new_predicate(self):
        base = Predicate()
        extended = base.and_(IsNull("assignee_id"))
        assert len(base) == 1
        assert len(extended) == 2


# ═══════════════════════════════════════════════════════════════════════════
#  QueryTranslator
# ═══════════════════════════════════════════════════════════════════════════

class TestQueryTranslator:
    def test_count_and_data_share_one_where_clause(self):
        translator = QueryTranslator(TicketModel)
        spec = FilterSpec(priority="high", keyword="disk", page=2, page_size=5)
        predicate = PredicateBuilder(TICKET_LIFECYCLE).build(spec, NOW)

        plan = translator.plan(predicate, spec)
        where_sql = str(plan.where.compile())

        assert where_sql in str(plan.count.compile())
        assert where_sql in str(plan.data.compile())
        assert "LIMIT" in str(plan.data.compile())
        assert "LIMIT" not in str(plan.count.compile())

    def test_paging_does_not_change_count_statement(self):
        translator = QueryTranslator(TicketModel)
        predicate = Predicate()
        first = translator.plan(predicate, FilterSpec(page=1, page_size=5))
        later = translator.plan(predicate, FilterSpec(page=7, page_size=50))
        assert str(first.count.compile()) == str(later.count.compile())

    def test_unbounded_data_statement_has_no_limit(self):
        translator = QueryTranslator(TicketModel)
        plan = translator.plan(Predicate(), FilterSpec(page_size=None))
        assert "LIMIT" not in str(plan.data.compile())

    def test_unknown_field_rejected(self):
        translator = QueryTranslator(AlertModel)
        with pytest.raises(ValidationException) as exc:
            translator.where(Predicate().and_(Equals("alert_id", "a-1")))
        assert exc.value.details["field"] == "alert_id"

    def test_keyword_is_case_insensitive_or(self):
        translator = QueryTranslator(TicketModel)
        sql = str(translator.where(Predicate().and_(ContainsText(("title", "description"), "x"))).compile())
        assert "lower(tickets.title)" in sql
        assert " OR " in sql
