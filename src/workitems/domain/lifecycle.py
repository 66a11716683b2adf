"""
Lifecycle State Machine
=======================

Transition tables for tickets and alerts.

Every target status has exactly one ``Transition`` describing where it may
be entered from and which columns change alongside the status. Services
check a transition against the item's current status before touching
storage; repositories use ``sources`` again as the WHERE guard of the
conditional update.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Type

from src.config import AlertStatus, HistoryAction, ItemKind, TicketStatus
from src.core import InvalidTransitionException, ValidationException


@dataclass(frozen=True)
class Transition:
    """
    Move into ``target`` from any status in ``sources``.

    Attributes:
        target: Status written by the transition
        sources: Statuses the item may currently be in
        action: Audit tag recorded for the move
        stamp: Columns set to the evaluation time
        clear: Columns reset to NULL
        increment: Integer columns bumped by one
        actor_field: Column receiving the acting user, if any
    """
    target: str
    sources: FrozenSet[str]
    action: HistoryAction = HistoryAction.STATUS_CHANGED
    stamp: Tuple[str, ...] = ()
    clear: Tuple[str, ...] = ()
    increment: Tuple[str, ...] = ()
    actor_field: Optional[str] = None

    def allows(self, current: str) -> bool:
        return current in self.sources

    def values(self, now: datetime, actor_id: Optional[str] = None) -> Dict[str, object]:
        """Plain column assignments; increments are left to the store."""
        values: Dict[str, object] = {"status": self.target, "updated_at": now}
        for column in self.stamp:
            values[column] = now
        for column in self.clear:
            values[column] = None
        if self.actor_field:
            values[self.actor_field] = actor_id
        return values


@dataclass(frozen=True)
class Lifecycle:
    """
    Complete state machine for one item kind.

    Attributes:
        kind: Item kind the table applies to
        status_type: Enum of the statuses the kind may take
        initial: Status given to newly created items
        transitions: One transition per reachable target status
        terminal: Statuses excluded from overdue and due-soon counts
        active: Statuses counted as active (alerts only)
        assign_advance: Optional (from, to) pair applied when assigning
        argument_targets: Targets reachable only through an operation that
            supplies extra data (e.g. a silence reference)
    """
    kind: ItemKind
    status_type: Type[Enum]
    initial: str
    transitions: Mapping[str, Transition]
    terminal: FrozenSet[str]
    active: FrozenSet[str] = field(default_factory=frozenset)
    assign_advance: Optional[Tuple[str, str]] = None
    argument_targets: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def resource_type(self) -> str:
        return self.kind.value.capitalize()

    def coerce(self, status) -> Enum:
        """
        Normalise a raw status value to this kind's enum.

        Raises:
            ValidationException: If the value is not a status of this kind
        """
        try:
            return self.status_type(getattr(status, "value", status))
        except ValueError:
            allowed = [s.value for s in self.status_type]
            raise ValidationException(
                f"'{status}' is not a valid {self.kind.value} status",
                {"status": str(status), "allowed": allowed}
            )

    def is_terminal(self, status) -> bool:
        return self.coerce(status) in self.terminal

    def transition_to(self, item_id: Optional[str], current, target) -> Transition:
        """
        Look up the transition into ``target`` and check it against ``current``.

        Raises:
            ValidationException: If either value is not a status of this kind
            InvalidTransitionException: If the move is not allowed
        """
        current, target = self.coerce(current), self.coerce(target)
        transition = self.transitions.get(target)
        if transition is None or not transition.allows(current):
            raise InvalidTransitionException(self.resource_type, item_id, current, target)
        return transition


_TICKET_WORKING = frozenset({
    TicketStatus.OPEN, TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS,
})

TICKET_LIFECYCLE = Lifecycle(
    kind=ItemKind.TICKET,
    status_type=TicketStatus,
    initial=TicketStatus.OPEN,
    transitions={
        TicketStatus.ASSIGNED: Transition(
            target=TicketStatus.ASSIGNED,
            sources=frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS}),
        ),
        TicketStatus.IN_PROGRESS: Transition(
            target=TicketStatus.IN_PROGRESS,
            sources=frozenset({TicketStatus.OPEN, TicketStatus.ASSIGNED}),
        ),
        TicketStatus.RESOLVED: Transition(
            target=TicketStatus.RESOLVED,
            sources=_TICKET_WORKING,
            action=HistoryAction.RESOLVED,
            stamp=("resolved_at",),
            actor_field="resolved_by",
        ),
        TicketStatus.CLOSED: Transition(
            target=TicketStatus.CLOSED,
            sources=frozenset({TicketStatus.RESOLVED}),
            action=HistoryAction.CLOSED,
            stamp=("closed_at",),
            actor_field="closed_by",
        ),
        # Reopen
        TicketStatus.OPEN: Transition(
            target=TicketStatus.OPEN,
            sources=frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED}),
            action=HistoryAction.REOPENED,
            stamp=("reopened_at",),
            clear=("resolved_at", "closed_at", "resolved_by", "closed_by"),
            increment=("reopen_count",),
        ),
        TicketStatus.CANCELLED: Transition(
            target=TicketStatus.CANCELLED,
            sources=_TICKET_WORKING,
            action=HistoryAction.CANCELLED,
        ),
    },
    terminal=frozenset({
        TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED,
    }),
    assign_advance=(TicketStatus.OPEN, TicketStatus.ASSIGNED),
)

ALERT_LIFECYCLE = Lifecycle(
    kind=ItemKind.ALERT,
    status_type=AlertStatus,
    initial=AlertStatus.FIRING,
    transitions={
        # Also the unsilence path
        AlertStatus.FIRING: Transition(
            target=AlertStatus.FIRING,
            sources=frozenset({AlertStatus.PENDING, AlertStatus.SILENCED}),
            clear=("silence_id", "silenced_until"),
        ),
        AlertStatus.PENDING: Transition(
            target=AlertStatus.PENDING,
            sources=frozenset({AlertStatus.FIRING}),
        ),
        AlertStatus.ACKED: Transition(
            target=AlertStatus.ACKED,
            sources=frozenset({AlertStatus.FIRING, AlertStatus.PENDING}),
            action=HistoryAction.ACKNOWLEDGED,
            stamp=("acked_at",),
            actor_field="acked_by",
        ),
        AlertStatus.SILENCED: Transition(
            target=AlertStatus.SILENCED,
            sources=frozenset({
                AlertStatus.FIRING, AlertStatus.PENDING, AlertStatus.ACKED,
            }),
            action=HistoryAction.SILENCED,
        ),
        AlertStatus.RESOLVED: Transition(
            target=AlertStatus.RESOLVED,
            sources=frozenset({
                AlertStatus.FIRING, AlertStatus.PENDING,
                AlertStatus.ACKED, AlertStatus.SILENCED,
            }),
            action=HistoryAction.RESOLVED,
            stamp=("resolved_at", "ends_at"),
            actor_field="resolved_by",
        ),
    },
    terminal=frozenset({AlertStatus.RESOLVED}),
    active=frozenset({AlertStatus.FIRING, AlertStatus.PENDING}),
    argument_targets=frozenset({AlertStatus.SILENCED}),
)


def lifecycle_for(kind: ItemKind) -> Lifecycle:
    """Return the state machine for ``kind``."""
    return TICKET_LIFECYCLE if kind == ItemKind.TICKET else ALERT_LIFECYCLE
