"""
Status transition table for units of work.

The table is the single source of truth for which (status, action) pairs are
legal. Everything that moves a project or batch slot between statuses asks
this module first; nothing else hard-codes a transition.

Flow::

    pending --start_work--> in_progress --submit_for_review--> in_review
    in_review --approve_first_version--> completed
    in_review --request_revision--> revision_requested
    revision_requested --submit_corrections--> pending_approval
    pending_approval --approve_project--> completed
    pending_approval --pay_new_revision--> revision_requested   (paid, +1 revision)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Union

from ..errors import AmbiguousAction, TransitionNotAllowed
from .enums import Action, UnitStatus

StatusLike = Union[UnitStatus, str]
ActionLike = Union[Action, str]


@dataclass(frozen=True)
class StatusTransition:
    """One legal row of the transition table."""

    source: UnitStatus
    destination: UnitStatus
    action: Action
    requires_payment: bool = False
    increments_revision: bool = False

    def matches(self, current: StatusLike, action: ActionLike) -> bool:
        return self.source.value == _value(current) and self.action.value == _value(action)

    def to_dict(self) -> dict:
        return {
            "from": self.source.value,
            "to": self.destination.value,
            "action": self.action.value,
            "requires_payment": self.requires_payment,
            "increments_revision": self.increments_revision,
        }


ALLOWED_TRANSITIONS: Sequence[StatusTransition] = (
    # Producer starts a released batch slot
    StatusTransition(UnitStatus.PENDING, UnitStatus.IN_PROGRESS, Action.START_WORK),
    # Producer sends the first version
    StatusTransition(
        UnitStatus.IN_PROGRESS, UnitStatus.IN_REVIEW, Action.SUBMIT_FOR_REVIEW
    ),
    # Reviewer asks for corrections
    StatusTransition(
        UnitStatus.IN_REVIEW, UnitStatus.REVISION_REQUESTED, Action.REQUEST_REVISION
    ),
    # Producer sends corrections
    StatusTransition(
        UnitStatus.REVISION_REQUESTED,
        UnitStatus.PENDING_APPROVAL,
        Action.SUBMIT_CORRECTIONS,
    ),
    # Reviewer accepts the corrected version
    StatusTransition(
        UnitStatus.PENDING_APPROVAL, UnitStatus.COMPLETED, Action.APPROVE_PROJECT
    ),
    # Reviewer pays for another revision round
    StatusTransition(
        UnitStatus.PENDING_APPROVAL,
        UnitStatus.REVISION_REQUESTED,
        Action.PAY_NEW_REVISION,
        requires_payment=True,
        increments_revision=True,
    ),
    # Reviewer accepts the first version outright
    StatusTransition(
        UnitStatus.IN_REVIEW, UnitStatus.COMPLETED, Action.APPROVE_FIRST_VERSION
    ),
)


def _value(item: Union[Enum, str]) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def is_transition_allowed(
    current: StatusLike,
    next_status: StatusLike,
    action: ActionLike,
    table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
) -> bool:
    """Return True iff an exact (current, next, action) row exists."""
    return any(
        t.matches(current, action) and t.destination.value == _value(next_status)
        for t in table
    )


def get_available_actions(
    current: StatusLike,
    table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
) -> List[StatusTransition]:
    """Return every transition whose source is ``current``."""
    return [t for t in table if t.source.value == _value(current)]


def require_transition(
    current: StatusLike,
    next_status: StatusLike,
    action: ActionLike,
    table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
) -> StatusTransition:
    """Return the exact matching row or raise TransitionNotAllowed."""
    for t in table:
        if t.matches(current, action) and t.destination.value == _value(next_status):
            return t
    raise TransitionNotAllowed(_value(current), _value(action), _value(next_status))


def resolve_transition(
    current: StatusLike,
    action: ActionLike,
    table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
) -> StatusTransition:
    """Find the destination for ``action`` from ``current``.

    Raises:
        TransitionNotAllowed: no row for (current, action)
        AmbiguousAction: more than one row for (current, action)
    """
    candidates = [t for t in table if t.matches(current, action)]
    if not candidates:
        raise TransitionNotAllowed(_value(current), _value(action))
    if len(candidates) > 1:
        raise AmbiguousAction(_value(current), _value(action), len(candidates))
    return candidates[0]


def first_available(
    current: StatusLike,
    actions: Iterable[ActionLike],
    table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
) -> StatusTransition:
    """Resolve the first of ``actions`` that is legal from ``current``.

    Used where one user gesture maps to different actions depending on the
    current status (for example "submit" is either a first delivery or a
    round of corrections).
    """
    table = tuple(table)
    actions = tuple(actions)
    for action in actions:
        if any(t.matches(current, action) for t in table):
            return resolve_transition(current, action, table)
    raise TransitionNotAllowed(
        _value(current),
        " or ".join(_value(a) for a in actions),
    )
