"""
Delivery lifecycle core.

- Transition table: legal (status, action) moves for a unit of work
- Scope: a whole single-video project or one slot of a batch
- Version allocator: scope-local delivery versions 1, 2, 3, ...
- Delivery ledger: append-only deliveries and their reviews
- Annotation tracker: timestamped comments that gate revision requests
- Status projector: applies transitions and keeps revision counters
- Progress: batch completion figures and the kanban board

Only the database-free pieces are imported here; the services live in their
own modules (``ledger``, ``annotations``, ``projector``, ``registry``) and
are imported from there.
"""

from .enums import (
    Action,
    AuthorRole,
    CommentTag,
    DeliveryMode,
    DeliveryStatus,
    EventType,
    KanbanColumn,
    UnitStatus,
    VideoType,
)
from .progress import (
    can_archive_batch,
    compute_progress,
    group_by_column,
    map_status_to_column,
)
from .scope import BatchVideoScope, DeliveryScope, ProjectScope, scope_for
from .transitions import (
    ALLOWED_TRANSITIONS,
    StatusTransition,
    first_available,
    get_available_actions,
    is_transition_allowed,
    require_transition,
    resolve_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Action",
    "AuthorRole",
    "BatchVideoScope",
    "CommentTag",
    "DeliveryMode",
    "DeliveryScope",
    "DeliveryStatus",
    "EventType",
    "KanbanColumn",
    "ProjectScope",
    "StatusTransition",
    "UnitStatus",
    "VideoType",
    "can_archive_batch",
    "compute_progress",
    "first_available",
    "get_available_actions",
    "group_by_column",
    "is_transition_allowed",
    "map_status_to_column",
    "require_transition",
    "resolve_transition",
    "scope_for",
]
