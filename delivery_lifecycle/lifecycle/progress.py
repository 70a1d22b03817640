"""
Batch progress read models.

Pure functions over slot statuses: nothing here touches the database or
caches a result, so a board is always derived from the statuses as they are
right now.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .enums import KanbanColumn, UnitStatus
from .schemas import BatchProgress

STATUS_COLUMNS: Dict[UnitStatus, Optional[KanbanColumn]] = {
    UnitStatus.PENDING: KanbanColumn.AWAITING_EDITOR,
    UnitStatus.IN_PROGRESS: KanbanColumn.IN_PROGRESS,
    UnitStatus.IN_REVIEW: KanbanColumn.IN_REVIEW,
    UnitStatus.PENDING_APPROVAL: KanbanColumn.IN_REVIEW,
    UnitStatus.REVISION_REQUESTED: KanbanColumn.REVISION_REQUESTED,
    UnitStatus.COMPLETED: KanbanColumn.COMPLETED,
    # Abandoned work stays off the board
    UnitStatus.CANCELLED: None,
}


def _status_of(video: Any) -> UnitStatus:
    if isinstance(video, (UnitStatus, str)):
        return UnitStatus(video)
    if isinstance(video, Mapping):
        return UnitStatus(video["status"])
    return UnitStatus(video.status)


def map_status_to_column(status: Union[UnitStatus, str]) -> Optional[KanbanColumn]:
    """Kanban column for a unit status, or None for statuses kept off the board.

    Raises:
        ValueError: ``status`` is not a known unit status
    """
    return STATUS_COLUMNS[UnitStatus(status)]


def compute_progress(
    videos: Iterable[Any], deadline_days: Optional[int] = None
) -> BatchProgress:
    """Derive completion figures for a batch.

    ``videos`` may hold slot models, mappings with a ``status`` key or bare
    statuses. Cancelled slots do not count towards the total. The batch is
    delayed when ``deadline_days`` is negative and some slot is still
    outstanding.
    """
    statuses = [s for s in (_status_of(v) for v in videos) if s != UnitStatus.CANCELLED]
    total = len(statuses)

    def count(*wanted: UnitStatus) -> int:
        return sum(1 for s in statuses if s in wanted)

    completed = count(UnitStatus.COMPLETED)
    outstanding = total - completed
    has_delayed = deadline_days is not None and deadline_days < 0 and outstanding > 0
    # Half-up rounding, so 12.5% shows as 13%
    percentage = math.floor(100 * completed / total + 0.5) if total else 0

    return BatchProgress(
        percentage=percentage,
        completed=completed,
        in_review=count(UnitStatus.IN_REVIEW, UnitStatus.PENDING_APPROVAL),
        in_progress=count(UnitStatus.IN_PROGRESS),
        has_delayed=has_delayed,
        total=total,
        revision_requested=count(UnitStatus.REVISION_REQUESTED),
        pending=count(UnitStatus.PENDING),
        delayed_count=outstanding if has_delayed else 0,
    )


def group_by_column(videos: Iterable[Any]) -> Dict[KanbanColumn, List[Any]]:
    """Bucket videos into every kanban column, in input order."""
    columns: Dict[KanbanColumn, List[Any]] = {column: [] for column in KanbanColumn}
    for video in videos:
        column = map_status_to_column(_status_of(video))
        if column is not None:
            columns[column].append(video)
    return columns


def can_archive_batch(videos: Iterable[Any]) -> bool:
    """True once a non-empty batch has every slot completed."""
    statuses = [_status_of(v) for v in videos]
    return bool(statuses) and all(s == UnitStatus.COMPLETED for s in statuses)
