"""
Delivery scopes.

A delivery belongs either to a whole single-video project or to one slot of a
batch project. The two cases are separate types so that "no slot selected"
is a distinct value the ledger can reject, rather than an implicit null.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ProjectScope:
    """Scope of a single-video engagement."""

    project_id: str

    @property
    def key(self) -> str:
        return f"project:{self.project_id}"

    @property
    def batch_video_id(self) -> None:
        return None

    @property
    def is_batch_slot(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {"project_id": self.project_id, "batch_video_id": None}


@dataclass(frozen=True)
class BatchVideoScope:
    """Scope of one video slot inside a batch project."""

    project_id: str
    batch_video_id: str

    @property
    def key(self) -> str:
        return f"video:{self.batch_video_id}"

    @property
    def is_batch_slot(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {"project_id": self.project_id, "batch_video_id": self.batch_video_id}


DeliveryScope = Union[ProjectScope, BatchVideoScope]


def scope_for(project_id: str, batch_video_id: Optional[str] = None) -> DeliveryScope:
    """Build a scope from the loose (project, optional slot) pair used at the edges."""
    if batch_video_id:
        return BatchVideoScope(project_id=project_id, batch_video_id=batch_video_id)
    return ProjectScope(project_id=project_id)
