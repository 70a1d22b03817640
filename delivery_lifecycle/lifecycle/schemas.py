"""
Pydantic schemas for lifecycle requests, events and read models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from .enums import AuthorRole, CommentTag, DeliveryMode, EventType, KanbanColumn
from .primitives import generate_ulid, utc_now


# =============================================================================
# Events (consumed by the notification collaborator)
# =============================================================================


class ScopeRef(BaseModel):
    """Serialized delivery scope carried on events."""

    model_config = ConfigDict(extra="forbid")

    project_id: str
    batch_video_id: Optional[str] = None


class LifecycleEvent(BaseModel):
    """Base shape of every emitted event."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=generate_ulid)
    event_type: EventType
    scope: ScopeRef
    delivery_id: str
    occurred_at: datetime = Field(default_factory=utc_now)
    trace_id: Optional[str] = None


class DeliveryReceived(LifecycleEvent):
    event_type: Literal[EventType.DELIVERY_RECEIVED] = EventType.DELIVERY_RECEIVED
    version: int
    is_batch_slot: bool


class DeliveryApproved(LifecycleEvent):
    event_type: Literal[EventType.DELIVERY_APPROVED] = EventType.DELIVERY_APPROVED


class RevisionRequested(LifecycleEvent):
    event_type: Literal[EventType.REVISION_REQUESTED] = EventType.REVISION_REQUESTED
    pending_comment_count: int = Field(..., ge=1)
    paid_round: bool = False


# =============================================================================
# Requests (router bodies)
# =============================================================================


class ProjectCreate(BaseModel):
    """Schema for registering a project."""

    model_config = ConfigDict(extra="forbid")

    title: constr(max_length=512) = ""
    creator_id: constr(min_length=1, max_length=128)
    is_batch: bool = False
    batch_quantity: int = Field(default=1, ge=1, le=500)
    delivery_mode: Optional[DeliveryMode] = None
    deadline_days: Optional[int] = None


class ProducerAssign(BaseModel):
    model_config = ConfigDict(extra="forbid")

    producer_id: constr(min_length=1, max_length=128)


class DeliverySubmit(BaseModel):
    """Schema for submitting a delivery."""

    model_config = ConfigDict(extra="forbid")

    project_id: constr(min_length=1, max_length=36)
    batch_video_id: Optional[constr(min_length=1, max_length=36)] = None
    producer_id: constr(min_length=1, max_length=128)
    artifact_url: constr(min_length=1, max_length=2000)
    note: Optional[str] = None
    idempotency_key: Optional[constr(min_length=1, max_length=128)] = Field(
        None, description="Client-generated token; resubmitting with it returns the original delivery"
    )


class ApproveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reviewer_id: constr(min_length=1, max_length=128)
    feedback: Optional[str] = None


class RevisionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reviewer_id: constr(min_length=1, max_length=128)
    summary: str = ""


class CommentCreate(BaseModel):
    """Schema for annotating a delivery."""

    model_config = ConfigDict(extra="forbid")

    author_id: constr(min_length=1, max_length=128)
    author_role: AuthorRole
    content: constr(min_length=1)
    offset_seconds: float = Field(..., ge=0, allow_inf_nan=False, description="Position in the media, seconds")
    tag: Optional[CommentTag] = None


class ReplyCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    author_id: constr(min_length=1, max_length=128)
    author_role: AuthorRole
    content: constr(min_length=1)


class ResolutionUpdate(BaseModel):
    """Set the resolved flag to an explicit target value."""

    model_config = ConfigDict(extra="forbid")

    actor_id: constr(min_length=1, max_length=128)
    resolved: bool


class ResolutionToggle(BaseModel):
    """Flip the resolved flag, guarded by the value the client last saw."""

    model_config = ConfigDict(extra="forbid")

    actor_id: constr(min_length=1, max_length=128)
    expected_resolved: bool


# =============================================================================
# Read models
# =============================================================================


class BatchProgress(BaseModel):
    """Derived progress of a batch. Recomputed on every read."""

    model_config = ConfigDict(extra="forbid")

    percentage: int = Field(..., ge=0, le=100)
    completed: int = 0
    in_review: int = 0
    in_progress: int = 0
    has_delayed: bool = False
    total: int = 0
    revision_requested: int = 0
    pending: int = 0
    delayed_count: int = 0


class BoardView(BaseModel):
    """Kanban board for one batch project."""

    project_id: str
    progress: BatchProgress
    columns: Dict[KanbanColumn, List[Dict[str, Any]]]
