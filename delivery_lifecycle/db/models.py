"""
SQLAlchemy models for projects, batch slots, deliveries and annotations.

Storage-level guarantees:
- deliveries are unique per (scope_key, version), so two writers that raced
  on the same "next version" cannot both commit
- deliveries are unique per (scope_key, idempotency_key) for retry de-duplication
- projects and batch slots carry ``row_version`` as the optimistic-lock
  column; a stale concurrent update fails at flush time
"""

from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..lifecycle.enums import (
    AuthorRole,
    CommentTag,
    DeliveryMode,
    DeliveryStatus,
    UnitStatus,
    VideoType,
)
from .base import Base


unit_status_enum = Enum(*[s.value for s in UnitStatus], name="unit_status")
delivery_status_enum = Enum(*[s.value for s in DeliveryStatus], name="delivery_status")
author_role_enum = Enum(*[r.value for r in AuthorRole], name="author_role")
comment_tag_enum = Enum(*[t.value for t in CommentTag], name="comment_tag")
delivery_mode_enum = Enum(*[m.value for m in DeliveryMode], name="delivery_mode")
video_type_enum = Enum(*[v.value for v in VideoType], name="video_type")


def _iso(value) -> Any:
    return value.isoformat() if value else None


class ProjectModel(Base):
    """A creator's engagement. Single-video projects are their own unit of work;
    batch projects carry a coarse status and delegate to their slots."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True)
    title = Column(String(512), nullable=False, default="")
    creator_id = Column(String(128), nullable=False, index=True)
    assigned_producer_id = Column(String(128), nullable=True, index=True)

    is_batch = Column(Boolean, nullable=False, default=False)
    batch_quantity = Column(Integer, nullable=False, default=1)
    delivery_mode = Column(delivery_mode_enum, nullable=True)
    # Negative once the deadline has passed
    deadline_days = Column(Integer, nullable=True)

    status = Column(unit_status_enum, nullable=False, default="pending", index=True)
    revision_count = Column(Integer, nullable=False, default=1)
    row_version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    batch_videos = relationship(
        "BatchVideoModel",
        back_populates="project",
        order_by="BatchVideoModel.sequence_order",
        cascade="all, delete-orphan",
    )
    deliveries = relationship("DeliveryModel", back_populates="project")

    __mapper_args__ = {"version_id_col": row_version}
    __table_args__ = (
        CheckConstraint("revision_count >= 1", name="ck_projects_revision_count"),
        Index("ix_projects_status_created_at", "status", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "creator_id": self.creator_id,
            "assigned_producer_id": self.assigned_producer_id,
            "is_batch": self.is_batch,
            "batch_quantity": self.batch_quantity,
            "delivery_mode": self.delivery_mode,
            "deadline_days": self.deadline_days,
            "status": self.status,
            "revision_count": self.revision_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class BatchVideoModel(Base):
    """One video slot of a batch project, with its own lifecycle."""

    __tablename__ = "batch_videos"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    sequence_order = Column(Integer, nullable=False)
    title = Column(String(512), nullable=True)
    assigned_producer_id = Column(String(128), nullable=True)

    status = Column(unit_status_enum, nullable=False, default="pending", index=True)
    revision_count = Column(Integer, nullable=False, default=1)
    row_version = Column(Integer, nullable=False)

    latest_delivery_id = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    project = relationship("ProjectModel", back_populates="batch_videos")

    __mapper_args__ = {"version_id_col": row_version}
    __table_args__ = (
        UniqueConstraint("project_id", "sequence_order", name="uq_batch_videos_order"),
        CheckConstraint("revision_count >= 1", name="ck_batch_videos_revision_count"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "sequence_order": self.sequence_order,
            "title": self.title,
            "assigned_producer_id": self.assigned_producer_id,
            "status": self.status,
            "revision_count": self.revision_count,
            "latest_delivery_id": self.latest_delivery_id,
            "approved_at": _iso(self.approved_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DeliveryModel(Base):
    """One submitted artifact. Append-only: only ``status`` and the review
    fields change after insert."""

    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    batch_video_id = Column(
        String(36), ForeignKey("batch_videos.id"), nullable=True, index=True
    )
    # "project:<id>" or "video:<id>"; the unit the version sequence belongs to
    scope_key = Column(String(64), nullable=False)

    producer_id = Column(String(128), nullable=False, index=True)
    artifact_url = Column(String(2000), nullable=False)
    video_type = Column(video_type_enum, nullable=False, default="link")
    version = Column(Integer, nullable=False)
    status = Column(delivery_status_enum, nullable=False, default="pending_review")
    note = Column(Text, nullable=True)
    idempotency_key = Column(String(128), nullable=True)

    feedback = Column(Text, nullable=True)
    reviewed_by = Column(String(128), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    project = relationship("ProjectModel", back_populates="deliveries")
    comments = relationship(
        "CommentModel",
        back_populates="delivery",
        order_by="CommentModel.offset_seconds",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("scope_key", "version", name="uq_deliveries_scope_version"),
        UniqueConstraint(
            "scope_key", "idempotency_key", name="uq_deliveries_scope_idempotency"
        ),
        CheckConstraint("version >= 1", name="ck_deliveries_version"),
        Index("ix_deliveries_scope_status", "scope_key", "status"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "batch_video_id": self.batch_video_id,
            "producer_id": self.producer_id,
            "artifact_url": self.artifact_url,
            "video_type": self.video_type,
            "version": self.version,
            "status": self.status,
            "note": self.note,
            "feedback": self.feedback,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "submitted_at": _iso(self.submitted_at),
        }


class CommentModel(Base):
    """A timestamped annotation on a delivery."""

    __tablename__ = "delivery_comments"

    id = Column(String(36), primary_key=True)
    delivery_id = Column(
        String(36), ForeignKey("deliveries.id"), nullable=False, index=True
    )
    author_id = Column(String(128), nullable=False)
    author_role = Column(author_role_enum, nullable=False)
    content = Column(Text, nullable=False)
    offset_seconds = Column(Float, nullable=False, default=0.0)
    tag = Column(comment_tag_enum, nullable=True)

    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_by = Column(String(128), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    delivery = relationship("DeliveryModel", back_populates="comments")
    replies = relationship(
        "ReplyModel",
        back_populates="comment",
        order_by="ReplyModel.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("offset_seconds >= 0", name="ck_delivery_comments_offset"),
        Index("ix_delivery_comments_delivery_resolved", "delivery_id", "is_resolved"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary, replies included."""
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "author_id": self.author_id,
            "author_role": self.author_role,
            "content": self.content,
            "offset_seconds": self.offset_seconds,
            "tag": self.tag,
            "is_resolved": self.is_resolved,
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
            "replies": [r.to_dict() for r in self.replies],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ReplyModel(Base):
    """A reply in a comment thread. Replies have no lifecycle of their own."""

    __tablename__ = "delivery_comment_replies"

    id = Column(String(36), primary_key=True)
    comment_id = Column(
        String(36), ForeignKey("delivery_comments.id"), nullable=False, index=True
    )
    author_id = Column(String(128), nullable=False)
    author_role = Column(author_role_enum, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    comment = relationship("CommentModel", back_populates="replies")

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "comment_id": self.comment_id,
            "author_id": self.author_id,
            "author_role": self.author_role,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }
