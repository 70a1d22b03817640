"""
Audit log database model.

Every lifecycle mutation (status change, delivery, comment, resolution,
reply) is recorded with before/after snapshots, the acting party and an
optional trace id, in the same transaction as the change itself.
"""

from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, Enum, Index, String, Text
from sqlalchemy.sql import func

from .base import Base


audit_actor_role_enum = Enum(
    "creator",
    "editor",
    "admin",
    "system",
    name="audit_actor_role",
)

audit_action_enum = Enum(
    "created",
    "status_changed",
    "resolution_changed",
    "deleted",
    name="audit_action",
)


class AuditLogModel(Base):
    """Audit log entry for forensics on the delivery lifecycle."""

    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True)
    ts = Column(DateTime(timezone=True), nullable=False, default=func.now(), index=True)

    actor_role = Column(audit_actor_role_enum, nullable=False)
    actor_id = Column(String(128), nullable=False, index=True)

    action = Column(audit_action_enum, nullable=False, index=True)

    # Project, BatchVideo, Delivery, Comment, Reply
    entity_kind = Column(String(50), nullable=False)
    entity_id = Column(String(128), nullable=False)

    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)
    trace_id = Column(String(36), nullable=True, index=True)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_kind", "entity_id"),
        Index("ix_audit_log_entity_ts", "entity_kind", "entity_id", "ts"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "ts": self.ts.isoformat() if self.ts else None,
            "actor_role": self.actor_role,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "before": self.before,
            "after": self.after,
            "note": self.note,
            "trace_id": self.trace_id,
        }
