"""
Audit Log Service.

Entries are added to the caller's session and flushed, never committed here:
the service that owns the transaction commits the change and its audit entry
together, so a rolled-back mutation leaves no audit trace.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..lifecycle.primitives import generate_ulid, utc_now
from .audit_models import AuditLogModel


class AuditService:
    """Service for recording and querying audit entries.

    Usage:
        audit = AuditService(db_session)
        audit.log_status_change("Project", project.id, "in_progress", "in_review",
                                actor_role="editor", actor_id="editor-1")
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_role: str,
        actor_id: str,
        note: Optional[str],
        trace_id: Optional[str],
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=generate_ulid(),
            ts=utc_now(),
            actor_role=actor_role,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            before=before,
            after=after,
            note=note,
            trace_id=trace_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def log_create(
        self,
        entity_kind: str,
        entity_id: str,
        after: Dict[str, Any],
        actor_role: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the creation of an entity."""
        return self._record(
            "created", entity_kind, entity_id, None, after,
            actor_role, actor_id, note, trace_id,
        )

    def log_status_change(
        self,
        entity_kind: str,
        entity_id: str,
        old_status: str,
        new_status: str,
        actor_role: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
        trace_id: Optional[str] = None,
        extra_before: Optional[Dict[str, Any]] = None,
        extra_after: Optional[Dict[str, Any]] = None,
    ) -> AuditLogModel:
        """Log a status change, optionally with other fields that moved with it
        (for example the revision counter)."""
        before = {"status": old_status, **(extra_before or {})}
        after = {"status": new_status, **(extra_after or {})}
        return self._record(
            "status_changed", entity_kind, entity_id, before, after,
            actor_role, actor_id,
            note or f"Status changed: {old_status} -> {new_status}",
            trace_id,
        )

    def log_resolution_change(
        self,
        comment_id: str,
        resolved: bool,
        actor_role: str = "system",
        actor_id: str = "unknown",
        trace_id: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a comment being resolved or reopened."""
        return self._record(
            "resolution_changed", "Comment", comment_id,
            {"is_resolved": not resolved}, {"is_resolved": resolved},
            actor_role, actor_id,
            "Comment resolved" if resolved else "Comment reopened",
            trace_id,
        )

    def log_delete(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        actor_role: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the deletion of an entity."""
        return self._record(
            "deleted", entity_kind, entity_id, before, None,
            actor_role, actor_id, note, trace_id,
        )

    def query_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get audit history for a specific entity, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )
