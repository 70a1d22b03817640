"""
Tests for the AuditLog model and service.

Verifies:
- AuditLogModel structure and to_dict()
- AuditService logging methods (create, status_change, resolution_change, delete)
- Entries written by the lifecycle services, and none for rolled-back changes
"""

from datetime import datetime, timezone

import pytest

from delivery_lifecycle.db.audit_models import AuditLogModel
from delivery_lifecycle.db.audit_service import AuditService
from delivery_lifecycle.errors import NoPendingCorrections
from delivery_lifecycle.lifecycle.scope import ProjectScope

from .conftest import CREATOR, DRIVE_URL, PRODUCER


class TestAuditLogModel:
    """Tests for AuditLogModel structure."""

    def test_model_has_required_columns(self):
        columns = {c.name for c in AuditLogModel.__table__.columns}
        required = {
            "id", "ts", "actor_role", "actor_id", "action",
            "entity_kind", "entity_id", "before", "after",
            "note", "trace_id",
        }
        assert required.issubset(columns)

    def test_to_dict_output(self):
        entry = AuditLogModel(
            id="entry-1",
            ts=datetime(2026, 3, 2, 9, 30, 0, tzinfo=timezone.utc),
            actor_role="creator",
            actor_id=CREATOR,
            action="status_changed",
            entity_kind="Project",
            entity_id="project-1",
            before={"status": "in_review"},
            after={"status": "completed"},
            note="approve_first_version: in_review -> completed",
            trace_id="trace-1",
        )

        result = entry.to_dict()

        assert result["ts"] == "2026-03-02T09:30:00+00:00"
        assert result["actor_role"] == "creator"
        assert result["before"] == {"status": "in_review"}
        assert result["after"] == {"status": "completed"}
        assert result["trace_id"] == "trace-1"


class TestAuditService:
    """Tests for the AuditService logging helpers."""

    def test_log_status_change_includes_extras(self, db_session):
        audit = AuditService(db_session)

        entry = audit.log_status_change(
            "BatchVideo",
            "video-1",
            "pending_approval",
            "revision_requested",
            actor_role="creator",
            actor_id=CREATOR,
            extra_before={"revision_count": 1},
            extra_after={"revision_count": 2},
        )

        assert entry.action == "status_changed"
        assert entry.before == {"status": "pending_approval", "revision_count": 1}
        assert entry.after == {"status": "revision_requested", "revision_count": 2}
        assert entry.note == "Status changed: pending_approval -> revision_requested"

    def test_log_resolution_change(self, db_session):
        entry = AuditService(db_session).log_resolution_change(
            "comment-1", True, actor_role="editor", actor_id=PRODUCER
        )

        assert entry.entity_kind == "Comment"
        assert entry.before == {"is_resolved": False}
        assert entry.after == {"is_resolved": True}
        assert entry.note == "Comment resolved"

    def test_log_delete(self, db_session):
        entry = AuditService(db_session).log_delete(
            "Reply", "reply-1", before={"content": "ok"}, actor_role="admin", actor_id="admin-1"
        )

        assert entry.action == "deleted"
        assert entry.after is None

    def test_query_by_entity_paginates(self, db_session):
        audit = AuditService(db_session)
        for n in range(5):
            audit.log_create("Project", "project-1", after={"n": n})
        audit.log_create("Project", "project-2", after={"n": 99})
        db_session.commit()

        page = audit.query_by_entity("Project", "project-1", limit=2, offset=1)

        assert len(page) == 2
        assert all(e.entity_id == "project-1" for e in page)


class TestLifecycleAuditTrail:
    """Entries written by the lifecycle services."""

    def test_submission_is_audited_with_trace(self, db_session, ledger, single_project):
        delivery = ledger.submit_delivery(
            ProjectScope(single_project.id), PRODUCER, DRIVE_URL, trace_id="trace-42"
        )

        entries = db_session.query(AuditLogModel).filter(AuditLogModel.trace_id == "trace-42").all()

        assert {(e.entity_kind, e.action) for e in entries} == {
            ("Delivery", "created"),
            ("Project", "status_changed"),
        }
        assert all(e.actor_role == "editor" for e in entries)
        [created] = [e for e in entries if e.entity_kind == "Delivery"]
        assert created.entity_id == delivery.id

    def test_rejected_revision_leaves_no_entries(self, db_session, ledger, single_project):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)
        before = db_session.query(AuditLogModel).count()

        with pytest.raises(NoPendingCorrections):
            ledger.request_revision(delivery.id, CREATOR, trace_id="trace-rejected")

        assert db_session.query(AuditLogModel).count() == before
