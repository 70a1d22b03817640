"""Tests for applying transitions to units of work."""

import pytest

from delivery_lifecycle.db.audit_service import AuditService
from delivery_lifecycle.errors import (
    AmbiguousAction,
    NoPendingCorrections,
    PaymentFailed,
    TransitionNotAllowed,
)
from delivery_lifecycle.lifecycle.enums import Action, DeliveryMode, UnitStatus
from delivery_lifecycle.lifecycle.projector import StatusProjector, scope_of
from delivery_lifecycle.lifecycle.transitions import ALLOWED_TRANSITIONS, StatusTransition

from .conftest import CREATOR, make_batch


@pytest.fixture
def projector(db_session, payments):
    return StatusProjector(db_session, payments=payments)


@pytest.fixture
def awaiting_approval(db_session, registry):
    project = registry.create_project(CREATOR, title="Podcast clip")
    project.status = UnitStatus.PENDING_APPROVAL.value
    db_session.commit()
    return project


class TestApply:
    def test_start_work(self, registry, projector):
        project = registry.create_project(CREATOR)

        transition = projector.apply(project, Action.START_WORK)

        assert transition.destination == UnitStatus.IN_PROGRESS
        assert project.status == "in_progress"
        assert project.revision_count == 1

    def test_illegal_action_changes_nothing(self, registry, projector):
        project = registry.create_project(CREATOR)

        with pytest.raises(TransitionNotAllowed):
            projector.apply(project, Action.APPROVE_PROJECT)

        assert project.status == "pending"

    def test_paid_round_charges_and_counts(self, projector, payments, awaiting_approval):
        projector.apply(awaiting_approval, Action.PAY_NEW_REVISION, actor_role="creator", actor_id=CREATOR)

        assert awaiting_approval.status == "revision_requested"
        assert awaiting_approval.revision_count == 2
        assert payments.charges == [(scope_of(awaiting_approval).key, "pay_new_revision")]

    def test_failed_charge_changes_nothing(self, projector, payments, awaiting_approval):
        payments.fail_charge = "insufficient funds"

        with pytest.raises(PaymentFailed) as exc_info:
            projector.apply(awaiting_approval, Action.PAY_NEW_REVISION)

        assert exc_info.value.details == {"operation": "charge"}
        assert awaiting_approval.status == "pending_approval"
        assert awaiting_approval.revision_count == 1

    def test_revision_needs_unresolved_comments(self, projector, payments, awaiting_approval):
        with pytest.raises(NoPendingCorrections):
            projector.apply(
                awaiting_approval,
                Action.PAY_NEW_REVISION,
                corrections_for="delivery-without-comments",
            )

        assert payments.charges == []
        assert awaiting_approval.status == "pending_approval"

    def test_duplicate_rows_are_ambiguous(self, db_session, registry):
        table = tuple(ALLOWED_TRANSITIONS) + (
            StatusTransition(UnitStatus.PENDING, UnitStatus.CANCELLED, Action.START_WORK),
        )
        projector = StatusProjector(db_session, table=table)
        project = registry.create_project(CREATOR)

        with pytest.raises(AmbiguousAction):
            projector.apply(project, Action.START_WORK)
        assert project.status == "pending"

    def test_status_change_is_audited(self, db_session, registry, projector):
        project = registry.create_project(CREATOR)
        projector.apply(project, Action.START_WORK, actor_role="editor", actor_id="editor-9")
        db_session.commit()

        entries = AuditService(db_session).query_by_entity("Project", project.id)
        [entry] = [e for e in entries if e.action == "status_changed"]
        assert entry.action == "status_changed"
        assert entry.actor_id == "editor-9"
        assert entry.before == {"status": "pending", "revision_count": 1}
        assert entry.after == {"status": "in_progress", "revision_count": 1}


class TestBatchParent:
    def test_parent_completes_when_all_slots_complete(self, registry, projector):
        project = make_batch(registry, quantity=2, mode=DeliveryMode.SIMULTANEOUS)
        for slot in project.batch_videos:
            slot.status = UnitStatus.COMPLETED.value

        assert projector.recompute_batch_parent(project) == "completed"
        assert project.status == "completed"

    def test_cancelled_slots_do_not_hold_the_parent_back(self, registry, projector):
        project = make_batch(registry, quantity=3, mode=DeliveryMode.SIMULTANEOUS)
        first, second, third = project.batch_videos
        first.status = second.status = UnitStatus.COMPLETED.value
        third.status = UnitStatus.CANCELLED.value

        assert projector.recompute_batch_parent(project) == "completed"

    def test_outstanding_slot_keeps_parent_in_progress(self, registry, projector):
        project = make_batch(registry, quantity=2, mode=DeliveryMode.SIMULTANEOUS)
        project.batch_videos[0].status = UnitStatus.COMPLETED.value

        assert projector.recompute_batch_parent(project) == "in_progress"

    def test_single_project_is_untouched(self, single_project, projector):
        assert projector.recompute_batch_parent(single_project) == "in_progress"

    def test_release_next_slot_only_in_sequential_mode(self, registry, projector):
        sequential = make_batch(registry, quantity=2)
        first, second = sequential.batch_videos
        first.status = UnitStatus.COMPLETED.value

        assert projector.release_next_slot(sequential, first) is second
        assert second.status == "in_progress"

        simultaneous = make_batch(registry, quantity=2, mode=DeliveryMode.SIMULTANEOUS)
        done = simultaneous.batch_videos[0]
        done.status = UnitStatus.COMPLETED.value
        assert projector.release_next_slot(simultaneous, done) is None

    def test_release_waits_for_completion(self, batch_project, projector):
        first = batch_project.batch_videos[0]

        assert projector.release_next_slot(batch_project, first) is None
        assert [v.status for v in batch_project.batch_videos] == [
            "in_progress",
            "pending",
            "pending",
        ]
