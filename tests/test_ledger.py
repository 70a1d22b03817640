"""
Tests for the delivery ledger: submissions, approvals and revision requests.
"""

import pytest

from delivery_lifecycle.db.models import BatchVideoModel, DeliveryModel, ProjectModel
from delivery_lifecycle.errors import (
    AmbiguousScope,
    InvalidArtifactLocator,
    NoPendingCorrections,
    NotAuthorized,
    PaymentFailed,
    TransitionNotAllowed,
)
from delivery_lifecycle.lifecycle.collaborators import EventPublisher
from delivery_lifecycle.lifecycle.enums import DeliveryMode
from delivery_lifecycle.lifecycle.ledger import DeliveryLedger
from delivery_lifecycle.lifecycle.scope import BatchVideoScope, ProjectScope

from .conftest import CREATOR, DRIVE_URL, PRODUCER, YOUTUBE_URL, make_batch


def _comment(tracker, delivery_id, offset=12.0, content="Cut the intro shorter"):
    return tracker.add_comment(delivery_id, CREATOR, "creator", content, offset)


def _reload(db, model, id_):
    db.expire_all()
    return db.get(model, id_)


class TestSubmitDelivery:
    def test_first_delivery(self, db_session, ledger, publisher, single_project):
        delivery = ledger.submit_delivery(
            ProjectScope(single_project.id), PRODUCER, DRIVE_URL, note="First cut"
        )

        assert delivery.version == 1
        assert delivery.status == "pending_review"
        assert delivery.video_type == "gdrive"
        assert delivery.artifact_url.endswith("/preview")
        assert delivery.note == "First cut"
        assert _reload(db_session, ProjectModel, single_project.id).status == "in_review"

        events = publisher.of_type("delivery_received")
        assert len(events) == 1
        assert events[0].delivery_id == delivery.id
        assert events[0].version == 1
        assert events[0].is_batch_slot is False

    def test_batch_without_slot_is_ambiguous(self, db_session, ledger, batch_project):
        with pytest.raises(AmbiguousScope):
            ledger.submit_delivery(ProjectScope(batch_project.id), PRODUCER, DRIVE_URL)
        assert db_session.query(DeliveryModel).count() == 0

    def test_invalid_locator(self, db_session, ledger, single_project):
        with pytest.raises(InvalidArtifactLocator):
            ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, "video.mp4")
        assert db_session.query(DeliveryModel).count() == 0

    def test_second_submission_while_in_review_is_refused(
        self, db_session, ledger, publisher, single_project
    ):
        scope = ProjectScope(single_project.id)
        ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)

        with pytest.raises(TransitionNotAllowed):
            ledger.submit_delivery(scope, PRODUCER, YOUTUBE_URL)

        assert db_session.query(DeliveryModel).count() == 1
        assert _reload(db_session, ProjectModel, single_project.id).status == "in_review"
        assert len(publisher.events) == 1

    def test_only_the_assigned_producer_delivers(self, ledger, single_project):
        with pytest.raises(NotAuthorized):
            ledger.submit_delivery(ProjectScope(single_project.id), "editor-2", DRIVE_URL)

    def test_idempotency_key_returns_original(self, db_session, ledger, publisher, single_project):
        scope = ProjectScope(single_project.id)
        first = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL, idempotency_key="k-1")
        again = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL, idempotency_key="k-1")

        assert again.id == first.id
        assert db_session.query(DeliveryModel).count() == 1
        assert len(publisher.of_type("delivery_received")) == 1

    def test_failing_notifier_does_not_undo_the_delivery(
        self, db_session, payments, access, locks, single_project
    ):
        class BrokenPublisher(EventPublisher):
            def publish(self, event):
                raise ConnectionError("notifier down")

        ledger = DeliveryLedger(
            db_session, publisher=BrokenPublisher(), payments=payments, access=access, locks=locks
        )
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)

        assert _reload(db_session, DeliveryModel, delivery.id) is not None
        assert _reload(db_session, ProjectModel, single_project.id).status == "in_review"


class TestReviewCycle:
    def test_request_revision_with_unresolved_comment(
        self, db_session, ledger, tracker, publisher, single_project
    ):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)
        first = _comment(tracker, delivery.id, 5.0, "Color is off")
        _comment(tracker, delivery.id, 40.0, "Music too loud")
        tracker.set_resolved(first.id, True, CREATOR)

        result = ledger.request_revision(delivery.id, CREATOR, "Two small fixes")

        assert result.status == "revision_requested"
        assert result.feedback == "Two small fixes"
        project = _reload(db_session, ProjectModel, single_project.id)
        assert project.status == "revision_requested"
        assert project.revision_count == 1

        events = publisher.of_type("revision_requested")
        assert len(events) == 1
        assert events[0].pending_comment_count == 1
        assert events[0].paid_round is False

    def test_request_revision_without_comments(self, db_session, ledger, single_project):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)

        with pytest.raises(NoPendingCorrections) as exc_info:
            ledger.request_revision(delivery.id, CREATOR, "Please fix")

        assert "at least one unresolved comment" in exc_info.value.message
        assert _reload(db_session, ProjectModel, single_project.id).status == "in_review"
        assert _reload(db_session, DeliveryModel, delivery.id).status == "pending_review"

    def test_all_comments_resolved_is_no_pending_corrections(
        self, ledger, tracker, single_project
    ):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)
        comment = _comment(tracker, delivery.id)
        tracker.set_resolved(comment.id, True, CREATOR)

        with pytest.raises(NoPendingCorrections):
            ledger.request_revision(delivery.id, CREATOR)

    def test_approve_first_version(self, db_session, ledger, payments, publisher, single_project):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)

        approved = ledger.approve_delivery(delivery.id, CREATOR, feedback="Great work")

        assert approved.status == "approved"
        assert approved.reviewed_by == CREATOR
        assert _reload(db_session, ProjectModel, single_project.id).status == "completed"
        assert payments.releases == [(f"project:{single_project.id}", delivery.id)]
        assert len(publisher.of_type("delivery_approved")) == 1

    def test_corrections_then_approval(self, db_session, ledger, tracker, single_project):
        scope = ProjectScope(single_project.id)
        v1 = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)
        _comment(tracker, v1.id)
        ledger.request_revision(v1.id, CREATOR)

        v2 = ledger.submit_delivery(scope, PRODUCER, YOUTUBE_URL)
        assert v2.version == 2
        assert _reload(db_session, ProjectModel, single_project.id).status == "pending_approval"

        ledger.approve_delivery(v2.id, CREATOR)
        assert _reload(db_session, ProjectModel, single_project.id).status == "completed"
        assert [d.version for d in ledger.list_deliveries(scope)] == [2, 1]
        assert ledger.get_latest_delivery(scope).id == v2.id

    def test_paid_revision_round(self, db_session, ledger, tracker, payments, publisher, single_project):
        scope = ProjectScope(single_project.id)
        v1 = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)
        _comment(tracker, v1.id)
        ledger.request_revision(v1.id, CREATOR)
        v2 = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)
        _comment(tracker, v2.id, 3.0, "Still too long")

        ledger.request_revision(v2.id, CREATOR, "One more pass")

        project = _reload(db_session, ProjectModel, single_project.id)
        assert project.status == "revision_requested"
        assert project.revision_count == 2
        assert payments.charges == [(scope.key, "pay_new_revision")]
        assert publisher.of_type("revision_requested")[-1].paid_round is True

    def test_failed_charge_changes_nothing(self, db_session, ledger, tracker, payments, publisher, single_project):
        scope = ProjectScope(single_project.id)
        v1 = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)
        _comment(tracker, v1.id)
        ledger.request_revision(v1.id, CREATOR)
        v2 = ledger.submit_delivery(scope, PRODUCER, DRIVE_URL)
        _comment(tracker, v2.id)
        payments.fail_charge = "card declined"
        events_before = len(publisher.events)

        with pytest.raises(PaymentFailed):
            ledger.request_revision(v2.id, CREATOR)

        project = _reload(db_session, ProjectModel, single_project.id)
        assert project.status == "pending_approval"
        assert project.revision_count == 1
        assert _reload(db_session, DeliveryModel, v2.id).status == "pending_review"
        assert len(publisher.events) == events_before

    def test_failed_release_changes_nothing(self, db_session, ledger, payments, publisher, single_project):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)
        payments.fail_release = "payout provider unavailable"

        with pytest.raises(PaymentFailed) as exc_info:
            ledger.approve_delivery(delivery.id, CREATOR)

        assert exc_info.value.details == {"operation": "release"}
        assert _reload(db_session, DeliveryModel, delivery.id).status == "pending_review"
        assert _reload(db_session, ProjectModel, single_project.id).status == "in_review"
        assert publisher.of_type("delivery_approved") == []

    def test_delivery_is_reviewed_only_once(self, ledger, tracker, single_project):
        delivery = ledger.submit_delivery(ProjectScope(single_project.id), PRODUCER, DRIVE_URL)
        ledger.approve_delivery(delivery.id, CREATOR)

        with pytest.raises(TransitionNotAllowed):
            ledger.approve_delivery(delivery.id, CREATOR)
        with pytest.raises(TransitionNotAllowed):
            ledger.request_revision(delivery.id, CREATOR)


class TestBatchDeliveries:
    def test_sequential_batch_releases_the_next_slot(self, db_session, ledger, publisher, registry):
        project = make_batch(registry, quantity=3)
        first, second, third = project.batch_videos
        assert [v.status for v in project.batch_videos] == ["in_progress", "pending", "pending"]

        with pytest.raises(TransitionNotAllowed):
            ledger.submit_delivery(BatchVideoScope(project.id, second.id), PRODUCER, DRIVE_URL)

        delivery = ledger.submit_delivery(BatchVideoScope(project.id, first.id), PRODUCER, DRIVE_URL)
        assert publisher.of_type("delivery_received")[0].is_batch_slot is True
        assert _reload(db_session, BatchVideoModel, first.id).latest_delivery_id == delivery.id

        ledger.approve_delivery(delivery.id, CREATOR)

        assert _reload(db_session, BatchVideoModel, first.id).status == "completed"
        assert _reload(db_session, BatchVideoModel, second.id).status == "in_progress"
        assert _reload(db_session, BatchVideoModel, third.id).status == "pending"
        assert _reload(db_session, ProjectModel, project.id).status == "in_progress"

    def test_simultaneous_batch_completes_parent(self, db_session, ledger, registry):
        project = make_batch(registry, quantity=2, mode=DeliveryMode.SIMULTANEOUS)
        slots = list(project.batch_videos)
        assert all(v.status == "in_progress" for v in slots)

        for slot in slots:
            delivery = ledger.submit_delivery(BatchVideoScope(project.id, slot.id), PRODUCER, DRIVE_URL)
            assert delivery.version == 1
            ledger.approve_delivery(delivery.id, CREATOR)

        assert _reload(db_session, ProjectModel, project.id).status == "completed"

    def test_slot_revision_leaves_siblings_alone(self, db_session, ledger, tracker, registry):
        project = make_batch(registry, quantity=2, mode=DeliveryMode.SIMULTANEOUS)
        first, second = project.batch_videos
        delivery = ledger.submit_delivery(BatchVideoScope(project.id, first.id), PRODUCER, DRIVE_URL)
        _comment(tracker, delivery.id)

        ledger.request_revision(delivery.id, CREATOR)

        assert _reload(db_session, BatchVideoModel, first.id).status == "revision_requested"
        assert _reload(db_session, BatchVideoModel, second.id).status == "in_progress"
