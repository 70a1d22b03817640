"""
Delivery ledger.

The only component that creates deliveries. A delivery is appended with the
next scope-local version and moves its unit of work through the transition
table in the same transaction; reviews close a delivery exactly once.

Transaction shape of every mutation:

1. validate inputs and load rows (no writes)
2. write the delivery change and the unit-of-work status change
3. call the payment collaborator, if the transition needs it
4. commit
5. publish events and refresh the batch parent (separate short transaction)

Events and the parent refresh happen after the commit, so a failing notifier
never undoes recorded status.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple, Union

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..db.audit_service import AuditService
from ..db.models import BatchVideoModel, DeliveryModel, ProjectModel
from ..errors import (
    NoPendingCorrections,
    NotAuthorized,
    NotFound,
    PaymentFailed,
    TransitionNotAllowed,
    VersionAllocationConflict,
)
from .annotations import AnnotationTracker
from .artifacts import classify_locator
from .collaborators import (
    AccessPolicy,
    AllowAllAccessPolicy,
    EventPublisher,
    LoggingEventPublisher,
    NullPaymentGateway,
    PaymentGateway,
    publish_safely,
)
from .enums import Action, AuthorRole, DeliveryStatus
from .locks import ScopeLocks, scope_locks
from .primitives import generate_ulid, utc_now
from .projector import StatusProjector
from .schemas import DeliveryApproved, DeliveryReceived, RevisionRequested, ScopeRef
from .scope import BatchVideoScope, DeliveryScope, ProjectScope, scope_for
from .transitions import ALLOWED_TRANSITIONS, StatusTransition, first_available
from .versioning import VersionAllocator

logger = structlog.get_logger()

UnitOfWork = Union[ProjectModel, BatchVideoModel]

SUBMIT_ACTIONS = (Action.SUBMIT_FOR_REVIEW, Action.SUBMIT_CORRECTIONS)
APPROVE_ACTIONS = (Action.APPROVE_FIRST_VERSION, Action.APPROVE_PROJECT)
REVISION_ACTIONS = (Action.REQUEST_REVISION, Action.PAY_NEW_REVISION)


class DeliveryLedger:
    """Append-only record of deliveries and their reviews."""

    def __init__(
        self,
        db: Session,
        publisher: Optional[EventPublisher] = None,
        payments: Optional[PaymentGateway] = None,
        access: Optional[AccessPolicy] = None,
        audit: Optional[AuditService] = None,
        locks: Optional[ScopeLocks] = None,
        retries: Optional[int] = None,
        table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
    ):
        self.db = db
        self.publisher = publisher or LoggingEventPublisher()
        self.payments = payments or NullPaymentGateway()
        self.access = access or AllowAllAccessPolicy()
        self.audit = audit or AuditService(db)
        self.locks = locks or scope_locks
        self.table = tuple(table)
        self.allocator = VersionAllocator(db, retries=retries)
        self.annotations = AnnotationTracker(db, audit=self.audit, access=self.access)
        self.projector = StatusProjector(
            db,
            audit=self.audit,
            annotations=self.annotations,
            payments=self.payments,
            table=self.table,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_delivery(self, delivery_id: str) -> DeliveryModel:
        delivery = self.db.get(DeliveryModel, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        return delivery

    def list_deliveries(self, scope: DeliveryScope) -> List[DeliveryModel]:
        """Deliveries recorded for ``scope``, newest version first."""
        return (
            self.db.query(DeliveryModel)
            .filter(DeliveryModel.scope_key == scope.key)
            .order_by(DeliveryModel.version.desc())
            .all()
        )

    def get_latest_delivery(self, scope: DeliveryScope) -> Optional[DeliveryModel]:
        return (
            self.db.query(DeliveryModel)
            .filter(DeliveryModel.scope_key == scope.key)
            .order_by(DeliveryModel.version.desc())
            .first()
        )

    def _get_project(self, project_id: str, fresh: bool = False) -> ProjectModel:
        project = self.db.get(ProjectModel, project_id, populate_existing=fresh)
        if project is None:
            raise NotFound("Project", project_id)
        return project

    def _unit_for(
        self, project: ProjectModel, scope: DeliveryScope, fresh: bool = False
    ) -> UnitOfWork:
        if isinstance(scope, ProjectScope):
            return project
        slot = self.db.get(BatchVideoModel, scope.batch_video_id, populate_existing=fresh)
        if slot is None or slot.project_id != project.id:
            raise NotFound("BatchVideo", scope.batch_video_id)
        return slot

    def _find_by_idempotency_key(
        self, scope: DeliveryScope, idempotency_key: Optional[str]
    ) -> Optional[DeliveryModel]:
        if not idempotency_key:
            return None
        return (
            self.db.query(DeliveryModel)
            .filter(
                DeliveryModel.scope_key == scope.key,
                DeliveryModel.idempotency_key == idempotency_key,
            )
            .first()
        )

    def _check_access(self, caller_id: str, project_id: str) -> None:
        if not self.access.is_authorized(caller_id, project_id):
            raise NotAuthorized(caller_id, project_id)

    def _role(self, caller_id: str) -> str:
        return AuthorRole(self.access.role_of(caller_id)).value

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_delivery(
        self,
        scope: DeliveryScope,
        producer_id: str,
        artifact_url: str,
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> DeliveryModel:
        """Record a new delivery for ``scope`` and move its unit into review.

        The unit must currently allow ``submit_for_review`` (first delivery)
        or ``submit_corrections`` (after a revision request). Resubmitting
        with an ``idempotency_key`` already recorded for the scope returns
        the original delivery unchanged.

        Raises:
            InvalidArtifactLocator: ``artifact_url`` is not a usable URL
            NotFound: unknown project or slot
            AmbiguousScope: batch project without a slot
            NotAuthorized: caller is not the assigned producer
            TransitionNotAllowed: unit status does not accept a delivery
            VersionAllocationConflict: lost the version race on every retry
        """
        video_type, locator = classify_locator(artifact_url)
        project = self._get_project(scope.project_id)
        self.allocator.check_scope(project, scope)
        unit = self._unit_for(project, scope)
        self._check_access(producer_id, project.id)
        assigned = unit.assigned_producer_id or project.assigned_producer_id
        if assigned and assigned != producer_id:
            raise NotAuthorized(
                producer_id, project.id, "Only the assigned producer can deliver this video"
            )

        log = logger.bind(scope=scope.key, producer_id=producer_id, trace_id=trace_id)

        existing = self._find_by_idempotency_key(scope, idempotency_key)
        if existing is not None:
            log.info("delivery_deduplicated", delivery_id=existing.id, version=existing.version)
            return existing

        def attempt() -> Tuple[DeliveryModel, bool]:
            existing = self._find_by_idempotency_key(scope, idempotency_key)
            if existing is not None:
                return existing, False

            # Rows loaded before the lock may be stale
            project = self._get_project(scope.project_id, fresh=True)
            unit = self._unit_for(project, scope, fresh=True)
            transition = first_available(unit.status, SUBMIT_ACTIONS, self.table)
            version = self.allocator.next_version(project, scope)

            delivery = DeliveryModel(
                id=generate_ulid(),
                project_id=project.id,
                batch_video_id=scope.batch_video_id,
                scope_key=scope.key,
                producer_id=producer_id,
                artifact_url=locator,
                video_type=video_type.value,
                version=version,
                status=DeliveryStatus.PENDING_REVIEW.value,
                note=note,
                idempotency_key=idempotency_key,
                submitted_at=utc_now(),
            )
            self.db.add(delivery)
            self.db.flush()

            self.projector.apply(
                unit,
                transition.action,
                actor_role=AuthorRole.EDITOR.value,
                actor_id=producer_id,
                trace_id=trace_id,
            )
            if isinstance(unit, BatchVideoModel):
                unit.latest_delivery_id = delivery.id
            self.audit.log_create(
                entity_kind="Delivery",
                entity_id=delivery.id,
                after=delivery.to_dict(),
                actor_role=AuthorRole.EDITOR.value,
                actor_id=producer_id,
                trace_id=trace_id,
            )
            self.db.flush()
            self.db.commit()
            return delivery, True

        with self.locks.hold(scope.key):
            delivery, created = self.allocator.run_atomically(scope.key, attempt)

        if not created:
            log.info("delivery_deduplicated", delivery_id=delivery.id, version=delivery.version)
            return delivery

        self.db.refresh(delivery)
        log.info(
            "delivery_submitted",
            delivery_id=delivery.id,
            version=delivery.version,
            video_type=delivery.video_type,
        )
        publish_safely(
            self.publisher,
            DeliveryReceived(
                scope=ScopeRef(**scope.to_dict()),
                delivery_id=delivery.id,
                version=delivery.version,
                is_batch_slot=scope.is_batch_slot,
                trace_id=trace_id,
            ),
        )
        self._refresh_parent(scope)
        return delivery

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def _close_delivery(
        self,
        delivery: DeliveryModel,
        status: DeliveryStatus,
        reviewer_id: str,
        feedback: Optional[str],
        trace_id: Optional[str],
    ) -> None:
        """Move a delivery out of ``pending_review`` exactly once.

        The conditional UPDATE only matches while the delivery is still
        pending, and holds the row until commit, so two reviews of the same
        delivery, or a review racing a late comment, cannot both commit.
        """
        now = utc_now()
        result = self.db.execute(
            update(DeliveryModel)
            .where(
                DeliveryModel.id == delivery.id,
                DeliveryModel.status == DeliveryStatus.PENDING_REVIEW.value,
            )
            .values(
                status=status.value,
                feedback=feedback,
                reviewed_by=reviewer_id,
                reviewed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            self.db.refresh(delivery)
            raise TransitionNotAllowed(
                delivery.status,
                "review",
                reason="this delivery has already been reviewed",
            )
        self.audit.log_status_change(
            entity_kind="Delivery",
            entity_id=delivery.id,
            old_status=DeliveryStatus.PENDING_REVIEW.value,
            new_status=status.value,
            actor_role=self._role(reviewer_id),
            actor_id=reviewer_id,
            trace_id=trace_id,
        )

    def _require_pending(self, delivery: DeliveryModel, gesture: str) -> None:
        if delivery.status != DeliveryStatus.PENDING_REVIEW.value:
            raise TransitionNotAllowed(
                delivery.status,
                gesture,
                reason="this delivery has already been reviewed",
            )

    def _unit_for_delivery(self, delivery: DeliveryModel) -> UnitOfWork:
        if delivery.batch_video_id:
            slot = self.db.get(BatchVideoModel, delivery.batch_video_id, populate_existing=True)
            if slot is None:
                raise NotFound("BatchVideo", delivery.batch_video_id)
            return slot
        return self._get_project(delivery.project_id, fresh=True)

    def _commit_after_external_call(
        self, operation: str, scope: DeliveryScope, delivery_id: str
    ) -> None:
        """Commit once a payment call has gone through.

        Never retried: a second attempt would charge or release twice. A
        failure here leaves the payment applied with no recorded status, so
        it is logged at error level for reconciliation.
        """
        try:
            self.db.commit()
        except (IntegrityError, StaleDataError) as exc:
            self.db.rollback()
            logger.error(
                "payment_applied_without_commit",
                operation=operation,
                scope=scope.key,
                delivery_id=delivery_id,
                error=type(exc).__name__,
            )
            raise VersionAllocationConflict(scope.key, 1) from exc
        except Exception:
            self.db.rollback()
            logger.error(
                "payment_applied_without_commit",
                operation=operation,
                scope=scope.key,
                delivery_id=delivery_id,
            )
            raise

    def _flush_before_external_call(self, scope: DeliveryScope) -> None:
        try:
            self.db.flush()
        except (IntegrityError, StaleDataError) as exc:
            self.db.rollback()
            raise VersionAllocationConflict(scope.key, 1) from exc

    def approve_delivery(
        self,
        delivery_id: str,
        reviewer_id: str,
        feedback: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> DeliveryModel:
        """Approve a pending delivery and complete its unit of work.

        The producer's payment is released after the status change is
        flushed and before it commits; if the release fails nothing is
        recorded.

        Raises:
            NotFound: unknown delivery
            NotAuthorized: caller rejected by the access policy
            TransitionNotAllowed: delivery already reviewed, or the unit
                is not awaiting approval
            PaymentFailed: the release failed
        """
        delivery = self.get_delivery(delivery_id)
        self._check_access(reviewer_id, delivery.project_id)
        scope = scope_for(delivery.project_id, delivery.batch_video_id)
        log = logger.bind(scope=scope.key, delivery_id=delivery_id, trace_id=trace_id)

        with self.locks.hold(scope.key):
            self.db.refresh(delivery)
            self._require_pending(delivery, "approve")
            unit = self._unit_for_delivery(delivery)
            transition = first_available(unit.status, APPROVE_ACTIONS, self.table)

            self._close_delivery(
                delivery, DeliveryStatus.APPROVED, reviewer_id, feedback, trace_id
            )
            self.projector.apply(
                unit,
                transition.action,
                actor_role=self._role(reviewer_id),
                actor_id=reviewer_id,
                trace_id=trace_id,
            )
            if isinstance(unit, BatchVideoModel):
                unit.approved_at = utc_now()
            self._flush_before_external_call(scope)

            try:
                self.payments.release(scope, delivery.id)
            except Exception as exc:
                self.db.rollback()
                log.warning(
                    "collaborator_failed",
                    collaborator="payments",
                    operation="release",
                    error=str(exc),
                )
                raise PaymentFailed("release", str(exc)) from exc

            self._commit_after_external_call("release", scope, delivery.id)

        self.db.refresh(delivery)
        log.info("delivery_approved", action=transition.action.value, version=delivery.version)
        publish_safely(
            self.publisher,
            DeliveryApproved(
                scope=ScopeRef(**scope.to_dict()),
                delivery_id=delivery.id,
                trace_id=trace_id,
            ),
        )
        self._refresh_parent(scope, completed_slot_id=delivery.batch_video_id)
        return delivery

    def request_revision(
        self,
        delivery_id: str,
        reviewer_id: str,
        summary: str = "",
        trace_id: Optional[str] = None,
    ) -> DeliveryModel:
        """Send a pending delivery back to the producer.

        The delivery's unresolved comments are the instructions, so at least
        one must exist. From ``pending_approval`` the extra round is paid:
        the charge runs before the status changes, and the revision counter
        goes up by one.

        Raises:
            NotFound: unknown delivery
            NotAuthorized: caller rejected by the access policy
            TransitionNotAllowed: delivery already reviewed, or the unit is
                not under review
            NoPendingCorrections: no unresolved comments on the delivery
            PaymentFailed: the charge for a paid round failed
        """
        delivery = self.get_delivery(delivery_id)
        self._check_access(reviewer_id, delivery.project_id)
        scope = scope_for(delivery.project_id, delivery.batch_video_id)
        log = logger.bind(scope=scope.key, delivery_id=delivery_id, trace_id=trace_id)

        with self.locks.hold(scope.key):
            self.db.refresh(delivery)
            self._require_pending(delivery, "request_revision")
            unit = self._unit_for_delivery(delivery)
            transition = first_available(unit.status, REVISION_ACTIONS, self.table)
            pending = self.annotations.count_unresolved(delivery.id)
            if pending == 0:
                raise NoPendingCorrections(delivery.id)

            self._close_delivery(
                delivery,
                DeliveryStatus.REVISION_REQUESTED,
                reviewer_id,
                summary or None,
                trace_id,
            )
            try:
                self.projector.apply(
                    unit,
                    transition.action,
                    actor_role=self._role(reviewer_id),
                    actor_id=reviewer_id,
                    corrections_for=delivery.id,
                    trace_id=trace_id,
                )
            except (NoPendingCorrections, PaymentFailed):
                self.db.rollback()
                raise
            # Comments are frozen from here on; this is the count the producer sees
            pending = self.annotations.count_unresolved(delivery.id)

            if transition.requires_payment:
                self._commit_after_external_call("charge", scope, delivery.id)
            else:
                self._flush_before_external_call(scope)
                self.db.commit()

        self.db.refresh(delivery)
        log.info(
            "revision_requested",
            action=transition.action.value,
            pending_comments=pending,
            revision_count=unit.revision_count,
        )
        publish_safely(
            self.publisher,
            RevisionRequested(
                scope=ScopeRef(**scope.to_dict()),
                delivery_id=delivery.id,
                pending_comment_count=pending,
                paid_round=transition.requires_payment,
                trace_id=trace_id,
            ),
        )
        self._refresh_parent(scope)
        return delivery

    # ------------------------------------------------------------------
    # Batch parent
    # ------------------------------------------------------------------

    def _refresh_parent(
        self, scope: DeliveryScope, completed_slot_id: Optional[str] = None
    ) -> None:
        """Release the next sequential slot and recompute the parent status.

        Runs under the project lock in its own transaction, after the slot
        change has committed and its slot lock has been released.
        """
        if not isinstance(scope, BatchVideoScope):
            return
        parent_key = ProjectScope(scope.project_id).key

        def attempt() -> None:
            project = self._get_project(scope.project_id, fresh=True)
            if completed_slot_id:
                slot = self.db.get(BatchVideoModel, completed_slot_id)
                released = self.projector.release_next_slot(project, slot)
                if released is not None:
                    logger.info(
                        "batch_slot_released",
                        project_id=project.id,
                        batch_video_id=released.id,
                        sequence_order=released.sequence_order,
                    )
            self.projector.recompute_batch_parent(project)
            self.db.flush()
            self.db.commit()

        with self.locks.hold(parent_key):
            self.allocator.run_atomically(parent_key, attempt)
