"""
Unit-of-work status projector.

Applies transition-table rows to a project or batch slot and keeps its
revision counter. The projector only mutates the session; committing is the
caller's job, so a status change and everything that caused it commit (or
roll back) together.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

import structlog
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import BatchVideoModel, ProjectModel
from ..errors import NoPendingCorrections, PaymentFailed
from .annotations import AnnotationTracker
from .collaborators import NullPaymentGateway, PaymentGateway
from .enums import Action, DeliveryMode, UnitStatus
from .primitives import utc_now
from .scope import BatchVideoScope, DeliveryScope, ProjectScope
from .transitions import ALLOWED_TRANSITIONS, StatusTransition, resolve_transition

logger = structlog.get_logger()

UnitOfWork = Union[ProjectModel, BatchVideoModel]

# Actions that send feedback back to the producer
REVISION_ACTIONS = frozenset({Action.REQUEST_REVISION, Action.PAY_NEW_REVISION})


def entity_kind(unit: UnitOfWork) -> str:
    return "BatchVideo" if isinstance(unit, BatchVideoModel) else "Project"


def scope_of(unit: UnitOfWork) -> DeliveryScope:
    if isinstance(unit, BatchVideoModel):
        return BatchVideoScope(project_id=unit.project_id, batch_video_id=unit.id)
    return ProjectScope(project_id=unit.id)


class StatusProjector:
    """Moves units of work through the transition table."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        annotations: Optional[AnnotationTracker] = None,
        payments: Optional[PaymentGateway] = None,
        table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.annotations = annotations or AnnotationTracker(db, audit=self.audit)
        self.payments = payments or NullPaymentGateway()
        self.table = tuple(table)

    def apply(
        self,
        unit: UnitOfWork,
        action: Union[Action, str],
        actor_role: str = "system",
        actor_id: str = "unknown",
        corrections_for: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> StatusTransition:
        """Advance ``unit`` by ``action``.

        The destination comes from the table given only the current status
        and the action. Checks run before anything is mutated, in order:
        the table lookup, the unresolved-comment gate (when
        ``corrections_for`` names the delivery under review) and, for paid
        transitions, the payment charge.

        Raises:
            TransitionNotAllowed: no row for (status, action)
            AmbiguousAction: more than one row for (status, action)
            NoPendingCorrections: revision action with nothing left to fix
            PaymentFailed: the charge for a paid transition failed
        """
        transition = resolve_transition(unit.status, action, self.table)

        if corrections_for is not None and transition.action in REVISION_ACTIONS:
            if self.annotations.count_unresolved(corrections_for) == 0:
                raise NoPendingCorrections(corrections_for)

        if transition.requires_payment:
            scope = scope_of(unit)
            try:
                self.payments.charge(scope, reason=transition.action.value)
            except Exception as exc:
                logger.warning(
                    "collaborator_failed",
                    collaborator="payments",
                    operation="charge",
                    scope=scope.key,
                    error=str(exc),
                )
                raise PaymentFailed("charge", str(exc)) from exc

        old_status = unit.status
        old_revision = unit.revision_count
        unit.status = transition.destination.value
        if transition.increments_revision:
            unit.revision_count = old_revision + 1
        unit.updated_at = utc_now()

        self.audit.log_status_change(
            entity_kind=entity_kind(unit),
            entity_id=unit.id,
            old_status=old_status,
            new_status=unit.status,
            actor_role=actor_role,
            actor_id=actor_id,
            trace_id=trace_id,
            note=f"{transition.action.value}: {old_status} -> {unit.status}",
            extra_before={"revision_count": old_revision},
            extra_after={"revision_count": unit.revision_count},
        )
        logger.info(
            "status_applied",
            entity_kind=entity_kind(unit),
            entity_id=unit.id,
            action=transition.action.value,
            old_status=old_status,
            new_status=unit.status,
            revision_count=unit.revision_count,
        )
        return transition

    def recompute_batch_parent(
        self, project: ProjectModel, actor_id: str = "lifecycle"
    ) -> str:
        """Derive a batch project's coarse status from its slots.

        ``completed`` once every slot is completed, ``in_progress`` while any
        slot is outstanding. Projects not yet started or cancelled are left
        alone.
        """
        if not project.is_batch or project.status in (
            UnitStatus.PENDING.value,
            UnitStatus.CANCELLED.value,
        ):
            return project.status

        slots = [v for v in project.batch_videos if v.status != UnitStatus.CANCELLED.value]
        if slots and all(v.status == UnitStatus.COMPLETED.value for v in slots):
            target = UnitStatus.COMPLETED.value
        else:
            target = UnitStatus.IN_PROGRESS.value

        if project.status != target:
            old_status = project.status
            project.status = target
            project.updated_at = utc_now()
            self.audit.log_status_change(
                entity_kind="Project",
                entity_id=project.id,
                old_status=old_status,
                new_status=target,
                actor_role="system",
                actor_id=actor_id,
                note=f"Batch aggregate: {old_status} -> {target}",
            )
        return project.status

    def release_next_slot(
        self, project: ProjectModel, after: BatchVideoModel
    ) -> Optional[BatchVideoModel]:
        """In sequential batches, start the next pending slot once ``after`` completes."""
        mode = project.delivery_mode or DeliveryMode.SEQUENTIAL.value
        if mode != DeliveryMode.SEQUENTIAL.value:
            return None
        if after.status != UnitStatus.COMPLETED.value:
            return None

        pending = [
            v
            for v in project.batch_videos
            if v.sequence_order > after.sequence_order
            and v.status == UnitStatus.PENDING.value
        ]
        if not pending:
            return None

        next_slot = min(pending, key=lambda v: v.sequence_order)
        next_slot.assigned_producer_id = (
            next_slot.assigned_producer_id or project.assigned_producer_id
        )
        self.apply(next_slot, Action.START_WORK, actor_id="lifecycle")
        return next_slot
