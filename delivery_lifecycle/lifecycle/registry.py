"""
Project registry: creating projects and handing them to a producer.

Assignment is the entry point into the lifecycle. A single-video project
starts work immediately; a batch project starts its slots according to its
delivery mode.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Union

import structlog
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db.audit_service import AuditService
from ..db.models import BatchVideoModel, ProjectModel
from ..errors import NotFound, TransitionNotAllowed
from .enums import Action, AuthorRole, DeliveryMode, UnitStatus
from .locks import ScopeLocks, scope_locks
from .primitives import generate_ulid, utc_now
from .progress import compute_progress, group_by_column
from .projector import StatusProjector
from .schemas import BatchProgress, BoardView
from .scope import ProjectScope
from .transitions import ALLOWED_TRANSITIONS, StatusTransition
from .versioning import VersionAllocator

logger = structlog.get_logger()


class ProjectRegistry:
    """Service for registering projects and assigning producers."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        locks: Optional[ScopeLocks] = None,
        table: Iterable[StatusTransition] = ALLOWED_TRANSITIONS,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.locks = locks or scope_locks
        self.projector = StatusProjector(db, audit=self.audit, table=table)

    def get_project(self, project_id: str) -> ProjectModel:
        project = self.db.get(ProjectModel, project_id)
        if project is None:
            raise NotFound("Project", project_id)
        return project

    def list_batch_videos(self, project_id: str) -> List[BatchVideoModel]:
        """Slots of a batch project in sequence order."""
        self.get_project(project_id)
        return (
            self.db.query(BatchVideoModel)
            .filter(BatchVideoModel.project_id == project_id)
            .order_by(BatchVideoModel.sequence_order.asc())
            .all()
        )

    def create_project(
        self,
        creator_id: str,
        title: str = "",
        is_batch: bool = False,
        batch_quantity: int = 1,
        delivery_mode: Optional[Union[DeliveryMode, str]] = None,
        deadline_days: Optional[int] = None,
        trace_id: Optional[str] = None,
    ) -> ProjectModel:
        """Register a project. Batch projects get ``batch_quantity`` pending slots."""
        if is_batch and batch_quantity < 1:
            raise ValueError("A batch needs at least one video")

        mode = None
        if is_batch:
            mode = DeliveryMode(delivery_mode or get_settings().default_delivery_mode).value

        now = utc_now()
        project = ProjectModel(
            id=generate_ulid(),
            title=title,
            creator_id=creator_id,
            is_batch=is_batch,
            batch_quantity=batch_quantity if is_batch else 1,
            delivery_mode=mode,
            deadline_days=deadline_days,
            status=UnitStatus.PENDING.value,
            revision_count=1,
            created_at=now,
            updated_at=now,
        )
        if is_batch:
            project.batch_videos = [
                BatchVideoModel(
                    id=generate_ulid(),
                    sequence_order=n,
                    title=f"Video {n}",
                    status=UnitStatus.PENDING.value,
                    revision_count=1,
                    created_at=now,
                    updated_at=now,
                )
                for n in range(1, batch_quantity + 1)
            ]

        self.db.add(project)
        self.db.flush()
        self.audit.log_create(
            entity_kind="Project",
            entity_id=project.id,
            after=project.to_dict(),
            actor_role=AuthorRole.CREATOR.value,
            actor_id=creator_id,
            trace_id=trace_id,
        )
        self.db.commit()
        self.db.refresh(project)

        logger.info(
            "project_created",
            project_id=project.id,
            is_batch=is_batch,
            batch_quantity=project.batch_quantity,
            delivery_mode=mode,
        )
        return project

    def assign_producer(
        self,
        project_id: str,
        producer_id: str,
        trace_id: Optional[str] = None,
    ) -> ProjectModel:
        """Hand a pending project to its producer and start work.

        In ``sequential`` batches only the first slot starts; the rest wait
        until the previous one is approved. In ``simultaneous`` batches all
        slots start at once.

        Raises:
            NotFound: unknown project
            TransitionNotAllowed: project already assigned
        """
        key = ProjectScope(project_id).key

        def attempt() -> ProjectModel:
            project = self.get_project(project_id)
            if project.status != UnitStatus.PENDING.value:
                raise TransitionNotAllowed(
                    project.status,
                    "assign_producer",
                    reason="a producer is already working on this project",
                )

            project.assigned_producer_id = producer_id
            self.projector.apply(
                project,
                Action.START_WORK,
                actor_id=producer_id,
                trace_id=trace_id,
            )

            if project.is_batch:
                slots = sorted(project.batch_videos, key=lambda v: v.sequence_order)
                if project.delivery_mode == DeliveryMode.SIMULTANEOUS.value:
                    released = slots
                else:
                    released = slots[:1]
                for slot in slots:
                    slot.assigned_producer_id = producer_id
                for slot in released:
                    self.projector.apply(
                        slot,
                        Action.START_WORK,
                        actor_id=producer_id,
                        trace_id=trace_id,
                    )

            self.db.flush()
            self.db.commit()
            return project

        with self.locks.hold(key):
            project = VersionAllocator(self.db).run_atomically(key, attempt)

        self.db.refresh(project)
        logger.info("producer_assigned", project_id=project_id, producer_id=producer_id)
        return project

    def get_progress(self, project_id: str) -> BatchProgress:
        """Progress of a project; a single-video project counts as one slot."""
        project = self.get_project(project_id)
        videos = self.list_batch_videos(project_id) if project.is_batch else [project]
        return compute_progress(videos, project.deadline_days)

    def get_board(self, project_id: str) -> BoardView:
        project = self.get_project(project_id)
        videos = self.list_batch_videos(project_id) if project.is_batch else [project]
        columns = group_by_column(videos)
        return BoardView(
            project_id=project.id,
            progress=compute_progress(videos, project.deadline_days),
            columns={column: [v.to_dict() for v in items] for column, items in columns.items()},
        )
