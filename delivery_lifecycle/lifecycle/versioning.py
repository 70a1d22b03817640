"""
Delivery version allocation.

The next version for a scope is ``count(deliveries in scope) + 1``. Counting
and inserting are two statements, so two writers can compute the same
number. The ``(scope_key, version)`` unique constraint makes the second
insert fail; ``run_atomically`` rolls that writer back and runs its whole
allocate-and-insert attempt again against the new count.
"""

from typing import Callable, Optional, TypeVar

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import get_settings
from ..db.models import DeliveryModel, ProjectModel
from ..errors import AmbiguousScope, VersionAllocationConflict
from .scope import BatchVideoScope, DeliveryScope, ProjectScope

logger = structlog.get_logger()

T = TypeVar("T")


class VersionAllocator:
    """Computes next delivery versions and retries lost allocation races."""

    def __init__(self, db: Session, retries: Optional[int] = None):
        self.db = db
        self.retries = get_settings().version_allocation_retries if retries is None else retries

    def count_in_scope(self, scope: DeliveryScope) -> int:
        """Count deliveries already recorded for ``scope``."""
        query = self.db.query(func.count(DeliveryModel.id))
        if isinstance(scope, BatchVideoScope):
            query = query.filter(DeliveryModel.batch_video_id == scope.batch_video_id)
        else:
            query = query.filter(
                DeliveryModel.project_id == scope.project_id,
                DeliveryModel.batch_video_id.is_(None),
            )
        return query.scalar() or 0

    def check_scope(self, project: ProjectModel, scope: DeliveryScope) -> None:
        """Reject a whole-project scope on a batch project.

        A batch delivery must name its slot; defaulting to the project would
        start a second, unrelated version sequence.
        """
        if project.is_batch and isinstance(scope, ProjectScope):
            raise AmbiguousScope(project.id)

    def next_version(self, project: ProjectModel, scope: DeliveryScope) -> int:
        """Return the version the next delivery in ``scope`` should carry."""
        self.check_scope(project, scope)
        return self.count_in_scope(scope) + 1

    def run_atomically(self, scope_key: str, attempt: Callable[[], T]) -> T:
        """Run one allocate-and-insert ``attempt``, retrying lost races.

        ``attempt`` must do all of its reads and writes and commit. When the
        commit loses a race (unique version taken, or a unit-of-work row
        updated underneath it) the session is rolled back and the attempt is
        repeated up to ``retries`` more times.
        """
        attempts = self.retries + 1
        for number in range(1, attempts + 1):
            try:
                return attempt()
            except (IntegrityError, StaleDataError) as exc:
                self.db.rollback()
                logger.warning(
                    "version_conflict_retry",
                    scope=scope_key,
                    attempt=number,
                    max_attempts=attempts,
                    error=type(exc).__name__,
                )
        raise VersionAllocationConflict(scope_key, attempts)
