"""
Annotation and resolution tracking for deliveries.

Comments are pinned to a media offset and carry an independent resolved
flag. While a delivery is ``pending_review`` its comments, replies and
resolution flags can change; once the delivery is approved or sent back
they are read-only.

Every mutation first "touches" its delivery with a conditional UPDATE that
only matches while the delivery is still ``pending_review``. The touch takes
the row's write lock for the rest of the transaction, so a review that
closes the delivery and a late comment can never both commit.
"""

from __future__ import annotations

import math
from typing import List, Optional, Union

import structlog
from sqlalchemy import func, text, update
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import CommentModel, DeliveryModel, ReplyModel
from ..errors import DeliveryNotEditable, NotAuthorized, NotFound, ResolutionConflict
from .collaborators import AccessPolicy, AllowAllAccessPolicy
from .enums import AuthorRole, CommentTag
from .primitives import generate_ulid, utc_now

logger = structlog.get_logger()

# Roles allowed to delete other people's comments and replies
PRIVILEGED_ROLES = frozenset({AuthorRole.ADMIN})


def format_offset(seconds: float) -> str:
    """Render a media offset as ``m:ss``."""
    total = int(max(seconds, 0))
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


def parse_offset(value: str) -> float:
    """Parse ``m:ss`` (or plain seconds) back into seconds.

    >>> parse_offset("1:05")
    65.0
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("Offset is empty")
    parts = raw.split(":")
    if len(parts) > 3:
        raise ValueError(f"Offset '{value}' is not m:ss")
    try:
        numbers = [float(p) for p in parts]
    except ValueError as exc:
        raise ValueError(f"Offset '{value}' is not m:ss") from exc
    if not all(math.isfinite(n) for n in numbers):
        raise ValueError(f"Offset '{value}' is not a finite number")
    if any(n < 0 for n in numbers):
        raise ValueError(f"Offset '{value}' is negative")

    seconds = 0.0
    for n in numbers:
        seconds = seconds * 60 + n
    return seconds


class AnnotationTracker:
    """Comments, replies and resolution state for one delivery at a time."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        access: Optional[AccessPolicy] = None,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.access = access or AllowAllAccessPolicy()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_comment(self, comment_id: str) -> CommentModel:
        comment = self.db.get(CommentModel, comment_id)
        if comment is None:
            raise NotFound("Comment", comment_id)
        return comment

    def get_reply(self, reply_id: str) -> ReplyModel:
        reply = self.db.get(ReplyModel, reply_id)
        if reply is None:
            raise NotFound("Reply", reply_id)
        return reply

    def list_comments(self, delivery_id: str) -> List[CommentModel]:
        """Comments on a delivery ordered by media offset; replies by creation."""
        if self.db.get(DeliveryModel, delivery_id) is None:
            raise NotFound("Delivery", delivery_id)
        return (
            self.db.query(CommentModel)
            .filter(CommentModel.delivery_id == delivery_id)
            .order_by(CommentModel.offset_seconds.asc(), CommentModel.created_at.asc())
            .all()
        )

    def count_unresolved(self, delivery_id: str) -> int:
        """Number of comments on the delivery still waiting to be addressed."""
        return (
            self.db.query(func.count(CommentModel.id))
            .filter(
                CommentModel.delivery_id == delivery_id,
                CommentModel.is_resolved.is_(False),
            )
            .scalar()
            or 0
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _lock_for_edit(self, delivery_id: str) -> None:
        """Claim the delivery for an annotation change or fail if it was reviewed."""
        result = self.db.execute(
            text(
                """
                UPDATE deliveries
                SET status = status
                WHERE id = :delivery_id AND status = 'pending_review'
            """
            ),
            {"delivery_id": delivery_id},
        )
        if result.rowcount == 0:
            self.db.rollback()
            delivery = self.db.get(DeliveryModel, delivery_id)
            if delivery is None:
                raise NotFound("Delivery", delivery_id)
            raise DeliveryNotEditable(delivery_id, delivery.status)

    def _require_author_or_privileged(
        self, caller_id: str, author_id: str, project_id: str
    ) -> None:
        if not self.access.is_authorized(caller_id, project_id):
            raise NotAuthorized(caller_id, project_id)
        if caller_id == author_id:
            return
        if AuthorRole(self.access.role_of(caller_id)) not in PRIVILEGED_ROLES:
            raise NotAuthorized(
                caller_id,
                project_id,
                "Only the author or an admin can delete this",
            )

    def add_comment(
        self,
        delivery_id: str,
        author_id: str,
        author_role: Union[AuthorRole, str],
        content: str,
        offset_seconds: float,
        tag: Optional[Union[CommentTag, str]] = None,
        trace_id: Optional[str] = None,
    ) -> CommentModel:
        """Pin a comment to ``offset_seconds`` of the delivery's media.

        Raises:
            ValueError: negative or non-finite offset, or empty content
            NotFound: unknown delivery
            DeliveryNotEditable: delivery already reviewed
        """
        if offset_seconds is None or not math.isfinite(offset_seconds) or offset_seconds < 0:
            raise ValueError("offset_seconds must be a finite number >= 0")
        if not (content or "").strip():
            raise ValueError("Comment content is empty")

        self._lock_for_edit(delivery_id)

        now = utc_now()
        comment = CommentModel(
            id=generate_ulid(),
            delivery_id=delivery_id,
            author_id=author_id,
            author_role=AuthorRole(author_role).value,
            content=content.strip(),
            offset_seconds=float(offset_seconds),
            tag=CommentTag(tag).value if tag else None,
            is_resolved=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(comment)
        self.db.flush()
        self.audit.log_create(
            entity_kind="Comment",
            entity_id=comment.id,
            after={
                "delivery_id": delivery_id,
                "offset_seconds": comment.offset_seconds,
                "tag": comment.tag,
            },
            actor_role=comment.author_role,
            actor_id=author_id,
            trace_id=trace_id,
        )
        self.db.commit()
        self.db.refresh(comment)

        logger.info(
            "comment_added",
            delivery_id=delivery_id,
            comment_id=comment.id,
            offset=format_offset(comment.offset_seconds),
            tag=comment.tag,
        )
        return comment

    def set_resolved(
        self,
        comment_id: str,
        resolved: bool,
        actor_id: str,
        trace_id: Optional[str] = None,
    ) -> CommentModel:
        """Set the resolved flag to ``resolved``.

        Idempotent: repeating the call, or racing another writer towards the
        same value, leaves the flag at the target without error.
        """
        comment = self.get_comment(comment_id)
        self._lock_for_edit(comment.delivery_id)

        changed = self._compare_and_set(comment_id, expected=not resolved, target=resolved, actor_id=actor_id)
        if changed:
            self._record_resolution(comment_id, resolved, actor_id, trace_id)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def toggle_resolved(
        self,
        comment_id: str,
        actor_id: str,
        expected_resolved: bool,
        trace_id: Optional[str] = None,
    ) -> CommentModel:
        """Flip the resolved flag, provided it still reads ``expected_resolved``.

        A retried or out-of-order toggle from stale client state fails with
        ``ResolutionConflict`` instead of flipping the flag back.
        """
        comment = self.get_comment(comment_id)
        self._lock_for_edit(comment.delivery_id)

        target = not expected_resolved
        if not self._compare_and_set(comment_id, expected=expected_resolved, target=target, actor_id=actor_id):
            self.db.rollback()
            self.db.refresh(comment)
            raise ResolutionConflict(comment_id, expected_resolved, comment.is_resolved)

        self._record_resolution(comment_id, target, actor_id, trace_id)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def _compare_and_set(self, comment_id: str, expected: bool, target: bool, actor_id: str) -> bool:
        now = utc_now()
        result = self.db.execute(
            update(CommentModel)
            .where(CommentModel.id == comment_id, CommentModel.is_resolved == expected)
            .values(
                is_resolved=target,
                resolved_by=actor_id if target else None,
                resolved_at=now if target else None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _record_resolution(
        self, comment_id: str, resolved: bool, actor_id: str, trace_id: Optional[str]
    ) -> None:
        self.audit.log_resolution_change(
            comment_id=comment_id,
            resolved=resolved,
            actor_role=AuthorRole(self.access.role_of(actor_id)).value,
            actor_id=actor_id,
            trace_id=trace_id,
        )
        logger.info("comment_resolution_changed", comment_id=comment_id, resolved=resolved)

    def add_reply(
        self,
        comment_id: str,
        author_id: str,
        author_role: Union[AuthorRole, str],
        content: str,
        trace_id: Optional[str] = None,
    ) -> ReplyModel:
        """Append a reply to a comment thread. Does not touch resolution."""
        if not (content or "").strip():
            raise ValueError("Reply content is empty")
        comment = self.get_comment(comment_id)
        self._lock_for_edit(comment.delivery_id)

        reply = ReplyModel(
            id=generate_ulid(),
            comment_id=comment_id,
            author_id=author_id,
            author_role=AuthorRole(author_role).value,
            content=content.strip(),
            created_at=utc_now(),
        )
        self.db.add(reply)
        self.db.flush()
        self.audit.log_create(
            entity_kind="Reply",
            entity_id=reply.id,
            after={"comment_id": comment_id},
            actor_role=reply.author_role,
            actor_id=author_id,
            trace_id=trace_id,
        )
        self.db.commit()
        self.db.refresh(reply)
        return reply

    def delete_reply(self, reply_id: str, caller_id: str, trace_id: Optional[str] = None) -> None:
        """Delete a reply. Only its author or a privileged role may do so."""
        reply = self.get_reply(reply_id)
        comment = self.get_comment(reply.comment_id)
        delivery = self.db.get(DeliveryModel, comment.delivery_id)
        self._require_author_or_privileged(caller_id, reply.author_id, delivery.project_id)
        self._lock_for_edit(comment.delivery_id)

        before = reply.to_dict()
        self.db.delete(reply)
        self.audit.log_delete(
            entity_kind="Reply",
            entity_id=reply_id,
            before=before,
            actor_role=AuthorRole(self.access.role_of(caller_id)).value,
            actor_id=caller_id,
            trace_id=trace_id,
        )
        self.db.commit()
        logger.info("reply_deleted", comment_id=comment.id, reply_id=reply_id)

    def delete_comment(self, comment_id: str, caller_id: str, trace_id: Optional[str] = None) -> None:
        """Delete a comment and its thread. Only its author or a privileged role may do so."""
        comment = self.get_comment(comment_id)
        delivery = self.db.get(DeliveryModel, comment.delivery_id)
        self._require_author_or_privileged(caller_id, comment.author_id, delivery.project_id)
        self._lock_for_edit(comment.delivery_id)

        before = {k: v for k, v in comment.to_dict().items() if k != "replies"}
        self.db.delete(comment)
        self.audit.log_delete(
            entity_kind="Comment",
            entity_id=comment_id,
            before=before,
            actor_role=AuthorRole(self.access.role_of(caller_id)).value,
            actor_id=caller_id,
            trace_id=trace_id,
        )
        self.db.commit()
        logger.info("comment_deleted", delivery_id=delivery.id, comment_id=comment_id)
