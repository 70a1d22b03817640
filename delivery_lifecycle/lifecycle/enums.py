"""
Canonical enums for the delivery lifecycle.

Status values are stored verbatim in the database, so renaming a member
value requires a migration.
"""

from enum import Enum


class UnitStatus(str, Enum):
    """Status of a unit of work: a single-video project or one batch slot."""

    PENDING = "pending"  # batch slot not yet released to the producer
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    REVISION_REQUESTED = "revision_requested"
    PENDING_APPROVAL = "pending_approval"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Action(str, Enum):
    """Named actions that drive unit-of-work transitions."""

    START_WORK = "start_work"
    SUBMIT_FOR_REVIEW = "submit_for_review"
    REQUEST_REVISION = "request_revision"
    SUBMIT_CORRECTIONS = "submit_corrections"
    APPROVE_PROJECT = "approve_project"
    PAY_NEW_REVISION = "pay_new_revision"
    APPROVE_FIRST_VERSION = "approve_first_version"


class DeliveryStatus(str, Enum):
    """Lifecycle of a single submitted delivery."""

    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"


class AuthorRole(str, Enum):
    """Role of whoever wrote a comment or reply."""

    CREATOR = "creator"
    EDITOR = "editor"
    ADMIN = "admin"


class CommentTag(str, Enum):
    """Optional category attached to a comment."""

    CORRECTION = "correction"
    SUGGESTION = "suggestion"
    APPROVED = "approved"
    QUESTION = "question"
    PRAISE = "praise"


class VideoType(str, Enum):
    """Kind of artifact locator a delivery points at."""

    YOUTUBE = "youtube"
    GDRIVE = "gdrive"
    LINK = "link"


class DeliveryMode(str, Enum):
    """How batch slots are released to the producer."""

    SEQUENTIAL = "sequential"
    SIMULTANEOUS = "simultaneous"


class KanbanColumn(str, Enum):
    """Columns of the batch progress board, in display order."""

    AWAITING_EDITOR = "awaiting_editor"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"


class EventType(str, Enum):
    """Events emitted to the notification collaborator."""

    DELIVERY_RECEIVED = "delivery_received"
    DELIVERY_APPROVED = "delivery_approved"
    REVISION_REQUESTED = "revision_requested"
