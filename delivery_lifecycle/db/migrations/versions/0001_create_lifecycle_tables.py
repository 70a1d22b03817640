"""create lifecycle tables

Revision ID: 0001_lifecycle
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_lifecycle"
down_revision = None
branch_labels = None
depends_on = None

UNIT_STATUSES = (
    "pending",
    "in_progress",
    "in_review",
    "revision_requested",
    "pending_approval",
    "completed",
    "cancelled",
)
AUTHOR_ROLES = ("creator", "editor", "admin")


def upgrade() -> None:
    unit_status = sa.Enum(*UNIT_STATUSES, name="unit_status")
    author_role = sa.Enum(*AUTHOR_ROLES, name="author_role")

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("creator_id", sa.String(length=128), nullable=False),
        sa.Column("assigned_producer_id", sa.String(length=128), nullable=True),
        sa.Column("is_batch", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("batch_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "delivery_mode",
            sa.Enum("sequential", "simultaneous", name="delivery_mode"),
            nullable=True,
        ),
        sa.Column("deadline_days", sa.Integer(), nullable=True),
        sa.Column("status", unit_status, nullable=False, server_default="pending"),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("row_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("revision_count >= 1", name="ck_projects_revision_count"),
    )
    op.create_index("ix_projects_creator_id", "projects", ["creator_id"])
    op.create_index("ix_projects_assigned_producer_id", "projects", ["assigned_producer_id"])
    op.create_index("ix_projects_status", "projects", ["status"])
    op.create_index("ix_projects_status_created_at", "projects", ["status", "created_at"])

    op.create_table(
        "batch_videos",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("assigned_producer_id", sa.String(length=128), nullable=True),
        sa.Column("status", unit_status, nullable=False, server_default="pending"),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("row_version", sa.Integer(), nullable=False),
        sa.Column("latest_delivery_id", sa.String(length=36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "sequence_order", name="uq_batch_videos_order"),
        sa.CheckConstraint("revision_count >= 1", name="ck_batch_videos_revision_count"),
    )
    op.create_index("ix_batch_videos_project_id", "batch_videos", ["project_id"])
    op.create_index("ix_batch_videos_status", "batch_videos", ["status"])

    op.create_table(
        "deliveries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("batch_video_id", sa.String(length=36), sa.ForeignKey("batch_videos.id"), nullable=True),
        sa.Column("scope_key", sa.String(length=64), nullable=False),
        sa.Column("producer_id", sa.String(length=128), nullable=False),
        sa.Column("artifact_url", sa.String(length=2000), nullable=False),
        sa.Column(
            "video_type",
            sa.Enum("youtube", "gdrive", "link", name="video_type"),
            nullable=False,
            server_default="link",
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending_review", "approved", "revision_requested", name="delivery_status"),
            nullable=False,
            server_default="pending_review",
        ),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=128), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("scope_key", "version", name="uq_deliveries_scope_version"),
        sa.UniqueConstraint("scope_key", "idempotency_key", name="uq_deliveries_scope_idempotency"),
        sa.CheckConstraint("version >= 1", name="ck_deliveries_version"),
    )
    op.create_index("ix_deliveries_project_id", "deliveries", ["project_id"])
    op.create_index("ix_deliveries_batch_video_id", "deliveries", ["batch_video_id"])
    op.create_index("ix_deliveries_producer_id", "deliveries", ["producer_id"])
    op.create_index("ix_deliveries_scope_status", "deliveries", ["scope_key", "status"])

    op.create_table(
        "delivery_comments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("delivery_id", sa.String(length=36), sa.ForeignKey("deliveries.id"), nullable=False),
        sa.Column("author_id", sa.String(length=128), nullable=False),
        sa.Column("author_role", author_role, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("offset_seconds", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "tag",
            sa.Enum("correction", "suggestion", "approved", "question", "praise", name="comment_tag"),
            nullable=True,
        ),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_by", sa.String(length=128), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("offset_seconds >= 0", name="ck_delivery_comments_offset"),
    )
    op.create_index("ix_delivery_comments_delivery_id", "delivery_comments", ["delivery_id"])
    op.create_index(
        "ix_delivery_comments_delivery_resolved",
        "delivery_comments",
        ["delivery_id", "is_resolved"],
    )

    op.create_table(
        "delivery_comment_replies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "comment_id",
            sa.String(length=36),
            sa.ForeignKey("delivery_comments.id"),
            nullable=False,
        ),
        sa.Column("author_id", sa.String(length=128), nullable=False),
        sa.Column("author_role", author_role, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_delivery_comment_replies_comment_id",
        "delivery_comment_replies",
        ["comment_id"],
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "actor_role",
            sa.Enum("creator", "editor", "admin", "system", name="audit_actor_role"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column(
            "action",
            sa.Enum("created", "status_changed", "resolution_changed", "deleted", name="audit_action"),
            nullable=False,
        ),
        sa.Column("entity_kind", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("trace_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_audit_log_ts", "audit_log", ["ts"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_trace_id", "audit_log", ["trace_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_entity_ts", "audit_log", ["entity_kind", "entity_id", "ts"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("delivery_comment_replies")
    op.drop_table("delivery_comments")
    op.drop_table("deliveries")
    op.drop_table("batch_videos")
    op.drop_table("projects")

    bind = op.get_bind()
    for name in (
        "audit_action",
        "audit_actor_role",
        "comment_tag",
        "delivery_status",
        "video_type",
        "author_role",
        "delivery_mode",
        "unit_status",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
