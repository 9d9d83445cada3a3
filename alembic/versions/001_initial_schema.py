"""Initial schema for Workboard.

Creates users, projects with their member tables, the per-project
workflow row and activity trail, the Kanban tables, persisted
notifications, and the notification outbox.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names
user_role = sa.Enum("ADMIN", "MANAGER", "USER", name="userrole")
project_status = sa.Enum("IN_PROGRESS", "PENDING_APPROVAL", "COMPLETED", name="projectstatus")
workflow_status = sa.Enum(
    "RECEIVED", "IN_PROGRESS", "COMPLETED", "SENT_TO_CUSTOMER",
    name="workflowstatus",
)
board_role = sa.Enum("ADMIN", "MEMBER", name="boardrole")
attachment_source = sa.Enum("upload", "folder", "google_drive", name="attachmentsource")
outbox_status = sa.Enum("pending", "delivered", "failed", name="outboxstatus")

json_type = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _member_table(name: str) -> None:
    op.create_table(
        name,
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("role", user_role, nullable=False),
    )

    op.create_table(
        "projects",
        *_timestamps(),
        sa.Column("code", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("manager_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
    )
    _member_table("project_implementers")
    _member_table("project_followers")
    _member_table("project_cooperators")

    op.create_table(
        "project_workflows",
        *_timestamps(),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("current_status", workflow_status, nullable=False),
        sa.Column("received_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("in_progress_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_to_customer_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("in_progress_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "completed_approved_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id"),
            nullable=True,
        ),
    )

    op.create_table(
        "project_activities",
        *_timestamps(),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("field_name", sa.Text(), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
    )
    op.create_index("ix_project_activities_project_id", "project_activities", ["project_id"])

    op.create_table(
        "kanban_boards",
        *_timestamps(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("background", sa.Text(), nullable=False, server_default="#0079bf"),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_project_board", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_kanban_boards_project_id", "kanban_boards", ["project_id"])

    op.create_table(
        "kanban_board_members",
        *_timestamps(),
        sa.Column(
            "board_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_boards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", board_role, nullable=False),
        sa.UniqueConstraint("board_id", "user_id"),
    )

    op.create_table(
        "kanban_labels",
        *_timestamps(),
        sa.Column(
            "board_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_boards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("color", sa.Text(), nullable=False, server_default="#61bd4f"),
    )

    op.create_table(
        "kanban_lists",
        *_timestamps(),
        sa.Column(
            "board_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_boards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_kanban_lists_board_id", "kanban_lists", ["board_id"])

    op.create_table(
        "kanban_cards",
        *_timestamps(),
        sa.Column(
            "list_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_lists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("creator_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index("ix_kanban_cards_list_id", "kanban_cards", ["list_id"])

    op.create_table(
        "kanban_card_assignees",
        sa.Column(
            "card_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_table(
        "kanban_card_labels",
        sa.Column(
            "card_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "label_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_labels.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "kanban_comments",
        *_timestamps(),
        sa.Column(
            "card_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
    )
    op.create_index("ix_kanban_comments_card_id", "kanban_comments", ["card_id"])

    op.create_table(
        "kanban_checklist_items",
        *_timestamps(),
        sa.Column(
            "card_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("checked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_kanban_checklist_items_card_id", "kanban_checklist_items", ["card_id"])

    op.create_table(
        "kanban_attachments",
        *_timestamps(),
        sa.Column(
            "card_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("uploaded_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "mime_type",
            sa.Text(),
            nullable=False,
            server_default="application/octet-stream",
        ),
        sa.Column("storage_path", sa.Text(), nullable=False, server_default=""),
        sa.Column("source", attachment_source, nullable=False),
        sa.Column("external_link", sa.Text(), nullable=True),
    )
    op.create_index("ix_kanban_attachments_card_id", "kanban_attachments", ["card_id"])

    op.create_table(
        "notifications",
        *_timestamps(),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("board_id", sa.Uuid(), nullable=True),
        sa.Column("card_id", sa.Uuid(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "notification_outbox",
        *_timestamps(),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("recipient_ids", json_type, nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("board_id", sa.Uuid(), nullable=True),
        sa.Column("card_id", sa.Uuid(), nullable=True),
        sa.Column("payload", json_type, nullable=False),
        sa.Column("status", outbox_status, nullable=False),
        sa.Column("persisted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pushed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("emitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("emitted_to", json_type, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "next_attempt_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])
    op.create_index(
        "ix_notification_outbox_next_attempt_at",
        "notification_outbox",
        ["next_attempt_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_notification_outbox_next_attempt_at", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_status", table_name="notification_outbox")
    op.drop_table("notification_outbox")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_kanban_attachments_card_id", table_name="kanban_attachments")
    op.drop_table("kanban_attachments")
    op.drop_index("ix_kanban_checklist_items_card_id", table_name="kanban_checklist_items")
    op.drop_table("kanban_checklist_items")
    op.drop_index("ix_kanban_comments_card_id", table_name="kanban_comments")
    op.drop_table("kanban_comments")
    op.drop_table("kanban_card_labels")
    op.drop_table("kanban_card_assignees")
    op.drop_index("ix_kanban_cards_list_id", table_name="kanban_cards")
    op.drop_table("kanban_cards")
    op.drop_index("ix_kanban_lists_board_id", table_name="kanban_lists")
    op.drop_table("kanban_lists")
    op.drop_table("kanban_labels")
    op.drop_table("kanban_board_members")
    op.drop_index("ix_kanban_boards_project_id", table_name="kanban_boards")
    op.drop_table("kanban_boards")
    op.drop_index("ix_project_activities_project_id", table_name="project_activities")
    op.drop_table("project_activities")
    op.drop_table("project_workflows")
    op.drop_table("project_cooperators")
    op.drop_table("project_followers")
    op.drop_table("project_implementers")
    op.drop_table("projects")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        outbox_status,
        attachment_source,
        board_role,
        workflow_status,
        project_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
