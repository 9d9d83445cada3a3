"""SQLAlchemy ORM models for Workboard.

This module defines the database schema: users, projects and their
workflow rows, the audit trail, Kanban boards with their ordered lists and
cards, persisted notifications, and the notification outbox.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from workboard.database.models.activity import ProjectActivity
from workboard.database.models.base import Base, TimestampMixin
from workboard.database.models.kanban import (
    AttachmentSource,
    BoardRole,
    KanbanAttachment,
    KanbanBoard,
    KanbanBoardMember,
    KanbanCard,
    KanbanChecklistItem,
    KanbanComment,
    KanbanLabel,
    KanbanList,
    card_assignees,
    card_labels,
)
from workboard.database.models.notification import Notification, OutboxEvent, OutboxStatus
from workboard.database.models.project import (
    Project,
    ProjectStatus,
    project_cooperators,
    project_followers,
    project_implementers,
)
from workboard.database.models.user import User
from workboard.database.models.workflow import ProjectWorkflow, WorkflowStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Project",
    "ProjectStatus",
    "project_implementers",
    "project_followers",
    "project_cooperators",
    "ProjectWorkflow",
    "WorkflowStatus",
    "ProjectActivity",
    "KanbanBoard",
    "KanbanBoardMember",
    "BoardRole",
    "KanbanLabel",
    "KanbanList",
    "KanbanCard",
    "card_assignees",
    "card_labels",
    "KanbanComment",
    "KanbanChecklistItem",
    "KanbanAttachment",
    "AttachmentSource",
    "Notification",
    "OutboxEvent",
    "OutboxStatus",
]
