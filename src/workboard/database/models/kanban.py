"""Kanban models for Workboard.

Defines boards, board membership, labels, ordered lists, ordered cards and
the card sub-records (comments, checklist items, attachments).

Ordering is expressed by integer ``position`` columns. Boards and lists
also carry a ``version`` counter: every position change inside the
container bumps it with a compare-and-swap so a stale ordering plan is
detected and retried instead of being written.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workboard.database.models.base import Base, TimestampMixin


class BoardRole(enum.Enum):
    """Role of a user on a board."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class AttachmentSource(enum.Enum):
    """Where an attachment's content lives.

    Only ``upload`` attachments own an object in storage.
    """

    upload = "upload"
    folder = "folder"
    google_drive = "google-drive"


card_assignees = Table(
    "kanban_card_assignees",
    Base.metadata,
    Column("card_id", ForeignKey("kanban_cards.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

card_labels = Table(
    "kanban_card_labels",
    Base.metadata,
    Column("card_id", ForeignKey("kanban_cards.id", ondelete="CASCADE"), primary_key=True),
    Column("label_id", ForeignKey("kanban_labels.id", ondelete="CASCADE"), primary_key=True),
)


class KanbanBoard(TimestampMixin, Base):
    """A Kanban board, freestanding or linked to one project.

    Attributes:
        title: Board title.
        description: Optional description.
        background: Background colour.
        owner_id: Owner; exclusive authority over delete and labels.
        project_id: Linked project for project boards.
        is_project_board: True for the auto-provisioned project board.
        version: Ordering counter for the board's lists.
        members: Board membership rows.
    """

    __tablename__ = "kanban_boards"

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    background: Mapped[str] = mapped_column(Text, default="#0079bf", nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_project_board: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    members: Mapped[list["KanbanBoardMember"]] = relationship(
        "KanbanBoardMember",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class KanbanBoardMember(TimestampMixin, Base):
    """Membership of a user on a board."""

    __tablename__ = "kanban_board_members"
    __table_args__ = (UniqueConstraint("board_id", "user_id"),)

    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_boards.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[BoardRole] = mapped_column(default=BoardRole.MEMBER, nullable=False)


class KanbanLabel(TimestampMixin, Base):
    """A coloured label defined on a board."""

    __tablename__ = "kanban_labels"

    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_boards.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(Text, default="#61bd4f", nullable=False)


class KanbanList(TimestampMixin, Base):
    """An ordered column on a board.

    Attributes:
        board_id: Owning board.
        title: Column title; the terminal column is recognized by title.
        position: Order among the board's lists.
        version: Ordering counter for the list's cards.
    """

    __tablename__ = "kanban_lists"

    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_boards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class KanbanCard(TimestampMixin, Base):
    """A card; belongs to exactly one list at a time.

    Attributes:
        list_id: Current list. Rewriting it is how a move is expressed.
        title: Card title.
        description: Optional description.
        position: Dense order within the list.
        due_date: Optional deadline.
        completed: Forced true when the card enters the terminal column.
        approved: Approval flag that lets non-admins move into the terminal column.
        approved_by_id: Who approved the card.
        approved_at: When the card was approved.
        creator_id: User who created the card.
        task_id: Originating task for cards mirrored from the task system.
        project_id: Project of the originating task.
        assignees: Assigned users.
        labels: Attached labels.
    """

    __tablename__ = "kanban_cards"

    list_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    creator_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    task_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    assignees: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        secondary=card_assignees,
        lazy="selectin",
    )
    labels: Mapped[list[KanbanLabel]] = relationship(
        KanbanLabel,
        secondary=card_labels,
        lazy="selectin",
    )


class KanbanComment(TimestampMixin, Base):
    """A comment on a card."""

    __tablename__ = "kanban_comments"

    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class KanbanChecklistItem(TimestampMixin, Base):
    """A checklist entry on a card, appended at max(position) + 1."""

    __tablename__ = "kanban_checklist_items"

    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class KanbanAttachment(TimestampMixin, Base):
    """A file attached to a card.

    Attributes:
        card_id: Owning card.
        uploaded_by_id: Uploader; may delete the attachment.
        file_name: Normalized display name.
        file_size: Size in bytes.
        mime_type: Content type.
        storage_path: Object path in storage (empty for google-drive).
        source: Where the content lives.
        external_link: Link for google-drive attachments.
    """

    __tablename__ = "kanban_attachments"

    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mime_type: Mapped[str] = mapped_column(
        Text,
        default="application/octet-stream",
        nullable=False,
    )
    storage_path: Mapped[str] = mapped_column(Text, default="", nullable=False)
    source: Mapped[AttachmentSource] = mapped_column(
        default=AttachmentSource.upload,
        nullable=False,
    )
    external_link: Mapped[str | None] = mapped_column(Text, nullable=True)
