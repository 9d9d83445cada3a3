"""Notification and outbox models for Workboard.

Notification is the persisted channel of the fan-out: one row per
recipient. OutboxEvent is the durable record of a change that still has
to be delivered; it is written in the same transaction as the change and
drained by the outbox worker.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from workboard.database.models.base import Base, JSONType, TimestampMixin, utcnow


class OutboxStatus(enum.Enum):
    """Delivery state of an outbox event."""

    pending = "pending"
    delivered = "delivered"
    failed = "failed"


class Notification(TimestampMixin, Base):
    """A persisted notification shown in a user's notification bell.

    Attributes:
        user_id: Recipient.
        type: Notification type (e.g. 'KANBAN_CARD_MOVED').
        title: Short title.
        message: Full message.
        project_id: Related project, if any.
        task_id: Related task, if any.
        board_id: Related board, if any.
        card_id: Related card, if any.
        is_read: Whether the recipient has read it.
        read_at: When it was read.
    """

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    board_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    card_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class OutboxEvent(TimestampMixin, Base):
    """A notification fan-out waiting for delivery.

    Each channel has its own completion flag so a retry only repeats the
    channels that have not succeeded yet.

    Attributes:
        event_type: Notification type (e.g. 'WORKFLOW_STATUS').
        title: Short title.
        message: Full message.
        recipient_ids: Recipient user IDs as strings, actor already excluded.
        actor_id: User whose action produced the event.
        project_id: Related project, if any.
        task_id: Related task, if any.
        board_id: Related board, if any.
        card_id: Related card, if any.
        payload: Extra data forwarded to push and socket channels.
        status: Delivery state.
        persisted: Notification rows written.
        pushed: Push relay accepted the payload.
        emitted: Socket events emitted to every recipient.
        emitted_to: Recipients whose socket event already went out.
        attempts: Delivery attempts made.
        last_error: Most recent delivery error.
        next_attempt_at: Earliest time the event may be claimed again.
        delivered_at: When all channels succeeded.
    """

    __tablename__ = "notification_outbox"

    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    board_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    card_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[OutboxStatus] = mapped_column(
        default=OutboxStatus.pending,
        nullable=False,
        index=True,
    )
    persisted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pushed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    emitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    emitted_to: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
