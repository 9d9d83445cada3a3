"""Persisted notification query functions for Workboard."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.notification import Notification


async def create_notifications(
    session: AsyncSession,
    user_ids: Sequence[UUID],
    type: str,
    title: str,
    message: str,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
    board_id: UUID | None = None,
    card_id: UUID | None = None,
) -> list[Notification]:
    """Write one notification row per recipient.

    Args:
        session: Active async database session.
        user_ids: Recipients.
        type: Notification type.
        title: Short title.
        message: Full message.
        project_id: Related project.
        task_id: Related task.
        board_id: Related board.
        card_id: Related card.

    Returns:
        The created Notification instances, in recipient order.
    """
    notifications = [
        Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            project_id=project_id,
            task_id=task_id,
            board_id=board_id,
            card_id=card_id,
        )
        for user_id in user_ids
    ]
    session.add_all(notifications)
    await session.flush()
    return notifications


async def list_notifications(
    session: AsyncSession,
    user_id: UUID,
    limit: int = 50,
) -> list[Notification]:
    """A user's most recent notifications, newest first."""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
