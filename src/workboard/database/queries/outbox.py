"""Notification outbox query functions for Workboard.

Provides async functions for enqueueing fan-out events inside a mutation's
transaction, claiming due events for delivery, recording per-channel
progress, and retrieving outbox statistics.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.base import utcnow
from workboard.database.models.notification import OutboxEvent, OutboxStatus

logger = structlog.get_logger(__name__)


async def enqueue_event(
    session: AsyncSession,
    event_type: str,
    title: str,
    message: str,
    recipient_ids: list[UUID],
    actor_id: UUID | None = None,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
    board_id: UUID | None = None,
    card_id: UUID | None = None,
    payload: dict[str, Any] | None = None,
) -> OutboxEvent:
    """Record a fan-out event for asynchronous delivery.

    Args:
        session: Active async database session (the mutation's transaction).
        event_type: Notification type.
        title: Short title.
        message: Full message.
        recipient_ids: Final recipient list.
        actor_id: User whose action produced the event.
        project_id: Related project.
        task_id: Related task.
        board_id: Related board.
        card_id: Related card.
        payload: Extra data for push and socket channels.

    Returns:
        The newly created OutboxEvent instance.
    """
    event = OutboxEvent(
        event_type=event_type,
        title=title,
        message=message,
        recipient_ids=[str(user_id) for user_id in recipient_ids],
        actor_id=actor_id,
        project_id=project_id,
        task_id=task_id,
        board_id=board_id,
        card_id=card_id,
        payload=payload or {},
        emitted_to=[],
        status=OutboxStatus.pending,
        next_attempt_at=utcnow(),
    )
    session.add(event)
    await session.flush()

    logger.info(
        "outbox_event_enqueued",
        event_id=str(event.id),
        event_type=event_type,
        recipient_count=len(recipient_ids),
    )

    return event


async def get_event(session: AsyncSession, event_id: UUID) -> OutboxEvent | None:
    """Retrieve an outbox event by ID."""
    stmt = (
        select(OutboxEvent)
        .where(OutboxEvent.id == event_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_due_event_ids(
    session: AsyncSession,
    limit: int = 50,
    now: datetime | None = None,
) -> list[UUID]:
    """IDs of pending events whose lease has expired, oldest first.

    Args:
        session: Active async database session.
        limit: Maximum number of events to return.
        now: Reference time (defaults to the current time).

    Returns:
        List of event IDs ordered by creation time.
    """
    stmt = (
        select(OutboxEvent.id)
        .where(OutboxEvent.status == OutboxStatus.pending)
        .where(OutboxEvent.next_attempt_at <= (now or utcnow()))
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def claim_event(
    session: AsyncSession,
    event: OutboxEvent,
    lease_until: datetime,
    now: datetime | None = None,
) -> bool:
    """Claim one delivery attempt of an event.

    The claim is a compare-and-swap on the attempt counter, so two
    deliverers that read the same attempt cannot both claim it. The lease
    keeps the event out of the worker's due set while the attempt runs.

    Args:
        session: Active async database session.
        event: Event as read by the claimant.
        lease_until: Time after which the event is due again.
        now: Reference time (defaults to the current time).

    Returns:
        True if this caller owns the attempt.
    """
    stmt = (
        update(OutboxEvent)
        .where(OutboxEvent.id == event.id)
        .where(OutboxEvent.status == OutboxStatus.pending)
        .where(OutboxEvent.attempts == event.attempts)
        .where(OutboxEvent.next_attempt_at <= (now or utcnow()))
        .values(attempts=event.attempts + 1, next_attempt_at=lease_until)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        return False
    event.attempts += 1
    event.next_attempt_at = lease_until
    return True


async def record_attempt(
    session: AsyncSession,
    event_id: UUID,
    status: OutboxStatus,
    error: str | None = None,
    **channels: Any,
) -> None:
    """Record the outcome of a delivery attempt.

    Args:
        session: Active async database session.
        event_id: UUID of the event.
        status: Resulting delivery status.
        error: Error from this attempt, if any.
        **channels: Channel flags that completed (persisted, pushed, emitted)
            and the socket progress list (emitted_to).
    """
    values: dict[str, Any] = dict(channels)
    values["status"] = status
    values["last_error"] = error
    if status == OutboxStatus.delivered:
        values["delivered_at"] = utcnow()

    stmt = (
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)

    log = logger.warning if status == OutboxStatus.failed else logger.debug
    log("outbox_attempt_recorded", event_id=str(event_id), status=status.value, error=error)


async def get_outbox_stats(session: AsyncSession) -> dict[str, int]:
    """Get statistics about the notification outbox.

    Returns:
        Dictionary with counts by status:
        - pending: Events awaiting delivery
        - delivered: Events delivered on every channel
        - failed: Events that exhausted their attempts
        - total: Total number of events
    """
    stmt = select(OutboxEvent.status, func.count()).group_by(OutboxEvent.status)
    result = await session.execute(stmt)

    stats = {status.value: 0 for status in OutboxStatus}
    for status, count in result.all():
        stats[status.value] = count
    stats["total"] = sum(stats.values())
    return stats


async def mark_channels(
    session: AsyncSession,
    event_id: UUID,
    **channels: bool,
) -> None:
    """Set channel completion flags without changing the delivery status."""
    stmt = (
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id)
        .values(**channels)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
