"""Notification fan-out through the outbox.

A mutation calls ``enqueue`` inside its own transaction, which records one
OutboxEvent for the final recipient set. After the mutation commits, the
service calls ``deliver`` for best-effort immediate delivery; anything that
fails stays pending and is retried by the OutboxWorker.

Each event tracks its three channels separately. A channel that succeeded
on an earlier attempt is never repeated, and the persisted channel writes
its Notification rows and its completion flag in one transaction.

Example usage:
    >>> fanout = NotificationFanout(session_factory, push_gateway, broadcaster)
    >>> async with session_factory() as session:
    ...     async with session.begin():
    ...         event_id = await fanout.enqueue(
    ...             session,
    ...             recipients=[manager_id, creator_id],
    ...             actor_id=caller.user_id,
    ...             event_type="WORKFLOW_APPROVAL",
    ...             title="Dự án đã được duyệt",
    ...             message="...",
    ...         )
    >>> await fanout.deliver([event_id])
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.database.models.base import utcnow
from workboard.database.models.notification import OutboxEvent, OutboxStatus
from workboard.database.queries.notification import create_notifications
from workboard.database.queries.outbox import (
    claim_event,
    enqueue_event,
    get_event,
    mark_channels,
    record_attempt,
)
from workboard.notifications.membership import exclude_actor
from workboard.notifications.transport import PushGateway, SocketEmitter

logger = structlog.get_logger(__name__)

NEW_NOTIFICATION_EVENT = "new_notification"


def _ref(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


class NotificationFanout:
    """Enqueues and delivers notifications to a recipient set.

    Attributes:
        session_factory: Factory for delivery sessions.
        push: Push relay gateway, or None to skip the push channel.
        emitter: Socket emitter, or None to skip the socket channel.
        max_attempts: Attempts before an event is marked failed.
        retry_base_seconds: Base of the exponential retry lease.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        push: PushGateway | None = None,
        emitter: SocketEmitter | None = None,
        max_attempts: int = 5,
        retry_base_seconds: float = 5.0,
    ) -> None:
        self.session_factory = session_factory
        self.push = push
        self.emitter = emitter
        self.max_attempts = max_attempts
        self.retry_base_seconds = retry_base_seconds
        self.logger = logger.bind(component="notification_fanout")

    async def enqueue(
        self,
        session: AsyncSession,
        recipients: Iterable[uuid.UUID | None],
        actor_id: uuid.UUID | None,
        event_type: str,
        title: str,
        message: str,
        project_id: uuid.UUID | None = None,
        task_id: uuid.UUID | None = None,
        board_id: uuid.UUID | None = None,
        card_id: uuid.UUID | None = None,
        payload: dict[str, Any] | None = None,
    ) -> uuid.UUID | None:
        """Record a notification for delivery after the current transaction.

        Args:
            session: The mutating operation's session, inside its transaction.
            recipients: Candidate recipients (duplicates allowed).
            actor_id: Acting user, never notified of their own action.
            event_type: Notification type.
            title: Short title.
            message: Full message.
            project_id: Related project.
            task_id: Related task.
            board_id: Related board.
            card_id: Related card.
            payload: Extra data for push and socket channels.

        Returns:
            The outbox event ID, or None when no recipient remains.
        """
        final = exclude_actor(recipients, actor_id)
        if not final:
            self.logger.debug("fanout_no_recipients", event_type=event_type)
            return None

        event = await enqueue_event(
            session,
            event_type=event_type,
            title=title,
            message=message,
            recipient_ids=final,
            actor_id=actor_id,
            project_id=project_id,
            task_id=task_id,
            board_id=board_id,
            card_id=card_id,
            payload=payload,
        )
        return event.id

    async def deliver(self, event_ids: Iterable[uuid.UUID | None]) -> None:
        """Best-effort delivery of freshly committed events.

        Never raises; failures are logged and left to the outbox worker.
        """
        for event_id in event_ids:
            if event_id is None:
                continue
            try:
                await self.deliver_event(event_id)
            except Exception as e:
                self.logger.error(
                    "fanout_delivery_error",
                    event_id=str(event_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def _lease_seconds(self, attempts: int) -> float:
        return min(self.retry_base_seconds * (2**attempts), 3600.0)

    async def deliver_event(self, event_id: uuid.UUID) -> OutboxStatus | None:
        """Run one delivery attempt for an event.

        Args:
            event_id: UUID of the outbox event.

        Returns:
            The resulting status, or None if the event was not due, already
            finished, or claimed by another deliverer.
        """
        async with self.session_factory() as session:
            async with session.begin():
                event = await get_event(session, event_id)
                if event is None or event.status != OutboxStatus.pending:
                    return None
                now = utcnow()
                lease_until = now + timedelta(seconds=self._lease_seconds(event.attempts))
                if not await claim_event(session, event, lease_until, now=now):
                    self.logger.debug("fanout_event_already_claimed", event_id=str(event_id))
                    return None

        recipients = [uuid.UUID(value) for value in event.recipient_ids]
        errors: list[str] = []

        persisted = event.persisted or await self._persist(event, recipients, errors)
        pushed = event.pushed or await self._push(event, recipients, errors)
        emitted_to = list(event.emitted_to or [])
        emitted = event.emitted or await self._emit(event, recipients, emitted_to, errors)

        if persisted and pushed and emitted:
            status = OutboxStatus.delivered
        elif event.attempts >= self.max_attempts:
            status = OutboxStatus.failed
        else:
            status = OutboxStatus.pending

        async with self.session_factory() as session:
            async with session.begin():
                await record_attempt(
                    session,
                    event_id,
                    status,
                    error="; ".join(errors) or None,
                    pushed=pushed,
                    emitted=emitted,
                    emitted_to=emitted_to,
                )

        self.logger.info(
            "fanout_attempt_finished",
            event_id=str(event_id),
            event_type=event.event_type,
            status=status.value,
            attempt=event.attempts,
            recipients=len(recipients),
        )
        return status

    def _data(self, event: OutboxEvent) -> dict[str, Any]:
        return {
            "eventId": str(event.id),
            "type": event.event_type,
            "title": event.title,
            "message": event.message,
            "projectId": _ref(event.project_id),
            "taskId": _ref(event.task_id),
            "boardId": _ref(event.board_id),
            "cardId": _ref(event.card_id),
            **(event.payload or {}),
        }

    async def _persist(
        self,
        event: OutboxEvent,
        recipients: list[uuid.UUID],
        errors: list[str],
    ) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await create_notifications(
                        session,
                        recipients,
                        type=event.event_type,
                        title=event.title,
                        message=event.message,
                        project_id=event.project_id,
                        task_id=event.task_id,
                        board_id=event.board_id,
                        card_id=event.card_id,
                    )
                    await mark_channels(session, event.id, persisted=True)
            return True
        except Exception as e:
            errors.append(f"persist: {type(e).__name__}: {e}")
            self.logger.error("fanout_persist_failed", event_id=str(event.id), error=str(e))
            return False

    async def _push(
        self,
        event: OutboxEvent,
        recipients: list[uuid.UUID],
        errors: list[str],
    ) -> bool:
        if self.push is None:
            return True
        try:
            accepted = await self.push.push_to_users(
                recipients,
                title=event.title,
                body=event.message,
                data=self._data(event),
            )
        except Exception as e:
            errors.append(f"push: {type(e).__name__}: {e}")
            self.logger.error("fanout_push_failed", event_id=str(event.id), error=str(e))
            return False
        if not accepted:
            errors.append("push: relay did not accept the payload")
        return accepted

    async def _emit(
        self,
        event: OutboxEvent,
        recipients: list[uuid.UUID],
        emitted_to: list[str],
        errors: list[str],
    ) -> bool:
        """Emit to each recipient not yet reached, appending to ``emitted_to``."""
        if self.emitter is None:
            return True
        data = self._data(event)
        failed = 0
        for user_id in recipients:
            if str(user_id) in emitted_to:
                continue
            try:
                await self.emitter.emit_to_user(user_id, NEW_NOTIFICATION_EVENT, data)
            except Exception as e:
                failed += 1
                errors.append(f"emit {user_id}: {type(e).__name__}: {e}")
                self.logger.error(
                    "fanout_emit_failed",
                    event_id=str(event.id),
                    user_id=str(user_id),
                    error=str(e),
                )
                continue
            emitted_to.append(str(user_id))
        return failed == 0
