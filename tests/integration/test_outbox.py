"""Integration tests for notification fan-out and the outbox worker.

Tests cover:
- Actor exclusion and empty recipient sets
- Per-channel completion so retries never duplicate a channel
- Lease-based claiming of delivery attempts
- Failure after the attempt limit
- Worker batches and outbox statistics
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from workboard.database.models import Notification, OutboxEvent, OutboxStatus, User
from workboard.database.models.base import utcnow
from workboard.database.queries.notification import list_notifications
from workboard.database.queries.outbox import get_outbox_stats
from workboard.notifications.fanout import NEW_NOTIFICATION_EVENT, NotificationFanout
from workboard.notifications.outbox import OutboxWorker
from workboard.web.routes.events import UserEventBroadcaster


class FlakyEmitter:
    """Socket emitter that raises for selected users and records the rest."""

    def __init__(self, fail_for: set[uuid.UUID]) -> None:
        self.fail_for = set(fail_for)
        self.events: list[tuple[uuid.UUID, str]] = []

    async def emit_to_user(self, user_id: uuid.UUID, event: str, payload: dict) -> None:
        if user_id in self.fail_for:
            raise ConnectionError("socket closed")
        self.events.append((user_id, event))


async def _enqueue(
    fanout: NotificationFanout,
    session_factory,
    recipients: list[uuid.UUID],
    actor_id: uuid.UUID | None,
) -> uuid.UUID | None:
    async with session_factory() as session:
        async with session.begin():
            return await fanout.enqueue(
                session,
                recipients=recipients,
                actor_id=actor_id,
                event_type="KANBAN_COMMENT",
                title="Bình luận mới",
                message="Manager đã bình luận",
                payload={"commentId": "c-1"},
            )


async def _event(session_factory, event_id: uuid.UUID) -> OutboxEvent:
    async with session_factory() as session:
        return await session.get(OutboxEvent, event_id)


async def _make_due(session_factory, event_id: uuid.UUID) -> None:
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == event_id)
                .values(next_attempt_at=utcnow() - timedelta(minutes=1))
            )


async def _notification_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Notification))
        return result.scalar_one()


class TestEnqueue:
    """Test recipient resolution at enqueue time."""

    @pytest.mark.asyncio
    async def test_actor_and_duplicates_removed(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        follower: User,
    ) -> None:
        event_id = await _enqueue(
            fanout,
            session_factory,
            [implementer.id, manager.id, implementer.id, None, follower.id],
            actor_id=manager.id,
        )

        event = await _event(session_factory, event_id)
        assert event.recipient_ids == [str(implementer.id), str(follower.id)]
        assert event.status == OutboxStatus.pending

    @pytest.mark.asyncio
    async def test_actor_only_records_nothing(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
    ) -> None:
        """A set that is only the actor produces no event."""
        assert await _enqueue(fanout, session_factory, [manager.id], manager.id) is None

        async with session_factory() as session:
            stats = await get_outbox_stats(session)
        assert stats["total"] == 0


class TestDelivery:
    """Test delivery attempts and retries."""

    @pytest.mark.asyncio
    async def test_delivers_all_channels(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        push,
        emitter,
    ) -> None:
        event_id = await _enqueue(fanout, session_factory, [implementer.id], manager.id)

        status = await fanout.deliver_event(event_id)

        assert status == OutboxStatus.delivered
        event = await _event(session_factory, event_id)
        assert (event.persisted, event.pushed, event.emitted) == (True, True, True)
        assert event.delivered_at is not None
        assert event.attempts == 1
        assert push.sent[0]["data"]["commentId"] == "c-1"
        assert push.sent[0]["data"]["eventId"] == str(event_id)
        assert emitter.events[0][:2] == (implementer.id, NEW_NOTIFICATION_EVENT)

        async with session_factory() as session:
            [notification] = await list_notifications(session, implementer.id)
        assert notification.type == "KANBAN_COMMENT"
        assert notification.title == "Bình luận mới"
        assert notification.is_read is False

    @pytest.mark.asyncio
    async def test_retry_repeats_only_failed_channel(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        follower: User,
        push,
        emitter,
    ) -> None:
        """A push failure is retried without duplicating rows or socket events."""
        push.accept = False
        event_id = await _enqueue(fanout, session_factory, [implementer.id, follower.id], manager.id)

        assert await fanout.deliver_event(event_id) == OutboxStatus.pending
        event = await _event(session_factory, event_id)
        assert (event.persisted, event.pushed, event.emitted) == (True, False, True)
        assert event.last_error is not None
        assert await _notification_count(session_factory) == 2
        assert len(emitter.events) == 2

        push.accept = True
        await _make_due(session_factory, event_id)
        assert await fanout.deliver_event(event_id) == OutboxStatus.delivered

        assert await _notification_count(session_factory) == 2
        assert len(emitter.events) == 2
        assert len(push.sent) == 2
        event = await _event(session_factory, event_id)
        assert event.attempts == 2
        assert event.last_error is None

    @pytest.mark.asyncio
    async def test_socket_retry_skips_reached_recipients(
        self,
        session_factory,
        manager: User,
        implementer: User,
        follower: User,
        push,
    ) -> None:
        """A socket send failing for one user is retried for that user only."""
        emitter = FlakyEmitter(fail_for={follower.id})
        fanout = NotificationFanout(session_factory, push=push, emitter=emitter, max_attempts=3)
        event_id = await _enqueue(fanout, session_factory, [implementer.id, follower.id], manager.id)

        assert await fanout.deliver_event(event_id) == OutboxStatus.pending
        event = await _event(session_factory, event_id)
        assert event.emitted is False
        assert event.emitted_to == [str(implementer.id)]

        emitter.fail_for.clear()
        await _make_due(session_factory, event_id)
        assert await fanout.deliver_event(event_id) == OutboxStatus.delivered

        assert emitter.events == [
            (implementer.id, NEW_NOTIFICATION_EVENT),
            (follower.id, NEW_NOTIFICATION_EVENT),
        ]
        event = await _event(session_factory, event_id)
        assert event.emitted is True
        assert sorted(event.emitted_to) == sorted([str(implementer.id), str(follower.id)])

    @pytest.mark.asyncio
    async def test_live_stream_reaches_every_recipient(
        self,
        session_factory,
        manager: User,
        implementer: User,
        follower: User,
        push,
    ) -> None:
        """Delivery through the SSE broadcaster reaches each subscriber once."""
        broadcaster = UserEventBroadcaster()
        fanout = NotificationFanout(
            session_factory, push=push, emitter=broadcaster, max_attempts=3
        )
        streams = {
            user.id: broadcaster.subscribe(user.id).__aiter__() for user in (implementer, follower)
        }
        pending = {
            user_id: asyncio.ensure_future(asyncio.wait_for(stream.__anext__(), timeout=1))
            for user_id, stream in streams.items()
        }
        for _ in range(5):
            await asyncio.sleep(0)

        event_id = await _enqueue(fanout, session_factory, [implementer.id, follower.id], manager.id)
        assert await fanout.deliver_event(event_id) == OutboxStatus.delivered

        for user_id, task in pending.items():
            received = await task
            assert received.event == NEW_NOTIFICATION_EVENT
            assert received.data["eventId"] == str(event_id)
        event = await _event(session_factory, event_id)
        assert event.emitted is True

        await broadcaster.close()
        for stream in streams.values():
            await stream.aclose()

    @pytest.mark.asyncio
    async def test_leased_event_is_not_claimed_again(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        push,
    ) -> None:
        """While the retry lease runs, a second deliverer gets nothing."""
        push.accept = False
        event_id = await _enqueue(fanout, session_factory, [implementer.id], manager.id)
        await fanout.deliver_event(event_id)

        assert await fanout.deliver_event(event_id) is None
        assert len(push.sent) == 1

    @pytest.mark.asyncio
    async def test_fails_after_max_attempts(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        push,
    ) -> None:
        push.accept = False
        event_id = await _enqueue(fanout, session_factory, [implementer.id], manager.id)

        statuses = []
        for _ in range(fanout.max_attempts):
            await _make_due(session_factory, event_id)
            statuses.append(await fanout.deliver_event(event_id))

        assert statuses[-1] == OutboxStatus.failed
        assert all(status == OutboxStatus.pending for status in statuses[:-1])
        await _make_due(session_factory, event_id)
        assert await fanout.deliver_event(event_id) is None

    @pytest.mark.asyncio
    async def test_deliver_swallows_errors(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Immediate delivery never fails the caller."""
        event_id = await _enqueue(fanout, session_factory, [implementer.id], manager.id)

        async def boom(_: uuid.UUID) -> None:
            raise RuntimeError("database went away")

        monkeypatch.setattr(fanout, "deliver_event", boom)
        await fanout.deliver([event_id, None])


class TestOutboxWorker:
    """Test the background worker."""

    @pytest.mark.asyncio
    async def test_process_queue_delivers_due_events(
        self,
        fanout: NotificationFanout,
        session_factory,
        manager: User,
        implementer: User,
        follower: User,
    ) -> None:
        first = await _enqueue(fanout, session_factory, [implementer.id], manager.id)
        await _enqueue(fanout, session_factory, [follower.id], manager.id)
        worker = OutboxWorker(fanout, session_factory, batch_size=10, poll_interval_seconds=0.1)

        counts = await worker.process_queue()

        assert counts["delivered"] == 2
        assert counts["skipped"] == 0
        event = await _event(session_factory, first)
        assert event.status == OutboxStatus.delivered

        async with session_factory() as session:
            stats = await get_outbox_stats(session)
        assert stats == {"pending": 0, "delivered": 2, "failed": 0, "total": 2}

    @pytest.mark.asyncio
    async def test_empty_queue(self, fanout: NotificationFanout, session_factory) -> None:
        worker = OutboxWorker(fanout, session_factory)

        counts = await worker.process_queue()

        assert counts == {"pending": 0, "delivered": 0, "failed": 0, "skipped": 0}
