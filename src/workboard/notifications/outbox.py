"""Outbox worker for background notification delivery.

The worker polls the notification outbox at a configurable interval and
runs one delivery attempt for every due event. Events that keep failing
are marked failed by the fan-out once they reach their attempt limit.

Example usage:
    >>> from workboard.notifications.outbox import OutboxWorker
    >>>
    >>> worker = OutboxWorker(
    ...     fanout=fanout,
    ...     session_factory=session_factory,
    ...     batch_size=50,
    ...     poll_interval_seconds=5.0,
    ... )
    >>> await worker.run()
"""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.database.models.notification import OutboxStatus
from workboard.database.queries.outbox import get_due_event_ids
from workboard.notifications.fanout import NotificationFanout

logger = structlog.get_logger(__name__)


class OutboxWorker:
    """Background worker draining the notification outbox.

    Attributes:
        fanout: Fan-out used to deliver each event
        session_factory: Factory for polling sessions
        batch_size: Number of events to deliver per cycle
        poll_interval_seconds: Delay between polling cycles
        is_running: Flag indicating if worker is active
    """

    def __init__(
        self,
        fanout: NotificationFanout,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int = 50,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        """Initialize outbox worker.

        Args:
            fanout: Fan-out used to deliver each event
            session_factory: Factory for polling sessions
            batch_size: Events to deliver per cycle (default: 50)
            poll_interval_seconds: Polling interval (default: 5.0)
        """
        self.fanout = fanout
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self.is_running = False

        logger.info(
            "outbox_worker_initialized",
            batch_size=batch_size,
            poll_interval=poll_interval_seconds,
        )

    async def run(self) -> None:
        """Start the worker main loop.

        Continuously polls for due events and delivers them until stop()
        is called.
        """
        self.is_running = True
        logger.info("outbox_worker_started")

        try:
            while self.is_running:
                try:
                    await self.process_queue()
                except Exception as e:
                    logger.error(
                        "outbox_worker_cycle_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                await asyncio.sleep(self.poll_interval_seconds)

        finally:
            logger.info("outbox_worker_stopped")

    def stop(self) -> None:
        """Signal the worker to stop processing.

        The worker will complete the current cycle before stopping.
        """
        logger.info("outbox_worker_stop_requested")
        self.is_running = False

    async def process_queue(self) -> dict[str, int]:
        """Deliver one batch of due events.

        Returns:
            Count of attempts per resulting status, plus 'skipped' for events
            another deliverer claimed first.
        """
        async with self.session_factory() as session:
            event_ids = await get_due_event_ids(session, limit=self.batch_size)

        counts = {status.value: 0 for status in OutboxStatus}
        counts["skipped"] = 0

        if not event_ids:
            logger.debug("outbox_empty")
            return counts

        logger.info("outbox_batch_fetched", count=len(event_ids))

        for event_id in event_ids:
            try:
                status = await self.fanout.deliver_event(event_id)
            except Exception as e:
                logger.error(
                    "outbox_event_error",
                    event_id=str(event_id),
                    error=f"{type(e).__name__}: {e}",
                )
                continue
            counts[status.value if status is not None else "skipped"] += 1

        logger.info("outbox_batch_completed", **counts)
        return counts
