"""Server-Sent Events (SSE) endpoint for per-user real-time updates.

Each connected client subscribes to its own user channel. The broadcaster
implements the SocketEmitter protocol, so notification fan-out
(``new_notification``) and board changes (``kanban:board_updated``) are
delivered to exactly the users they address.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from workboard.auth import CallerIdentity
from workboard.logging import get_logger
from workboard.web.dependencies import get_caller

logger = get_logger(__name__)


@dataclass
class SSEEvent:
    """Server-Sent Event data structure."""

    event: str
    data: dict[str, Any]
    id: str | None = None
    retry: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary format for SSE transmission."""
        result: dict[str, Any] = {
            "event": self.event,
            "data": json.dumps(self.data, ensure_ascii=False),
        }
        if self.id is not None:
            result["id"] = self.id
        if self.retry is not None:
            result["retry"] = self.retry
        return result


class UserEventBroadcaster:
    """Per-user SSE channels.

    A user may hold several connections (tabs, devices); every connection
    of the addressed user receives the event.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queues: dict[UUID, list[asyncio.Queue[SSEEvent | None]]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.queue_size = queue_size
        self.logger = get_logger(__name__)

    def client_count(self, user_id: UUID | None = None) -> int:
        if user_id is not None:
            return len(self._queues.get(user_id, []))
        return sum(len(queues) for queues in self._queues.values())

    async def subscribe(self, user_id: UUID) -> AsyncIterator[SSEEvent]:
        """Subscribe a connection to a user's channel.

        Yields:
            SSEEvent objects addressed to the user.
        """
        queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue(maxsize=self.queue_size)
        async with self._lock:
            self._queues[user_id].append(queue)
        self.logger.info(
            "sse_client_connected",
            user_id=str(user_id),
            total_clients=self.client_count(),
        )
        try:
            while True:
                event = await queue.get()
                if event is None:  # Shutdown signal
                    break
                yield event
        finally:
            async with self._lock:
                self._queues[user_id].remove(queue)
                if not self._queues[user_id]:
                    del self._queues[user_id]
            self.logger.info(
                "sse_client_disconnected",
                user_id=str(user_id),
                total_clients=self.client_count(),
            )

    async def emit_to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every connection of one user.

        A connection whose queue is full drops the event.
        """
        data = {**payload, "timestamp": datetime.now(timezone.utc).isoformat()}
        sse_event = SSEEvent(event=event, data=data)
        async with self._lock:
            queues = list(self._queues.get(user_id, []))
        for queue in queues:
            try:
                queue.put_nowait(sse_event)
            except asyncio.QueueFull:
                self.logger.warning("sse_queue_full", user_id=str(user_id), event_name=event)
        self.logger.debug(
            "sse_event_emitted",
            user_id=str(user_id),
            event_name=event,
            client_count=len(queues),
        )

    async def close(self) -> None:
        """Signal every open connection to finish."""
        async with self._lock:
            queues = [queue for user_queues in self._queues.values() for queue in user_queues]
        for queue in queues:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                continue


def get_broadcaster(request: Request) -> UserEventBroadcaster:
    """Dependency that retrieves the broadcaster from app state."""
    return request.app.state.broadcaster  # type: ignore[no-any-return]


def create_events_router() -> APIRouter:
    """Create the events router with SSE streaming endpoint.

    Returns:
        FastAPI router configured with the /events/stream endpoint.
    """
    router = APIRouter(prefix="/events", tags=["events"])

    @router.get("/stream")
    async def stream_events(
        request: Request,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        broadcaster: UserEventBroadcaster = Depends(get_broadcaster),  # noqa: B008
    ) -> EventSourceResponse:
        """Stream the caller's events until the client disconnects."""

        async def event_generator() -> AsyncIterator[dict[str, Any]]:
            async for event in broadcaster.subscribe(caller.user_id):
                if await request.is_disconnected():
                    break
                yield event.to_dict()

        return EventSourceResponse(event_generator())

    return router
