"""Unit tests for the per-user SSE broadcaster."""

from __future__ import annotations

import asyncio
import json
from uuid import uuid4

import pytest

from workboard.web.routes.events import SSEEvent, UserEventBroadcaster


async def _next(iterator):
    return await asyncio.wait_for(iterator.__anext__(), timeout=1)


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestSSEEvent:
    def test_to_dict(self):
        event = SSEEvent(event="new_notification", data={"title": "Thẻ mới"}, id="1", retry=500)

        result = event.to_dict()

        assert result["event"] == "new_notification"
        assert json.loads(result["data"]) == {"title": "Thẻ mới"}
        assert "Thẻ mới" in result["data"]
        assert result["id"] == "1"
        assert result["retry"] == 500

    def test_optional_fields_omitted(self):
        assert set(SSEEvent(event="x", data={}).to_dict()) == {"event", "data"}


class TestUserEventBroadcaster:
    @pytest.mark.asyncio
    async def test_events_reach_only_addressed_user(self):
        broadcaster = UserEventBroadcaster()
        alice, bob = uuid4(), uuid4()
        alice_stream = broadcaster.subscribe(alice).__aiter__()
        bob_stream = broadcaster.subscribe(bob).__aiter__()
        alice_next = asyncio.ensure_future(_next(alice_stream))
        bob_next = asyncio.ensure_future(_next(bob_stream))
        await _settle()

        await broadcaster.emit_to_user(alice, "kanban:board_updated", {"boardId": "b-1"})
        event = await alice_next

        assert event.event == "kanban:board_updated"
        assert event.data["boardId"] == "b-1"
        assert "timestamp" in event.data
        assert not bob_next.done()

        await broadcaster.close()
        with pytest.raises(StopAsyncIteration):
            await bob_next
        await alice_stream.aclose()
        assert broadcaster.client_count() == 0

    @pytest.mark.asyncio
    async def test_every_connection_of_a_user_receives(self):
        broadcaster = UserEventBroadcaster()
        user = uuid4()
        tabs = [broadcaster.subscribe(user).__aiter__() for _ in range(2)]
        pending = [asyncio.ensure_future(_next(tab)) for tab in tabs]
        await _settle()
        assert broadcaster.client_count(user) == 2

        await broadcaster.emit_to_user(user, "new_notification", {"n": 1})

        assert [(await item).data["n"] for item in pending] == [1, 1]
        await broadcaster.close()
        for tab in tabs:
            await tab.aclose()

    @pytest.mark.asyncio
    async def test_emit_without_connections_is_noop(self):
        broadcaster = UserEventBroadcaster()

        await broadcaster.emit_to_user(uuid4(), "new_notification", {})

        assert broadcaster.client_count() == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self):
        broadcaster = UserEventBroadcaster(queue_size=1)
        user = uuid4()
        stream = broadcaster.subscribe(user).__aiter__()
        first = asyncio.ensure_future(_next(stream))
        await _settle()

        await broadcaster.emit_to_user(user, "a", {})
        await broadcaster.emit_to_user(user, "b", {})

        assert (await first).event == "a"
        second = asyncio.ensure_future(_next(stream))
        await _settle()
        await broadcaster.emit_to_user(user, "c", {})
        assert (await second).event == "c"
        await stream.aclose()
