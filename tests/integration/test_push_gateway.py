"""Integration tests for the push relay gateway."""

from __future__ import annotations

import hashlib
import hmac
import json
from uuid import uuid4

import httpx
import pytest
import respx

from workboard.config import PushConfig
from workboard.notifications.transport import PushGateway

RELAY_URL = "https://push.example.com/send"


@pytest.mark.asyncio
async def test_disabled_gateway_skips_request() -> None:
    """Without a relay URL every send succeeds without a request."""
    gateway = PushGateway(PushConfig())

    assert gateway.enabled is False
    assert await gateway.push_to_users([uuid4()], title="t", body="b") is True


@respx.mock
@pytest.mark.asyncio
async def test_empty_recipients_skip_request() -> None:
    route = respx.post(RELAY_URL).mock(return_value=httpx.Response(200))
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL))

    assert await gateway.push_to_users([], title="t", body="b") is True
    assert not route.called
    await gateway.close()


@respx.mock
@pytest.mark.asyncio
async def test_push_success_with_signature() -> None:
    """The payload lists recipients and is signed with the shared secret."""
    route = respx.post(RELAY_URL).mock(return_value=httpx.Response(202))
    secret = "relay-secret"
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL, secret=secret, retry_count=0))
    user_id = uuid4()

    accepted = await gateway.push_to_users(
        [user_id],
        title="Thẻ mới",
        body="Manager đã tạo thẻ",
        data={"type": "KANBAN_CARD_CREATED"},
    )

    assert accepted is True
    request = route.calls.last.request
    body = json.loads(request.content)
    assert body["user_ids"] == [str(user_id)]
    assert body["title"] == "Thẻ mới"
    assert body["data"] == {"type": "KANBAN_CARD_CREATED"}
    assert "timestamp" in body

    expected = hmac.new(secret.encode(), request.content, hashlib.sha256).hexdigest()
    assert request.headers["X-Workboard-Signature"] == expected
    assert "X-Workboard-Timestamp" in request.headers
    await gateway.close()


@respx.mock
@pytest.mark.asyncio
async def test_no_signature_without_secret() -> None:
    route = respx.post(RELAY_URL).mock(return_value=httpx.Response(200))
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL, retry_count=0))

    await gateway.push_to_users([uuid4()], title="t", body="b")

    assert "X-Workboard-Signature" not in route.calls.last.request.headers
    await gateway.close()


@respx.mock
@pytest.mark.asyncio
async def test_rejection_returns_false() -> None:
    route = respx.post(RELAY_URL).mock(return_value=httpx.Response(500))
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL, retry_count=0))

    assert await gateway.push_to_users([uuid4()], title="t", body="b") is False
    assert route.call_count == 1
    await gateway.close()


@respx.mock
@pytest.mark.asyncio
async def test_retry_then_success() -> None:
    """A transport error is retried before giving up."""
    route = respx.post(RELAY_URL).mock(
        side_effect=[httpx.ConnectError("connection refused"), httpx.Response(200)]
    )
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL, retry_count=1))

    assert await gateway.push_to_users([uuid4()], title="t", body="b") is True
    assert route.call_count == 2
    await gateway.close()


@pytest.mark.asyncio
async def test_injected_client_is_used() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway = PushGateway(PushConfig(relay_url=RELAY_URL, retry_count=0), client=client)

    assert await gateway.push_to_users([uuid4()], title="t", body="b") is True
    assert len(seen) == 1

    await gateway.close()
    assert client.is_closed
