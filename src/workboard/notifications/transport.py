"""Delivery channels used by the notification fan-out.

Three channels carry each notification:
- persisted rows (written by the fan-out through the query layer)
- push, sent to an HTTP relay that owns the device subscriptions
- socket events, emitted per user through a SocketEmitter

The push relay request carries an HMAC-SHA256 signature when a secret is
configured and is retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, Field

from workboard.config import PushConfig

logger = structlog.get_logger(__name__)


class SocketEmitter(Protocol):
    """Live per-user event channel."""

    async def emit_to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        """Emit an event to every open connection of one user.

        Args:
            user_id: Recipient.
            event: Event name (e.g. 'new_notification').
            payload: JSON-serializable event data.
        """
        ...


class PushPayload(BaseModel):
    """Body posted to the push relay.

    Attributes:
        user_ids: Recipients whose device subscriptions should be notified.
        title: Notification title.
        body: Notification text.
        data: Client routing data (type, project, board, card).
        timestamp: ISO 8601 timestamp of the send.
    """

    user_ids: list[str] = Field(..., description="Recipient user IDs")
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class PushGateway:
    """Sends push notifications through the configured relay.

    When no relay URL is configured every send succeeds without a request,
    so the push channel never blocks delivery of the other channels.

    Attributes:
        config: Push relay configuration.
        logger: Structured logger for this gateway.
    """

    def __init__(self, config: PushConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the gateway.

        Args:
            config: Push relay configuration.
            client: Optional preconfigured HTTP client (tests inject a mock
                transport here).
        """
        self.config = config
        self.logger = logger.bind(component="push_gateway")
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.config.relay_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _sign_payload(self, payload: str, secret: str) -> str:
        return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def _build_headers(self, payload_str: str) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Workboard-Timestamp": str(int(datetime.now(timezone.utc).timestamp())),
        }
        if self.config.secret:
            headers["X-Workboard-Signature"] = self._sign_payload(payload_str, self.config.secret)
        return headers

    async def push_to_users(
        self,
        user_ids: list[UUID],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Push one notification to a set of users.

        Args:
            user_ids: Recipients.
            title: Notification title.
            body: Notification text.
            data: Client routing data.

        Returns:
            True if the relay accepted the payload (or push is disabled),
            False after all retries failed.
        """
        if not self.enabled or not user_ids:
            self.logger.debug("push_skipped", enabled=self.enabled, recipients=len(user_ids))
            return True

        payload = PushPayload(
            user_ids=[str(user_id) for user_id in user_ids],
            title=title,
            body=body,
            data=data or {},
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        payload_str = payload.model_dump_json()
        headers = self._build_headers(payload_str)
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(self.config.retry_count + 1):
            try:
                response = await client.post(
                    self.config.relay_url,
                    content=payload_str,
                    headers=headers,
                    timeout=self.config.timeout_seconds,
                )
                if response.is_success:
                    self.logger.info(
                        "push_delivered",
                        recipients=len(user_ids),
                        status_code=response.status_code,
                        attempt=attempt + 1,
                    )
                    return True

                self.logger.warning(
                    "push_rejected",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )
                last_error = httpx.HTTPStatusError(
                    f"HTTP {response.status_code}",
                    request=response.request,
                    response=response,
                )

            except httpx.TimeoutException as e:
                last_error = e
                self.logger.warning("push_timed_out", attempt=attempt + 1, error=str(e))

            except httpx.RequestError as e:
                last_error = e
                self.logger.warning("push_request_failed", attempt=attempt + 1, error=str(e))

            # Exponential backoff before retry (1s, 2s, 4s, ...)
            if attempt < self.config.retry_count:
                await asyncio.sleep(2**attempt)

        self.logger.error(
            "push_failed_after_retries",
            retry_count=self.config.retry_count,
            error=str(last_error),
        )
        return False
