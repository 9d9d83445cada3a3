"""Liveness and readiness probes.

``GET /health/`` answers as long as the process serves requests.
``GET /health/ready`` also round-trips the database and reports the
notification outbox backlog, so a stuck worker shows up as a growing
``pending`` count.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.database.queries.outbox import get_outbox_stats
from workboard.logging import get_logger
from workboard.web.dependencies import get_session_factory

logger = get_logger(__name__)


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """Readiness probe body.

    ``outbox`` is only present when the database answered.
    """

    status: str
    database: str
    outbox: dict[str, int] | None = None


async def _probe(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))
        return await get_outbox_stats(session)


def create_health_router() -> APIRouter:
    """Create the ``/health`` router."""
    router = APIRouter(prefix="/health", tags=["health"])

    @router.get("/", response_model=HealthResponse)
    async def liveness() -> dict[str, Any]:
        return {"status": "ok"}

    @router.get("/ready", response_model=ReadinessResponse)
    async def readiness(
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> dict[str, Any]:
        try:
            outbox = await _probe(session_factory)
        except Exception as exc:
            logger.warning("readiness_probe_failed", error=f"{type(exc).__name__}: {exc}")
            return {"status": "unhealthy", "database": "disconnected"}

        logger.debug("readiness_probe_passed", pending=outbox.get("pending", 0))
        return {"status": "ok", "database": "connected", "outbox": outbox}

    return router
