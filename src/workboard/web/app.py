"""FastAPI application factory for Workboard.

This module provides the main application factory function that creates
and configures a FastAPI application with:
- CORS middleware for cross-origin requests
- Request logging middleware with correlation IDs
- Exception handlers for typed rejections and unexpected errors
- Database, service and outbox worker lifecycle management

Example usage:
    >>> from workboard.config import WorkboardConfig
    >>> from workboard.web.app import create_app
    >>>
    >>> config = WorkboardConfig()
    >>> app = create_app(config)
    >>>
    >>> # Run with uvicorn
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workboard.config import WorkboardConfig
from workboard.database.connection import get_engine, get_session_factory
from workboard.kanban.provisioning import BoardProvisioner
from workboard.kanban.service import BoardService
from workboard.logging import get_logger
from workboard.notifications.fanout import NotificationFanout
from workboard.notifications.outbox import OutboxWorker
from workboard.notifications.transport import PushGateway
from workboard.storage.local_provider import LocalStorageProvider
from workboard.web.errors import register_error_handlers
from workboard.web.middleware import RequestLoggingMiddleware
from workboard.web.routes.boards import create_boards_router
from workboard.web.routes.cards import create_cards_router
from workboard.web.routes.events import UserEventBroadcaster, create_events_router
from workboard.web.routes.files import create_files_router
from workboard.web.routes.health import create_health_router
from workboard.web.routes.projects import create_projects_router
from workboard.web.routes.tasks import create_tasks_router
from workboard.workflow.state_machine import ProjectWorkflowEngine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

logger = get_logger(__name__)

APP_VERSION = "0.1.0"


def build_services(
    app: FastAPI,
    config: WorkboardConfig,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Create the services and store them in app.state.

    Args:
        app: Application whose state receives the services.
        config: Resolved configuration.
        session_factory: Factory shared by every service.
    """
    broadcaster = UserEventBroadcaster()
    push = PushGateway(config.push)
    storage = LocalStorageProvider(config.storage)
    fanout = NotificationFanout(
        session_factory,
        push=push,
        emitter=broadcaster,
        max_attempts=config.outbox.max_attempts,
    )

    app.state.session_factory = session_factory
    app.state.broadcaster = broadcaster
    app.state.push = push
    app.state.storage = storage
    app.state.fanout = fanout
    app.state.workflow_engine = ProjectWorkflowEngine(session_factory, fanout)
    app.state.board_service = BoardService(
        session_factory,
        fanout,
        storage,
        emitter=broadcaster,
        max_ordering_retries=config.kanban.max_ordering_retries,
        presign_ttl_seconds=config.storage.presign_ttl_seconds,
    )
    app.state.provisioner = BoardProvisioner(session_factory, emitter=broadcaster)
    app.state.outbox_worker = OutboxWorker(
        fanout,
        session_factory,
        batch_size=config.outbox.batch_size,
        poll_interval_seconds=config.outbox.poll_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup: create the engine, the services and (if enabled) the outbox
    worker task. On shutdown: stop the worker, close SSE connections and the
    push client, and dispose of the engine.
    """
    config: WorkboardConfig = app.state.config

    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    engine: AsyncEngine = get_engine(config.database)
    session_factory = get_session_factory(engine)
    app.state.engine = engine
    build_services(app, config, session_factory)

    logger.info(
        "database_pool_initialized",
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

    worker: OutboxWorker = app.state.outbox_worker
    worker_task: asyncio.Task[None] | None = None
    if config.web.run_outbox_worker:
        worker_task = asyncio.create_task(worker.run())
        logger.info("outbox_worker_task_started")

    yield

    logger.info("app_shutdown_begin")
    if worker_task is not None:
        worker.stop()
        worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker_task
    await app.state.broadcaster.close()
    await app.state.push.close()
    await engine.dispose()
    logger.info("database_pool_disposed")


def create_app(config: WorkboardConfig | None = None) -> FastAPI:
    """Create and configure a FastAPI application.

    Args:
        config: Optional WorkboardConfig. If None, creates default config.

    Returns:
        Configured FastAPI application instance.

    Example:
        >>> from workboard.config import WorkboardConfig, WebConfig
        >>>
        >>> app = create_app(WorkboardConfig(web=WebConfig(cors_origins=["https://example.com"])))
    """
    if config is None:
        config = WorkboardConfig()

    app = FastAPI(
        title="Workboard",
        version=APP_VERSION,
        description="Approval-gated project workflow and Kanban boards",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    app.include_router(create_health_router())
    app.include_router(create_projects_router())
    app.include_router(create_boards_router())
    app.include_router(create_cards_router())
    app.include_router(create_tasks_router())
    app.include_router(create_files_router())
    app.include_router(create_events_router())

    logger.info(
        "app_created",
        cors_origins=config.web.cors_origins,
        version=APP_VERSION,
    )

    return app
