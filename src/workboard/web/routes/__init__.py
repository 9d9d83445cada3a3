"""FastAPI route definitions for the Workboard HTTP API.

This module contains route handlers for projects and their workflow,
boards and lists, cards and their sub-records, the task-system hook,
signed file downloads, health checks and per-user SSE events.
"""

from __future__ import annotations

from workboard.web.routes.boards import create_boards_router
from workboard.web.routes.cards import create_cards_router
from workboard.web.routes.events import (
    SSEEvent,
    UserEventBroadcaster,
    create_events_router,
    get_broadcaster,
)
from workboard.web.routes.files import create_files_router
from workboard.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)
from workboard.web.routes.projects import create_projects_router
from workboard.web.routes.tasks import create_tasks_router

__all__ = [
    # Boards and lists
    "create_boards_router",
    # Cards
    "create_cards_router",
    # Events / SSE
    "SSEEvent",
    "UserEventBroadcaster",
    "create_events_router",
    "get_broadcaster",
    # Files
    "create_files_router",
    # Health
    "HealthResponse",
    "ReadinessResponse",
    "create_health_router",
    # Projects and workflow
    "create_projects_router",
    # Tasks
    "create_tasks_router",
]
