"""HTTP interface for Workboard.

This module provides the FastAPI application with the project workflow,
Kanban board and task-hook endpoints, per-user SSE events, and signed
downloads for locally stored attachments.
"""

from __future__ import annotations

from workboard.web.app import build_services, create_app
from workboard.web.middleware import RequestLoggingMiddleware
from workboard.web.routes.events import SSEEvent, UserEventBroadcaster

__all__ = [
    "build_services",
    "create_app",
    "RequestLoggingMiddleware",
    "SSEEvent",
    "UserEventBroadcaster",
]
