"""Database layer for Workboard.

This module handles database connections, session management, and provides
the SQLAlchemy async engine configuration (PostgreSQL via asyncpg in
production, SQLite via aiosqlite in tests).

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from workboard.database.connection import get_engine, get_session_factory
from workboard.database.models import (
    Base,
    KanbanBoard,
    KanbanCard,
    KanbanList,
    OutboxEvent,
    Project,
    ProjectStatus,
    ProjectWorkflow,
    TimestampMixin,
    WorkflowStatus,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "ProjectWorkflow",
    "WorkflowStatus",
    "KanbanBoard",
    "KanbanList",
    "KanbanCard",
    "OutboxEvent",
]
