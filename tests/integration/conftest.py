"""Pytest fixtures for integration tests.

Provides an in-memory SQLite database shared by every session of a test,
seeded users, recording fakes for the push and socket channels, and the
services wired the way the web application wires them. Production runs
on PostgreSQL; row locks are no-ops on SQLite, so these tests exercise
the compare-and-swap guards rather than the locks.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workboard.auth import UserRole
from workboard.config import StorageConfig
from workboard.database.models import Base, User
from workboard.kanban.provisioning import BoardProvisioner
from workboard.kanban.service import BoardService
from workboard.notifications.fanout import NotificationFanout
from workboard.storage.local_provider import LocalStorageProvider
from workboard.workflow.state_machine import ProjectWorkflowEngine


class RecordingEmitter:
    """Socket emitter that records every event instead of sending it."""

    def __init__(self) -> None:
        self.events: list[tuple[uuid.UUID, str, dict[str, Any]]] = []

    async def emit_to_user(self, user_id: uuid.UUID, event: str, payload: dict[str, Any]) -> None:
        self.events.append((user_id, event, payload))

    def recipients(self, event: str) -> list[uuid.UUID]:
        return [user_id for user_id, name, _ in self.events if name == event]


class RecordingPush:
    """Push gateway stand-in that records sends and can be told to fail."""

    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.sent: list[dict[str, Any]] = []

    async def push_to_users(
        self,
        user_ids: list[uuid.UUID],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        self.sent.append({"user_ids": list(user_ids), "title": title, "body": body, "data": data})
        return self.accept

    async def close(self) -> None:
        pass


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine.

    Args:
        engine: The test database engine.

    Returns:
        Configured async_sessionmaker for creating test sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for direct reads and setup in a test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def _add_user(
    session_factory: async_sessionmaker[AsyncSession],
    name: str,
    role: UserRole = UserRole.USER,
) -> User:
    async with session_factory() as session:
        async with session.begin():
            user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.com", role=role)
            session.add(user)
    return user


@pytest_asyncio.fixture
async def admin(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """Platform ADMIN."""
    return await _add_user(session_factory, "Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """Project manager."""
    return await _add_user(session_factory, "Manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def creator(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """Project creator."""
    return await _add_user(session_factory, "Creator")


@pytest_asyncio.fixture
async def implementer(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """User doing the work on a project."""
    return await _add_user(session_factory, "Implementer")


@pytest_asyncio.fixture
async def follower(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """User following a project."""
    return await _add_user(session_factory, "Follower")


@pytest_asyncio.fixture
async def outsider(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """User with no relation to any project or board."""
    return await _add_user(session_factory, "Outsider")


@pytest.fixture
def emitter() -> RecordingEmitter:
    """Socket emitter recording every emitted event."""
    return RecordingEmitter()


@pytest.fixture
def push() -> RecordingPush:
    """Push gateway recording every send."""
    return RecordingPush()


@pytest.fixture
def fanout(
    session_factory: async_sessionmaker[AsyncSession],
    push: RecordingPush,
    emitter: RecordingEmitter,
) -> NotificationFanout:
    """Fan-out over the recording push and socket channels."""
    return NotificationFanout(session_factory, push=push, emitter=emitter, max_attempts=3)


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorageProvider:
    """Local storage rooted in the test's temporary directory."""
    return LocalStorageProvider(
        StorageConfig(
            base_dir=tmp_path / "storage",
            public_base_url="http://test",
            signing_secret="test-secret",
        )
    )


@pytest.fixture
def workflow_engine(
    session_factory: async_sessionmaker[AsyncSession],
    fanout: NotificationFanout,
) -> ProjectWorkflowEngine:
    """Workflow engine with recording channels."""
    return ProjectWorkflowEngine(session_factory, fanout)


@pytest.fixture
def board_service(
    session_factory: async_sessionmaker[AsyncSession],
    fanout: NotificationFanout,
    storage: LocalStorageProvider,
    emitter: RecordingEmitter,
) -> BoardService:
    """Board service with recording channels and temporary storage."""
    return BoardService(session_factory, fanout, storage, emitter=emitter, max_ordering_retries=2)


@pytest.fixture
def provisioner(
    session_factory: async_sessionmaker[AsyncSession],
    emitter: RecordingEmitter,
) -> BoardProvisioner:
    """Project board provisioner."""
    return BoardProvisioner(session_factory, emitter=emitter)
