"""Global pytest fixtures for the grading and progression engine.

This module provides shared fixtures for testing including:
- A fixed clock and actors for explicit engine contexts
- Engine settings independent of the environment
- An in-memory store backing a fake unit of work
"""

from collections.abc import Callable
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from ascent.config import EngineSettings
from ascent.context import Actor, EngineContext, Role
from tests.factories.unit_of_work_fake import InMemoryStore

NOW = datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)


# ===========================================
# CONTEXT FIXTURES
# ===========================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_ctx() -> Callable[..., EngineContext]:
    """Build an EngineContext for a role, optionally at another instant."""

    def _make(role: Role = Role.ATHLETE, user_id=None, at: datetime = NOW) -> EngineContext:
        return EngineContext(actor=Actor(user_id=user_id or uuid4(), role=role), now=at)

    return _make


@pytest.fixture
def coach_ctx(make_ctx) -> EngineContext:
    return make_ctx(Role.COACH)


@pytest.fixture
def admin_ctx(make_ctx) -> EngineContext:
    return make_ctx(Role.GYM_ADMIN)


# ===========================================
# SETTINGS / STORAGE FIXTURES
# ===========================================


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(resubmission_cooldown_hours=24)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create a mock async database session for repository tests."""
    session = AsyncMock()
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session
