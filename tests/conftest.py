"""
Pytest configuration and shared fixtures for all tests.
"""
import os

# Settings are read at import time; point them at an in-memory database first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from healcore.db.models import Base, ProgramEnrollment, User
from healcore.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for a test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_user_id() -> uuid.UUID:
    """The fixed test user ID."""
    return uuid.UUID("123e4567-e89b-12d3-a456-426614174000")


@pytest.fixture
def another_user_id() -> uuid.UUID:
    """Another test user ID for multi-user tests."""
    return uuid.UUID("223e4567-e89b-12d3-a456-426614174001")


@pytest.fixture
async def test_user(db_session, test_user_id) -> User:
    """A user with an incomplete profile (no country, no delivery date)."""
    user = User(id=test_user_id, email="mama@example.com", first_name="Test", last_name="User")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def enrolled_user(db_session, test_user) -> User:
    db_session.add(
        ProgramEnrollment(
            user_id=test_user.id,
            program_id="heal-your-core",
            enrolled_at=datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc),
        )
    )
    await db_session.commit()
    return test_user


@pytest.fixture
def mock_auth_user(test_user_id):
    """Mock authenticated user."""
    return {"user_id": str(test_user_id), "role": "authenticated", "email": "mama@example.com"}


@pytest.fixture
def app(db_session, mock_auth_user):
    """Application with the database session and authentication overridden."""
    app = create_app()

    async def override_get_db():
        yield db_session

    async def override_auth():
        return mock_auth_user

    from healcore.core.security import get_current_user
    from healcore.db.session import get_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_auth
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app, test_user) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session, with authentication mocked."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
