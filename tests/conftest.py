"""
Global pytest configuration and fixtures for PPT Platform tests.

Tests run against an in-memory SQLite database through aiosqlite; the
schema is created from the ORM metadata for every test.
"""

import os
from uuid import UUID, uuid4

# Settings are read at import time, so the environment has to be set first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("JWT__SECRET_KEY", "test-secret-key")
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ppt.platform.db import Base  # noqa: E402
from ppt.platform.features import models  # noqa: E402,F401
from ppt.platform.settings import FeatureAccessSettings  # noqa: E402


@pytest_asyncio.fixture
async def async_db_engine():
    """Async in-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Required for SQLite in-memory async
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(async_db_engine) -> AsyncSession:
    """Async database session bound to the test engine."""
    session_maker = async_sessionmaker(
        bind=async_db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
def feature_settings() -> FeatureAccessSettings:
    return FeatureAccessSettings()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


@pytest.fixture
def role_id() -> UUID:
    return uuid4()
