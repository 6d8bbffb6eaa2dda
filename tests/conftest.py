import os

# Must be set before civicboard.config is imported
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("ENVIRONMENT", "testing")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from civicboard.api import app
from civicboard.db import get_session
from civicboard.models import Base, Submission

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def api_client(session_factory):
    """httpx client bound to the app, with sessions from the test database."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def add_submission(db_session):
    """Insert a submission row; ``age`` minutes later means newer."""

    async def _add(category="need", *, age=0, **fields):
        values = {
            "category": category,
            "status": "open",
            "title": f"{category} title",
            "description": f"A {category} described in enough detail",
            "created_at": BASE_TIME + timedelta(minutes=age),
            "updated_at": BASE_TIME + timedelta(minutes=age),
        }
        values.update(fields)
        submission = Submission(**values)
        db_session.add(submission)
        await db_session.commit()
        await db_session.refresh(submission)
        return submission

    return _add
