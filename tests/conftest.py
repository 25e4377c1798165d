import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.db.base import Base
from libs.db.config import build_engine
from services.schedule_service import models as _schedule_models  # noqa: F401
from tests.factories import RecordingEventPublisher


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Fresh database per test.

    SQLite file under tmp_path by default; set TEST_DATABASE_URL to run the
    same suite against Postgres.
    """
    db_url = os.environ.get("TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'schedule.db'}"
    )
    engine = build_engine(db_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """
    Independent sessions (own connection each) for concurrency tests.
    """
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()
