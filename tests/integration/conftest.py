"""
Integration test fixtures.

Each client drives the real FastAPI app over ASGI with three dependencies
overridden: the database session (per-test SQLite/Postgres), the caller
identity, and the event publisher (recorded in memory).
"""

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.schedule_service.app.main import app
from services.schedule_service.events import get_event_publisher


def make_member_user(**overrides) -> AuthUser:
    fields = {"sub": str(uuid.uuid4()), "email": "member@example.com"}
    fields.update(overrides)
    return AuthUser(**fields)


def make_admin_user(**overrides) -> AuthUser:
    fields = {"sub": str(uuid.uuid4()), "email": "admin@example.com", "role": "admin"}
    fields.update(overrides)
    return AuthUser(**fields)


def override_auth(user: AuthUser):
    async def _current_user() -> AuthUser:
        return user

    return _current_user


@pytest.fixture
def override_db(session_factory):
    async def _get_db() -> AsyncGenerator:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    return _get_db


def _client(user, override_db, publisher):
    app.dependency_overrides[get_async_db] = override_db
    app.dependency_overrides[get_current_user] = override_auth(user)
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def schedule_client(override_db, publisher):
    """Client authenticated as an ordinary member."""
    client = _client(make_member_user(), override_db, publisher)
    async with client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(override_db, publisher):
    """Client authenticated as an admin."""
    client = _client(make_admin_user(), override_db, publisher)
    async with client:
        yield client
    app.dependency_overrides.clear()
