"""Pytest configuration and shared fixtures.

Each test gets its own SQLite database file (via aiosqlite) with the full
schema created from the models, so tests never share rows.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set testing mode BEFORE importing app so the scheduler and secret checks stay off
os.environ["TESTING"] = "true"

from sos_api.config import settings

settings.testing = True

from sos_api.core.security import create_access_token
from sos_api.database import get_db
from sos_api.main import app
from sos_api.models import (
    AvailabilityStatus,
    Base,
    Responder,
    ResponderType,
    TrustedContact,
    User,
    UserRole,
    UserSettings,
)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Per-test SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sos_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def session_factory(session_maker):
    """Context-manager session factory, as used by scheduled jobs."""

    @asynccontextmanager
    async def factory() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    return factory


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests use the per-test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory creating committed users."""

    async def _make_user(
        role: UserRole = UserRole.USER,
        full_name: str = "Test User",
        phone: str | None = "+8801700000000",
        is_verified: bool = True,
        created_at: datetime | None = None,
        sos_keyword: str | None = None,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"user_{uuid.uuid4().hex[:8]}@example.com",
            full_name=full_name,
            phone=phone,
            role=role,
            is_verified=is_verified,
        )
        if created_at is not None:
            user.created_at = created_at
            user.updated_at = created_at
        db_session.add(user)
        if sos_keyword is not None:
            db_session.add(UserSettings(user_id=user.id, sos_keyword=sos_keyword))
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_responder(db_session, make_user):
    """Factory creating a responder account plus its profile."""

    async def _make_responder(
        name: str = "Officer",
        responder_type: ResponderType = ResponderType.POLICE,
        latitude: float | None = None,
        longitude: float | None = None,
        availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE,
    ) -> Responder:
        user = await make_user(role=UserRole.RESPONDER, full_name=name)
        responder = Responder(
            id=user.id,
            responder_type=responder_type,
            availability_status=availability,
            current_latitude=latitude,
            current_longitude=longitude,
        )
        db_session.add(responder)
        await db_session.commit()
        return responder

    return _make_responder


@pytest.fixture
def make_contact(db_session):
    """Factory creating trusted contacts."""

    async def _make_contact(
        user_id: uuid.UUID,
        name: str = "Contact",
        phone: str | None = "+8801711111111",
        share_location: bool = True,
    ) -> TrustedContact:
        contact = TrustedContact(
            id=uuid.uuid4(),
            user_id=user_id,
            name=name,
            phone=phone,
            share_location=share_location,
        )
        db_session.add(contact)
        await db_session.commit()
        return contact

    return _make_contact


def auth_headers(user_id: uuid.UUID, role: UserRole = UserRole.USER) -> dict[str, str]:
    """Bearer header signed with the test secret."""
    return {"Authorization": f"Bearer {create_access_token(user_id, role.value)}"}


@pytest.fixture
def headers_for():
    return auth_headers
