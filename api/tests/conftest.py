"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) built from the
ORM metadata, so no Postgres or Redis is needed. Rate limiting is replaced
by no-op dependencies; row locks (FOR UPDATE) are ignored by SQLite.
"""

import os
import secrets
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Optional

# Must be set before abi.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from abi.database import get_db
from abi.dependencies import hash_api_key
from abi.main import app
from abi.middleware.rate_limiter import read_rate_limit, write_rate_limit
from abi.models import Base, Profile, Role, User
from abi.services.badges import seed_badges


def _enable_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@dataclass
class Account:
    """A registered user plus the raw API key issued to them."""

    user: User
    api_key: str

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def headers(self) -> dict:
        return {"X-API-Key": self.api_key}


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as session:
        await seed_badges(session)
        await session.commit()
    return factory


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct session for service-level tests and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_account(session_factory):
    """Factory: create a user with a profile and an API key."""

    async def _make(
        role: Role = Role.member,
        display_name: Optional[str] = None,
        reputation: int = 0,
        current_streak: int = 0,
    ) -> Account:
        raw_key = secrets.token_urlsafe(16)
        async with session_factory() as session:
            user = User(
                email=f"{uuid.uuid4().hex[:10]}@test.invalid",
                api_key_hash=hash_api_key(raw_key),
                role=role.value,
            )
            session.add(user)
            await session.flush()
            session.add(
                Profile(
                    user_id=user.id,
                    display_name=display_name or f"user-{user.id.hex[:6]}",
                    reputation=reputation,
                    current_streak=current_streak,
                    longest_streak=current_streak,
                )
            )
            await session.commit()
        return Account(user=user, api_key=raw_key)

    return _make


@pytest_asyncio.fixture
async def alice(make_account) -> Account:
    return await make_account(display_name="Alice")


@pytest_asyncio.fixture
async def bob(make_account) -> Account:
    return await make_account(display_name="Bob")


@pytest_asyncio.fixture
async def carol(make_account) -> Account:
    return await make_account(display_name="Carol")


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database; rate limiting disabled."""

    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _no_limit() -> None:
        return None

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[read_rate_limit] = _no_limit
    app.dependency_overrides[write_rate_limit] = _no_limit

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

