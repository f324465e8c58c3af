from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardstore.db.operations import create_card
from cardstore.models.db import Base, CardDB, UserDB

PASSWORD = "Secret123"


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session: AsyncSession) -> Callable[..., Awaitable[UserDB]]:
    """Factory for persisted users. All share the password PASSWORD."""

    async def _make(username: str = "yugi", **overrides: Any) -> UserDB:
        user = UserDB(
            username=username,
            email=overrides.pop("email", f"{username}@example.com"),
            is_active=overrides.pop("is_active", True),
            **overrides,
        )
        user.set_password(PASSWORD)
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest.fixture
def make_card(session: AsyncSession) -> Callable[..., Awaitable[CardDB]]:
    """Factory for persisted cards. Defaults to 10 copies at 5.00."""

    async def _make(name: str = "Dark Magician", **overrides: Any) -> CardDB:
        fields: dict[str, Any] = {
            "name": name,
            "description": "",
            "rarity": "Epic",
            "price": Decimal("5.00"),
            "set_name": "Classic Set",
            "stock_quantity": 10,
            "is_active": True,
        }
        fields.update(overrides)
        return await create_card(session, **fields)

    return _make


@pytest.fixture
async def user(make_user) -> UserDB:
    return await make_user()
