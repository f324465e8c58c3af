"""Tests for session scope and table management."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import create_async_engine

from cardstore.db.database import drop_db, init_db, session_scope
from cardstore.db.operations import count_cards, create_card
from cardstore.models.failure import CardNotFoundError, StorageError


def sample_card() -> dict:
    return {"name": "Kuriboh", "rarity": "Common", "price": 1, "set_name": "Classic Set"}


class TestSessionScope:
    async def test_commits_on_success(self, session_factory) -> None:
        """Work done inside the scope is committed."""
        async with session_scope(session_factory) as session:
            await create_card(session, **sample_card())

        async with session_scope(session_factory) as session:
            assert await count_cards(session) == 1

    async def test_rolls_back_business_errors(self, session_factory) -> None:
        """Business errors propagate unchanged and nothing is kept."""
        with pytest.raises(CardNotFoundError):
            async with session_scope(session_factory) as session:
                await create_card(session, **sample_card())
                raise CardNotFoundError(99)

        async with session_scope(session_factory) as session:
            assert await count_cards(session) == 0

    async def test_storage_failures_become_opaque(self, session_factory, caplog) -> None:
        """SQLAlchemy errors surface as StorageError, cause chained and logged."""
        with pytest.raises(StorageError) as exc_info:
            async with session_scope(session_factory) as session:
                await session.execute(text("SELECT * FROM no_such_table"))

        assert exc_info.value.__cause__ is not None
        assert "no_such_table" not in exc_info.value.message
        assert "STORAGE_FAILURE" in caplog.text


class TestTableManagement:
    async def test_init_and_drop(self) -> None:
        """init_db creates every table and drop_db removes them."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")

        async def table_names() -> set[str]:
            async with engine.connect() as conn:
                return set(await conn.run_sync(lambda c: inspect(c).get_table_names()))

        await init_db(engine)
        assert {"users", "cards", "orders", "order_items", "collection_entries"} <= (
            await table_names()
        )

        await drop_db(engine)
        assert await table_names() == set()
        await engine.dispose()
