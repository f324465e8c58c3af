"""Tests for the catalog seeding job."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardstore.db.database import session_scope
from cardstore.jobs.seed_catalog import SAMPLE_CARDS, run_seed, seed_catalog
from cardstore.services import catalog


class TestSeedCatalog:
    async def test_seeds_empty_catalog(self, session: AsyncSession) -> None:
        """An empty catalog gets every sample card."""
        inserted = await seed_catalog(session)

        assert inserted == len(SAMPLE_CARDS)
        names = {c.name for c in await catalog.list_active_cards(session)}
        assert "Blue-Eyes White Dragon" in names
        assert "Dark Magician" in names

    async def test_skips_populated_catalog(self, session: AsyncSession, make_card) -> None:
        """Existing cards, even inactive ones, stop the seed."""
        await make_card("Kuriboh", is_active=False)

        assert await seed_catalog(session) == 0
        assert await catalog.list_active_cards(session) == []

    async def test_custom_cards(self, session: AsyncSession) -> None:
        """A custom card list can be seeded."""
        cards = [
            {"name": "Kuriboh", "rarity": "Common", "price": "1.00", "set_name": "Classic Set"}
        ]

        assert await seed_catalog(session, cards) == 1
        assert (await catalog.list_cards_by_rarity(session, "Common"))[0].name == "Kuriboh"


class TestRunSeed:
    async def test_creates_tables_and_is_idempotent(self) -> None:
        """run_seed works on a blank database and a second run is a no-op."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        assert await run_seed(engine, factory) == len(SAMPLE_CARDS)
        assert await run_seed(engine, factory) == 0

        async with session_scope(factory) as session:
            assert len(await catalog.list_active_cards(session)) == len(SAMPLE_CARDS)
        await engine.dispose()
