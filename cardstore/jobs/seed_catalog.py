"""
Seed the card catalog with sample cards.

Creates tables if needed and inserts the sample catalog when the card table
is empty. Running it against a populated catalog does nothing.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cardstore.db.database import init_db, session_scope
from cardstore.db.operations import count_cards
from cardstore.services.catalog import create_card

logger = logging.getLogger(__name__)

SAMPLE_CARDS: list[dict[str, Any]] = [
    {
        "name": "Blue-Eyes White Dragon",
        "description": "This legendary dragon is a powerful engine of destruction.",
        "rarity": "Legendary",
        "price": Decimal("99.99"),
        "set_name": "Classic Set",
        "card_type": "Dragon",
        "attack": 3000,
        "defense": 2500,
        "level": 8,
        "attribute": "Light",
        "stock_quantity": 10,
    },
    {
        "name": "Dark Magician",
        "description": "The ultimate wizard in terms of attack and defense.",
        "rarity": "Epic",
        "price": Decimal("79.99"),
        "set_name": "Classic Set",
        "card_type": "Spellcaster",
        "attack": 2500,
        "defense": 2100,
        "level": 7,
        "attribute": "Dark",
        "stock_quantity": 15,
    },
    {
        "name": "Red-Eyes Black Dragon",
        "description": "A ferocious dragon with a deadly attack.",
        "rarity": "Rare",
        "price": Decimal("49.99"),
        "set_name": "Classic Set",
        "card_type": "Dragon",
        "attack": 2400,
        "defense": 2000,
        "level": 7,
        "attribute": "Dark",
        "stock_quantity": 20,
    },
    {
        "name": "Celtic Guardian",
        "description": (
            "An elf who learned to wield a sword, he baffles enemies "
            "with lightning-swift attacks."
        ),
        "rarity": "Common",
        "price": Decimal("2.49"),
        "set_name": "Starter Deck",
        "card_type": "Warrior",
        "attack": 1400,
        "defense": 1200,
        "level": 4,
        "attribute": "Earth",
        "stock_quantity": 50,
    },
    {
        "name": "Mystical Elf",
        "description": "A delicate elf that lacks offense, but has a terrific defense.",
        "rarity": "Uncommon",
        "price": Decimal("4.99"),
        "set_name": "Starter Deck",
        "card_type": "Spellcaster",
        "attack": 800,
        "defense": 2000,
        "level": 4,
        "attribute": "Light",
        "stock_quantity": 40,
    },
]


async def seed_catalog(session: AsyncSession, cards: list[dict[str, Any]] | None = None) -> int:
    """
    Insert cards into an empty catalog.

    Returns:
        Number of cards inserted (0 if the catalog already had cards)
    """
    existing = await count_cards(session)
    if existing:
        logger.info("Catalog already has %d cards, skipping seed", existing)
        return 0

    cards = SAMPLE_CARDS if cards is None else cards
    for card in cards:
        await create_card(session, card)

    logger.info("Seeded %d cards", len(cards))
    return len(cards)


async def run_seed(
    bind: AsyncEngine | None = None,
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> int:
    """Create tables and seed the catalog in one transaction."""
    await init_db(bind)
    async with session_scope(factory) as session:
        return await seed_catalog(session)


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_seed())


if __name__ == "__main__":
    main()
