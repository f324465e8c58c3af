"""
Card catalog service.

Create, update, deactivate and browse catalog cards. Listing reads only
return active cards; get_card resolves any card so that historical orders
and collections can still show deactivated ones.

Stock is not edited here directly. restock_card goes through the stock
ledger like every other stock change.
"""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.config import settings
from cardstore.db import operations as ops
from cardstore.models.db import CardDB, utcnow
from cardstore.models.enums import Rarity
from cardstore.models.failure import CardNotFoundError, ValidationFailedError
from cardstore.models.requests import CardCreateRequest, CardUpdateRequest, parse_request
from cardstore.models.views import CardView, Page
from cardstore.services.stock_ledger import adjust_stock

logger = logging.getLogger(__name__)

# Columns that may not be set to NULL through a partial update.
_REQUIRED_FIELDS = frozenset({"name", "description", "rarity", "price", "set_name", "is_active"})


async def _load_card(session: AsyncSession, card_id: int) -> CardDB:
    card = await ops.get_card(session, card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    return card


# --- Writes ---


async def create_card(
    session: AsyncSession, request: CardCreateRequest | Mapping[str, Any]
) -> CardView:
    """
    Add a card to the catalog.

    Raises:
        ValidationFailedError: If the request is invalid
    """
    req = parse_request(CardCreateRequest, request)
    fields = req.model_dump()
    fields["rarity"] = req.rarity.value
    card = await ops.create_card(session, **fields)
    logger.info("CARD_CREATED", extra={"card_id": card.id, "card_name": card.name})
    return ops.card_to_model(card)


async def update_card(
    session: AsyncSession,
    card_id: int,
    request: CardUpdateRequest | Mapping[str, Any],
) -> CardView:
    """
    Apply a partial update. Fields left out of the request are unchanged.

    Raises:
        CardNotFoundError: If the card doesn't exist
        ValidationFailedError: If the request is invalid
    """
    req = parse_request(CardUpdateRequest, request)
    card = await _load_card(session, card_id)

    changes = req.model_dump(exclude_unset=True)
    for name, value in changes.items():
        if value is None and name in _REQUIRED_FIELDS:
            continue
        if isinstance(value, Rarity):
            value = value.value
        setattr(card, name, value)
    card.updated_at = utcnow()

    await session.flush()
    return ops.card_to_model(card)


async def deactivate_card(session: AsyncSession, card_id: int) -> CardView:
    """
    Soft-delete a card: it disappears from catalog reads and can no longer be
    ordered, but existing orders and collections still resolve it.
    """
    card = await _load_card(session, card_id)
    card.is_active = False
    card.updated_at = utcnow()
    await session.flush()
    logger.info("CARD_DEACTIVATED", extra={"card_id": card_id})
    return ops.card_to_model(card)


async def restock_card(session: AsyncSession, card_id: int, quantity: int) -> int:
    """
    Receive quantity new copies of a card into stock.

    Returns:
        The new stock quantity.
    """
    if quantity <= 0:
        raise ValidationFailedError.for_field("quantity", "Quantity must be greater than 0")
    return await adjust_stock(session, card_id, quantity, require_active=False)


# --- Reads ---


async def get_card(session: AsyncSession, card_id: int) -> CardView:
    """
    Get a card by id, including deactivated cards.

    Raises:
        CardNotFoundError: If the card doesn't exist
    """
    return ops.card_to_model(await _load_card(session, card_id))


async def list_active_cards(session: AsyncSession) -> list[CardView]:
    return [ops.card_to_model(c) for c in await ops.list_cards(session)]


async def list_cards_in_stock(session: AsyncSession) -> list[CardView]:
    cards = await ops.list_cards(session, CardDB.stock_quantity > 0)
    return [ops.card_to_model(c) for c in cards]


async def list_cards_by_set(session: AsyncSession, set_name: str) -> list[CardView]:
    cards = await ops.list_cards(session, CardDB.set_name == set_name)
    return [ops.card_to_model(c) for c in cards]


async def list_cards_by_rarity(session: AsyncSession, rarity: Rarity | str) -> list[CardView]:
    """
    Raises:
        ValidationFailedError: If rarity is not a known tier
    """
    try:
        tier = Rarity.parse(rarity)
    except ValueError as e:
        raise ValidationFailedError.for_field("rarity", str(e)) from e
    cards = await ops.list_cards(session, CardDB.rarity == tier.value)
    return [ops.card_to_model(c) for c in cards]


async def list_cards_by_type(session: AsyncSession, card_type: str) -> list[CardView]:
    cards = await ops.list_cards(session, CardDB.card_type == card_type)
    return [ops.card_to_model(c) for c in cards]


async def search_cards(session: AsyncSession, term: str) -> list[CardView]:
    """
    Case-insensitive substring search over name, description, set and type.

    Raises:
        ValidationFailedError: If term is blank
    """
    term = (term or "").strip()
    if not term:
        raise ValidationFailedError.for_field("term", "Search term is required")
    cards = await ops.list_cards(session, ops.card_search_filter(term))
    return [ops.card_to_model(c) for c in cards]


async def list_cards_by_price_range(
    session: AsyncSession, min_price: Decimal, max_price: Decimal
) -> list[CardView]:
    """
    Active cards priced within [min_price, max_price], cheapest first.

    Raises:
        ValidationFailedError: If a bound is negative or min exceeds max
    """
    if min_price < 0 or max_price < 0:
        raise ValidationFailedError.for_field("price", "Prices cannot be negative")
    if min_price > max_price:
        raise ValidationFailedError.for_field(
            "min_price", "Minimum price cannot be greater than maximum price"
        )
    cards = await ops.list_cards(
        session,
        CardDB.price >= min_price,
        CardDB.price <= max_price,
        order_by=CardDB.price,
    )
    return [ops.card_to_model(c) for c in cards]


async def get_cards_page(
    session: AsyncSession, page_number: int = 1, page_size: int | None = None
) -> Page[CardView]:
    """
    One page of the active catalog, ordered by name.

    Raises:
        ValidationFailedError: If page_number < 1 or page_size is out of range
    """
    if page_size is None:
        page_size = settings.default_page_size
    if page_number < 1:
        raise ValidationFailedError.for_field("page_number", "Page number must be at least 1")
    if not 1 <= page_size <= settings.max_page_size:
        raise ValidationFailedError.for_field(
            "page_size", f"Page size must be between 1 and {settings.max_page_size}"
        )

    total = await ops.count_active_cards(session)
    cards = await ops.get_cards_slice(session, (page_number - 1) * page_size, page_size)
    return Page(
        items=[ops.card_to_model(c) for c in cards],
        page_number=page_number,
        page_size=page_size,
        total_records=total,
    )
