"""
Stock ledger: the per-card inventory counter.

Every change to a card's stock_quantity goes through adjust_stock, which
applies the change as one conditional UPDATE. Two orders racing for the last
copies of a card are serialized on that row by the database; the loser sees
no matching row and gets InsufficientStockError instead of negative stock.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.db.operations import conditional_adjust_stock, get_card
from cardstore.models.failure import (
    CardInactiveError,
    CardNotFoundError,
    InsufficientStockError,
)

logger = logging.getLogger(__name__)


async def check_available(session: AsyncSession, card_id: int, quantity: int) -> bool:
    """Check that a card exists, is active, and has at least quantity in stock."""
    card = await get_card(session, card_id)
    return card is not None and card.is_active and card.stock_quantity >= quantity


async def adjust_stock(
    session: AsyncSession,
    card_id: int,
    delta: int,
    *,
    require_active: bool = True,
) -> int:
    """
    Add delta (negative to remove) to a card's stock.

    Args:
        session: Database session
        card_id: Card to adjust
        delta: Signed change in stock
        require_active: Reject inactive cards. Restorations pass False so a
            card deactivated after being ordered still gets its stock back.

    Returns:
        The new stock quantity.

    Raises:
        CardNotFoundError: If the card doesn't exist
        CardInactiveError: If require_active and the card is deactivated
        InsufficientStockError: If the result would be negative
    """
    new_stock = await conditional_adjust_stock(session, card_id, delta, require_active)
    if new_stock is not None:
        return new_stock

    # Nothing matched; read the row to report why.
    card = await get_card(session, card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    if require_active and not card.is_active:
        raise CardInactiveError(card_id)

    logger.info(
        "STOCK_ADJUST_REJECTED",
        extra={"card_id": card_id, "delta": delta, "stock": card.stock_quantity},
    )
    raise InsufficientStockError(card_id, requested=-delta, available=card.stock_quantity)


async def try_adjust_stock(
    session: AsyncSession,
    card_id: int,
    delta: int,
    *,
    require_active: bool = True,
) -> bool:
    """Like adjust_stock, but report a rejected adjustment as False."""
    try:
        await adjust_stock(session, card_id, delta, require_active=require_active)
    except (CardNotFoundError, CardInactiveError, InsufficientStockError):
        return False
    return True
