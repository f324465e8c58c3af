"""
Collection ledger: how many copies of each card a user owns.

At most one entry exists per (user, card). Adds are a single upsert so two
concurrent adds for the same pair are summed. A quantity that reaches zero
deletes the entry.

Values are computed from the card's current catalog price; unlike orders,
collections keep no price history.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.db import operations as ops
from cardstore.models.db import UserDB
from cardstore.models.failure import (
    CardInactiveError,
    CardNotFoundError,
    CollectionEntryNotFoundError,
    UserInactiveError,
    UserNotFoundError,
    ValidationFailedError,
)
from cardstore.models.views import CollectionEntryView, CollectionSummary

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 500


def _check_notes(notes: str | None) -> None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationFailedError.for_field(
            "notes", f"Notes cannot exceed {MAX_NOTES_LENGTH} characters"
        )


async def _load_owner(session: AsyncSession, user_id: int) -> UserDB:
    user = await ops.get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if not user.is_active:
        raise UserInactiveError(user_id)
    return user


async def _entry_view(session: AsyncSession, user_id: int, card_id: int) -> CollectionEntryView:
    entry = await ops.get_collection_entry(session, user_id, card_id)
    if entry is None:
        raise CollectionEntryNotFoundError(user_id, card_id)
    return ops.collection_entry_to_model(entry)


# --- Mutations ---


async def add(
    session: AsyncSession,
    user_id: int,
    card_id: int,
    quantity: int = 1,
    notes: str | None = None,
) -> CollectionEntryView:
    """
    Add copies of a card to a user's collection.

    Creates the entry or sums into the existing one. Existing notes are
    replaced only when notes is given.

    Raises:
        ValidationFailedError: If quantity is not positive or notes are too long
        UserNotFoundError: If the user doesn't exist
        UserInactiveError: If the user is deactivated
        CardNotFoundError: If the card doesn't exist
        CardInactiveError: If the card is deactivated
    """
    if quantity <= 0:
        raise ValidationFailedError.for_field("quantity", "Quantity must be greater than 0")
    _check_notes(notes)

    await _load_owner(session, user_id)
    card = await ops.get_card(session, card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    if not card.is_active:
        raise CardInactiveError(card_id)

    await ops.upsert_collection_entry(session, user_id, card_id, quantity, notes)
    logger.info(
        "COLLECTION_ADD",
        extra={"user_id": user_id, "card_id": card_id, "quantity": quantity},
    )
    return await _entry_view(session, user_id, card_id)


async def remove(
    session: AsyncSession,
    user_id: int,
    card_id: int,
    quantity: int | None = None,
) -> CollectionEntryView | None:
    """
    Remove copies of a card, or the whole entry when quantity is None.

    Returns:
        The remaining entry, or None if it was deleted.

    Raises:
        ValidationFailedError: If quantity is given and not positive
        CollectionEntryNotFoundError: If the user has no entry for the card
    """
    if quantity is not None:
        if quantity <= 0:
            raise ValidationFailedError.for_field("quantity", "Quantity must be greater than 0")
        if await ops.decrement_collection_entry(session, user_id, card_id, quantity):
            return await _entry_view(session, user_id, card_id)

    if not await ops.delete_collection_entry(session, user_id, card_id):
        raise CollectionEntryNotFoundError(user_id, card_id)
    logger.info("COLLECTION_REMOVE", extra={"user_id": user_id, "card_id": card_id})
    return None


async def set_quantity(
    session: AsyncSession,
    user_id: int,
    card_id: int,
    quantity: int,
    notes: str | None = None,
) -> CollectionEntryView | None:
    """
    Set an entry's quantity outright. Zero or less deletes the entry.

    Returns:
        The updated entry, or None if it was deleted.

    Raises:
        CollectionEntryNotFoundError: If the user has no entry for the card
    """
    _check_notes(notes)
    if quantity <= 0:
        return await remove(session, user_id, card_id)
    if not await ops.set_collection_quantity(session, user_id, card_id, quantity, notes):
        raise CollectionEntryNotFoundError(user_id, card_id)
    return await _entry_view(session, user_id, card_id)


# --- Queries ---


async def summary(session: AsyncSession, user_id: int) -> CollectionSummary:
    """
    Aggregate a user's collection.

    Raises:
        UserNotFoundError: If the user doesn't exist
    """
    user = await ops.get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    total_cards, unique_cards, total_value, last_updated = await ops.collection_totals(
        session, user_id
    )
    return CollectionSummary(
        user_id=user_id,
        username=user.username,
        total_cards=total_cards,
        unique_cards=unique_cards,
        total_value=total_value,
        last_updated=last_updated,
    )


async def list_entries(session: AsyncSession, user_id: int) -> list[CollectionEntryView]:
    """A user's entries, most recently acquired first."""
    entries = await ops.list_collection_entries(session, user_id)
    return [ops.collection_entry_to_model(e) for e in entries]


async def get_entry(session: AsyncSession, user_id: int, card_id: int) -> CollectionEntryView:
    """
    Raises:
        CollectionEntryNotFoundError: If the user has no entry for the card
    """
    return await _entry_view(session, user_id, card_id)


async def collection_value(session: AsyncSession, user_id: int) -> Decimal:
    _, _, total_value, _ = await ops.collection_totals(session, user_id)
    return total_value


async def total_cards(session: AsyncSession, user_id: int) -> int:
    total, _, _, _ = await ops.collection_totals(session, user_id)
    return total
