"""
Database CRUD operations.

Provides async functions for reading and mutating cards, orders, collection
entries and users. Functions here issue queries only; business rules live
in cardstore.services.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cardstore.models.db import CardDB, CollectionEntryDB, OrderDB, OrderItemDB, UserDB, utcnow
from cardstore.models.enums import OrderStatus, Rarity
from cardstore.models.views import (
    CardView,
    CollectionEntryView,
    OrderLineView,
    OrderView,
    UserView,
)

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce an aggregate result (None, float or Decimal) to a 2-place Decimal."""
    return Decimal(str(value or 0)).quantize(CENTS)


# --- Card Operations ---


async def get_card(session: AsyncSession, card_id: int) -> CardDB | None:
    """
    Get a card by id, active or not.

    Always reads the row from the database; stock counters are updated
    with bulk statements that bypass the identity map.
    """
    result = await session.execute(
        select(CardDB).where(CardDB.id == card_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_cards_by_ids(session: AsyncSession, card_ids: Iterable[int]) -> dict[int, CardDB]:
    """Get cards keyed by id. Missing ids are simply absent from the result."""
    ids = list(card_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(CardDB).where(CardDB.id.in_(ids)).execution_options(populate_existing=True)
    )
    return {card.id: card for card in result.scalars()}


def _active_cards() -> Select[tuple[CardDB]]:
    return select(CardDB).where(CardDB.is_active.is_(True))


async def list_cards(session: AsyncSession, *criteria: Any, order_by: Any = None) -> list[CardDB]:
    """List active cards matching every criterion, ordered by name by default."""
    stmt = _active_cards().where(*criteria).order_by(
        order_by if order_by is not None else CardDB.name, CardDB.id
    )
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars())


def card_search_filter(term: str) -> Any:
    """Case-insensitive substring match over name, description, set and type."""
    pattern = f"%{term}%"
    return or_(
        CardDB.name.ilike(pattern),
        CardDB.description.ilike(pattern),
        CardDB.set_name.ilike(pattern),
        CardDB.card_type.ilike(pattern),
    )


async def count_active_cards(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count(CardDB.id)).where(CardDB.is_active.is_(True))
    )
    return int(result.scalar_one())


async def get_cards_slice(session: AsyncSession, offset: int, limit: int) -> list[CardDB]:
    """One slice of the active catalog, ordered by name."""
    result = await session.execute(
        _active_cards()
        .order_by(CardDB.name, CardDB.id)
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


async def count_cards(session: AsyncSession) -> int:
    """Count all cards, active or not."""
    result = await session.execute(select(func.count(CardDB.id)))
    return int(result.scalar_one())


async def create_card(session: AsyncSession, **fields: Any) -> CardDB:
    card = CardDB(**fields)
    session.add(card)
    await session.flush()
    return card


async def conditional_adjust_stock(
    session: AsyncSession,
    card_id: int,
    delta: int,
    require_active: bool = True,
) -> int | None:
    """
    Apply delta to a card's stock in a single UPDATE.

    The row is only touched when the resulting stock stays non-negative
    (and, with require_active, when the card is active), so concurrent
    callers can never drive stock below zero.

    Returns:
        The new stock, or None if no row matched.
    """
    stmt = update(CardDB).where(
        CardDB.id == card_id,
        CardDB.stock_quantity + delta >= 0,
    )
    if require_active:
        stmt = stmt.where(CardDB.is_active.is_(True))
    stmt = (
        stmt.values(stock_quantity=CardDB.stock_quantity + delta, updated_at=utcnow())
        .returning(CardDB.stock_quantity)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# --- Order Operations ---


def _orders_with_lines() -> Select[tuple[OrderDB]]:
    return select(OrderDB).options(
        selectinload(OrderDB.user),
        selectinload(OrderDB.items).selectinload(OrderItemDB.card),
    )


async def get_order(session: AsyncSession, order_id: int) -> OrderDB | None:
    """
    Get an order with its user and line items eagerly loaded.

    Returns None if the order doesn't exist.
    """
    result = await session.execute(
        _orders_with_lines()
        .where(OrderDB.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_orders(
    session: AsyncSession,
    *criteria: Any,
    newest_first: bool = True,
) -> list[OrderDB]:
    """List orders matching every criterion, by order date."""
    ordering = (
        (OrderDB.order_date.desc(), OrderDB.id.desc())
        if newest_first
        else (OrderDB.order_date.asc(), OrderDB.id.asc())
    )
    result = await session.execute(
        _orders_with_lines()
        .where(*criteria)
        .order_by(*ordering)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


def order_date_filter(start: datetime | None, end: datetime | None) -> list[Any]:
    """Inclusive order_date bounds; either side may be open."""
    criteria = []
    if start is not None:
        criteria.append(OrderDB.order_date >= start)
    if end is not None:
        criteria.append(OrderDB.order_date <= end)
    return criteria


async def sum_order_totals(session: AsyncSession, *criteria: Any) -> Decimal:
    result = await session.execute(select(func.sum(OrderDB.total_amount)).where(*criteria))
    return to_money(result.scalar_one())


async def count_orders(session: AsyncSession, *criteria: Any) -> int:
    result = await session.execute(select(func.count(OrderDB.id)).where(*criteria))
    return int(result.scalar_one())


async def transition_order_status(
    session: AsyncSession, order_id: int, from_status: str, to_status: str
) -> bool:
    """
    Move an order from from_status to to_status in a single UPDATE.

    Entering Shipped or Delivered stamps the matching date unless it is
    already set. Returns False if the order is no longer in from_status.
    """
    now = utcnow()
    values: dict[str, Any] = {"status": to_status, "updated_at": now}
    if to_status == OrderStatus.SHIPPED.value:
        values["shipped_date"] = func.coalesce(OrderDB.shipped_date, now)
    elif to_status == OrderStatus.DELIVERED.value:
        values["delivered_date"] = func.coalesce(OrderDB.delivered_date, now)

    result = await session.execute(
        update(OrderDB)
        .where(OrderDB.id == order_id, OrderDB.status == from_status)
        .values(**values)
        .returning(OrderDB.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def create_order(session: AsyncSession, order: OrderDB) -> OrderDB:
    """Persist a new order together with its line items."""
    session.add(order)
    await session.flush()
    return order


# --- Collection Operations ---


async def get_collection_entry(
    session: AsyncSession, user_id: int, card_id: int
) -> CollectionEntryDB | None:
    result = await session.execute(
        select(CollectionEntryDB)
        .where(CollectionEntryDB.user_id == user_id, CollectionEntryDB.card_id == card_id)
        .options(selectinload(CollectionEntryDB.card))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_collection_entries(session: AsyncSession, user_id: int) -> list[CollectionEntryDB]:
    """A user's entries, most recently acquired first."""
    result = await session.execute(
        select(CollectionEntryDB)
        .where(CollectionEntryDB.user_id == user_id)
        .options(selectinload(CollectionEntryDB.card))
        .order_by(CollectionEntryDB.acquired_date.desc(), CollectionEntryDB.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


def _dialect_insert(session: AsyncSession) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    msg = f"Collection upsert is not supported on the {dialect!r} dialect"
    raise ValueError(msg)


async def upsert_collection_entry(
    session: AsyncSession,
    user_id: int,
    card_id: int,
    quantity: int,
    notes: str | None = None,
) -> None:
    """
    Add quantity to the (user, card) entry, creating it if absent.

    A single INSERT ... ON CONFLICT DO UPDATE, so concurrent adds for the
    same pair are summed rather than racing on the unique constraint.
    Existing notes are kept when notes is None.
    """
    now = utcnow()
    insert = _dialect_insert(session)
    stmt = insert(CollectionEntryDB).values(
        user_id=user_id,
        card_id=card_id,
        quantity=quantity,
        notes=notes,
        acquired_date=now,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "card_id"],
        set_={
            "quantity": CollectionEntryDB.quantity + stmt.excluded.quantity,
            "notes": func.coalesce(stmt.excluded.notes, CollectionEntryDB.notes),
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await session.execute(stmt)


async def decrement_collection_entry(
    session: AsyncSession, user_id: int, card_id: int, quantity: int
) -> bool:
    """
    Subtract quantity from an entry that holds strictly more than quantity.

    Returns False when the entry is missing or would drop to zero or below;
    the caller decides whether to delete it.
    """
    result = await session.execute(
        update(CollectionEntryDB)
        .where(
            CollectionEntryDB.user_id == user_id,
            CollectionEntryDB.card_id == card_id,
            CollectionEntryDB.quantity > quantity,
        )
        .values(quantity=CollectionEntryDB.quantity - quantity, updated_at=utcnow())
        .returning(CollectionEntryDB.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def set_collection_quantity(
    session: AsyncSession,
    user_id: int,
    card_id: int,
    quantity: int,
    notes: str | None = None,
) -> bool:
    """
    Overwrite an existing entry's quantity. Notes are replaced only when given.

    Returns False if no entry exists.
    """
    values: dict[str, Any] = {"quantity": quantity, "updated_at": utcnow()}
    if notes is not None:
        values["notes"] = notes
    result = await session.execute(
        update(CollectionEntryDB)
        .where(CollectionEntryDB.user_id == user_id, CollectionEntryDB.card_id == card_id)
        .values(**values)
        .returning(CollectionEntryDB.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def delete_collection_entry(session: AsyncSession, user_id: int, card_id: int) -> bool:
    """
    Delete a user's entry for a card.

    Returns True if an entry was deleted, False if none existed.
    """
    result = await session.execute(
        delete(CollectionEntryDB)
        .where(CollectionEntryDB.user_id == user_id, CollectionEntryDB.card_id == card_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


async def collection_totals(
    session: AsyncSession, user_id: int
) -> tuple[int, int, Decimal, datetime | None]:
    """
    Aggregate a user's collection at current catalog prices.

    Returns:
        Tuple of (total quantity, distinct cards, total value, last update).
    """
    result = await session.execute(
        select(
            func.sum(CollectionEntryDB.quantity),
            func.count(CollectionEntryDB.id),
            func.sum(CollectionEntryDB.quantity * CardDB.price),
            func.max(CollectionEntryDB.updated_at),
        )
        .join(CardDB, CollectionEntryDB.card_id == CardDB.id)
        .where(CollectionEntryDB.user_id == user_id)
    )
    total_quantity, distinct, value, last_updated = result.one()
    return int(total_quantity or 0), int(distinct or 0), to_money(value), last_updated


# --- User Operations ---


async def get_user(session: AsyncSession, user_id: int) -> UserDB | None:
    result = await session.execute(
        select(UserDB).where(UserDB.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> UserDB | None:
    result = await session.execute(select(UserDB).where(UserDB.username == username))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> UserDB | None:
    """Email lookup is case-insensitive."""
    result = await session.execute(
        select(UserDB).where(func.lower(UserDB.email) == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def list_active_users(session: AsyncSession) -> list[UserDB]:
    result = await session.execute(
        select(UserDB).where(UserDB.is_active.is_(True)).order_by(UserDB.username)
    )
    return list(result.scalars())


async def create_user(session: AsyncSession, **fields: Any) -> UserDB:
    """
    Create a new user.

    Raises IntegrityError if the username or email is already taken.
    """
    user = UserDB(**fields)
    session.add(user)
    await session.flush()
    return user


# --- Conversion Functions ---


def card_to_model(card: CardDB) -> CardView:
    """Convert a CardDB row to a CardView."""
    return CardView(
        id=card.id,
        name=card.name,
        description=card.description,
        rarity=Rarity(card.rarity),
        price=card.price,
        set_name=card.set_name,
        stock_quantity=card.stock_quantity,
        is_active=card.is_active,
        created_at=card.created_at,
        updated_at=card.updated_at,
        image_url=card.image_url,
        card_type=card.card_type,
        attack=card.attack,
        defense=card.defense,
        level=card.level,
        attribute=card.attribute,
    )


def order_to_model(order: OrderDB) -> OrderView:
    """
    Convert an OrderDB row to an OrderView.

    The order must have been loaded with get_order or list_orders so that
    its user and line items are available without lazy loading.
    """
    lines = tuple(
        OrderLineView(
            id=item.id,
            card_id=item.card_id,
            card_name=item.card.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )
        for item in order.items
    )
    return OrderView(
        id=order.id,
        user_id=order.user_id,
        username=order.user.username,
        status=OrderStatus(order.status),
        total_amount=order.total_amount,
        order_date=order.order_date,
        items=lines,
        shipped_date=order.shipped_date,
        delivered_date=order.delivered_date,
        shipping_address=order.shipping_address,
        shipping_city=order.shipping_city,
        shipping_postal_code=order.shipping_postal_code,
        shipping_country=order.shipping_country,
        payment_method=order.payment_method,
        notes=order.notes,
    )


def collection_entry_to_model(entry: CollectionEntryDB) -> CollectionEntryView:
    card = entry.card
    return CollectionEntryView(
        id=entry.id,
        user_id=entry.user_id,
        card_id=entry.card_id,
        card_name=card.name,
        card_set=card.set_name,
        card_rarity=Rarity(card.rarity),
        card_price=card.price,
        quantity=entry.quantity,
        acquired_date=entry.acquired_date,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        card_image_url=card.image_url,
        notes=entry.notes,
    )


def user_to_model(user: UserDB) -> UserView:
    """Convert a UserDB row to a UserView. The password hash is not copied."""
    return UserView(
        id=user.id,
        username=user.username,
        email=user.email,
        is_active=user.is_active,
        created_at=user.created_at,
        first_name=user.first_name,
        last_name=user.last_name,
        phone_number=user.phone_number,
        address=user.address,
        city=user.city,
        postal_code=user.postal_code,
        country=user.country,
        last_login_at=user.last_login_at,
    )
