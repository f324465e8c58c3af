"""
Order workflow.

create_order runs as one transaction script inside the caller's unit of
work:

1. Resolve every requested card and check it is active and in stock.
2. Snapshot each card's current price and compute the total.
3. Decrement stock for every line through the stock ledger.
4. Persist the order and its line items as Pending.

All checks in step 1 finish before anything is written. If a decrement in
step 3 still loses a race to a concurrent order, InsufficientStockError
propagates and session_scope rolls back the decrements already applied, so
no stock moves and no order is stored.

Cancellation is only legal from Pending and returns every line's quantity
to stock.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.db import operations as ops
from cardstore.models.db import CardDB, OrderDB, OrderItemDB, utcnow
from cardstore.models.enums import OrderStatus, can_transition
from cardstore.models.failure import (
    CardInactiveError,
    CardNotFoundError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    OrderAccessDeniedError,
    OrderNotCancellableError,
    OrderNotFoundError,
    UserInactiveError,
    UserNotFoundError,
    ValidationFailedError,
)
from cardstore.models.requests import CreateOrderRequest, parse_request
from cardstore.models.views import OrderView
from cardstore.services.stock_ledger import adjust_stock

logger = logging.getLogger(__name__)


async def _resolve_cards(
    session: AsyncSession, request: CreateOrderRequest, check_stock: bool
) -> dict[int, CardDB]:
    """Load every requested card, enforcing existence, activity and (optionally) stock."""
    cards = await ops.get_cards_by_ids(session, (item.card_id for item in request.items))
    for item in request.items:
        card = cards.get(item.card_id)
        if card is None:
            raise CardNotFoundError(item.card_id)
        if not card.is_active:
            raise CardInactiveError(item.card_id)
        if check_stock and card.stock_quantity < item.quantity:
            raise InsufficientStockError(
                item.card_id, requested=item.quantity, available=card.stock_quantity
            )
    return cards


def _price_lines(
    request: CreateOrderRequest, cards: dict[int, CardDB]
) -> tuple[list[OrderItemDB], Decimal]:
    lines = [
        OrderItemDB(
            card_id=item.card_id,
            quantity=item.quantity,
            unit_price=cards[item.card_id].price,
        )
        for item in request.items
    ]
    total = sum((line.unit_price * line.quantity for line in lines), Decimal("0"))
    return lines, ops.to_money(total)


def _parse_status(value: OrderStatus | str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as e:
        raise ValidationFailedError.for_field("status", f"Unknown order status: {value}") from e


async def _check_customer(session: AsyncSession, user_id: int) -> None:
    user = await ops.get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if not user.is_active:
        raise UserInactiveError(user_id)


async def _load_order(
    session: AsyncSession, order_id: int, user_id: int | None = None
) -> OrderDB:
    order = await ops.get_order(session, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if user_id is not None and order.user_id != user_id:
        raise OrderAccessDeniedError(order_id, user_id)
    return order


# --- Workflow ---


async def create_order(
    session: AsyncSession,
    user_id: int,
    request: CreateOrderRequest | Mapping[str, Any],
) -> OrderView:
    """
    Place an order for user_id.

    Raises:
        ValidationFailedError: If the request is malformed
        UserNotFoundError: If the user doesn't exist
        UserInactiveError: If the user is deactivated
        CardNotFoundError: If a requested card doesn't exist
        CardInactiveError: If a requested card is deactivated
        InsufficientStockError: If a card has fewer copies than requested
    """
    req = parse_request(CreateOrderRequest, request)
    await _check_customer(session, user_id)

    cards = await _resolve_cards(session, req, check_stock=True)
    lines, total = _price_lines(req, cards)

    for line in lines:
        await adjust_stock(session, line.card_id, -line.quantity)

    order = OrderDB(
        user_id=user_id,
        total_amount=total,
        status=OrderStatus.PENDING.value,
        order_date=utcnow(),
        shipping_address=req.shipping_address,
        shipping_city=req.shipping_city,
        shipping_postal_code=req.shipping_postal_code,
        shipping_country=req.shipping_country,
        payment_method=req.payment_method,
        notes=req.notes,
        items=lines,
    )
    await ops.create_order(session, order)

    logger.info(
        "ORDER_CREATED",
        extra={
            "order_id": order.id,
            "user_id": user_id,
            "total_amount": str(total),
            "line_count": len(lines),
        },
    )
    return ops.order_to_model(await _load_order(session, order.id))


async def cancel_order(
    session: AsyncSession, order_id: int, user_id: int | None = None
) -> OrderView:
    """
    Cancel a pending order and return its quantities to stock.

    Args:
        session: Database session
        order_id: Order to cancel
        user_id: If given, the order must belong to this user

    Raises:
        OrderNotFoundError: If the order doesn't exist
        OrderAccessDeniedError: If user_id doesn't own the order
        OrderNotCancellableError: If the order is not Pending
    """
    order = await _load_order(session, order_id, user_id)
    if order.status != OrderStatus.PENDING.value:
        raise OrderNotCancellableError(order_id, order.status)

    # Claim the transition first so two concurrent cancels cannot both restore stock.
    claimed = await ops.transition_order_status(
        session, order_id, OrderStatus.PENDING.value, OrderStatus.CANCELLED.value
    )
    if not claimed:
        raise OrderNotCancellableError(order_id, order.status)

    for item in order.items:
        await adjust_stock(session, item.card_id, item.quantity, require_active=False)

    logger.info("ORDER_CANCELLED", extra={"order_id": order_id, "user_id": order.user_id})
    return ops.order_to_model(await _load_order(session, order_id))


async def update_order_status(
    session: AsyncSession, order_id: int, new_status: OrderStatus | str
) -> OrderView:
    """
    Move an order along its lifecycle.

    Pending -> Shipped or Cancelled, Shipped -> Delivered. Cancelling goes
    through cancel_order so stock is restored. The first move into Shipped
    or Delivered stamps the matching date.

    Raises:
        OrderNotFoundError: If the order doesn't exist
        ValidationFailedError: If new_status is not a known status
        InvalidStatusTransitionError: If the move is not allowed, including when
            another request changed the status first
    """
    target = _parse_status(new_status)
    order = await _load_order(session, order_id)
    current = OrderStatus(order.status)
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(order_id, current.value, target.value)

    if target is OrderStatus.CANCELLED:
        return await cancel_order(session, order_id)

    # Conditional on the status read above; a concurrent cancel or update wins.
    moved = await ops.transition_order_status(session, order_id, current.value, target.value)
    if not moved:
        latest = await _load_order(session, order_id)
        raise InvalidStatusTransitionError(order_id, latest.status, target.value)

    logger.info(
        "ORDER_STATUS_CHANGED",
        extra={"order_id": order_id, "from_status": current.value, "to_status": target.value},
    )
    return ops.order_to_model(await _load_order(session, order_id))


async def calculate_order_total(
    session: AsyncSession, request: CreateOrderRequest | Mapping[str, Any]
) -> Decimal:
    """
    Price a prospective order without placing it.

    Cards are resolved with the same rules as create_order, but stock is not
    checked and nothing is written.

    Raises:
        CardNotFoundError: If a requested card doesn't exist
        CardInactiveError: If a requested card is deactivated
    """
    req = parse_request(CreateOrderRequest, request)
    cards = await _resolve_cards(session, req, check_stock=False)
    _, total = _price_lines(req, cards)
    return total


# --- Queries ---


async def get_order(
    session: AsyncSession, order_id: int, user_id: int | None = None
) -> OrderView:
    """
    Raises:
        OrderNotFoundError: If the order doesn't exist
        OrderAccessDeniedError: If user_id is given and doesn't own the order
    """
    return ops.order_to_model(await _load_order(session, order_id, user_id))


async def list_orders_for_user(session: AsyncSession, user_id: int) -> list[OrderView]:
    """A user's orders, newest first."""
    orders = await ops.list_orders(session, OrderDB.user_id == user_id)
    return [ops.order_to_model(o) for o in orders]


async def list_orders_by_status(
    session: AsyncSession, status: OrderStatus | str
) -> list[OrderView]:
    """Orders in one status, oldest first."""
    orders = await ops.list_orders(
        session, OrderDB.status == _parse_status(status).value, newest_first=False
    )
    return [ops.order_to_model(o) for o in orders]


async def list_pending_orders(session: AsyncSession) -> list[OrderView]:
    return await list_orders_by_status(session, OrderStatus.PENDING)


async def list_orders_by_date_range(
    session: AsyncSession, start: datetime, end: datetime
) -> list[OrderView]:
    """Orders placed within [start, end], newest first."""
    if start > end:
        raise ValidationFailedError.for_field("start", "Start date cannot be after end date")
    orders = await ops.list_orders(session, *ops.order_date_filter(start, end))
    return [ops.order_to_model(o) for o in orders]


async def get_total_revenue(
    session: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Decimal:
    """Sum of order totals in the range, excluding cancelled orders."""
    return await ops.sum_order_totals(
        session,
        OrderDB.status != OrderStatus.CANCELLED.value,
        *ops.order_date_filter(start, end),
    )


async def get_total_orders_count(
    session: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    """Number of orders placed in the range, in any status."""
    return await ops.count_orders(session, *ops.order_date_filter(start, end))
