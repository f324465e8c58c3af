"""Tests for the order workflow."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.db.operations import count_orders, get_card
from cardstore.models.db import utcnow
from cardstore.models.enums import OrderStatus
from cardstore.models.failure import (
    CardInactiveError,
    CardNotFoundError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    OrderAccessDeniedError,
    OrderNotCancellableError,
    OrderNotFoundError,
    UserInactiveError,
    ValidationFailedError,
)
from cardstore.services import catalog, orders


def order_for(*lines: tuple[int, int], **extra) -> dict:
    return {"items": [{"card_id": c, "quantity": q} for c, q in lines], **extra}


async def stock_of(session: AsyncSession, card_id: int) -> int:
    return (await get_card(session, card_id)).stock_quantity


class TestCreateOrder:
    async def test_end_to_end_order_and_cancel(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Order 3 at 5.00 from stock 10, then cancel it and try to cancel again."""
        card = await make_card(price=Decimal("5.00"), stock_quantity=10)

        order = await orders.create_order(session, user.id, order_for((card.id, 3)))

        assert order.status is OrderStatus.PENDING
        assert order.total_amount == Decimal("15.00")
        assert await stock_of(session, card.id) == 7

        cancelled = await orders.cancel_order(session, order.id)

        assert cancelled.status is OrderStatus.CANCELLED
        assert await stock_of(session, card.id) == 10

        with pytest.raises(OrderNotCancellableError):
            await orders.cancel_order(session, order.id)
        assert await stock_of(session, card.id) == 10

    async def test_total_is_sum_of_lines(self, session: AsyncSession, user, make_card) -> None:
        """Total equals the sum of quantity times unit price."""
        a = await make_card("Celtic Guardian", price=Decimal("2.49"))
        b = await make_card("Mystical Elf", price=Decimal("4.99"))

        order = await orders.create_order(session, user.id, order_for((a.id, 2), (b.id, 3)))

        assert order.total_amount == Decimal("19.95")
        assert order.line_total() == order.total_amount
        assert [line.card_name for line in order.items] == ["Celtic Guardian", "Mystical Elf"]
        assert order.username == user.username

    async def test_price_snapshot_survives_price_change(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Later catalog price changes don't touch existing orders."""
        card = await make_card(price=Decimal("5.00"))
        placed = await orders.create_order(session, user.id, order_for((card.id, 2)))

        await catalog.update_card(session, card.id, {"price": Decimal("42.00")})
        reloaded = await orders.get_order(session, placed.id)

        assert reloaded.items[0].unit_price == Decimal("5.00")
        assert reloaded.total_amount == Decimal("10.00")
        assert reloaded.line_total() == reloaded.total_amount

    async def test_shipping_metadata_is_stored(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Optional shipping and payment fields are persisted."""
        card = await make_card()

        order = await orders.create_order(
            session,
            user.id,
            order_for(
                (card.id, 1),
                shipping_address="1 Duel Street",
                shipping_city="Domino",
                payment_method="card",
            ),
        )

        assert order.shipping_address == "1 Duel Street"
        assert order.shipping_city == "Domino"
        assert order.payment_method == "card"

    async def test_all_or_nothing_on_insufficient_stock(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """One short line rejects the whole order without moving any stock."""
        plenty = await make_card("Dark Magician", stock_quantity=10)
        scarce = await make_card("Blue-Eyes White Dragon", stock_quantity=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            await orders.create_order(session, user.id, order_for((plenty.id, 2), (scarce.id, 2)))

        assert exc_info.value.card_id == scarce.id
        assert await stock_of(session, plenty.id) == 10
        assert await stock_of(session, scarce.id) == 1
        assert await count_orders(session) == 0

    async def test_all_or_nothing_on_inactive_card(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """An inactive card anywhere in the order rejects it."""
        active = await make_card("Dark Magician")
        retired = await make_card("Kuriboh", is_active=False)

        with pytest.raises(CardInactiveError):
            await orders.create_order(session, user.id, order_for((active.id, 1), (retired.id, 1)))

        assert await stock_of(session, active.id) == 10
        assert await count_orders(session) == 0

    async def test_unknown_card(self, session: AsyncSession, user) -> None:
        """Unknown card ids raise CardNotFoundError."""
        with pytest.raises(CardNotFoundError):
            await orders.create_order(session, user.id, order_for((404, 1)))

    async def test_inactive_user(self, session: AsyncSession, make_user, make_card) -> None:
        """Deactivated users cannot place orders."""
        retired = await make_user("bakura", is_active=False)
        card = await make_card()

        with pytest.raises(UserInactiveError):
            await orders.create_order(session, retired.id, order_for((card.id, 1)))

    async def test_empty_order_rejected(self, session: AsyncSession, user) -> None:
        """An order needs at least one item."""
        with pytest.raises(ValidationFailedError) as exc_info:
            await orders.create_order(session, user.id, {"items": []})

        assert "items" in exc_info.value.fields()

    async def test_duplicate_card_rejected(self, session: AsyncSession, user, make_card) -> None:
        """A card may appear only once per order."""
        card = await make_card()

        with pytest.raises(ValidationFailedError):
            await orders.create_order(session, user.id, order_for((card.id, 1), (card.id, 2)))

    async def test_non_positive_quantity_rejected(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Quantities must be at least 1."""
        card = await make_card()

        with pytest.raises(ValidationFailedError) as exc_info:
            await orders.create_order(session, user.id, order_for((card.id, 0)))

        assert "items.0.quantity" in exc_info.value.fields()


class TestCancelOrder:
    async def test_missing_order(self, session: AsyncSession) -> None:
        """Unknown orders raise OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError):
            await orders.cancel_order(session, 77)

    async def test_other_users_order(self, session: AsyncSession, make_user, make_card) -> None:
        """A user cannot cancel someone else's order."""
        owner = await make_user("yugi")
        other = await make_user("kaiba")
        card = await make_card()
        order = await orders.create_order(session, owner.id, order_for((card.id, 1)))

        with pytest.raises(OrderAccessDeniedError):
            await orders.cancel_order(session, order.id, user_id=other.id)

        assert await stock_of(session, card.id) == 9

    async def test_owner_can_cancel(self, session: AsyncSession, user, make_card) -> None:
        """Passing the owner's id is allowed."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 4)))

        cancelled = await orders.cancel_order(session, order.id, user_id=user.id)

        assert cancelled.status is OrderStatus.CANCELLED
        assert await stock_of(session, card.id) == 10

    async def test_shipped_order_not_cancellable(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Shipped orders keep their stock deducted."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 2)))
        await orders.update_order_status(session, order.id, OrderStatus.SHIPPED)

        with pytest.raises(OrderNotCancellableError):
            await orders.cancel_order(session, order.id)

        assert await stock_of(session, card.id) == 8

    async def test_restores_stock_of_deactivated_card(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Cancelling returns stock even if the card was retired meanwhile."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 3)))
        await catalog.deactivate_card(session, card.id)

        await orders.cancel_order(session, order.id)

        assert await stock_of(session, card.id) == 10


class TestUpdateOrderStatus:
    async def test_ship_then_deliver(self, session: AsyncSession, user, make_card) -> None:
        """Forward moves stamp their dates."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 1)))

        shipped = await orders.update_order_status(session, order.id, "Shipped")
        assert shipped.status is OrderStatus.SHIPPED
        assert shipped.shipped_date is not None
        assert shipped.delivered_date is None

        delivered = await orders.update_order_status(session, order.id, OrderStatus.DELIVERED)
        assert delivered.status is OrderStatus.DELIVERED
        assert delivered.delivered_date is not None
        assert delivered.shipped_date == shipped.shipped_date

    async def test_skipping_shipped_is_rejected(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Pending cannot jump straight to Delivered."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 1)))

        with pytest.raises(InvalidStatusTransitionError):
            await orders.update_order_status(session, order.id, OrderStatus.DELIVERED)

    async def test_terminal_states(self, session: AsyncSession, user, make_card) -> None:
        """Delivered orders cannot move again."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 1)))
        await orders.update_order_status(session, order.id, OrderStatus.SHIPPED)
        await orders.update_order_status(session, order.id, OrderStatus.DELIVERED)

        for target in (OrderStatus.PENDING, OrderStatus.SHIPPED, OrderStatus.CANCELLED):
            with pytest.raises(InvalidStatusTransitionError):
                await orders.update_order_status(session, order.id, target)

    async def test_cancel_through_status_restores_stock(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Setting Cancelled goes through cancellation."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 5)))

        result = await orders.update_order_status(session, order.id, OrderStatus.CANCELLED)

        assert result.status is OrderStatus.CANCELLED
        assert await stock_of(session, card.id) == 10

    async def test_unknown_status(self, session: AsyncSession, user, make_card) -> None:
        """Statuses outside the enumeration are a validation failure."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 1)))

        with pytest.raises(ValidationFailedError):
            await orders.update_order_status(session, order.id, "Lost")


class TestCalculateOrderTotal:
    async def test_prices_without_side_effects(
        self, session: AsyncSession, make_card
    ) -> None:
        """Totals are computed without touching stock or storing orders."""
        card = await make_card(price=Decimal("3.50"), stock_quantity=1)

        total = await orders.calculate_order_total(session, order_for((card.id, 4)))

        assert total == Decimal("14.00")
        assert await stock_of(session, card.id) == 1
        assert await count_orders(session) == 0

    async def test_resolves_cards_like_create_order(
        self, session: AsyncSession, make_card
    ) -> None:
        """Unknown and inactive cards are rejected, not skipped."""
        retired = await make_card(is_active=False)

        with pytest.raises(CardInactiveError):
            await orders.calculate_order_total(session, order_for((retired.id, 1)))
        with pytest.raises(CardNotFoundError):
            await orders.calculate_order_total(session, order_for((999, 1)))


class TestOrderQueries:
    async def test_get_order_access(self, session: AsyncSession, make_user, make_card) -> None:
        """get_order enforces ownership when a user id is given."""
        owner = await make_user("yugi")
        other = await make_user("joey")
        card = await make_card()
        order = await orders.create_order(session, owner.id, order_for((card.id, 1)))

        assert (await orders.get_order(session, order.id, user_id=owner.id)).id == order.id
        with pytest.raises(OrderAccessDeniedError):
            await orders.get_order(session, order.id, user_id=other.id)
        with pytest.raises(OrderNotFoundError):
            await orders.get_order(session, 9999)

    async def test_list_for_user_newest_first(
        self, session: AsyncSession, make_user, make_card
    ) -> None:
        """A user's orders come back newest first and exclude other users."""
        owner = await make_user("yugi")
        other = await make_user("joey")
        card = await make_card(stock_quantity=50)
        first = await orders.create_order(session, owner.id, order_for((card.id, 1)))
        second = await orders.create_order(session, owner.id, order_for((card.id, 1)))
        await orders.create_order(session, other.id, order_for((card.id, 1)))

        listed = await orders.list_orders_for_user(session, owner.id)

        assert [o.id for o in listed] == [second.id, first.id]

    async def test_list_by_status_oldest_first(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Pending orders are listed oldest first."""
        card = await make_card(stock_quantity=50)
        first = await orders.create_order(session, user.id, order_for((card.id, 1)))
        second = await orders.create_order(session, user.id, order_for((card.id, 1)))
        shipped = await orders.create_order(session, user.id, order_for((card.id, 1)))
        await orders.update_order_status(session, shipped.id, OrderStatus.SHIPPED)

        pending = await orders.list_pending_orders(session)
        shipped_list = await orders.list_orders_by_status(session, "Shipped")

        assert [o.id for o in pending] == [first.id, second.id]
        assert [o.id for o in shipped_list] == [shipped.id]

    async def test_list_by_date_range(self, session: AsyncSession, user, make_card) -> None:
        """Only orders placed inside the range are returned."""
        card = await make_card()
        order = await orders.create_order(session, user.id, order_for((card.id, 1)))
        now = utcnow()

        inside = await orders.list_orders_by_date_range(
            session, now - timedelta(hours=1), now + timedelta(hours=1)
        )
        outside = await orders.list_orders_by_date_range(
            session, now + timedelta(days=1), now + timedelta(days=2)
        )

        assert [o.id for o in inside] == [order.id]
        assert outside == []

    async def test_date_range_must_be_ordered(self, session: AsyncSession) -> None:
        """start after end is rejected."""
        now = utcnow()
        with pytest.raises(ValidationFailedError):
            await orders.list_orders_by_date_range(session, now, now - timedelta(days=1))


class TestOrderAggregates:
    async def test_revenue_excludes_cancelled(
        self, session: AsyncSession, user, make_card
    ) -> None:
        """Cancelled orders count toward the total but not toward revenue."""
        card = await make_card(price=Decimal("5.00"), stock_quantity=50)
        await orders.create_order(session, user.id, order_for((card.id, 2)))
        kept = await orders.create_order(session, user.id, order_for((card.id, 1)))
        dropped = await orders.create_order(session, user.id, order_for((card.id, 4)))
        await orders.update_order_status(session, kept.id, OrderStatus.SHIPPED)
        await orders.cancel_order(session, dropped.id)

        assert await orders.get_total_revenue(session) == Decimal("15.00")
        assert await orders.get_total_orders_count(session) == 3

    async def test_aggregates_respect_range(self, session: AsyncSession, user, make_card) -> None:
        """A range with no orders yields zero."""
        card = await make_card()
        await orders.create_order(session, user.id, order_for((card.id, 1)))
        later = utcnow() + timedelta(days=1)

        assert await orders.get_total_revenue(session, start=later) == Decimal("0.00")
        assert await orders.get_total_orders_count(session, start=later) == 0
        assert await orders.get_total_orders_count(session, end=later) == 1

    async def test_empty_store(self, session: AsyncSession) -> None:
        """No orders means zero revenue."""
        assert await orders.get_total_revenue(session) == Decimal("0.00")
        assert await orders.get_total_orders_count(session) == 0
