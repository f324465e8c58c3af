"""
Read-only views returned by the services.

Built from ORM rows by the *_to_model converters in cardstore.db.operations.
None of them carries a password hash.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Generic, TypeVar

from cardstore.models.enums import OrderStatus, Rarity

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CardView:
    """A catalog card."""

    id: int
    name: str
    description: str
    rarity: Rarity
    price: Decimal
    set_name: str
    stock_quantity: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    image_url: str | None = None
    card_type: str | None = None
    attack: int | None = None
    defense: int | None = None
    level: int | None = None
    attribute: str | None = None

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0


@dataclass(frozen=True, slots=True)
class OrderLineView:
    """
    One order line.

    unit_price is the price snapshot taken when the order was placed.
    """

    id: int
    card_id: int
    card_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class OrderView:
    """An order with its resolved line items."""

    id: int
    user_id: int
    username: str
    status: OrderStatus
    total_amount: Decimal
    order_date: datetime
    items: tuple[OrderLineView, ...] = ()
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    shipping_address: str | None = None
    shipping_city: str | None = None
    shipping_postal_code: str | None = None
    shipping_country: str | None = None
    payment_method: str | None = None
    notes: str | None = None

    def line_total(self) -> Decimal:
        """Sum of line totals. Equals total_amount for every persisted order."""
        return sum((line.total_price for line in self.items), Decimal("0"))


@dataclass(frozen=True, slots=True)
class CollectionEntryView:
    """
    A collection entry joined with its card.

    card_price is the current catalog price, not a historical one.
    """

    id: int
    user_id: int
    card_id: int
    card_name: str
    card_set: str
    card_rarity: Rarity
    card_price: Decimal
    quantity: int
    acquired_date: datetime
    created_at: datetime
    updated_at: datetime
    card_image_url: str | None = None
    notes: str | None = None

    @property
    def total_value(self) -> Decimal:
        return self.card_price * self.quantity


@dataclass(frozen=True, slots=True)
class CollectionSummary:
    """Aggregate figures for one user's collection."""

    user_id: int
    username: str
    total_cards: int = 0
    unique_cards: int = 0
    total_value: Decimal = Decimal("0.00")
    last_updated: datetime | None = None

    @property
    def average_card_value(self) -> Decimal:
        if self.total_cards == 0:
            return Decimal("0.00")
        return (self.total_value / self.total_cards).quantize(Decimal("0.01"))


@dataclass(frozen=True, slots=True)
class UserView:
    """Public user profile."""

    id: int
    username: str
    email: str
    is_active: bool
    created_at: datetime
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
    last_login_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Identity claims carried by a bearer token."""

    user_id: int
    username: str
    email: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class LoginResult:
    token: str
    user: UserView
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of results. page_number is 1-based."""

    items: list[T] = field(default_factory=list)
    page_number: int = 1
    page_size: int = 20
    total_records: int = 0

    @property
    def total_pages(self) -> int:
        return ceil(self.total_records / self.page_size) if self.page_size else 0

    @property
    def has_next_page(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page_number > 1
