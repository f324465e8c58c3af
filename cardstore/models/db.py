"""
SQLAlchemy ORM models for persistent storage.

Models mirror the view dataclasses but add database persistence.
Timestamps are naive UTC, set on the Python side so they are available
immediately after a flush without a round trip.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from werkzeug.security import check_password_hash, generate_password_hash

from cardstore.models.enums import OrderStatus


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserDB(Base):
    """
    A registered store user.

    The password hash never leaves this model; views are built without it.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    orders: Mapped[list["OrderDB"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    collection: Mapped[list["CollectionEntryDB"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str | None) -> bool:
        if not raw_password or not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw_password)

    def __repr__(self) -> str:
        return f"<UserDB(id={self.id}, username={self.username})>"


class CardDB(Base):
    """
    A card in the store catalog.

    Cards are never hard-deleted; deactivation flips is_active so historical
    orders and collections keep resolving them.
    """

    __tablename__ = "cards"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_card_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_card_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str] = mapped_column(String(1000), default="")
    rarity: Mapped[str] = mapped_column(String(50), index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    set_name: Mapped[str] = mapped_column(String(100), index=True)

    # Game attributes
    card_type: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    attack: Mapped[int | None] = mapped_column(Integer, nullable=True)
    defense: Mapped[int | None] = mapped_column(Integer, nullable=True)
    level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attribute: Mapped[str | None] = mapped_column(String(100), nullable=True)

    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name}, stock={self.stock_quantity})>"


class OrderDB(Base):
    """A placed order. Owns its line items."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.PENDING.value, index=True)

    order_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    shipped_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Shipping and payment metadata
    shipping_address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    shipping_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipping_postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    shipping_country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    user: Mapped["UserDB"] = relationship(back_populates="orders")
    items: Mapped[list["OrderItemDB"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemDB.id",
    )

    def __repr__(self) -> str:
        return f"<OrderDB(id={self.id}, user_id={self.user_id}, status={self.status})>"


class OrderItemDB(Base):
    """
    One line of an order.

    unit_price is the card's price at order time and never changes afterwards.
    """

    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("order_id", "card_id", name="uq_order_card"),
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="RESTRICT"), index=True
    )
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    order: Mapped["OrderDB"] = relationship(back_populates="items")
    card: Mapped["CardDB"] = relationship()

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def __repr__(self) -> str:
        return f"<OrderItemDB(card_id={self.card_id}, qty={self.quantity})>"


class CollectionEntryDB(Base):
    """
    How many copies of a card a user owns.

    At most one row per (user, card). A quantity of zero is represented by
    deleting the row.
    """

    __tablename__ = "collection_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_collection_user_card"),
        CheckConstraint("quantity >= 1", name="ck_collection_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    acquired_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    user: Mapped["UserDB"] = relationship(back_populates="collection")
    card: Mapped["CardDB"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<CollectionEntryDB(user_id={self.user_id}, card_id={self.card_id}, "
            f"qty={self.quantity})>"
        )
