"""
Validated input models.

Callers build these from untrusted input through parse_request(), which turns
pydantic's ValidationError into ValidationFailedError with one entry per
offending field.
"""

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, TypeVar
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from cardstore.config import MAX_CARD_PRICE, MAX_CARD_STAT, settings
from cardstore.models.enums import Rarity
from cardstore.models.failure import ValidationFailedError

M = TypeVar("M", bound=BaseModel)

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def parse_request(model: type[M], data: Mapping[str, Any] | M) -> M:
    """
    Validate raw input into a request model.

    Raises:
        ValidationFailedError: If any field violates its constraints
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailedError.from_pydantic(e) from e


def _check_http_url(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Image URL must be a valid URL")
    return value


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


# --- Catalog ---


class CardCreateRequest(_Request):
    """A new catalog card."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    rarity: Rarity
    price: Decimal = Field(..., gt=0, le=MAX_CARD_PRICE, decimal_places=2)
    image_url: str | None = Field(default=None, max_length=500)
    set_name: str = Field(..., min_length=1, max_length=100)
    card_type: str | None = Field(default=None, max_length=50)
    attack: int | None = Field(default=None, ge=0, le=MAX_CARD_STAT)
    defense: int | None = Field(default=None, ge=0, le=MAX_CARD_STAT)
    level: int | None = Field(default=None, ge=1, le=12)
    attribute: str | None = Field(default=None, max_length=100)
    stock_quantity: int = Field(default=0, ge=0)
    is_active: bool = True

    @field_validator("rarity", mode="before")
    @classmethod
    def _parse_rarity(cls, v: Any) -> Rarity:
        return Rarity.parse(v)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, v: str | None) -> str | None:
        return _check_http_url(v)


class CardUpdateRequest(_Request):
    """
    Partial card update. Only fields that were explicitly set are applied.

    Stock is not editable here; it moves only through the stock ledger.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    rarity: Rarity | None = None
    price: Decimal | None = Field(default=None, gt=0, le=MAX_CARD_PRICE, decimal_places=2)
    image_url: str | None = Field(default=None, max_length=500)
    set_name: str | None = Field(default=None, min_length=1, max_length=100)
    card_type: str | None = Field(default=None, max_length=50)
    attack: int | None = Field(default=None, ge=0, le=MAX_CARD_STAT)
    defense: int | None = Field(default=None, ge=0, le=MAX_CARD_STAT)
    level: int | None = Field(default=None, ge=1, le=12)
    attribute: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None

    @field_validator("rarity", mode="before")
    @classmethod
    def _parse_rarity(cls, v: Any) -> Rarity | None:
        return None if v is None else Rarity.parse(v)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, v: str | None) -> str | None:
        return _check_http_url(v)


# --- Orders ---


class OrderItemRequest(_Request):
    card_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0, le=settings.max_item_quantity)


class CreateOrderRequest(_Request):
    """
    Items plus optional shipping/payment metadata.

    Each card may appear once; line items are unique per (order, card).
    """

    items: list[OrderItemRequest] = Field(..., min_length=1)
    shipping_address: str | None = Field(default=None, max_length=200)
    shipping_city: str | None = Field(default=None, max_length=100)
    shipping_postal_code: str | None = Field(default=None, max_length=20)
    shipping_country: str | None = Field(default=None, max_length=100)
    payment_method: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=500)

    @field_validator("items")
    @classmethod
    def _check_items(cls, items: list[OrderItemRequest]) -> list[OrderItemRequest]:
        if len(items) > settings.max_order_items:
            raise ValueError(
                f"Order cannot contain more than {settings.max_order_items} different items"
            )
        seen: set[int] = set()
        for item in items:
            if item.card_id in seen:
                raise ValueError(f"Card {item.card_id} appears more than once")
            seen.add(item.card_id)
        return items


# --- Users ---


class RegisterRequest(_Request):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    phone_number: str | None = Field(default=None, pattern=r"^\+?[1-9]\d{0,15}$")
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def _check_email_length(cls, v: str) -> str:
        if len(v) > 100:
            raise ValueError("Email cannot exceed 100 characters")
        return v

    @field_validator("password")
    @classmethod
    def _check_password_strength(cls, v: str) -> str:
        if not _PASSWORD_RULE.match(v):
            raise ValueError(
                "Password must contain at least one lowercase letter, "
                "one uppercase letter, and one number"
            )
        return v

    @model_validator(mode="after")
    def _check_passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

    def profile(self) -> dict[str, str | None]:
        """Profile fields only, without credentials."""
        return self.model_dump(
            include={
                "first_name",
                "last_name",
                "phone_number",
                "address",
                "city",
                "postal_code",
                "country",
            }
        )


class UpdateProfileRequest(_Request):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    phone_number: str | None = Field(default=None, pattern=r"^\+?[1-9]\d{0,15}$")
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, max_length=100)


class LoginRequest(_Request):
    username_or_email: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
