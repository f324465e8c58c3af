"""
Closed enumerations for catalog and order state.

Values are stored as their string form in the database.
"""

from enum import Enum


class Rarity(str, Enum):
    """Card rarity tiers, lowest to highest."""

    COMMON = "Common"
    UNCOMMON = "Uncommon"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"
    MYTHIC = "Mythic"

    @classmethod
    def parse(cls, value: "str | Rarity") -> "Rarity":
        """Resolve a rarity name case-insensitively."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Rarity must be one of: {valid}")


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "Pending"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# Forward-only lifecycle. Delivered and Cancelled are terminal.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether an order may move from current to target status."""
    return target in ORDER_TRANSITIONS[current]
