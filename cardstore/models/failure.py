"""
Failure classification for the store core.

Every failure a caller can act on is a KnownError subclass with a
FailureKind. Business-rule and validation failures are recoverable and carry
enough detail to correct the input. Storage failures are opaque: the cause is
logged where it happens and callers only see StorageError.

Nothing in this module retries. A failed operation is terminal for the
triggering request and must be resubmitted by the caller.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    VALIDATION_FAILED = "validation_failed"

    # Resource failures
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"

    # Business rule violations
    INSUFFICIENT_STOCK = "insufficient_stock"
    DUPLICATE_USERNAME = "duplicate_username"
    DUPLICATE_EMAIL = "duplicate_email"
    ORDER_NOT_CANCELLABLE = "order_not_cancellable"
    INVALID_STATUS_TRANSITION = "invalid_status_transition"

    # Identity failures
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    ACCESS_DENIED = "access_denied"

    # Internal errors
    STORAGE_UNAVAILABLE = "storage_unavailable"


class FieldError(BaseModel):
    """A single field-level validation problem."""

    field: str
    message: str


class FailureDetail(BaseModel):
    """Caller-facing description of a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )
    errors: list[FieldError] = Field(
        default_factory=list,
        description="Per-field problems for validation failures",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# NOT FOUND / INACTIVE
# =============================================================================


class NotFoundError(KnownError):
    """An entity does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{entity} {entity_id} not found",
            status_code=404,
        )


class CardNotFoundError(NotFoundError):
    def __init__(self, card_id: int):
        self.card_id = card_id
        super().__init__("Card", card_id)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order", order_id)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__("User", user_id)


class CollectionEntryNotFoundError(NotFoundError):
    """The user has no collection entry for the card."""

    def __init__(self, user_id: int, card_id: int):
        self.user_id = user_id
        self.card_id = card_id
        super().__init__("Collection entry for card", card_id)


class InactiveError(KnownError):
    """An entity exists but has been deactivated."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            kind=FailureKind.INACTIVE,
            message=f"{entity} {entity_id} is not active",
            status_code=400,
        )


class CardInactiveError(InactiveError):
    def __init__(self, card_id: int):
        self.card_id = card_id
        super().__init__("Card", card_id)


class UserInactiveError(InactiveError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__("User", user_id)


# =============================================================================
# BUSINESS RULES
# =============================================================================


class InsufficientStockError(KnownError):
    """Requested quantity exceeds the card's stock."""

    def __init__(self, card_id: int, requested: int, available: int | None = None):
        self.card_id = card_id
        self.requested = requested
        self.available = available
        detail = f"requested={requested}"
        if available is not None:
            detail += f", available={available}"
        super().__init__(
            kind=FailureKind.INSUFFICIENT_STOCK,
            message=f"Insufficient stock for card {card_id}",
            detail=detail,
            suggestion="Reduce the quantity or try again later.",
            status_code=409,
        )


class DuplicateUsernameError(KnownError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(
            kind=FailureKind.DUPLICATE_USERNAME,
            message="Username already exists",
            suggestion="Choose a different username.",
            status_code=409,
        )


class DuplicateEmailError(KnownError):
    def __init__(self, email: str):
        self.email = email
        super().__init__(
            kind=FailureKind.DUPLICATE_EMAIL,
            message="Email already exists",
            suggestion="Use a different email address or log in.",
            status_code=409,
        )


class OrderNotCancellableError(KnownError):
    """Only pending orders can be cancelled."""

    def __init__(self, order_id: int, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            kind=FailureKind.ORDER_NOT_CANCELLABLE,
            message=f"Order {order_id} cannot be cancelled",
            detail=f"status={status}",
            status_code=409,
        )


class InvalidStatusTransitionError(KnownError):
    def __init__(self, order_id: int, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(
            kind=FailureKind.INVALID_STATUS_TRANSITION,
            message=f"Order {order_id} cannot move from {current} to {target}",
            status_code=409,
        )


# =============================================================================
# IDENTITY
# =============================================================================


class InvalidCredentialsError(KnownError):
    """
    Login failed.

    The message is identical whether the account is missing, inactive, or the
    password is wrong, so callers cannot probe for existing accounts.
    """

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.INVALID_CREDENTIALS,
            message="Invalid credentials",
            status_code=401,
        )


class InvalidTokenError(KnownError):
    def __init__(self, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_TOKEN,
            message="Token is invalid",
            detail=detail,
            status_code=401,
        )


class OrderAccessDeniedError(KnownError):
    def __init__(self, order_id: int, user_id: int):
        self.order_id = order_id
        self.user_id = user_id
        super().__init__(
            kind=FailureKind.ACCESS_DENIED,
            message="Access denied",
            status_code=403,
        )


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationFailedError(KnownError):
    """Input violated one or more field constraints."""

    def __init__(self, errors: list[FieldError], message: str = "Invalid input data"):
        self.errors = errors
        super().__init__(
            kind=FailureKind.VALIDATION_FAILED,
            message=message,
            detail="; ".join(f"{e.field}: {e.message}" for e in errors) or None,
            status_code=400,
        )

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailedError":
        return cls([FieldError(field=field, message=message)], message=message)

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailedError":
        """Build from a pydantic ValidationError, one FieldError per problem."""
        errors = [
            FieldError(
                field=".".join(str(loc) for loc in err["loc"]) or "__root__",
                message=err["msg"],
            )
            for err in exc.errors()
        ]
        return cls(errors)

    def fields(self) -> set[str]:
        """Names of the fields that failed."""
        return {e.field for e in self.errors}

    def to_detail(self) -> FailureDetail:
        detail = super().to_detail()
        detail.errors = list(self.errors)
        return detail


# =============================================================================
# INTERNAL
# =============================================================================


class StorageError(KnownError):
    """
    The backing store failed.

    Deliberately opaque: the underlying exception is logged by the code that
    caught it and is chained as __cause__, never copied into the message.
    """

    def __init__(self, operation: str = "unknown"):
        self.operation = operation
        super().__init__(
            kind=FailureKind.STORAGE_UNAVAILABLE,
            message="An internal error occurred",
            suggestion="If this persists, please report the issue.",
            status_code=503,
        )
