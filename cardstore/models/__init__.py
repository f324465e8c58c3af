from cardstore.models.enums import ORDER_TRANSITIONS, OrderStatus, Rarity, can_transition
from cardstore.models.failure import (
    CardInactiveError,
    CardNotFoundError,
    CollectionEntryNotFoundError,
    DuplicateEmailError,
    DuplicateUsernameError,
    FailureDetail,
    FailureKind,
    FieldError,
    InactiveError,
    InsufficientStockError,
    InvalidCredentialsError,
    InvalidStatusTransitionError,
    InvalidTokenError,
    KnownError,
    NotFoundError,
    OrderAccessDeniedError,
    OrderNotCancellableError,
    OrderNotFoundError,
    StorageError,
    UserInactiveError,
    UserNotFoundError,
    ValidationFailedError,
)
from cardstore.models.requests import (
    CardCreateRequest,
    CardUpdateRequest,
    CreateOrderRequest,
    LoginRequest,
    OrderItemRequest,
    RegisterRequest,
    UpdateProfileRequest,
    parse_request,
)
from cardstore.models.views import (
    CardView,
    CollectionEntryView,
    CollectionSummary,
    LoginResult,
    OrderLineView,
    OrderView,
    Page,
    TokenClaims,
    UserView,
)

__all__ = [
    "ORDER_TRANSITIONS",
    "CardCreateRequest",
    "CardInactiveError",
    "CardNotFoundError",
    "CardUpdateRequest",
    "CardView",
    "CollectionEntryNotFoundError",
    "CollectionEntryView",
    "CollectionSummary",
    "CreateOrderRequest",
    "DuplicateEmailError",
    "DuplicateUsernameError",
    "FailureDetail",
    "FailureKind",
    "FieldError",
    "InactiveError",
    "InsufficientStockError",
    "InvalidCredentialsError",
    "InvalidStatusTransitionError",
    "InvalidTokenError",
    "KnownError",
    "LoginRequest",
    "LoginResult",
    "NotFoundError",
    "OrderAccessDeniedError",
    "OrderItemRequest",
    "OrderLineView",
    "OrderNotCancellableError",
    "OrderNotFoundError",
    "OrderStatus",
    "OrderView",
    "Page",
    "Rarity",
    "RegisterRequest",
    "StorageError",
    "TokenClaims",
    "UpdateProfileRequest",
    "UserInactiveError",
    "UserNotFoundError",
    "UserView",
    "ValidationFailedError",
    "can_transition",
    "parse_request",
]
