from cardstore.db.database import drop_db, init_db, session_scope
from cardstore.db.operations import (
    card_to_model,
    collection_entry_to_model,
    get_card,
    get_collection_entry,
    get_order,
    get_user,
    order_to_model,
    user_to_model,
)

__all__ = [
    "card_to_model",
    "collection_entry_to_model",
    "drop_db",
    "get_card",
    "get_collection_entry",
    "get_order",
    "get_user",
    "init_db",
    "order_to_model",
    "session_scope",
    "user_to_model",
]
