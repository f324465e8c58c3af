"""
CardStore services.

Business logic for the catalog, orders, collections and accounts. Every
function takes an AsyncSession as its first argument and runs inside the
caller's unit of work (see cardstore.db.database.session_scope).
"""

from cardstore.services import auth, catalog, collection_ledger, orders, stock_ledger, users

__all__ = [
    "auth",
    "catalog",
    "collection_ledger",
    "orders",
    "stock_ledger",
    "users",
]
