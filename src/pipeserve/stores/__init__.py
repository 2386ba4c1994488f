"""
Data stores injected into handlers.

    UserStore ──┬── InMemoryUserStore   (default, seeded, lock-protected)
                └── SqlUserStore        (SQLAlchemy Core, any database URL)

    ProductStore ── InMemoryProductStore
"""

from .base import (
    DuplicateEmailError,
    Product,
    ProductStore,
    StoreError,
    User,
    UserStore,
)
from .memory import (
    DEFAULT_PRODUCTS,
    DEFAULT_USERS,
    InMemoryProductStore,
    InMemoryUserStore,
)
from .sql import SqlUserStore, create_database_engine

__all__ = [
    "DuplicateEmailError",
    "Product",
    "ProductStore",
    "StoreError",
    "User",
    "UserStore",
    "DEFAULT_PRODUCTS",
    "DEFAULT_USERS",
    "InMemoryProductStore",
    "InMemoryUserStore",
    "SqlUserStore",
    "create_database_engine",
]
