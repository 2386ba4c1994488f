"""
=============================================================================
IN-MEMORY STORES
=============================================================================

Process-local stores for development and tests.

Requests run on pool worker threads, so every read and write goes through
one ``threading.Lock`` per store:

    Worker A: create_user("赵六", ...)      Worker B: create_user("钱七", ...)
        │                                       │
        └──────────► with self._lock ◄──────────┘
                     next id = max(ids) + 1     ← never handed out twice

Records are copied on the way out so a caller mutating a returned User
cannot change the store behind the lock's back.

=============================================================================
"""

import threading
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from .base import DuplicateEmailError, Product, ProductStore, User, UserStore


DEFAULT_USERS = (
    User(id=1, name="张三", email="zhangsan@example.com"),
    User(id=2, name="李四", email="lisi@example.com"),
    User(id=3, name="王五", email="wangwu@example.com"),
)

DEFAULT_PRODUCTS = (
    Product(id=1, name="MacBook Pro", price=12999),
    Product(id=2, name="iPhone 15", price=5999),
    Product(id=3, name="iPad Air", price=4799),
)


class InMemoryUserStore(UserStore):
    """
    List-backed user store.

    Args:
        seed: Initial users; DEFAULT_USERS when omitted, pass ``()`` for an
            empty store.
    """

    def __init__(self, seed: Optional[Iterable[User]] = None):
        self._users: List[User] = [replace(u) for u in (DEFAULT_USERS if seed is None else seed)]
        self._lock = threading.Lock()

    def list_users(self) -> List[User]:
        with self._lock:
            return [replace(u) for u in sorted(self._users, key=lambda u: u.id)]

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._find(user_id)
            return replace(user) if user else None

    def create_user(self, name: str, email: str) -> User:
        with self._lock:
            if self._email_taken(email):
                raise DuplicateEmailError(email)

            next_id = max((u.id for u in self._users), default=0) + 1
            user = User(id=next_id, name=name, email=email)
            self._users.append(user)
            return replace(user)

    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        with self._lock:
            user = self._find(user_id)
            if user is None:
                return None

            if email is not None and self._email_taken(email, exclude_id=user_id):
                raise DuplicateEmailError(email)

            if name is not None:
                user.name = name
            if email is not None:
                user.email = email
            return replace(user)

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            user = self._find(user_id)
            if user is None:
                return False
            self._users.remove(user)
            return True

    def search(self, query: str, limit: int) -> Tuple[List[User], int]:
        with self._lock:
            matches = [
                replace(u)
                for u in sorted(self._users, key=lambda u: u.id)
                if query in u.name or query in u.email
            ]
        return matches[:max(0, limit)], len(matches)

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    # Caller holds self._lock

    def _find(self, user_id: int) -> Optional[User]:
        for user in self._users:
            if user.id == user_id:
                return user
        return None

    def _email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        return any(u.email == email and u.id != exclude_id for u in self._users)


class InMemoryProductStore(ProductStore):
    """Read-only product catalogue."""

    def __init__(self, seed: Optional[Iterable[Product]] = None):
        self._products: List[Product] = [replace(p) for p in (DEFAULT_PRODUCTS if seed is None else seed)]
        self._lock = threading.Lock()

    def list_products(self) -> List[Product]:
        with self._lock:
            return [replace(p) for p in self._products]

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._lock:
            for product in self._products:
                if product.id == product_id:
                    return replace(product)
        return None

    def count(self) -> int:
        with self._lock:
            return len(self._products)
