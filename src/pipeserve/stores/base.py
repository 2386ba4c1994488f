"""
Store interfaces and records.

Handlers talk to stores only through these types, so the in-memory and SQL
user stores are interchangeable behind the same routes.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple


class StoreError(Exception):
    """Base class for store-level failures handlers are expected to handle."""


class DuplicateEmailError(StoreError):
    def __init__(self, email: str):
        super().__init__(f"Email already in use: {email}")
        self.email = email


@dataclass
class User:
    """
    A user record.

    ``created_at``/``updated_at`` are ISO-8601 strings when the backing store
    tracks them (SQL) and None otherwise; None fields are left out of
    ``to_dict``.
    """
    id: int
    name: str
    email: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class Product:
    id: int
    name: str
    price: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UserStore(ABC):
    """CRUD and search over users."""

    @abstractmethod
    def list_users(self) -> List[User]:
        """All users ordered by id."""

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def create_user(self, name: str, email: str) -> User:
        """
        Raises:
            DuplicateEmailError: If another user already has ``email``.
        """

    @abstractmethod
    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        """
        Apply the given fields; None leaves a field unchanged.

        Returns:
            The updated user, or None if ``user_id`` does not exist.

        Raises:
            DuplicateEmailError: If ``email`` belongs to a different user.
        """

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """Returns True if a user was removed."""

    @abstractmethod
    def search(self, query: str, limit: int) -> Tuple[List[User], int]:
        """
        Users whose name or email contains ``query``.

        Returns:
            (first ``limit`` matches ordered by id, total number of matches)
        """

    @abstractmethod
    def count(self) -> int:
        pass


class ProductStore(ABC):
    @abstractmethod
    def list_products(self) -> List[Product]:
        pass

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass
