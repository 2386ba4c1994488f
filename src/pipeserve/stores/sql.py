"""
=============================================================================
SQL USER STORE
=============================================================================

UserStore backed by a relational database through SQLAlchemy Core.

=============================================================================
SCHEMA
=============================================================================

    users
    ┌────────────┬──────────────┬──────────────────────────────┐
    │ id         │ INTEGER PK   │ autoincrement                │
    │ name       │ VARCHAR(255) │ NOT NULL                     │
    │ email      │ VARCHAR(255) │ NOT NULL, UNIQUE             │
    │ created_at │ DATETIME     │ set on insert (UTC)          │
    │ updated_at │ DATETIME     │ set on insert and on update  │
    └────────────┴──────────────┴──────────────────────────────┘

=============================================================================
QUERIES
=============================================================================

Every statement is built with Core constructs (``select``, ``insert``,
``update``, ``delete``), so user input always travels as bound parameters:

    search("li", 10)
      SELECT ... FROM users
      WHERE name LIKE '%' || :q || '%' ESCAPE '/' OR email LIKE ...
      ORDER BY id LIMIT :limit

Each operation runs in its own ``engine.begin()`` transaction: committed
when the block exits, rolled back if it raises.

=============================================================================
DUPLICATE EMAILS
=============================================================================

A lookup before the write gives the friendly DuplicateEmailError in the
common case; the UNIQUE constraint catches the race where two requests
insert the same email at once, and its IntegrityError is converted to the
same DuplicateEmailError.

=============================================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from .base import DuplicateEmailError, User, UserStore
from .memory import DEFAULT_USERS

logger = logging.getLogger(__name__)


metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def create_database_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an Engine for ``url``.

    SQLite connections are shared across pool worker threads, so
    ``check_same_thread`` is turned off; an in-memory SQLite database lives
    in a single connection and needs a StaticPool to survive between
    checkouts.
    """
    kwargs: dict = {"echo": echo}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool

    return create_engine(url, **kwargs)


class SqlUserStore(UserStore):
    """
    Example:
        store = SqlUserStore(create_database_engine("sqlite:///users.db"))
        store.init_schema(seed=True)
        store.create_user("赵六", "zhaoliu@example.com")
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.table = users_table

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def init_schema(self, seed: bool = False, users: Optional[Iterable[User]] = None) -> None:
        """
        Create the users table if needed and optionally seed an empty table.

        Args:
            seed: Insert ``users`` when the table is empty.
            users: Seed records; DEFAULT_USERS when omitted.
        """
        metadata.create_all(self.engine)

        if not seed:
            return

        with self.engine.begin() as conn:
            existing = conn.execute(select(func.count()).select_from(self.table)).scalar_one()
            if existing:
                return

            now = _utcnow()
            rows = [
                {"name": u.name, "email": u.email, "created_at": now, "updated_at": now}
                for u in (DEFAULT_USERS if users is None else users)
            ]
            if rows:
                conn.execute(insert(self.table), rows)
                logger.info(f"Seeded users table with {len(rows)} rows")

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()

    # =========================================================================
    # READS
    # =========================================================================

    def list_users(self) -> List[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(self.table).order_by(self.table.c.id)).all()
        return [self._to_user(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(self.table).where(self.table.c.id == user_id)
            ).first()
        return self._to_user(row) if row else None

    def search(self, query: str, limit: int) -> Tuple[List[User], int]:
        t = self.table
        condition = or_(
            t.c.name.contains(query, autoescape=True),
            t.c.email.contains(query, autoescape=True),
        )

        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(t).where(condition)
            ).scalar_one()
            rows = conn.execute(
                select(t).where(condition).order_by(t.c.id).limit(max(0, limit))
            ).all()

        return [self._to_user(row) for row in rows], total

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table)).scalar_one()

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_user(self, name: str, email: str) -> User:
        t = self.table

        try:
            with self.engine.begin() as conn:
                if self._email_owner(conn, email) is not None:
                    raise DuplicateEmailError(email)

                now = _utcnow()
                result = conn.execute(
                    insert(t).values(name=name, email=email, created_at=now, updated_at=now)
                )
                user_id = result.inserted_primary_key[0]
                row = conn.execute(select(t).where(t.c.id == user_id)).one()
        except IntegrityError as e:
            raise DuplicateEmailError(email) from e

        logger.debug(f"Created user {user_id} <{email}>")
        return self._to_user(row)

    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        t = self.table

        values: dict = {}
        if name is not None:
            values["name"] = name
        if email is not None:
            values["email"] = email

        try:
            with self.engine.begin() as conn:
                row = conn.execute(select(t).where(t.c.id == user_id)).first()
                if row is None:
                    return None
                if not values:
                    return self._to_user(row)

                if email is not None:
                    owner = self._email_owner(conn, email)
                    if owner is not None and owner != user_id:
                        raise DuplicateEmailError(email)

                values["updated_at"] = _utcnow()
                conn.execute(update(t).where(t.c.id == user_id).values(**values))
                row = conn.execute(select(t).where(t.c.id == user_id)).one()
        except IntegrityError as e:
            raise DuplicateEmailError(email or "") from e

        return self._to_user(row)

    def delete_user(self, user_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(delete(self.table).where(self.table.c.id == user_id))
            deleted = result.rowcount
        return deleted > 0

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _email_owner(self, conn, email: str) -> Optional[int]:
        return conn.execute(
            select(self.table.c.id).where(self.table.c.email == email)
        ).scalar_one_or_none()

    @staticmethod
    def _to_user(row) -> User:
        data = row._mapping
        return User(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            created_at=_iso(data["created_at"]),
            updated_at=_iso(data["updated_at"]),
        )
