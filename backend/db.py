from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from backend.errors import StoreUnavailable

logger = logging.getLogger(__name__)

metadata = MetaData()

# sqlite_autoincrement keeps SQLite from reusing the id of a deleted row.
users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    sqlite_autoincrement=True,
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("type", String(20), nullable=False),
    Column("balance", Numeric(12, 2), nullable=False, server_default="0"),
    Column("currency", String(3), nullable=False, server_default="USD"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    sqlite_autoincrement=True,
)

# account_id carries no foreign key: deleting an account leaves its expenses in place.
expenses = Table(
    "expenses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("account_id", Integer, nullable=False, index=True),
    Column("description", String(500), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(20), nullable=False),
    Column("date", Date, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    Index("ix_expenses_user_date", "user_id", "date"),
    sqlite_autoincrement=True,
)


class Store:
    """Owns the engine for one database; opened at startup, closed at shutdown."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._engine: Engine | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreUnavailable()
        return self._engine

    def open(self) -> None:
        if self._engine is not None:
            return
        kwargs: dict = {}
        if self.database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(self.database_url):
                kwargs["poolclass"] = StaticPool
        engine = create_engine(self.database_url, **kwargs)
        metadata.create_all(engine)
        self._engine = engine
        logger.info("Store opened (%s)", engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Store closed")

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        with self.engine.begin() as conn:
            yield conn


def _is_memory_sqlite(url: str) -> bool:
    return url in {"sqlite://", "sqlite:///:memory:"} or "mode=memory" in url
