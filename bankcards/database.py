"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - Money: Column type for monetary amounts (integer cents, Decimal in Python)
  - get_db(): FastAPI dependency that provides a session per request

Architecture note:
  We use async SQLAlchemy (with aiosqlite for SQLite) so the API can handle
  concurrent requests without blocking. When migrating to PostgreSQL, only
  the DATABASE_URL needs to change (to use the asyncpg driver).

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits
  on success and rolls back on any exception. The transfer engine commits
  its own unit of work before releasing its card locks; the final commit
  here is then a no-op.
"""

import os
from decimal import Decimal, ROUND_HALF_EVEN

from sqlalchemy import BigInteger
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from bankcards.config import settings


# Create the async engine.
# echo=True in debug mode logs all SQL statements.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False prevents lazy-load errors after commit:
# accessing attributes on a committed object would otherwise trigger
# a synchronous DB call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def ensure_sqlite_directory() -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "sqlite" and url.database:
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Provides metadata tracking (for create_all and Alembic) and the
    common declarative mapping features.
    """
    pass


CENTS = Decimal("0.01")

# Largest value a signed 64-bit BIGINT column can hold
MAX_CENTS = 2**63 - 1


class Money(TypeDecorator):
    """
    Monetary amount stored as integer cents, always a Decimal in Python.

    The database column is a BIGINT (e.g., 10.50 is stored as 1050). SQLite
    has no decimal type and would round NUMERIC values through a binary
    float; integers are stored exactly on every backend.

    Values are quantized to cents before they reach the database, so a
    balance can never pick up sub-cent noise from arithmetic. The API caps
    single amounts at 16 integer digits, far below MAX_CENTS.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        cents = int(Decimal(value).quantize(CENTS, rounding=ROUND_HALF_EVEN).scaleb(2))
        if abs(cents) > MAX_CENTS:
            raise ValueError(f"Monetary amount {value} is out of range")
        return cents

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-2)


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any exception,
    then closed when the request completes. Rejected operations never leave
    partial writes behind.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
