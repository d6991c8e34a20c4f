"""
Test fixtures for the Bank Cards API test suite.

Shared fixtures used across all test files:

  - db_engine / session_factory / db_session: Fresh in-memory SQLite database per test
  - file_session_factory: File-backed SQLite database for concurrent engine tests
  - client: Async HTTP test client (unauthenticated)
  - user_client / second_user_client: Clients logged in as two different card holders
  - admin_client: Client logged in as an ADMIN
  - user_id / second_user_id: Ids of the two card holders
  - make_user / make_card: Direct-to-database factories for service-level tests

Key design decisions:
  - In-memory SQLite shares one connection (StaticPool), so every session in
    a test sees the same data. Concurrency tests need real, separate
    connections and use file_session_factory instead.
  - get_db is overridden so the application code runs exactly as in
    production, against the test database.
  - Card holders sign up through the real /auth/register endpoint. The admin
    is inserted directly into the database, the way an operator provisions
    one (see demo/create_admin.py), and then logs in normally.
  - Each role gets its own AsyncClient, so a test can act as an admin and a
    card holder side by side.
"""

import os
from datetime import date, timedelta
from decimal import Decimal

from cryptography.fernet import Fernet

# Settings are read at import time; these must be set before bankcards is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("CARD_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from bankcards.database import Base, get_db
from bankcards.main import app
from bankcards.models.card import Card, CardStatus
from bankcards.models.user import User, UserRole
from bankcards.security import encrypt_value, generate_card_number, hash_password


TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_PASSWORD = "SecurePass123!"
ADMIN_PASSWORD = "AdminPass123!"


def future_date(days: int = 365) -> date:
    return date.today() + timedelta(days=days)


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    Session factory over a SQLite file, one connection per session.

    Used by tests that run many transfers concurrently, each in its own
    session, the way concurrent API requests do.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bankcards-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


# ---------------------------------------------------------------------------
# Direct database factories
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def make_user():
    """Factory: insert a user straight into the database and return it."""

    async def _make_user(
        session: AsyncSession,
        email: str,
        role: UserRole = UserRole.USER,
        full_name: str = "Test Holder",
        password: str = USER_PASSWORD,
    ) -> User:
        user = User(
            full_name=full_name,
            email=email,
            hashed_password=hash_password(password),
            role=role,
        )
        session.add(user)
        await session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def make_card():
    """Factory: insert a card straight into the database and return it."""

    async def _make_card(
        session: AsyncSession,
        owner: User,
        balance: str = "0.00",
        status: CardStatus = CardStatus.ACTIVE,
        expiration_date: date | None = None,
    ) -> Card:
        number = generate_card_number()
        card = Card(
            owner_id=owner.id,
            card_number_encrypted=encrypt_value(number),
            card_number_last_four=number[-4:],
            expiration_date=expiration_date or future_date(),
            status=status,
            balance=Decimal(balance),
        )
        session.add(card)
        await session.commit()
        return card

    return _make_card


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app_overrides(session_factory):
    """Route every request's get_db to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()


def _new_client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _login(client: AsyncClient, email: str, password: str) -> None:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, f"Login failed: {response.text}"
    client.headers["Authorization"] = f"Bearer {response.json()['token']}"


async def _register_and_login(client: AsyncClient, email: str, full_name: str) -> None:
    response = await client.post(
        "/auth/register",
        json={
            "full_name": full_name,
            "email": email,
            "phone_number": "+15551234567",
            "password": USER_PASSWORD,
        },
    )
    assert response.status_code == 201, f"Registration failed: {response.text}"
    await _login(client, email, USER_PASSWORD)


async def _user_id_for(session_factory, email: str):
    async with session_factory() as session:
        result = await session.execute(select(User.id).where(User.email == email))
        return result.scalar_one()


@pytest_asyncio.fixture
async def client(app_overrides):
    """Async HTTP test client without credentials."""
    async with _new_client() as ac:
        yield ac


@pytest_asyncio.fixture
async def user_client(app_overrides):
    """Client logged in as the card holder alice@example.com."""
    async with _new_client() as ac:
        await _register_and_login(ac, "alice@example.com", "Alice Holder")
        yield ac


@pytest_asyncio.fixture
async def second_user_client(app_overrides):
    """Client logged in as a second card holder, for cross-user tests."""
    async with _new_client() as ac:
        await _register_and_login(ac, "bob@example.com", "Bob Holder")
        yield ac


@pytest_asyncio.fixture
async def admin_client(app_overrides, session_factory, make_user):
    """Client logged in as an ADMIN provisioned directly in the database."""
    async with session_factory() as session:
        await make_user(
            session,
            "admin@example.com",
            role=UserRole.ADMIN,
            full_name="Admin User",
            password=ADMIN_PASSWORD,
        )
    async with _new_client() as ac:
        await _login(ac, "admin@example.com", ADMIN_PASSWORD)
        yield ac


@pytest_asyncio.fixture
async def user_id(user_client, session_factory):
    return await _user_id_for(session_factory, "alice@example.com")


@pytest_asyncio.fixture
async def second_user_id(second_user_client, session_factory):
    return await _user_id_for(session_factory, "bob@example.com")


@pytest_asyncio.fixture
async def issue_card(admin_client):
    """Factory: issue a card through POST /admin/cards and return its JSON."""

    async def _issue_card(owner_id, balance: str = "0.00", expiration_date: date | None = None):
        response = await admin_client.post(
            "/admin/cards",
            json={
                "user_id": str(owner_id),
                "expiration_date": (expiration_date or future_date()).isoformat(),
                "balance": balance,
            },
        )
        assert response.status_code == 201, f"Card issuance failed: {response.text}"
        return response.json()

    return _issue_card
