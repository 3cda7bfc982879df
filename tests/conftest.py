"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A single shared connection (``StaticPool``)
keeps the in-memory database alive across sessions; the production models
are created on it directly.
"""

import os

# Must be set before ``src.config`` is imported anywhere.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")
os.environ.setdefault("SESSION_BACKEND", "memory")

from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.enums import UserRole
from src.infrastructure import models  # noqa: F401  (registers tables)
from src.infrastructure.database import Base
from src.infrastructure.models import PricingConfigModel, UserModel
from src.infrastructure.security import (
    create_access_token,
    hash_password,
    password_changed_now,
)
from src.infrastructure.session_store import InMemorySessionStore


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

DEFAULT_PASSWORD = "secret123"


# ── Helpers ───────────────────────────────────────────────────────────


async def create_user(
    email: str = "alice@example.com",
    password: str = DEFAULT_PASSWORD,
    role: UserRole = UserRole.USER,
    **fields,
) -> UserModel:
    async with TestSessionFactory() as session:
        user = UserModel(
            name=fields.pop("name", email.split("@")[0].title()),
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            last_password_change=password_changed_now(),
            **fields,
        )
        session.add(user)
        await session.commit()
        return user


async def create_pricing(**fields) -> PricingConfigModel:
    values = dict(
        name="standard",
        base_fare=10.0,
        per_km_rate=2.0,
        per_minute_rate=0.5,
        minimum_fare=5.0,
        vehicle_type_multipliers={"sedan": 1.0, "suv": 1.2},
        corporate_discounts={"enabled": False},
    )
    values.update(fields)
    async with TestSessionFactory() as session:
        pricing = PricingConfigModel(**values)
        session.add(pricing)
        await session.commit()
        return pricing


async def load(model, pk: int):
    async with TestSessionFactory() as session:
        return await session.get(model, pk)


def auth_headers(user: UserModel, token: Optional[str] = None) -> dict[str, str]:
    token = token or create_access_token(
        user.id, user.role, user.last_password_change
    )
    return {"Authorization": f"Bearer {token}"}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, session_store: InMemorySessionStore
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient backed by SQLite and an in-process session store."""

    async def _test_db():
        async with TestSessionFactory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    from src.api.app import create_app
    from src.api.dependencies import get_db, get_session_store

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_session_store] = lambda: session_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> UserModel:
    return await create_user()


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> UserModel:
    return await create_user(email="admin@example.com", role=UserRole.ADMIN)
