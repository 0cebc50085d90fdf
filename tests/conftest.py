"""Shared test fixtures — async SQLite in-memory DB + test client."""

import os

# Settings are cached on first import; configure billing before anything loads them
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_plansync")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_plansync")
os.environ.setdefault("STRIPE_PRICE_PRO_MONTHLY", "price_pro_monthly")
os.environ.setdefault("STRIPE_PRICE_PRO_YEARLY", "price_pro_yearly")
os.environ.setdefault("STRIPE_PRICE_BUSINESS_MONTHLY", "price_business_monthly")
os.environ.setdefault("STRIPE_PRICE_BUSINESS_YEARLY", "price_business_yearly")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import plansync.models  # noqa: E402, F401
from plansync.core.database import get_session  # noqa: E402
from plansync.main import app  # noqa: E402


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
