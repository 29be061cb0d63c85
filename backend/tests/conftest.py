"""
Test Configuration — Fixtures for async DB, test client, fake clock and mock data.

Each test gets its own in-memory SQLite database, so commits inside app code
never leak between tests.
"""

from datetime import datetime, time

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from alerts.content import ContentGenerator
from api.deps import get_clock, get_content_generator, get_current_user, get_db
from api.main import app
from db import models  # noqa: F401  (registers tables on Base.metadata)
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MERCHANT_ID = 1
OTHER_MERCHANT_ID = 2


class FakeClock:
    """Mutable wall clock for due-window and daily-dedup tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class FakeTextGenerator:
    """Records prompts and returns a canned response, or raises if given an exception."""

    def __init__(self, response: str | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    async def generate(self, system_prompt, user_prompt, max_tokens, temperature):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 9, 0, 0))


@pytest.fixture
def content_generator():
    return ContentGenerator(None)


@pytest.fixture
def mock_user():
    """Mock authenticated merchant."""
    return {
        "sub": "test-user-id",
        "email": "owner@cornershop.test",
        "merchant_id": MERCHANT_ID,
    }


@pytest.fixture
async def client(test_db, mock_user, clock, content_generator):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: mock_user
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_content_generator] = lambda: content_generator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Two merchants; the first has a mix of stocked, low and out-of-stock products."""
    from db.models import AlertSettings, Merchant, Product

    corner = Merchant(merchant_id=MERCHANT_ID, shop_name="Corner Shop", owner_name="Asha")
    other = Merchant(merchant_id=OTHER_MERCHANT_ID, shop_name="Other Shop", owner_name="Ravi")
    test_db.add_all([corner, other])
    await test_db.flush()

    products = [
        Product(merchant_id=MERCHANT_ID, name="Basmati Rice", price=120.0, quantity=1),
        Product(merchant_id=MERCHANT_ID, name="Green Tea", price=45.5, quantity=2),
        Product(merchant_id=MERCHANT_ID, name="Olive Oil", price=310.0, quantity=3),
        Product(merchant_id=MERCHANT_ID, name="Dish Soap", price=60.0, quantity=6),
        Product(merchant_id=MERCHANT_ID, name="Sold Out Chips", price=20.0, quantity=0),
        Product(merchant_id=OTHER_MERCHANT_ID, name="Other Flour", price=50.0, quantity=1),
    ]
    test_db.add_all(products)

    settings = AlertSettings(
        merchant_id=MERCHANT_ID,
        enabled=True,
        low_stock_threshold=5,
        critical_stock_threshold=2,
        ai_enhanced=False,
        daily_time=time(9, 0, 0),
    )
    test_db.add(settings)
    await test_db.commit()

    return {
        "merchant": corner,
        "other_merchant": other,
        "products": {p.name: p for p in products},
        "settings": settings,
    }
