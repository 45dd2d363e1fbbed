import os

# Default to SQLite for tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV_MODE", "development")

from datetime import datetime, time
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from order_management import models  # noqa: F401
from order_management.database import Base
from order_management.services import CatalogService, OrderLifecycle, StockLedger

# 12:30 on a weekday, inside the default 09:00-22:00 window
LUNCHTIME = datetime(2026, 10, 19, 12, 30)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog(session) -> CatalogService:
    return CatalogService(session)


@pytest.fixture
def ledger(session) -> StockLedger:
    return StockLedger(session)


@pytest.fixture
def lifecycle(session) -> OrderLifecycle:
    return OrderLifecycle(session, clock=lambda: LUNCHTIME)


@pytest.fixture
async def restaurant(catalog):
    return await catalog.create_restaurant(
        name="Luigi's Trattoria",
        address="12 Mulberry St",
        phone="555-123-4567",
        opening_time=time(9, 0),
        closing_time=time(22, 0),
    )


@pytest.fixture
async def pizza(catalog, restaurant):
    return await catalog.create_menu_item(
        restaurant.id,
        name="Pizza Margherita",
        price=Decimal("50.00"),
        stock_quantity=3,
        category="Pizza",
    )


@pytest.fixture
async def salad(catalog, restaurant):
    return await catalog.create_menu_item(
        restaurant.id,
        name="Caesar Salad",
        price=Decimal("8.99"),
        stock_quantity=5,
        category="Salad",
    )


@pytest.fixture
async def client(session_factory):
    from order_management import main as app_main

    async def _session():
        async with session_factory() as session:
            yield session

    app_main.app.dependency_overrides[app_main.get_db] = _session
    app_main.app.dependency_overrides[app_main.get_clock] = lambda: (lambda: LUNCHTIME)

    transport = ASGITransport(app=app_main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app_main.app.dependency_overrides.clear()
