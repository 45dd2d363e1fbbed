import asyncio
import random
from datetime import time
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from order_management.core.exceptions import (
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
)
from order_management.database import Base
from order_management.services import CatalogService, StockLedger

pytestmark = pytest.mark.anyio


async def test_reserve_decrements_stock(ledger, pizza):
    reservation = await ledger.reserve(pizza.id, 2)

    assert reservation.menu_item_id == pizza.id
    assert reservation.quantity == 2
    assert await ledger.stock_level(pizza.id) == 1


async def test_reserve_entire_stock(ledger, pizza):
    await ledger.reserve(pizza.id, 3)
    assert await ledger.stock_level(pizza.id) == 0


async def test_reserve_more_than_stock_changes_nothing(ledger, pizza):
    with pytest.raises(InsufficientStockError) as exc_info:
        await ledger.reserve(pizza.id, 4)

    assert exc_info.value.menu_item_id == pizza.id
    assert exc_info.value.requested == 4
    assert await ledger.stock_level(pizza.id) == 3


async def test_reserve_unavailable_item_is_refused(catalog, ledger, pizza):
    await catalog.update_menu_item(pizza.id, {"is_available": False})

    with pytest.raises(InsufficientStockError):
        await ledger.reserve(pizza.id, 1)
    assert await ledger.stock_level(pizza.id) == 3


async def test_reserve_unknown_item(ledger):
    with pytest.raises(NotFoundError):
        await ledger.reserve(999, 1)


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
async def test_reserve_rejects_bad_quantity(ledger, pizza, quantity):
    with pytest.raises(InvalidArgumentError):
        await ledger.reserve(pizza.id, quantity)
    assert await ledger.stock_level(pizza.id) == 3


async def test_release_increments_stock(ledger, pizza):
    await ledger.release(pizza.id, 4)
    assert await ledger.stock_level(pizza.id) == 7


async def test_release_unknown_item(ledger):
    with pytest.raises(NotFoundError):
        await ledger.release(999, 1)


async def test_release_rejects_non_positive_quantity(ledger, pizza):
    with pytest.raises(InvalidArgumentError):
        await ledger.release(pizza.id, 0)


async def test_reserve_then_release_restores_stock(session, ledger, pizza):
    reservation = await ledger.reserve(pizza.id, 2)
    await session.commit()
    await ledger.release(reservation.menu_item_id, reservation.quantity)
    await session.commit()

    assert await ledger.stock_level(pizza.id) == 3


async def test_is_available(catalog, ledger, pizza):
    assert await ledger.is_available(pizza.id, 3) is True
    assert await ledger.is_available(pizza.id, 4) is False

    await catalog.update_menu_item(pizza.id, {"is_available": False})
    assert await ledger.is_available(pizza.id, 1) is False


async def test_is_available_unknown_item(ledger):
    with pytest.raises(NotFoundError):
        await ledger.is_available(999, 1)


async def test_stock_level_unknown_item(ledger):
    with pytest.raises(NotFoundError):
        await ledger.stock_level(999)


# =============================================================================
# CONCURRENCY
# =============================================================================

@pytest.fixture
async def file_engine(tmp_path):
    """File-backed database so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


async def _seed_item(factory, stock: int) -> int:
    async with factory() as session:
        catalog = CatalogService(session)
        restaurant = await catalog.create_restaurant(
            name="Night Owl Noodles",
            opening_time=time(18, 0),
            closing_time=time(2, 0),
        )
        item = await catalog.create_menu_item(
            restaurant.id, name="Dan Dan Noodles", price=Decimal("12.50"), stock_quantity=stock
        )
        return item.id


async def _try_reserve(factory, menu_item_id: int, quantity: int) -> int:
    async with factory() as session:
        try:
            await StockLedger(session).reserve(menu_item_id, quantity)
        except InsufficientStockError:
            return 0
        await session.commit()
        return quantity


async def test_concurrent_reservations_never_oversell(file_engine):
    factory = async_sessionmaker(file_engine, expire_on_commit=False, class_=AsyncSession)
    item_id = await _seed_item(factory, stock=7)

    results = await asyncio.gather(*(_try_reserve(factory, item_id, 1) for _ in range(20)))

    assert sum(1 for r in results if r) == 7
    async with factory() as session:
        assert await StockLedger(session).stock_level(item_id) == 0


async def test_concurrent_mixed_reservations_account_exactly(file_engine):
    factory = async_sessionmaker(file_engine, expire_on_commit=False, class_=AsyncSession)
    item_id = await _seed_item(factory, stock=10)
    quantities = [random.Random(seed).randint(1, 3) for seed in range(15)]

    results = await asyncio.gather(*(_try_reserve(factory, item_id, q) for q in quantities))

    async with factory() as session:
        final = await StockLedger(session).stock_level(item_id)
    assert final >= 0
    assert final == 10 - sum(results)
