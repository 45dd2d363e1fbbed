"""
Stock Ledger

Atomic per-item stock accounting. A reservation is a single conditional
UPDATE guarded by ``stock_quantity >= :quantity`` so two concurrent
reservations against the same row cannot both succeed when the stock
only covers one of them. There is never a read-then-write pair.

The ledger works inside the caller's session and never commits; the
unit of work (an order placement, a cancellation, an API call) decides
when to commit.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_management.core.exceptions import (
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
)
from order_management.models import MenuItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """A granted stock reservation; releasing it is its compensating step."""
    menu_item_id: int
    quantity: int


class StockLedger:
    """
    Reserve and release menu item stock.

    Example:
        >>> ledger = StockLedger(session)
        >>> reservation = await ledger.reserve(item_id, 2)
        >>> await ledger.release(reservation.menu_item_id, reservation.quantity)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def reserve(self, menu_item_id: int, quantity: int) -> Reservation:
        """
        Decrement stock by ``quantity`` if the item is available and has enough.

        Raises:
            InvalidArgumentError: quantity is not a positive integer
            NotFoundError: no such menu item
            InsufficientStockError: not available or not enough stock;
                nothing was changed
        """
        _check_quantity(quantity)

        result = await self.session.execute(
            update(MenuItem)
            .where(
                MenuItem.id == menu_item_id,
                MenuItem.is_available.is_(True),
                MenuItem.stock_quantity >= quantity,
            )
            .values(stock_quantity=MenuItem.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            await self._ensure_exists(menu_item_id)
            logger.info(f"Reservation refused: item #{menu_item_id} x{quantity}")
            raise InsufficientStockError(menu_item_id, quantity)

        logger.info(f"Reserved item #{menu_item_id} x{quantity}")
        return Reservation(menu_item_id=menu_item_id, quantity=quantity)

    async def release(self, menu_item_id: int, quantity: int) -> None:
        """
        Give ``quantity`` back to the item's stock (cancellation or rollback).

        Raises:
            InvalidArgumentError: quantity is not a positive integer
            NotFoundError: no such menu item
        """
        _check_quantity(quantity)

        result = await self.session.execute(
            update(MenuItem)
            .where(MenuItem.id == menu_item_id)
            .values(stock_quantity=MenuItem.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError("Menu item", menu_item_id)

        logger.info(f"Released item #{menu_item_id} x{quantity}")

    async def is_available(self, menu_item_id: int, quantity: int) -> bool:
        """
        Advisory check: available flag set and stock covers ``quantity``.

        Only ``reserve`` gives the guarantee; the answer may be stale as
        soon as it is returned.
        """
        _check_quantity(quantity)

        row = (
            await self.session.execute(
                select(MenuItem.is_available, MenuItem.stock_quantity)
                .where(MenuItem.id == menu_item_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("Menu item", menu_item_id)
        return bool(row.is_available) and row.stock_quantity >= quantity

    async def stock_level(self, menu_item_id: int) -> int:
        """Current stock as stored, bypassing any cached ORM state."""
        stock = await self.session.scalar(
            select(MenuItem.stock_quantity).where(MenuItem.id == menu_item_id)
        )
        if stock is None:
            raise NotFoundError("Menu item", menu_item_id)
        return stock

    async def _ensure_exists(self, menu_item_id: int) -> None:
        found = await self.session.scalar(
            select(MenuItem.id).where(MenuItem.id == menu_item_id)
        )
        if found is None:
            raise NotFoundError("Menu item", menu_item_id)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError(f"Quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise InvalidArgumentError(f"Quantity must be greater than zero, got {quantity}")
