"""
Catalog Service

Restaurant and menu item CRUD plus the lookups the stock ledger and the
order lifecycle depend on (``get_restaurant`` / ``get_menu_item``).

Restaurants are soft-deleted (deactivated); menu items are hard-deleted,
with existing order lines keeping their name and price snapshots.
"""

import logging
from datetime import time
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_management.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    RestaurantNameTakenError,
)
from order_management.models import MenuItem, OrderItem, Restaurant

logger = logging.getLogger(__name__)

RESTAURANT_FIELDS = frozenset({
    "name", "description", "address", "phone",
    "opening_time", "closing_time", "is_active",
})
MENU_ITEM_FIELDS = frozenset({
    "name", "description", "price", "category", "is_available",
})


class CatalogService:
    """
    Restaurant and menu item management bound to one database session.

    Example:
        >>> catalog = CatalogService(session)
        >>> restaurant = await catalog.create_restaurant(
        ...     name="Luigi's", opening_time=time(9), closing_time=time(22)
        ... )
        >>> item = await catalog.create_menu_item(
        ...     restaurant.id, name="Margherita", price=Decimal("50.00"), stock_quantity=3
        ... )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # RESTAURANTS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Restaurant:
        """Fetch a restaurant or raise ``NotFoundError``."""
        restaurant = await self.session.get(Restaurant, restaurant_id, populate_existing=True)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return restaurant

    async def list_restaurants(self, active_only: bool = False) -> Sequence[Restaurant]:
        query = select(Restaurant).order_by(Restaurant.id)
        if active_only:
            query = query.where(Restaurant.is_active.is_(True))
        result = await self.session.execute(query)
        return result.scalars().all()

    async def search_restaurants(self, keyword: str) -> Sequence[Restaurant]:
        """Case-insensitive substring search on the restaurant name."""
        pattern = f"%{keyword.strip().lower()}%"
        result = await self.session.execute(
            select(Restaurant)
            .where(func.lower(Restaurant.name).like(pattern))
            .order_by(Restaurant.name)
        )
        return result.scalars().all()

    async def create_restaurant(
        self,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        opening_time: Optional[time] = None,
        closing_time: Optional[time] = None,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Restaurant:
        name = _require_text(name, "Restaurant name")
        await self._ensure_name_free(name)

        restaurant = Restaurant(
            name=name,
            description=description,
            address=address,
            phone=phone,
            opening_time=opening_time,
            closing_time=closing_time,
            is_active=is_active,
        )
        self.session.add(restaurant)
        await self._commit_named(name)
        await self.session.refresh(restaurant)

        logger.info(f"Restaurant #{restaurant.id} '{restaurant.name}' created")
        return restaurant

    async def update_restaurant(self, restaurant_id: int, changes: dict[str, Any]) -> Restaurant:
        restaurant = await self.get_restaurant(restaurant_id)
        changes = _pick(changes, RESTAURANT_FIELDS)

        if "name" in changes:
            changes["name"] = _require_text(changes["name"], "Restaurant name")
            if changes["name"].lower() != restaurant.name.lower():
                await self._ensure_name_free(changes["name"], exclude_id=restaurant.id)

        for field, value in changes.items():
            setattr(restaurant, field, value)

        await self._commit_named(restaurant.name)
        await self.session.refresh(restaurant)
        logger.info(f"Restaurant #{restaurant.id} updated: {sorted(changes)}")
        return restaurant

    async def deactivate_restaurant(self, restaurant_id: int) -> Restaurant:
        """Soft delete: the restaurant stops accepting orders but is kept."""
        restaurant = await self.get_restaurant(restaurant_id)
        restaurant.is_active = False
        await self.session.commit()
        await self.session.refresh(restaurant)
        logger.info(f"Restaurant #{restaurant.id} deactivated")
        return restaurant

    async def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Restaurant.id).where(func.lower(Restaurant.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Restaurant.id != exclude_id)
        if (await self.session.execute(query.limit(1))).first() is not None:
            raise RestaurantNameTakenError(name)

    async def _commit_named(self, name: str) -> None:
        """Commit, mapping the ``lower(name)`` unique index to a name clash."""
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if "name" not in str(exc.orig):
                raise
            raise RestaurantNameTakenError(name) from exc

    # =========================================================================
    # MENU ITEMS
    # =========================================================================

    async def get_menu_item(self, menu_item_id: int) -> MenuItem:
        """Fetch a menu item or raise ``NotFoundError``."""
        item = await self.session.get(MenuItem, menu_item_id, populate_existing=True)
        if item is None:
            raise NotFoundError("Menu item", menu_item_id)
        return item

    async def list_menu_items(
        self,
        restaurant_id: int,
        available_only: bool = False,
    ) -> Sequence[MenuItem]:
        await self.get_restaurant(restaurant_id)

        query = (
            select(MenuItem)
            .where(MenuItem.restaurant_id == restaurant_id)
            .order_by(MenuItem.id)
        )
        if available_only:
            query = query.where(MenuItem.is_available.is_(True))
        result = await self.session.execute(query)
        return result.scalars().all()

    async def create_menu_item(
        self,
        restaurant_id: int,
        name: str,
        price: Decimal,
        stock_quantity: int = 0,
        category: Optional[str] = None,
        description: Optional[str] = None,
        is_available: bool = True,
    ) -> MenuItem:
        await self.get_restaurant(restaurant_id)

        item = MenuItem(
            restaurant_id=restaurant_id,
            name=_require_text(name, "Menu item name"),
            description=description,
            price=_validate_price(price),
            category=category,
            is_available=is_available,
            stock_quantity=_validate_stock(stock_quantity),
        )
        self.session.add(item)
        await self.session.commit()
        await self.session.refresh(item)

        logger.info(
            f"Menu item #{item.id} '{item.name}' created for restaurant "
            f"#{restaurant_id} (stock {item.stock_quantity})"
        )
        return item

    async def update_menu_item(self, menu_item_id: int, changes: dict[str, Any]) -> MenuItem:
        """
        Update a menu item's details.

        ``stock_quantity`` is not editable here: once created, stock moves
        only through the stock ledger, and a restock is a release.
        """
        item = await self.get_menu_item(menu_item_id)
        changes = _pick(changes, MENU_ITEM_FIELDS)

        if "name" in changes:
            changes["name"] = _require_text(changes["name"], "Menu item name")
        if "price" in changes:
            changes["price"] = _validate_price(changes["price"])

        for field, value in changes.items():
            setattr(item, field, value)

        await self.session.commit()
        await self.session.refresh(item)
        logger.info(f"Menu item #{item.id} updated: {sorted(changes)}")
        return item

    async def delete_menu_item(self, menu_item_id: int) -> None:
        item = await self.get_menu_item(menu_item_id)

        # Detach historical order lines first; their snapshots stay intact
        await self.session.execute(
            update(OrderItem)
            .where(OrderItem.menu_item_id == menu_item_id)
            .values(menu_item_id=None)
        )
        await self.session.delete(item)
        await self.session.commit()
        logger.info(f"Menu item #{menu_item_id} deleted")


def _pick(changes: dict[str, Any], allowed: frozenset) -> dict[str, Any]:
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidArgumentError(f"Unknown fields: {sorted(unknown)}")
    return dict(changes)


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{label} is required")
    return value.strip()


def _validate_price(price) -> Decimal:
    if price is None:
        raise InvalidArgumentError("Price is required")
    price = Decimal(str(price))
    if price <= 0:
        raise InvalidArgumentError("Price must be greater than zero")
    return price


def _validate_stock(stock_quantity: int) -> int:
    if isinstance(stock_quantity, bool) or not isinstance(stock_quantity, int):
        raise InvalidArgumentError("Stock quantity must be an integer")
    if stock_quantity < 0:
        raise InvalidArgumentError("Stock quantity cannot be negative")
    return stock_quantity
