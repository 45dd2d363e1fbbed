"""
Restaurant Availability

Decides whether a restaurant accepts orders right now: it must be active
and the wall-clock time must fall inside its operating hours.

Operating hours are inclusive on both ends. A closing time earlier than
the opening time is an overnight window (18:00-02:00 is open from 18:00
until midnight and from midnight until 02:00). Equal opening and closing
times mean the restaurant never closes; missing hours mean it is closed.
"""

import logging
from datetime import datetime, time
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from order_management.models import Restaurant
from order_management.services.catalog import CatalogService

logger = logging.getLogger(__name__)


def within_operating_hours(
    opening: Optional[time],
    closing: Optional[time],
    at: time,
) -> bool:
    """Check ``at`` against the ``[opening, closing]`` window, wrapping midnight."""
    if opening is None or closing is None:
        return False
    if opening == closing:
        return True
    if opening < closing:
        return opening <= at <= closing
    return at >= opening or at <= closing


class RestaurantAvailability:
    """
    Gate for order placement.

    ``clock`` returns the server's local wall-clock time and can be
    replaced in tests.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.catalog = CatalogService(session)
        self.clock = clock

    async def is_open(self, restaurant_id: int, at: Optional[time] = None) -> bool:
        """Raises ``NotFoundError`` for an unknown restaurant."""
        restaurant = await self.catalog.get_restaurant(restaurant_id)
        return self.accepts_orders(restaurant, at)

    def accepts_orders(self, restaurant: Restaurant, at: Optional[time] = None) -> bool:
        if not restaurant.is_active:
            return False
        if at is None:
            at = self.clock().time()
        # Wall-clock comparison, no timezone
        at = at.replace(tzinfo=None)
        return within_operating_hours(restaurant.opening_time, restaurant.closing_time, at)
