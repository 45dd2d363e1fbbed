"""
                        Services Module

Business logic for the delivery backend. Every service is bound to one
``AsyncSession`` and raises the typed errors from ``order_management.core``.

Services:
    - catalog: Restaurant and menu item management
    - stock_ledger: Atomic stock reservation and release
    - availability: Opening-hours gate for order placement
    - orders: Order placement and status workflow
"""

from order_management.services.availability import (
    RestaurantAvailability,
    within_operating_hours,
)
from order_management.services.catalog import CatalogService
from order_management.services.order_numbers import OrderNumberGenerator
from order_management.services.orders import (
    ALLOWED_TRANSITIONS,
    OrderLifecycle,
    OrderLine,
    can_transition,
)
from order_management.services.stock_ledger import Reservation, StockLedger

__all__ = [
    "CatalogService",
    "StockLedger",
    "Reservation",
    "RestaurantAvailability",
    "within_operating_hours",
    "OrderLifecycle",
    "OrderLine",
    "OrderNumberGenerator",
    "ALLOWED_TRANSITIONS",
    "can_transition",
]
