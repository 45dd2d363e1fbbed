"""
Core module initialization.
Exports configuration, logging utilities and domain errors.
"""

from order_management.core.config import get_settings, Settings, EnvironmentMode
from order_management.core.exceptions import (
    OrderManagementError,
    NotFoundError,
    InvalidArgumentError,
    RestaurantNameTakenError,
    InsufficientStockError,
    RestaurantClosedError,
    InvalidTransitionError,
    DuplicateOrderNumberError,
    StockReleaseError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "OrderManagementError",
    "NotFoundError",
    "InvalidArgumentError",
    "RestaurantNameTakenError",
    "InsufficientStockError",
    "RestaurantClosedError",
    "InvalidTransitionError",
    "DuplicateOrderNumberError",
    "StockReleaseError",
]
