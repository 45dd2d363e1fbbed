"""
Domain Exceptions

Typed errors raised by the catalog, stock ledger and order lifecycle.
The core never shapes HTTP responses; the API layer maps each class
to a status code in one place (see ``order_management.main``).

Hierarchy:
    OrderManagementError
    ├── NotFoundError
    ├── InvalidArgumentError
    │   └── RestaurantNameTakenError
    ├── InsufficientStockError
    ├── RestaurantClosedError
    ├── InvalidTransitionError
    ├── DuplicateOrderNumberError
    └── StockReleaseError
"""

from typing import Optional


class OrderManagementError(Exception):
    """Base class for all domain errors."""

    code = "order_management_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"error": self.code, "detail": self.message}


class NotFoundError(OrderManagementError):
    """Unknown restaurant, menu item or order id."""

    code = "not_found"

    def __init__(self, resource: str, identifier: object):
        super().__init__(f"{resource} not found with id: {identifier}")
        self.resource = resource
        self.identifier = identifier


class InvalidArgumentError(OrderManagementError):
    """Non-positive quantity, empty item list, blank field and the like."""

    code = "invalid_argument"


class RestaurantNameTakenError(InvalidArgumentError):
    code = "restaurant_name_taken"

    def __init__(self, name: str):
        super().__init__(f"Restaurant with name already exists: {name}")
        self.name = name


class InsufficientStockError(OrderManagementError):
    """A reservation cannot be satisfied by the item's current stock."""

    code = "insufficient_stock"

    def __init__(self, menu_item_id: int, requested: int, item_name: Optional[str] = None):
        label = f"'{item_name}' (id {menu_item_id})" if item_name else f"id {menu_item_id}"
        super().__init__(f"Insufficient stock for menu item {label}: requested {requested}")
        self.menu_item_id = menu_item_id
        self.requested = requested
        self.item_name = item_name


class RestaurantClosedError(OrderManagementError):
    """Order attempted outside operating hours or against an inactive restaurant."""

    code = "restaurant_closed"

    def __init__(self, restaurant_id: int, reason: str = "not accepting orders"):
        super().__init__(f"Restaurant {restaurant_id} is {reason}")
        self.restaurant_id = restaurant_id


class InvalidTransitionError(OrderManagementError):
    code = "invalid_transition"

    def __init__(self, current, requested):
        super().__init__(
            f"Cannot change order status from {_status_name(current)} "
            f"to {_status_name(requested)}"
        )
        self.current = current
        self.requested = requested


class DuplicateOrderNumberError(OrderManagementError):
    """Generated order number already exists; recoverable by retrying."""

    code = "duplicate_order_number"

    def __init__(self, order_number: str):
        super().__init__(f"Order number already in use: {order_number}")
        self.order_number = order_number


class StockReleaseError(OrderManagementError):
    """
    A compensating stock release failed.

    Fatal: the caller must retry the operation or alert an operator,
    otherwise stock stays under-counted.
    """

    code = "stock_release_failed"


def _status_name(status) -> str:
    return getattr(status, "value", str(status))
