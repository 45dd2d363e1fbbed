"""
                Food Delivery Order Management

Backend for restaurants, their menus and stock, and customer orders,
with an atomic stock ledger and an explicit order status workflow.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
