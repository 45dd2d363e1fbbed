"""
SQLAlchemy Database Models

Restaurants, their menu items with stock levels, and customer orders:
- Money columns are fixed-point Numeric(10, 2)
- Menu item stock can never go below zero (check constraint)
- Order lines snapshot the item name and unit price at order time

Version: 1.0.0
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from order_management.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERING = "DELIVERING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class Restaurant(Base):
    """
    A restaurant accepting delivery orders.

    Never hard-deleted: deleting a restaurant only clears ``is_active``.
    ``closing_time`` earlier than ``opening_time`` denotes an overnight window.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    address = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Wall-clock operating hours, no timezone
    opening_time = Column(Time, nullable=True)
    closing_time = Column(Time, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        state = "active" if self.is_active else "inactive"
        return f"<Restaurant #{self.id} - {self.name} - {state}>"


# Names are unique regardless of case
Index("uq_restaurants_name_lower", func.lower(Restaurant.name), unique=True)


class MenuItem(Base):
    """
    A dish or drink on a restaurant's menu.

    ``stock_quantity`` is changed by order flows only through the stock ledger.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_menu_items_stock_non_negative"),
        CheckConstraint("price > 0", name="ck_menu_items_price_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(50), nullable=True, index=True)
    is_available = Column(Boolean, default=True, nullable=False)
    stock_quantity = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price} - stock {self.stock_quantity}>"


class Order(Base):
    """
    Order aggregate root.

    Created together with its lines in one unit of work, then mutated only
    through status transitions. Never deleted; cancellation is a status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("order_number", name="uq_orders_order_number"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(64), nullable=False, index=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id"),
        nullable=False,
        index=True,
    )

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=False, index=True)
    delivery_address = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    total_amount = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Order {self.order_number} - {self.customer_name} - {self.status.value}>"


class OrderItem(Base):
    """One line of an order with its price captured at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Nulled when the menu item is deleted; the snapshots below survive
    menu_item_id = Column(
        Integer,
        ForeignKey("menu_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    menu_item_name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.menu_item_name} x{self.quantity} @ {self.unit_price}>"
