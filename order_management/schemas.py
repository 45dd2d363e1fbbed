"""
Pydantic Schemas for Request/Response Validation

Restaurants, menu items, stock operations and orders.
Money fields are Decimal and serialize as strings so no float rounding
ever touches a price or a total.

Version: 1.0.0
"""

import re
from datetime import datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_management.models import OrderStatus


def _check_phone(v: str) -> str:
    cleaned = re.sub(r'[^\d]', '', v)
    if len(cleaned) < 7:
        raise ValueError('Phone number must have at least 7 digits')
    return v


# =============================================================================
# RESTAURANT SCHEMAS
# =============================================================================

class RestaurantCreate(BaseModel):
    """Request schema for creating or replacing a restaurant."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Luigi's Trattoria"])
    description: Optional[str] = Field(None, max_length=1000)
    address: str = Field(..., min_length=1, max_length=255, examples=["12 Mulberry St"])
    phone: str = Field(..., min_length=7, max_length=20, examples=["555-123-4567"])
    opening_time: time = Field(..., examples=["09:00:00"])
    closing_time: time = Field(..., examples=["22:00:00"])
    is_active: bool = True

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v)


class RestaurantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    address: Optional[str]
    phone: Optional[str]
    is_active: bool
    opening_time: Optional[time]
    closing_time: Optional[time]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class OpenStatusResponse(BaseModel):
    """Whether a restaurant accepts orders right now."""
    restaurant_id: int
    is_open: bool
    checked_at: datetime


# =============================================================================
# MENU ITEM SCHEMAS
# =============================================================================

class MenuItemCreate(BaseModel):
    """Request schema for creating or replacing a menu item."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Pizza Margherita"])
    description: Optional[str] = Field(None, max_length=1000)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["14.99"])
    category: Optional[str] = Field(None, max_length=50, examples=["Pizza"])
    stock_quantity: int = Field(..., ge=0, examples=[25])
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    """
    Partial update of a menu item's details.

    Stock is not part of it; restock through the stock release endpoint.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    category: Optional[str] = Field(None, max_length=50)
    is_available: Optional[bool] = None


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    price: Decimal
    category: Optional[str]
    is_available: bool
    stock_quantity: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


# =============================================================================
# STOCK SCHEMAS
# =============================================================================

class StockChangeRequest(BaseModel):
    quantity: int = Field(..., ge=1, examples=[2])


class StockResponse(BaseModel):
    """Stock level after a reservation or release."""
    menu_item_id: int
    stock_quantity: int


class AvailabilityResponse(BaseModel):
    menu_item_id: int
    quantity: int
    available: bool


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItemRequest(BaseModel):
    """Single line in a new order."""
    menu_item_id: int = Field(..., ge=1, examples=[1])
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for placing a new order."""
    restaurant_id: int = Field(..., ge=1, examples=[1])
    customer_name: str = Field(..., min_length=2, max_length=100, examples=["John Doe"])
    customer_phone: str = Field(..., min_length=7, max_length=20, examples=["555-123-4567"])
    delivery_address: str = Field(..., min_length=1, max_length=255, examples=["350 Fifth Avenue"])
    items: List[OrderItemRequest] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500, examples=["Ring doorbell"])

    @field_validator('customer_phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v)


class StatusUpdateRequest(BaseModel):
    status: OrderStatus = Field(..., examples=["CONFIRMED"])


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: Optional[int]
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    restaurant_id: int
    customer_name: str
    customer_phone: str
    delivery_address: str
    items: List[OrderItemResponse]
    total_amount: Decimal
    status: OrderStatus
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


# =============================================================================
# GENERIC SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    timestamp: datetime
