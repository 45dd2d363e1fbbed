"""
FastAPI Application Entry Point

Food Delivery Order Management - restaurants, menus, stock and orders.

Endpoints:
    - /api/restaurants: Restaurant catalog, opening-hours check
    - /api/restaurants/{id}/menu-items: Menu per restaurant
    - /api/menu-items/{id}: Menu item details, availability, stock reserve/release
    - /api/orders: Order placement, lookup and status workflow
    - GET /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_management.core.config import get_settings, setup_logging
from order_management.core.exceptions import (
    DuplicateOrderNumberError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    OrderManagementError,
    RestaurantClosedError,
    StockReleaseError,
)
from order_management.database import engine, get_db, init_db
from order_management.schemas import (
    AvailabilityResponse,
    ErrorResponse,
    HealthResponse,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    OpenStatusResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    RestaurantCreate,
    RestaurantResponse,
    StatusUpdateRequest,
    StockChangeRequest,
    StockResponse,
)
from order_management.services import (
    CatalogService,
    OrderLifecycle,
    OrderLine,
    RestaurantAvailability,
    StockLedger,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

# First match along the exception's MRO wins
ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    InvalidArgumentError: 400,
    InsufficientStockError: 409,
    RestaurantClosedError: 409,
    InvalidTransitionError: 409,
    DuplicateOrderNumberError: 409,
    StockReleaseError: 500,
    OrderManagementError: 400,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Food delivery backend: restaurant catalog, atomic stock ledger "
        "and order status workflow."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_clock() -> Callable[[], datetime]:
    """Server wall clock; overridden in tests."""
    return datetime.now


def get_catalog(db: AsyncSession = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_stock_ledger(db: AsyncSession = Depends(get_db)) -> StockLedger:
    return StockLedger(db)


def get_availability(
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RestaurantAvailability:
    return RestaurantAvailability(db, clock=clock)


def get_order_lifecycle(
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OrderLifecycle:
    return OrderLifecycle(db, clock=clock)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🛵 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database is reachable."""
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# RESTAURANT ENDPOINTS
# =============================================================================

@app.post(
    "/api/restaurants",
    response_model=RestaurantResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def create_restaurant(
    data: RestaurantCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> RestaurantResponse:
    restaurant = await catalog.create_restaurant(**data.model_dump())
    return RestaurantResponse.model_validate(restaurant)


@app.get(
    "/api/restaurants",
    response_model=List[RestaurantResponse],
    tags=["Restaurants"],
)
async def list_restaurants(
    active_only: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog),
) -> List[RestaurantResponse]:
    restaurants = await catalog.list_restaurants(active_only=active_only)
    return [RestaurantResponse.model_validate(r) for r in restaurants]


@app.get(
    "/api/restaurants/search",
    response_model=List[RestaurantResponse],
    tags=["Restaurants"],
)
async def search_restaurants(
    keyword: str = Query(..., min_length=1),
    catalog: CatalogService = Depends(get_catalog),
) -> List[RestaurantResponse]:
    restaurants = await catalog.search_restaurants(keyword)
    return [RestaurantResponse.model_validate(r) for r in restaurants]


@app.get(
    "/api/restaurants/{restaurant_id}",
    response_model=RestaurantResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def get_restaurant(
    restaurant_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> RestaurantResponse:
    restaurant = await catalog.get_restaurant(restaurant_id)
    return RestaurantResponse.model_validate(restaurant)


@app.put(
    "/api/restaurants/{restaurant_id}",
    response_model=RestaurantResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def update_restaurant(
    restaurant_id: int,
    data: RestaurantCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> RestaurantResponse:
    restaurant = await catalog.update_restaurant(restaurant_id, data.model_dump())
    return RestaurantResponse.model_validate(restaurant)


@app.delete(
    "/api/restaurants/{restaurant_id}",
    status_code=204,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
    summary="Deactivate restaurant (soft delete)",
)
async def delete_restaurant(
    restaurant_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> Response:
    await catalog.deactivate_restaurant(restaurant_id)
    return Response(status_code=204)


@app.get(
    "/api/restaurants/{restaurant_id}/is-open",
    response_model=OpenStatusResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
    summary="Check if restaurant is currently open",
)
async def is_restaurant_open(
    restaurant_id: int,
    availability: RestaurantAvailability = Depends(get_availability),
) -> OpenStatusResponse:
    now = availability.clock()
    is_open = await availability.is_open(restaurant_id, at=now.time())
    return OpenStatusResponse(restaurant_id=restaurant_id, is_open=is_open, checked_at=now)


# =============================================================================
# MENU ITEM ENDPOINTS
# =============================================================================

@app.post(
    "/api/restaurants/{restaurant_id}/menu-items",
    response_model=MenuItemResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def create_menu_item(
    restaurant_id: int,
    data: MenuItemCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> MenuItemResponse:
    item = await catalog.create_menu_item(restaurant_id, **data.model_dump())
    return MenuItemResponse.model_validate(item)


@app.get(
    "/api/restaurants/{restaurant_id}/menu-items",
    response_model=List[MenuItemResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def list_menu_items(
    restaurant_id: int,
    available_only: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog),
) -> List[MenuItemResponse]:
    items = await catalog.list_menu_items(restaurant_id, available_only=available_only)
    return [MenuItemResponse.model_validate(i) for i in items]


@app.get(
    "/api/menu-items/{menu_item_id}",
    response_model=MenuItemResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def get_menu_item(
    menu_item_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> MenuItemResponse:
    item = await catalog.get_menu_item(menu_item_id)
    return MenuItemResponse.model_validate(item)


@app.put(
    "/api/menu-items/{menu_item_id}",
    response_model=MenuItemResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def update_menu_item(
    menu_item_id: int,
    data: MenuItemUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> MenuItemResponse:
    """Edit details only; stock changes go through the stock endpoints."""
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    item = await catalog.update_menu_item(menu_item_id, changes)
    return MenuItemResponse.model_validate(item)


@app.delete(
    "/api/menu-items/{menu_item_id}",
    status_code=204,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def delete_menu_item(
    menu_item_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> Response:
    await catalog.delete_menu_item(menu_item_id)
    return Response(status_code=204)


@app.get(
    "/api/menu-items/{menu_item_id}/availability",
    response_model=AvailabilityResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def check_availability(
    menu_item_id: int,
    quantity: int = Query(..., ge=1),
    ledger: StockLedger = Depends(get_stock_ledger),
) -> AvailabilityResponse:
    available = await ledger.is_available(menu_item_id, quantity)
    return AvailabilityResponse(
        menu_item_id=menu_item_id,
        quantity=quantity,
        available=available,
    )


@app.post(
    "/api/menu-items/{menu_item_id}/stock/reserve",
    response_model=StockResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def reserve_stock(
    menu_item_id: int,
    data: StockChangeRequest,
    ledger: StockLedger = Depends(get_stock_ledger),
) -> StockResponse:
    await ledger.reserve(menu_item_id, data.quantity)
    await ledger.session.commit()
    stock = await ledger.stock_level(menu_item_id)
    return StockResponse(menu_item_id=menu_item_id, stock_quantity=stock)


@app.post(
    "/api/menu-items/{menu_item_id}/stock/release",
    response_model=StockResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def release_stock(
    menu_item_id: int,
    data: StockChangeRequest,
    ledger: StockLedger = Depends(get_stock_ledger),
) -> StockResponse:
    await ledger.release(menu_item_id, data.quantity)
    await ledger.session.commit()
    stock = await ledger.stock_level(menu_item_id)
    return StockResponse(menu_item_id=menu_item_id, stock_quantity=stock)


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderResponse:
    """
    Place a new order.

    Stock for every line is reserved atomically; if any line cannot be
    reserved nothing is held and 409 is returned.
    """
    logger.info(
        f"Creating order for: {order_data.customer_name} "
        f"at restaurant #{order_data.restaurant_id}"
    )
    order = await lifecycle.create_order(
        restaurant_id=order_data.restaurant_id,
        customer_name=order_data.customer_name,
        customer_phone=order_data.customer_phone,
        delivery_address=order_data.delivery_address,
        items=[OrderLine(i.menu_item_id, i.quantity) for i in order_data.items],
        notes=order_data.notes,
    )
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    status: Optional[str] = Query(None),
    restaurant_id: Optional[int] = Query(None, ge=1),
    customer_phone: Optional[str] = Query(None),
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderListResponse:
    """Retrieve paginated list of orders, newest first."""
    total, orders = await lifecycle.list_orders(
        status=status,
        restaurant_id=restaurant_id,
        customer_phone=customer_phone,
        skip=skip,
        limit=limit,
    )
    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/by-number/{order_number}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order_by_number(
    order_number: str,
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderResponse:
    order = await lifecycle.get_order_by_number(order_number)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await lifecycle.get_order(order_id)
    return OrderResponse.model_validate(order)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    data: StatusUpdateRequest,
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderResponse:
    order = await lifecycle.update_status(order_id, data.status)
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_order_lifecycle),
) -> OrderResponse:
    """Cancel a PENDING or CONFIRMED order and restock its items."""
    order = await lifecycle.cancel_order(order_id)
    return OrderResponse.model_validate(order)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def status_code_for(exc: OrderManagementError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


@app.exception_handler(OrderManagementError)
async def domain_exception_handler(
    request: Request,
    exc: OrderManagementError,
) -> JSONResponse:
    """Shape typed domain errors into the standard error body."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.critical(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=exc.code, detail=exc.message).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
