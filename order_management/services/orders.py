"""
Order Lifecycle Service

Places orders and drives them through the status workflow:

    PENDING → CONFIRMED → PREPARING → READY → DELIVERING → DELIVERED
       │          │
       └──────────┴──→ CANCELLED

Placement is a sequence of reversible steps. Every granted stock
reservation is paired with a release, and any failure unwinds the
reservations in reverse order before the error reaches the caller, so an
order either holds stock for all of its lines or for none of them.

Cancelling a PENDING or CONFIRMED order gives every line's quantity back
to stock in the same transaction as the status write. The write is
guarded by the status that was read, so two concurrent cancellations
cannot both release stock.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional, Sequence, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_management.core.config import get_settings
from order_management.core.exceptions import (
    DuplicateOrderNumberError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    RestaurantClosedError,
    StockReleaseError,
)
from order_management.models import (
    TERMINAL_STATUSES,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    Restaurant,
)
from order_management.services.availability import RestaurantAvailability
from order_management.services.catalog import CatalogService
from order_management.services.order_numbers import OrderNumberGenerator
from order_management.services.stock_ledger import Reservation, StockLedger

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERING}),
    OrderStatus.DELIVERING: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class OrderLine:
    """Requested line of a new order."""
    menu_item_id: int
    quantity: int


def line_subtotal(unit_price: Decimal, quantity: int) -> Decimal:
    return (unit_price * quantity).quantize(MONEY, rounding=ROUND_HALF_UP)


class OrderLifecycle:
    """
    Order placement and status transitions bound to one database session.

    Args:
        session: Unit of work; committed by this service
        clock: Server wall clock used for the opening-hours gate
        order_numbers: Order number generator (defaults from settings)
        max_attempts: Placement attempts when an order number collides

    Example:
        >>> lifecycle = OrderLifecycle(session)
        >>> order = await lifecycle.create_order(
        ...     restaurant_id=1,
        ...     customer_name="Jane Doe",
        ...     customer_phone="555-123-4567",
        ...     delivery_address="350 Fifth Avenue",
        ...     items=[OrderLine(menu_item_id=7, quantity=3)],
        ... )
        >>> await lifecycle.cancel_order(order.id)
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = datetime.now,
        order_numbers: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
    ):
        settings = get_settings()
        self.session = session
        self.catalog = CatalogService(session)
        self.ledger = StockLedger(session)
        self.availability = RestaurantAvailability(session, clock=clock)
        self.next_order_number = order_numbers or OrderNumberGenerator.from_settings()
        self.max_attempts = max_attempts or settings.order_number_max_attempts

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    async def create_order(
        self,
        restaurant_id: int,
        customer_name: str,
        customer_phone: str,
        delivery_address: str,
        items: Iterable[OrderLine],
        notes: Optional[str] = None,
    ) -> Order:
        """
        Reserve stock for every line and persist a PENDING order.

        Raises:
            InvalidArgumentError: empty items, non-positive quantity, blank
                customer details, or an item from another restaurant
            NotFoundError: unknown restaurant or menu item
            RestaurantClosedError: inactive or outside operating hours
            InsufficientStockError: a line cannot be reserved; nothing is held
            DuplicateOrderNumberError: every attempt hit a used order number
            StockReleaseError: a compensating release failed (fatal)
            DBAPIError: database failure; the transaction is rolled back and
                nothing is held
        """
        lines = _validate_lines(items)
        customer = {
            "customer_name": _require_text(customer_name, "Customer name"),
            "customer_phone": _require_text(customer_phone, "Customer phone"),
            "delivery_address": _require_text(delivery_address, "Delivery address"),
        }

        last_error: Optional[DuplicateOrderNumberError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._place_order(restaurant_id, lines, customer, notes)
            except DuplicateOrderNumberError as exc:
                logger.warning(
                    f"Order number collision on attempt {attempt}/{self.max_attempts}: "
                    f"{exc.order_number}"
                )
                last_error = exc
        raise last_error

    async def _place_order(
        self,
        restaurant_id: int,
        lines: list[OrderLine],
        customer: dict[str, str],
        notes: Optional[str],
    ) -> Order:
        restaurant = await self.catalog.get_restaurant(restaurant_id)
        if not restaurant.is_active:
            raise RestaurantClosedError(restaurant_id, "inactive")
        if not self.availability.accepts_orders(restaurant):
            raise RestaurantClosedError(restaurant_id, "outside operating hours")

        menu_items = await self._preflight(restaurant, lines)

        # Lock rows in id order so two multi-line orders cannot deadlock
        by_id = sorted(zip(lines, menu_items), key=lambda pair: pair[1].id)

        reservations: list[Reservation] = []
        try:
            for line, item in by_id:
                try:
                    reservations.append(await self.ledger.reserve(item.id, line.quantity))
                except InsufficientStockError as exc:
                    raise InsufficientStockError(item.id, line.quantity, item.name) from exc

            order = self._build_order(restaurant, lines, menu_items, customer, notes)
            order.order_number = await self._unused_order_number()

            try:
                async with self.session.begin_nested():
                    self.session.add(order)
                    await self.session.flush()
            except IntegrityError as exc:
                if "order_number" not in str(exc.orig):
                    raise
                raise DuplicateOrderNumberError(order.order_number) from exc
        except Exception as exc:
            await self._compensate(reservations, exc)
            raise

        await self.session.commit()
        logger.info(
            f"Order {order.order_number} placed at restaurant #{restaurant.id}: "
            f"{len(lines)} line(s), total {order.total_amount}"
        )
        return await self.get_order(order.id)

    async def _preflight(
        self,
        restaurant: Restaurant,
        lines: Sequence[OrderLine],
    ) -> list[MenuItem]:
        """Look items up and fail fast, before anything is reserved."""
        menu_items = []
        for line in lines:
            item = await self.catalog.get_menu_item(line.menu_item_id)
            if item.restaurant_id != restaurant.id:
                raise InvalidArgumentError(
                    f"Menu item {item.id} does not belong to restaurant {restaurant.id}"
                )
            if not await self.ledger.is_available(item.id, line.quantity):
                raise InsufficientStockError(item.id, line.quantity, item.name)
            menu_items.append(item)
        return menu_items

    def _build_order(
        self,
        restaurant: Restaurant,
        lines: Sequence[OrderLine],
        menu_items: Sequence[MenuItem],
        customer: dict[str, str],
        notes: Optional[str],
    ) -> Order:
        order_items = [
            OrderItem(
                menu_item_id=item.id,
                menu_item_name=item.name,
                quantity=line.quantity,
                unit_price=item.price,
                subtotal=line_subtotal(item.price, line.quantity),
            )
            for line, item in zip(lines, menu_items)
        ]
        total = sum((oi.subtotal for oi in order_items), Decimal("0.00"))

        return Order(
            restaurant_id=restaurant.id,
            notes=notes,
            total_amount=total,
            status=OrderStatus.PENDING,
            items=order_items,
            **customer,
        )

    async def _unused_order_number(self) -> str:
        candidate = self.next_order_number()
        taken = await self.session.scalar(
            select(Order.id).where(Order.order_number == candidate)
        )
        if taken is not None:
            raise DuplicateOrderNumberError(candidate)
        return candidate

    async def _compensate(self, reservations: list[Reservation], cause: Exception) -> None:
        """
        Release granted reservations newest first and commit the result.

        A database error (deadlock, lost connection) leaves the transaction
        unusable; rolling it back already returns every reservation, and the
        original error is left to propagate.
        """
        if isinstance(cause, DBAPIError):
            await self.session.rollback()
            if reservations:
                logger.warning(
                    f"Rolled back {len(reservations)} reservation(s) after database error: {cause}"
                )
            return
        if not reservations:
            return
        try:
            for reservation in reversed(reservations):
                await self.ledger.release(reservation.menu_item_id, reservation.quantity)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.critical(
                f"Compensating release failed for {len(reservations)} reservation(s): {exc}"
            )
            raise StockReleaseError(
                f"Could not release {len(reservations)} stock reservation(s)"
            ) from exc
        logger.info(f"Rolled back {len(reservations)} reservation(s)")

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def update_status(
        self,
        order_id: int,
        new_status: Union[OrderStatus, str],
    ) -> Order:
        """
        Move an order to ``new_status`` if the workflow allows it.

        Cancelling releases the stock of every line in the same transaction.

        Raises:
            InvalidArgumentError: unknown status name
            NotFoundError: unknown order
            InvalidTransitionError: not allowed from the current status, or
                the status changed concurrently
            StockReleaseError: a release failed; the order is left unchanged
        """
        new_status = _parse_status(new_status)
        order = await self.get_order(order_id)
        current = order.status

        if not can_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)

        values = {"status": new_status}
        if new_status in TERMINAL_STATUSES:
            values["completed_at"] = func.now()

        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            latest = await self.get_order(order_id)
            raise InvalidTransitionError(latest.status, new_status)

        if new_status == OrderStatus.CANCELLED:
            await self._release_order_stock(order)

        await self.session.commit()
        logger.info(f"Order {order.order_number}: {current.value} → {new_status.value}")
        return await self.get_order(order_id)

    async def cancel_order(self, order_id: int) -> Order:
        return await self.update_status(order_id, OrderStatus.CANCELLED)

    async def _release_order_stock(self, order: Order) -> None:
        try:
            # Same id order as placement
            for line in sorted(order.items, key=lambda oi: oi.menu_item_id or 0):
                if line.menu_item_id is None:
                    logger.warning(
                        f"Order {order.order_number}: '{line.menu_item_name}' no longer "
                        f"on the menu, {line.quantity} unit(s) not restocked"
                    )
                    continue
                await self.ledger.release(line.menu_item_id, line.quantity)
        except Exception as exc:
            await self.session.rollback()
            logger.critical(f"Stock release failed while cancelling {order.order_number}: {exc}")
            raise StockReleaseError(
                f"Could not release stock for order {order.order_number}"
            ) from exc

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: int) -> Order:
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    async def get_order_by_number(self, order_number: str) -> Order:
        result = await self.session.execute(
            select(Order)
            .where(Order.order_number == order_number)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_number)
        return order

    async def list_orders(
        self,
        status: Optional[Union[OrderStatus, str]] = None,
        restaurant_id: Optional[int] = None,
        customer_phone: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[int, Sequence[Order]]:
        """Filtered page of orders, newest first, with the unpaged total."""
        filters = []
        if status is not None:
            filters.append(Order.status == _parse_status(status))
        if restaurant_id is not None:
            filters.append(Order.restaurant_id == restaurant_id)
        if customer_phone:
            filters.append(Order.customer_phone == customer_phone)

        total = await self.session.scalar(
            select(func.count(Order.id)).where(*filters)
        )
        result = await self.session.execute(
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return total or 0, result.scalars().all()


def _parse_status(status: Union[OrderStatus, str]) -> OrderStatus:
    if isinstance(status, OrderStatus):
        return status
    try:
        return OrderStatus(str(status).upper())
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise InvalidArgumentError(f"Invalid status {status!r}. Options: {valid}")


def _validate_lines(items: Iterable[OrderLine]) -> list[OrderLine]:
    lines = list(items or [])
    if not lines:
        raise InvalidArgumentError("Order items cannot be empty")
    for line in lines:
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidArgumentError(
                f"Quantity for menu item {line.menu_item_id} must be a positive integer"
            )
    return lines


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{label} is required")
    return value.strip()
