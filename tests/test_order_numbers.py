import re
from itertools import count

import pytest

from order_management.core.exceptions import DuplicateOrderNumberError
from order_management.models import OrderStatus
from order_management.services import OrderLifecycle, OrderLine, OrderNumberGenerator
from order_management.services.order_numbers import random_token

from tests.conftest import LUNCHTIME

ORDER_NUMBER = re.compile(r"^ORD-\d{13}-[0-9A-F]{8}$")


def test_format():
    assert ORDER_NUMBER.match(OrderNumberGenerator()())


def test_random_token_length_and_case():
    token = random_token(8)
    assert len(token) == 8
    assert token == token.upper()
    assert len(random_token(5)) == 5


def test_unique_within_the_same_millisecond():
    generate = OrderNumberGenerator(clock_ms=lambda: 1760000000000)

    numbers = {generate() for _ in range(10_000)}

    assert len(numbers) == 10_000
    assert all(n.startswith("ORD-1760000000000-") for n in numbers)


def test_prefix_and_token_length_are_configurable():
    generate = OrderNumberGenerator(prefix="DLV", token_length=12, clock_ms=lambda: 42)
    assert re.match(r"^DLV-42-[0-9A-F]{12}$", generate())


def _scripted(*tokens):
    """Generator returning the given tokens in order, all in one millisecond."""
    it = iter(tokens)
    return OrderNumberGenerator(clock_ms=lambda: 1, token_factory=lambda _: next(it))


async def _place(session, restaurant, item, numbers, quantity=1, max_attempts=None):
    lifecycle = OrderLifecycle(
        session,
        clock=lambda: LUNCHTIME,
        order_numbers=numbers,
        max_attempts=max_attempts,
    )
    return await lifecycle.create_order(
        restaurant_id=restaurant.id,
        customer_name="Jane Doe",
        customer_phone="555-123-4567",
        delivery_address="350 Fifth Avenue",
        items=[OrderLine(item.id, quantity)],
    )


@pytest.mark.anyio
async def test_collision_is_retried_with_a_fresh_number(session, ledger, restaurant, salad):
    first = await _place(session, restaurant, salad, _scripted("AAAAAAAA"))
    second = await _place(session, restaurant, salad, _scripted("AAAAAAAA", "BBBBBBBB"))

    assert first.order_number == "ORD-1-AAAAAAAA"
    assert second.order_number == "ORD-1-BBBBBBBB"
    assert second.status == OrderStatus.PENDING
    assert await ledger.stock_level(salad.id) == 3


@pytest.mark.anyio
async def test_exhausted_attempts_release_everything(session, ledger, restaurant, salad):
    await _place(session, restaurant, salad, _scripted("AAAAAAAA"))
    tokens = _scripted(*(["AAAAAAAA"] * 3))

    with pytest.raises(DuplicateOrderNumberError):
        await _place(session, restaurant, salad, tokens, quantity=2, max_attempts=3)

    assert await ledger.stock_level(salad.id) == 4


def test_clock_is_milliseconds():
    ticks = count(1_700_000_000_000)
    generate = OrderNumberGenerator(clock_ms=lambda: next(ticks))

    assert generate().split("-")[1] == "1700000000000"
    assert generate().split("-")[1] == "1700000000001"


@pytest.mark.anyio
async def test_unique_constraint_catches_a_number_the_lookup_missed(
    session, ledger, restaurant, salad, monkeypatch
):
    async def without_lookup(self):
        return self.next_order_number()

    monkeypatch.setattr(OrderLifecycle, "_unused_order_number", without_lookup)

    first = await _place(session, restaurant, salad, _scripted("AAAAAAAA"))
    second = await _place(
        session, restaurant, salad, _scripted("AAAAAAAA", "BBBBBBBB"), quantity=2
    )

    assert second.order_number == "ORD-1-BBBBBBBB"
    assert await ledger.stock_level(salad.id) == 2
    # Objects loaded before the failed insert stay usable
    assert first.order_number == "ORD-1-AAAAAAAA"
    assert first.items[0].quantity == 1
