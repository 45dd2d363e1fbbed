"""
Order Number Generation

Format: ``ORD-<millisecond timestamp>-<8 uppercase hex characters>``.
Two numbers generated in the same millisecond differ by their random
token; the unique constraint on ``orders.order_number`` stays the final
guard and callers retry on a collision.
"""

import secrets
import time
from typing import Callable

from order_management.core.config import get_settings


def random_token(length: int) -> str:
    """Uppercase hexadecimal token from a cryptographic source."""
    return secrets.token_hex((length + 1) // 2)[:length].upper()


class OrderNumberGenerator:
    """
    Callable producing fresh order numbers.

    Args:
        prefix: Leading segment ("ORD")
        token_length: Length of the random token
        clock_ms: Returns the current time in epoch milliseconds
        token_factory: Returns a random token of the requested length
    """

    def __init__(
        self,
        prefix: str = "ORD",
        token_length: int = 8,
        clock_ms: Callable[[], int] = lambda: time.time_ns() // 1_000_000,
        token_factory: Callable[[int], str] = random_token,
    ):
        self.prefix = prefix
        self.token_length = token_length
        self.clock_ms = clock_ms
        self.token_factory = token_factory

    def __call__(self) -> str:
        token = self.token_factory(self.token_length)
        return f"{self.prefix}-{self.clock_ms()}-{token}"

    @classmethod
    def from_settings(cls) -> "OrderNumberGenerator":
        settings = get_settings()
        return cls(
            prefix=settings.order_number_prefix,
            token_length=settings.order_number_token_length,
        )
