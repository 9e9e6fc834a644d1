"""
Backoff patterns for fault-tolerant calls.

Provides an operation-agnostic exponential backoff runner used by the
profile fetch and any other fallible async step of the client bootstrap.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def calculate_backoff_delay(
    attempt: int,
    base_delay_ms: float,
    exponent: float,
    max_delay_ms: float,
) -> float:
    """Delay in milliseconds before retrying after failed attempt `attempt` (0-indexed)."""
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    try:
        delay = base_delay_ms * math.pow(exponent, attempt)
    except OverflowError:
        return max_delay_ms
    return min(delay, max_delay_ms)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy.

    Attributes:
        base_delay_ms: Delay after the first failure.
        exponent: Growth factor applied per attempt.
        max_delay_ms: Upper bound on any single delay.
        max_attempts: Total invocations, including the first one.
    """

    base_delay_ms: float = 1000.0
    exponent: float = 2.0
    max_delay_ms: float = 10_000.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be non-negative")
        if self.exponent < 1:
            raise ValueError("exponent must be at least 1")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_ms(self, attempt: int) -> float:
        """Exact delay for `attempt`: min(base * exponent**attempt, max)."""
        return calculate_backoff_delay(
            attempt, self.base_delay_ms, self.exponent, self.max_delay_ms
        )

    def sleep_ms(self, attempt: int) -> int:
        """Delay for `attempt` rounded half-up to whole milliseconds."""
        return int(math.floor(self.delay_ms(attempt) + 0.5))


OnRetry = Callable[[int, BaseException, int], None]


async def async_backoff_on_all_errors(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    is_fatal: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[OnRetry] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Invoke `operation` until it succeeds, fails fatally or runs out of attempts.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Backoff policy giving delays and the attempt limit.
        is_fatal: Predicate marking errors that must not be retried.
        on_retry: Called as (attempt, error, delay_ms) before each sleep.
        sleep: Awaitable sleep taking seconds (injectable for tests).

    Returns:
        The first successful result.

    Raises:
        The final error once `policy.max_attempts` invocations have failed,
        or the first fatal error.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if is_fatal is not None and is_fatal(e):
                raise
            if attempt + 1 >= policy.max_attempts:
                logger.error(
                    f"Operation failed after {policy.max_attempts} attempts: "
                    f"{type(e).__name__}: {e}"
                )
                raise
            delay_ms = policy.sleep_ms(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_attempts} failed "
                f"({type(e).__name__}: {e}), retrying in {delay_ms}ms"
            )
            if on_retry is not None:
                on_retry(attempt, e, delay_ms)
            await sleep(delay_ms / 1000)
            attempt += 1


def with_backoff(
    policy: RetryPolicy,
    is_fatal: Optional[Callable[[BaseException], bool]] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of async_backoff_on_all_errors.

    Usage:
        @with_backoff(RetryPolicy(max_attempts=3))
        async def fetch_manifest():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await async_backoff_on_all_errors(
                lambda: func(*args, **kwargs), policy, is_fatal=is_fatal
            )

        return wrapper

    return decorator


__all__ = [
    "RetryPolicy",
    "calculate_backoff_delay",
    "async_backoff_on_all_errors",
    "with_backoff",
]
