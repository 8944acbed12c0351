"""Bounded retry with exponential backoff."""

import asyncio
import logging
from typing import Awaitable, Callable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retry an async operation a fixed number of times.

    Delays grow by ``factor`` from ``base_delay`` and are capped at
    ``max_delay``. ``sleep`` is injectable so tests can run without waiting.
    """

    def __init__(self, attempts: int = 3, base_delay: float = 0.5, factor: float = 2.0,
                 max_delay: float = 8.0, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay
        self.sleep = sleep

    def delay(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def delays(self) -> List[float]:
        return [self.delay(attempt) for attempt in range(1, self.attempts)]

    async def run(self, operation: Callable[[], Awaitable[T]],
                  is_transient: Callable[[BaseException], bool], description: str = "operation") -> T:
        """Run ``operation`` until it succeeds or the attempts are spent.

        Errors ``is_transient`` rejects propagate immediately. When every
        attempt fails the last error propagates.
        """
        for attempt in range(1, self.attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not is_transient(e) or attempt == self.attempts:
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description, attempt, self.attempts, e or type(e).__name__, wait,
                )
                await self.sleep(wait)
        raise AssertionError("unreachable")
