"""Bounded exponential backoff with jitter around model calls."""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from reasonloop.exceptions import ConfigurationError, ModelCallError
from reasonloop.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# (attempt, max_retries, error, retries_left) -> awaitable
RetryCallback = Callable[[int, int, Exception, int], Awaitable[None]]


def compute_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 32.0,
    jitter: float = 0.25,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before retrying after failed ``attempt`` (1-based).

    ``min(base * 2**(attempt-1), max_delay)`` spread uniformly by ±``jitter``.
    """
    delay = min(base_delay * (2 ** max(attempt - 1, 0)), max_delay)
    spread = delay * jitter * (2.0 * rand() - 1.0)
    return max(0.0, delay + spread)


class RetryController:
    """Run an async call, retrying failures up to ``max_retries`` times."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 32.0,
        jitter: float = 0.25,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: RetryCallback | None = None,
        rand: Callable[[], float] = random.random,
    ):
        self.max_retries = max(0, int(max_retries))
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep
        self._on_retry = on_retry
        self._rand = rand
        self.attempts = 0

    async def run(self, call: Callable[[], Awaitable[T]], label: str = "llm_call") -> T:
        """Await ``call()``; raise ModelCallError once every attempt failed.

        Configuration errors are never retried.
        """
        total_attempts = self.max_retries + 1
        last_error: Exception | None = None
        self.attempts = 0

        for attempt in range(1, total_attempts + 1):
            self.attempts = attempt
            try:
                return await call()
            except ConfigurationError:
                raise
            except Exception as e:
                last_error = e
                retries_left = total_attempts - attempt
                log.warning(
                    "Model call failed",
                    label=label,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    retries_left=retries_left,
                    error=str(e),
                )
                if self._on_retry is not None:
                    await self._on_retry(attempt, self.max_retries, e, retries_left)
                if retries_left > 0:
                    await self._sleep(
                        compute_backoff_delay(
                            attempt,
                            base_delay=self.base_delay,
                            max_delay=self.max_delay,
                            jitter=self.jitter,
                            rand=self._rand,
                        )
                    )

        message = str(last_error) if last_error is not None else "Model call failed"
        raise ModelCallError(message, attempts=self.attempts) from last_error
