"""Bounded exponential-backoff retry for fallible async operations.

Delay before retry ``n`` (0-indexed) is ``delay * backoff ** n``. A permanently
failing operation is invoked ``max_retries + 1`` times and the last error is
re-raised unchanged. Errors derived from NonRetriableError are raised on the
first occurrence.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

JitterFn = Callable[[float], float]
SleepFn = Callable[[float], Awaitable[None]]


class NonRetriableError(Exception):
    """Failure that retrying cannot fix (bad configuration, 4xx, bad credential)."""

    pass


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    *,
    jitter: JitterFn | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run ``operation`` with retries.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Retries after the first attempt
        delay: Base delay in seconds
        backoff: Multiplier applied per attempt
        jitter: Optional hook mapping the computed delay to the one used
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The operation's result

    Raises:
        The operation's last exception once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except NonRetriableError:
            raise
        except Exception as e:
            if attempt >= max_retries:
                logger.debug(
                    "retry_exhausted",
                    attempts=attempt + 1,
                    error_type=type(e).__name__,
                )
                raise

            wait = delay * (backoff ** attempt)
            if jitter is not None:
                wait = max(0.0, jitter(wait))

            logger.info(
                "retrying_operation",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=wait,
                error=str(e),
            )
            await sleep(wait)
            attempt += 1


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration handed to node executors."""

    max_retries: int = 3
    delay: float = 1.0
    backoff: float = 2.0
    jitter: JitterFn | None = None

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            self.max_retries,
            self.delay,
            self.backoff,
            jitter=self.jitter,
        )
