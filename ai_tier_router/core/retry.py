"""
Bounded retry with exponential backoff.

Attempts are strictly sequential. The delay before attempt n+1 is
base_delay_ms * 2**n, capped at max_delay_ms. Permission and quota failures
are raised immediately without consuming the remaining attempts.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ProviderError, ProviderNonRetryable, classify_provider_error
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits for provider calls."""
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000

    def __post_init__(self):
        """Validate retry limits."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms cannot be negative")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")

    def delay_ms(self, attempt: int) -> int:
        """Backoff to wait after the given zero-based failed attempt."""
        return min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """Run an async operation, retrying transient provider failures.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry limits
        sleep: Awaitable sleep taking seconds
        label: Name used in log entries

    Returns:
        The operation's result from the first successful attempt

    Raises:
        ProviderNonRetryable: On a permission or quota failure
        ProviderError: The last transient failure once attempts are exhausted
    """
    last_error: Optional[ProviderError] = None

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_provider_error(exc)
            if not error.retryable:
                logger.warning(
                    "provider_call_not_retryable",
                    label=label,
                    attempt=attempt + 1,
                    kind=error.provider_kind.value,
                    error=str(error),
                )
                raise ProviderNonRetryable(error) from exc
            last_error = error

        if attempt + 1 < policy.max_attempts:
            delay = policy.delay_ms(attempt)
            logger.warning(
                "provider_call_failed",
                label=label,
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                retry_in_ms=delay,
                error=str(last_error),
            )
            await sleep(delay / 1000)

    logger.warning("provider_retries_exhausted", label=label, attempts=policy.max_attempts, error=str(last_error))
    raise last_error
