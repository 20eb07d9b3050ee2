"""Retry strategies using Strategy Pattern."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import TUSError, handle_error, is_retryable

T = TypeVar('T')

logger = logging.getLogger('tusupload.retry')

MAX_BACKOFF_DELAY = 30.0


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = MAX_BACKOFF_DELAY
) -> float:
    """
    Exponential backoff delay in seconds, without jitter.

    Args:
        attempt: 1-based attempt number that just failed
        base_delay: Delay after the first failure
        max_delay: Upper bound

    Returns:
        min(base_delay * 2 ** (attempt - 1), max_delay)
    """
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


class RetryStrategy(ABC):
    """Abstract retry strategy."""

    @abstractmethod
    def should_retry(self, error: TUSError, attempt: int, max_attempts: int) -> bool:
        """Determines if the operation should be retried."""
        pass

    @abstractmethod
    def get_delay(self, attempt: int) -> float:
        """Returns the delay before the next attempt."""
        pass

    async def wait_async(self, attempt: int):
        """Waits before retry (async)."""
        await asyncio.sleep(self.get_delay(attempt))


class ExponentialBackoffStrategy(RetryStrategy):
    """Exponential backoff retry strategy for retryable upload errors."""

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = MAX_BACKOFF_DELAY,
        retryable_check: Optional[Callable[[TUSError], bool]] = None
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._retryable_check = retryable_check or is_retryable

    def should_retry(self, error: TUSError, attempt: int, max_attempts: int) -> bool:
        """Retries retryable errors until attempts run out."""
        return self._retryable_check(error) and attempt < max_attempts

    def get_delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.max_delay)


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    retryable_check: Optional[Callable[[TUSError], bool]] = None,
    strategy: Optional[RetryStrategy] = None,
    token: Any = None
) -> T:
    """
    Run an async operation, retrying classified retryable failures.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts including the first one
        retryable_check: Overrides the strategy's retryability predicate
        strategy: Backoff strategy (exponential, 1s base by default)
        token: Optional CancellationToken that cuts a backoff wait short

    Returns:
        The operation's result

    Raises:
        TUSError: The last classified error, or UPLOAD_CANCELLED when the
            token fires during a backoff wait
    """
    strategy = strategy or ExponentialBackoffStrategy()
    last_error: Optional[TUSError] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = handle_error(e)
            last_error = error

            if retryable_check is not None:
                retry = retryable_check(error) and attempt < max_attempts
            else:
                retry = strategy.should_retry(error, attempt, max_attempts)

            if not retry:
                raise error

            delay = strategy.get_delay(attempt)
            logger.warning(
                f"Retrying after {error.kind.value} ({error.code}), "
                f"attempt {attempt + 1}/{max_attempts} in {delay:.2f}s"
            )
            if token is not None:
                await token.run(strategy.wait_async(attempt))
            else:
                await strategy.wait_async(attempt)

    raise last_error or TUSError(0, 'Retry failed')
