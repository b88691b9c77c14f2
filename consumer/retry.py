"""Retry helpers with exponential backoff.

``retry_with_backoff`` wraps an async operation: retryable failures are
retried after a growing delay, anything else is re-raised untouched so
callers can still match on the original exception and its message.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from shared.config import Settings
from shared.utils import calculate_exponential_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_ERRORS = (
    "timeout",
    "network",
    "econnreset",
    "etimedout",
    "navigation",
    "net::err",
)


def is_retryable_error(
    error: BaseException,
    retryable_errors: Sequence[str] = DEFAULT_RETRYABLE_ERRORS
) -> bool:
    """Check whether an error message contains one of the retryable markers."""
    message = str(error).lower()
    return any(marker.lower() in message for marker in retryable_errors)


@dataclass
class RetryOptions:
    """Retry configuration. Delays are in seconds."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: Sequence[str] = field(default=DEFAULT_RETRYABLE_ERRORS)
    retryable: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException], None]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def is_retryable(self, error: BaseException) -> bool:
        if self.retryable is not None:
            return self.retryable(error)
        return is_retryable_error(error, self.retryable_errors)

    @classmethod
    def from_settings(cls, config: Settings, **overrides) -> "RetryOptions":
        """Build options from application settings."""
        options = cls(
            max_attempts=config.max_retry_attempts,
            initial_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            backoff_multiplier=config.retry_backoff_multiplier,
        )
        return replace(options, **overrides)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None
) -> T:
    """
    Run an async operation, retrying retryable failures with backoff.

    Returns the operation's result. Raises the original error when it is
    not retryable, or the last error once max_attempts is exhausted.
    """
    options = options or RetryOptions()
    return await retry_with_condition(
        operation,
        lambda error, attempt: options.is_retryable(error),
        options
    )


async def retry_with_condition(
    operation: Callable[[], Awaitable[T]],
    should_retry: Callable[[BaseException, int], bool],
    options: Optional[RetryOptions] = None
) -> T:
    """Retry with a custom retry condition receiving (error, attempt)."""
    options = options or RetryOptions()

    for attempt in range(1, options.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == options.max_attempts or not should_retry(e, attempt):
                logger.warning(f"Operation failed after {attempt} attempt(s): {e}")
                raise

            delay = calculate_exponential_backoff(
                attempt - 1,
                options.initial_delay,
                options.max_delay,
                options.backoff_multiplier
            )
            logger.debug(
                f"Attempt {attempt}/{options.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )

            if options.on_retry:
                options.on_retry(attempt, e)

            await asyncio.sleep(delay)

    # max_attempts >= 1 guarantees the loop returns or raises
    raise RuntimeError("unreachable")


async def retry_with_linear_backoff(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None
) -> T:
    """Retry with a constant step (multiplier fixed to 1)."""
    options = replace(options or RetryOptions(), backoff_multiplier=1.0)
    return await retry_with_backoff(operation, options)


async def retry_with_fixed_delay(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None
) -> T:
    """Retry with the same delay between every attempt."""
    options = options or RetryOptions()
    options = replace(options, backoff_multiplier=1.0, max_delay=options.initial_delay)
    return await retry_with_backoff(operation, options)
