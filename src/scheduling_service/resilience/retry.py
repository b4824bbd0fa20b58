"""Retry with bounded exponential backoff and jitter, built on tenacity.

Attempt 1 runs immediately; before attempt ``n + 1`` the executor waits
``min(base_delay * exponential_base ** (n - 1), max_delay)`` milliseconds,
randomized by +-25% to avoid synchronized retries from many callers.
"""

import asyncio
import random
from dataclasses import asdict, dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from scheduling_service.config import get_settings
from scheduling_service.utils.errors import RetryExhaustedError
from scheduling_service.utils.logging import get_logger

logger = get_logger("resilience.retry")

T = TypeVar("T")

JITTER_RATIO = 0.25


@dataclass(frozen=True)
class RetryOptions:
    """Immutable retry configuration. Delays are in milliseconds."""

    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    exponential_base: float = 2

    def merged(self, **overrides: Any) -> "RetryOptions":
        """Return a copy with the given fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_delay(
    attempt: int, options: RetryOptions, rng: Optional[random.Random] = None
) -> float:
    """Delay in milliseconds to wait after failed ``attempt`` (1-based)."""
    rng = rng or random
    exponential = options.base_delay_ms * options.exponential_base ** (attempt - 1)
    capped = min(exponential, options.max_delay_ms)
    jitter = capped * JITTER_RATIO * (rng.random() * 2 - 1)
    return max(0.0, capped + jitter)


class wait_backoff_with_jitter(wait_base):
    """tenacity wait strategy applying :func:`calculate_delay`."""

    def __init__(self, options: RetryOptions, rng: Optional[random.Random] = None) -> None:
        self.options = options
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        delay_ms = calculate_delay(retry_state.attempt_number, self.options, self.rng)
        logger.debug(f"Waiting {delay_ms:.0f}ms before next attempt")
        return delay_ms / 1000


def _log_failed_attempt(max_attempts: int) -> Callable[[RetryCallState], None]:
    def log_it(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(f"Attempt {retry_state.attempt_number}/{max_attempts} failed: {error}")

    return log_it


class RetryExecutor:
    """Stateless retry runner shared by every adapter call."""

    def __init__(
        self,
        default_options: Optional[RetryOptions] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._default_options = default_options or RetryOptions()
        self._sleep = sleep
        self._rng = rng

    @classmethod
    def from_settings(cls) -> "RetryExecutor":
        """Build an executor from ``ADAPTER_RETRY_ATTEMPTS`` and ``RETRY_*`` settings."""
        settings = get_settings()
        return cls(
            RetryOptions(
                max_attempts=settings.adapter.retry_attempts,
                base_delay_ms=settings.retry.base_delay_ms,
                max_delay_ms=settings.retry.max_delay_ms,
                exponential_base=settings.retry.exponential_base,
            )
        )

    def get_default_options(self) -> RetryOptions:
        return self._default_options

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: Optional[RetryOptions] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or the attempts run out.

        Raises:
            RetryExhaustedError: After the last attempt failed; chained from
                the last exception.
        """
        opts = options or self._default_options

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(opts.max_attempts),
                wait=wait_backoff_with_jitter(opts, self._rng),
                retry=retry_if_exception_type(Exception),
                before_sleep=_log_failed_attempt(opts.max_attempts),
                sleep=self._sleep,
                reraise=False,
            ):
                with attempt:
                    return await operation()
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"All {opts.max_attempts} attempts failed: {last_error}")
            raise RetryExhaustedError(opts.max_attempts, last_error) from last_error

        # unreachable: AsyncRetrying either returns or raises RetryError
        raise RetryExhaustedError(opts.max_attempts)
