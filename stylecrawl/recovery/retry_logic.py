"""
StyleCrawl Retry Logic
======================

Retry with exponential backoff and jitter, plus per-attempt timeout racing,
used by the transport for both the feed document and every post page.
"""

import asyncio
import inspect
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..config.settings import RetrySettings
from ..utils.exceptions import FetchTimeoutError
from ..utils.logging import get_logger_for_component
from .error_handler import ErrorClassifier


T = TypeVar('T')

# Upper bound of the random jitter, as a fraction of the capped delay
JITTER_FRACTION = 0.1


@dataclass
class RetryPolicy:
    """Configuration for one retrying call site."""
    max_attempts: int = 3                   # Total attempts, first one included
    initial_delay: float = 1.0              # Delay before the second attempt
    max_delay: float = 10.0                 # Cap for the non-jittered delay
    backoff_multiplier: float = 2.0         # Exponential growth factor
    retryable: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException], None]] = None
    timeout: Optional[float] = None         # Per-attempt timeout in seconds

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @classmethod
    def from_settings(cls, settings: RetrySettings, **overrides) -> "RetryPolicy":
        """Build a policy from a ``RetrySettings`` section."""
        values = {
            'max_attempts': settings.max_attempts,
            'initial_delay': settings.initial_delay,
            'max_delay': settings.max_delay,
            'backoff_multiplier': settings.backoff_multiplier,
            'timeout': settings.timeout,
        }
        values.update(overrides)
        return cls(**values)

    def base_delay(self, attempt: int) -> float:
        """Non-jittered delay after failed attempt ``attempt`` (1-based)."""
        return min(
            self.initial_delay * (self.backoff_multiplier ** (attempt - 1)),
            self.max_delay,
        )


def calculate_backoff(attempt: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """Delay before attempt ``attempt + 1``: capped exponential plus up to 10% jitter."""
    delay = policy.base_delay(attempt)
    source = rng or random
    return delay + source.uniform(0, delay * JITTER_FRACTION)


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    """Race ``awaitable`` against ``timeout`` seconds.

    On expiry the attempt is cancelled and ``FetchTimeoutError`` is raised.
    """
    if timeout is None:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise FetchTimeoutError(
            f"Attempt timed out after {timeout:.1f}s", timeout=timeout
        ) from None


class RetryManager:
    """Runs a callable under a ``RetryPolicy``."""

    def __init__(self, policy: Optional[RetryPolicy] = None, rng: Optional[random.Random] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        self.policy = policy or RetryPolicy()
        self.rng = rng
        self._sleep = sleep or asyncio.sleep
        self.logger = get_logger_for_component('retry_manager')

    async def retry_async(self,
                          func: Callable[..., Any],
                          *args,
                          policy: Optional[RetryPolicy] = None,
                          **kwargs) -> Any:
        """
        Retry an async function according to the policy.

        Args:
            func: Async function to retry, called afresh for every attempt
            *args: Function arguments
            policy: Override the manager's default policy
            **kwargs: Function keyword arguments

        Returns:
            Function result if any attempt succeeds

        Raises:
            The last underlying exception, unchanged, once attempts are exhausted
            or as soon as a non-retryable exception occurs
        """
        retry_policy = policy or self.policy
        is_retryable = retry_policy.retryable or ErrorClassifier.is_retryable
        name = getattr(func, '__name__', repr(func))

        for attempt in range(1, retry_policy.max_attempts + 1):
            try:
                if inspect.iscoroutinefunction(func):
                    result = await with_timeout(func(*args, **kwargs), retry_policy.timeout)
                else:
                    result = func(*args, **kwargs)
                    if inspect.isawaitable(result):
                        result = await with_timeout(result, retry_policy.timeout)

                if attempt > 1:
                    self.logger.info(f"Retry successful for {name} on attempt {attempt}")

                return result

            except Exception as e:
                if not is_retryable(e):
                    self.logger.debug(f"Not retrying {name} due to non-retryable exception: {e}")
                    raise

                if attempt >= retry_policy.max_attempts:
                    self.logger.warning(f"All {retry_policy.max_attempts} attempts failed for {name}")
                    raise

                delay = calculate_backoff(attempt, retry_policy, self.rng)
                self._notify(retry_policy, attempt, e)

                self.logger.debug(
                    f"Attempt {attempt} failed for {name}: {e}. "
                    f"Retrying in {delay:.2f}s (attempt {attempt + 1}/{retry_policy.max_attempts})"
                )
                await self._sleep(delay)

        # max_attempts >= 1 guarantees the loop returns or raises
        raise RuntimeError("retry loop exited without a result")

    def _notify(self, policy: RetryPolicy, attempt: int, error: BaseException) -> None:
        """Call the observer; it is a side channel and cannot alter control flow."""
        if policy.on_retry is None:
            return
        try:
            policy.on_retry(attempt, error)
        except Exception as observer_error:
            self.logger.warning(f"Retry observer raised and was ignored: {observer_error}")


def log_retry_observer(component: str = 'transport', **context) -> Callable[[int, BaseException], None]:
    """Default observer: log each scheduled retry."""
    logger = get_logger_for_component(component, **context)

    def observer(attempt: int, error: BaseException) -> None:
        logger.warning(f"Attempt {attempt} failed, retrying: {error}")

    return observer
