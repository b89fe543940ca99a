"""Bounded, jittered exponential-backoff retry for fallible async operations.

The primary interface is :class:`RetryPolicy`, whose ``execute`` returns a
:class:`RetryResult` instead of raising, so callers can decide how a
failure affects their run. ``execute_with_retry`` is the raising variant.

Examples
--------
Basic usage::

    policy = RetryPolicy(RetryConfig(max_attempts=3, initial_delay=0.5))
    result = await policy.execute(lambda: driver.arun(clone_cmd), context="clone api")
    if not result.success:
        logger.error("{}", result.error)

Observing retries::

    def on_retry(attempt: RetryAttempt) -> None:
        ui.send(f"Retrying in {attempt.delay_before_next:.1f}s")

    policy = RetryPolicy(config, on_retry=on_retry)
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from stackforge.kernel.exceptions import (
    ConfigurationError,
    CycleDetectedError,
    RetryExhaustedError,
    ValidationError,
)
from stackforge.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Configuration errors never become valid by trying again
NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    CycleDetectedError,
    ConfigurationError,
    ValidationError,
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Configuration for retry behavior with exponential backoff.

    Parameters
    ----------
    max_attempts : int
        Total number of attempts. 1 means a single attempt, no retries.
    initial_delay : float
        Delay in seconds after the first failure.
    max_delay : float
        Cap in seconds for a single delay, before jitter.
    backoff_multiplier : float
        Multiplier applied to the delay after each failure.
    jitter_factor : float
        Fraction (0.0-1.0) of the delay used as uniform +/- perturbation.
    attempt_timeout : float | None
        Seconds after which a single attempt is abandoned and counted as
        a failure; None disables the per-attempt timeout.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1
    attempt_timeout: float | None = 300.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError("max_attempts", "must be >= 1", self.max_attempts)
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValidationError("delay", "must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValidationError("backoff_multiplier", "must be >= 1", self.backoff_multiplier)
        if not 0.0 <= self.jitter_factor <= 1.0:
            raise ValidationError("jitter_factor", "must be between 0 and 1", self.jitter_factor)
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValidationError("attempt_timeout", "must be positive", self.attempt_timeout)

    def compute_delay(self, attempt: int) -> float:
        """Compute the un-jittered delay after a failed attempt (1-indexed).

        Examples
        --------
        >>> cfg = RetryConfig(initial_delay=1.0, backoff_multiplier=2.0, max_delay=10.0)
        >>> cfg.compute_delay(1)
        1.0
        >>> cfg.compute_delay(3)
        4.0
        >>> cfg.compute_delay(10)
        10.0
        """
        return min(self.max_delay, self.initial_delay * (self.backoff_multiplier ** (attempt - 1)))

    def max_total_delay(self) -> float:
        """Upper bound of the summed waits for a fully failing operation, jitter included."""
        base = sum(self.compute_delay(attempt) for attempt in range(1, self.max_attempts))
        return base * (1 + self.jitter_factor)


@dataclass(frozen=True, slots=True)
class RetryAttempt:
    """One failed attempt, handed to the retry observer before the wait."""

    attempt_number: int
    delay_before_next: float
    last_error: BaseException
    context: str = ""


@dataclass(frozen=True, slots=True)
class RetryResult(Generic[T]):
    """Outcome of ``RetryPolicy.execute``.

    On failure ``error`` wraps the last error together with the attempt
    count and the caller supplied context.
    """

    success: bool
    value: T | None = None
    error: RetryExhaustedError | None = None
    attempts: int = 0
    total_delay: float = 0.0
    elapsed: float = 0.0

    @property
    def last_error(self) -> BaseException | None:
        return self.error.last_error if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the exhaustion error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class RetryPolicy:
    """Wraps a single fallible async operation with bounded retries.

    The policy performs no compensating actions: an operation must clean up
    its own partial side effects before failing.

    Parameters
    ----------
    config : RetryConfig
        Attempt count, backoff and jitter settings
    on_retry : Callable[[RetryAttempt], Any] | None
        Observer invoked synchronously before each wait; keep it cheap
    should_retry : Callable[[BaseException], bool] | None
        Predicate deciding whether an error is worth another attempt
    rng : random.Random | None
        Source of jitter; inject a seeded instance for reproducible delays
    sleep : Callable[[float], Awaitable[Any]] | None
        Sleep coroutine, ``asyncio.sleep`` by default
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        on_retry: Callable[[RetryAttempt], Any] | None = None,
        should_retry: Callable[[BaseException], bool] | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._on_retry = on_retry
        self._should_retry = should_retry
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def jittered_delay(self, attempt: int) -> float:
        """Return the delay after ``attempt`` perturbed by +/- jitter, never negative."""
        delay = self.config.compute_delay(attempt)
        if self.config.jitter_factor:
            delay += delay * self.config.jitter_factor * self._rng.uniform(-1.0, 1.0)
        return max(0.0, delay)

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, NON_RETRYABLE_ERRORS):
            return False
        if self._should_retry is not None:
            return self._should_retry(error)
        return True

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.config.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.config.attempt_timeout)

    async def execute(
        self, operation: Callable[[], Awaitable[T]], context: str = "operation"
    ) -> RetryResult[T]:
        """Run ``operation`` until it succeeds or attempts are exhausted.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument coroutine factory; it is invoked once per attempt
        context : str
            Description of the operation, attached to the failure for diagnostics

        Returns
        -------
        RetryResult[T]
            Value on success, otherwise the tagged last error
        """
        started = time.monotonic()
        total_delay = 0.0
        attempt = 0

        while True:
            attempt += 1
            try:
                value = await self._attempt(operation)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if isinstance(exc, TimeoutError):
                    logger.warning(
                        "{context} timed out after {timeout}s (attempt {attempt})",
                        context=context,
                        timeout=self.config.attempt_timeout,
                        attempt=attempt,
                    )

                if attempt >= self.config.max_attempts or not self.is_retryable(exc):
                    logger.error(
                        "{context} failed after {attempts} attempt(s): {error}",
                        context=context,
                        attempts=attempt,
                        error=exc,
                    )
                    return RetryResult(
                        success=False,
                        error=RetryExhaustedError(context, attempt, exc),
                        attempts=attempt,
                        total_delay=total_delay,
                        elapsed=time.monotonic() - started,
                    )

                delay = self.jittered_delay(attempt)
                logger.warning(
                    "{context} attempt {attempt}/{max_attempts} failed, retrying in {delay:.2f}s: "
                    "{error}",
                    context=context,
                    attempt=attempt,
                    max_attempts=self.config.max_attempts,
                    delay=delay,
                    error=exc,
                )
                if self._on_retry is not None:
                    self._on_retry(RetryAttempt(attempt, delay, exc, context))
                await self._sleep(delay)
                total_delay += delay
                continue

            if attempt > 1:
                logger.info(
                    "{context} succeeded on attempt {attempt}", context=context, attempt=attempt
                )
            return RetryResult(
                success=True,
                value=value,
                attempts=attempt,
                total_delay=total_delay,
                elapsed=time.monotonic() - started,
            )


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    context: str = "operation",
    on_retry: Callable[[RetryAttempt], Any] | None = None,
) -> T:
    """Execute an async callable with retry, raising when attempts run out.

    Raises
    ------
    RetryExhaustedError
        With the last error chained as ``__cause__``

    Examples
    --------
    >>> import asyncio
    >>> async def ok(): return 42
    >>> asyncio.run(execute_with_retry(ok, RetryConfig()))
    42
    """
    result = await RetryPolicy(config, on_retry=on_retry).execute(fn, context)
    if result.error is not None:
        raise result.error from result.error.last_error
    return result.value  # type: ignore[return-value]
