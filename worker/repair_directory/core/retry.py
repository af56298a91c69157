"""Bounded retry helpers shared by the provider and database call sites."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NonRetryableError(RuntimeError):
    """Raised by an operation whose failure will not change on a second attempt."""


class RetryExhaustedError(RuntimeError):
    """Raised once every attempt of an operation has failed."""

    def __init__(self, description: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{description} failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class FixedDelay:
    seconds: float

    def __call__(self, attempt: int) -> float:
        return self.seconds


@dataclass(frozen=True)
class LinearBackoff:
    base: float = 1.0

    def __call__(self, attempt: int) -> float:
        return self.base * attempt


@dataclass(frozen=True)
class ExponentialBackoff:
    """``base * 2^(attempt-1)``, optionally capped."""

    base: float = 1.0
    max_delay: Optional[float] = None

    def __call__(self, attempt: int) -> float:
        delay = self.base * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


DelayPolicy = Callable[[int], float]


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, NonRetryableError):
        return False
    return bool(getattr(exc, "retryable", True))


class RetryExecutor:
    """Run an operation up to ``max_attempts`` times, sleeping between attempts.

    The delay after the n-th failed attempt is ``delay_policy(n)``. Errors
    classified as non-retryable are re-raised immediately without consuming
    the remaining attempts.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay_policy: Optional[DelayPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_policy = delay_policy or ExponentialBackoff()
        self._sleep = sleep or time.sleep

    def execute(self, operation: Callable[[], T], description: str = "operation") -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            logger.info("%s: attempt %d/%d", description, attempt, self.max_attempts)
            try:
                return operation()
            except Exception as exc:  # noqa: BLE001
                if not is_retryable(exc):
                    logger.error("%s: non-retryable failure on attempt %d: %s", description, attempt, exc)
                    raise
                last_error = exc
                logger.warning(
                    "%s: attempt %d/%d failed: %s", description, attempt, self.max_attempts, exc
                )
                if attempt < self.max_attempts:
                    self._sleep(self.delay_policy(attempt))

        logger.error("%s: exhausted %d attempts", description, self.max_attempts)
        raise RetryExhaustedError(description, self.max_attempts, last_error)
