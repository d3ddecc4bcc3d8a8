"""Retry policy shared by store calls and notification sends."""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Tuple, Type, TypeVar

if TYPE_CHECKING:
    from farm_housing.core.config import EngineSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with a backoff schedule.

    Attributes:
        max_attempts: Total number of attempts, including the first
        backoff_seconds: Delay before the first retry
        backoff_multiplier: Factor applied to the delay after each retry (1.0 = fixed)
        max_backoff_seconds: Upper bound for a single delay
        retry_on: Exception types considered transient
        sleep: Sleep function (injectable for tests)
    """

    max_attempts: int = 3
    backoff_seconds: float = 0.5
    backoff_multiplier: float = 1.0
    max_backoff_seconds: float = 10.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")

    @classmethod
    def fixed(cls, max_attempts: int, backoff_seconds: float, **kwargs) -> "RetryPolicy":
        """Policy with the same delay between every attempt."""
        return cls(
            max_attempts=max_attempts,
            backoff_seconds=backoff_seconds,
            backoff_multiplier=1.0,
            **kwargs,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "EngineSettings",
        kind: str,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], None] = time.sleep,
    ) -> "RetryPolicy":
        """
        Build the store or notification policy from engine settings.

        Args:
            settings: Engine settings
            kind: "store" or "notification"
            retry_on: Exception types considered transient
            sleep: Sleep function

        Raises:
            ValueError: If kind is unknown
        """
        if kind == "store":
            return cls(
                max_attempts=settings.store_max_attempts,
                backoff_seconds=settings.store_backoff_seconds,
                backoff_multiplier=settings.store_backoff_multiplier,
                retry_on=retry_on,
                sleep=sleep,
            )
        if kind == "notification":
            return cls.fixed(
                settings.notification_max_attempts,
                settings.notification_backoff_seconds,
                retry_on=retry_on,
                sleep=sleep,
            )
        raise ValueError(f"Unknown retry policy kind '{kind}'")

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            Delay in seconds
        """
        delay = self.backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff_seconds)

    def schedule(self) -> list[float]:
        """All delays this policy would wait, in order."""
        return [self.delay_for(a) for a in range(1, self.max_attempts)]

    def call(self, fn: Callable[[], T], description: str = "operation") -> T:
        """
        Run fn, retrying transient failures.

        The last transient exception is re-raised once attempts are exhausted.
        Exceptions outside retry_on propagate immediately.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning(f"{description} failed after {attempt} attempt(s): {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): {e}; "
                    f"retrying in {delay}s"
                )
                if delay:
                    self.sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover
