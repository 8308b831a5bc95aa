"""
Retry policies for dispatched order processing.

The dispatch scheduler consults a policy after every failed attempt to decide
whether the order is rescheduled and how long it waits before becoming
eligible again. Permanent order errors are never retried.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from order_engine.core.exceptions import PermanentOrderError


class BackoffType(Enum):
    """Enumeration of supported backoff types."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry policies.

    Attributes:
        max_attempts: Total attempts allowed, including the first
        base_delay: Base delay in seconds for backoff calculations
        max_delay: Maximum delay in seconds between attempts
        backoff_type: Type of backoff strategy to use
        jitter_enabled: Whether to add random jitter to delays
        jitter_max: Maximum jitter percentage (0.0 to 1.0)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    jitter_enabled: bool = False
    jitter_max: float = 0.1

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0.0 <= self.jitter_max <= 1.0:
            raise ValueError("jitter_max must be between 0.0 and 1.0")


class IRetryPolicy(ABC):
    """Interface for retry policy implementations."""

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        """Total attempts allowed, including the first."""

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based)

        Returns:
            float: Delay in seconds before the next attempt
        """

    @abstractmethod
    def should_retry(self, attempt: int, exception: Exception) -> bool:
        """
        Determine if another attempt should be made.

        Args:
            attempt: Number of the attempt that just failed (1-based)
            exception: Exception raised by that attempt

        Returns:
            bool: True if retry should be attempted
        """


class RetryPolicy(IRetryPolicy):
    """
    Configurable retry policy with exponential, linear or fixed backoff.

    With the default configuration the delays after attempts 1 and 2 are
    ``base_delay`` and ``2 * base_delay`` and a third failure is final.
    """

    def __init__(self, config: Optional[RetryConfig] = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def calculate_delay(self, attempt: int) -> float:
        if self._config.backoff_type == BackoffType.EXPONENTIAL:
            delay = self._config.base_delay * (2 ** (attempt - 1))
        elif self._config.backoff_type == BackoffType.LINEAR:
            delay = self._config.base_delay * attempt
        else:  # FIXED
            delay = self._config.base_delay

        delay = min(delay, self._config.max_delay)

        if self._config.jitter_enabled and delay > 0:
            jitter_amount = delay * self._config.jitter_max
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))

        return delay

    def should_retry(self, attempt: int, exception: Exception) -> bool:
        if attempt >= self._config.max_attempts:
            return False
        return not isinstance(exception, PermanentOrderError)


def create_retry_policy(
    max_attempts: int = 3, base_delay: float = 1.0, strategy: str = "exponential"
) -> IRetryPolicy:
    """
    Factory function to create the order retry policy.

    Args:
        max_attempts: Total attempts allowed
        base_delay: Base delay in seconds
        strategy: Retry strategy ('exponential', 'linear', 'fixed')

    Returns:
        IRetryPolicy: Configured retry policy

    Raises:
        ValueError: If strategy is not supported
    """
    try:
        backoff_type = BackoffType(strategy.lower())
    except ValueError:
        raise ValueError(f"Unsupported retry strategy: {strategy}") from None

    return RetryPolicy(
        RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max(60.0, base_delay),
            backoff_type=backoff_type,
        )
    )
