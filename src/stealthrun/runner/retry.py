"""Inter-attempt delay strategies for failed steps.

A strategy only decides *how long* to wait before attempt ``n + 1``; the
session monitor decides *whether* to retry (from the step's error policy)
and does the actual sleeping.

Usage::

    strategy = create_retry_strategy("exponential", base_delay=1.0, max_delay=30.0)
    delay = strategy.delay(attempt=2, error=exc)
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from stealthrun.exceptions import (
    ElementNotFound,
    NavigationError,
    NavigationTimeout,
    ScriptExecutionError,
    StepTimeout,
)


class RetryStrategyName(str, Enum):
    IMMEDIATE = "immediate"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    ADAPTIVE = "adaptive"


@runtime_checkable
class RetryStrategy(Protocol):
    """Compute the wait before the next attempt."""

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        """Seconds to wait after failed *attempt* (1-based) before trying again."""
        ...


class ImmediateRetry:
    """Retry without waiting."""

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        return 0.0


class ExponentialBackoff:
    """``base * factor ** (attempt - 1)``, capped at ``max_delay``."""

    def __init__(self, base: float = 1.0, factor: float = 2.0, max_delay: float = 30.0) -> None:
        if base < 0 or max_delay < 0:
            raise ValueError("delays must be >= 0")
        if factor < 1:
            raise ValueError("factor must be >= 1")
        self.base = base
        self.factor = factor
        self.max_delay = max_delay

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        return min(self.base * self.factor ** max(attempt - 1, 0), self.max_delay)


class LinearBackoff:
    """``base + increment * (attempt - 1)``, capped at ``max_delay``."""

    def __init__(self, base: float = 1.0, increment: float = 1.0, max_delay: float = 30.0) -> None:
        if base < 0 or increment < 0 or max_delay < 0:
            raise ValueError("delays must be >= 0")
        self.base = base
        self.increment = increment
        self.max_delay = max_delay

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        return min(self.base + self.increment * max(attempt - 1, 0), self.max_delay)


# (base seconds, multiplier) per error category; first isinstance match wins.
_ADAPTIVE_TABLE: tuple[tuple[type[BaseException], float, float], ...] = (
    (NavigationTimeout, 5.0, 2.0),
    (NavigationError, 5.0, 2.0),
    (StepTimeout, 3.0, 1.5),
    (ElementNotFound, 2.0, 1.5),
    (ScriptExecutionError, 1.0, 1.0),
)
_ADAPTIVE_DEFAULT = (1.0, 2.0)


class AdaptiveBackoff:
    """Exponential backoff whose base and multiplier depend on the error category.

    Navigation problems back off hardest; script errors retry at a flat
    one-second pace.
    """

    def __init__(self, max_delay: float = 30.0) -> None:
        if max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        self.max_delay = max_delay

    @staticmethod
    def parameters_for(error: BaseException | None) -> tuple[float, float]:
        if error is not None:
            for exc_type, base, multiplier in _ADAPTIVE_TABLE:
                if isinstance(error, exc_type):
                    return base, multiplier
        return _ADAPTIVE_DEFAULT

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        base, multiplier = self.parameters_for(error)
        return min(base * multiplier ** max(attempt - 1, 0), self.max_delay)


def create_retry_strategy(
    name: RetryStrategyName | str,
    *,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> RetryStrategy:
    """Build a strategy from its configured name.

    Raises:
        ValueError: If *name* is not a known strategy.
    """
    kind = RetryStrategyName(name)
    if kind == RetryStrategyName.IMMEDIATE:
        return ImmediateRetry()
    if kind == RetryStrategyName.EXPONENTIAL:
        return ExponentialBackoff(base=base_delay, max_delay=max_delay)
    if kind == RetryStrategyName.LINEAR:
        return LinearBackoff(base=base_delay, increment=base_delay, max_delay=max_delay)
    return AdaptiveBackoff(max_delay=max_delay)
