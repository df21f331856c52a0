"""Human-paced timing helpers.

Every random draw and every sleep made by the stealth primitives goes
through a ``HumanPacer`` so tests can inject a seeded ``random.Random`` and
a fake ``sleep`` and run deterministically without waiting.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

SleepFn = Callable[[float], Awaitable[None]]


class HumanPacer:
    """Random source plus sleeper for human-like timing.

    Args:
        rng: Random source. A fresh unseeded ``random.Random`` by default.
        sleep: Coroutine function taking seconds.
        scale: Multiplier applied to every pause; ``0`` disables pausing.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        scale: float = 1.0,
    ) -> None:
        if scale < 0:
            raise ValueError("scale must be >= 0")
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._scale = scale

    def uniform(self, low: float, high: float) -> float:
        return self.rng.uniform(low, high)

    def randint(self, low: int, high: int) -> int:
        """Random integer in ``[low, high]`` inclusive."""
        return self.rng.randint(low, high)

    def chance(self, probability: float) -> bool:
        return self.rng.random() < probability

    async def pause(self, min_ms: float, max_ms: float) -> float:
        """Sleep for a uniform random duration in ``[min_ms, max_ms]``.

        Returns:
            The drawn duration in milliseconds (before scaling).
        """
        delay_ms = self.uniform(min_ms, max_ms)
        if self._scale > 0:
            await self._sleep(delay_ms * self._scale / 1000)
        return delay_ms

    async def hold(self, ms: float) -> None:
        """Sleep for exactly *ms* milliseconds; explicit waits are never scaled."""
        if ms > 0:
            await self._sleep(ms / 1000)


def mouse_path(
    start: tuple[float, float],
    end: tuple[float, float],
    steps: int,
) -> list[tuple[float, float]]:
    """Interpolate *steps* waypoints from *start* to *end* (excluding start, including end)."""
    if steps < 1:
        raise ValueError("steps must be >= 1")
    (x0, y0), (x1, y1) = start, end
    return [
        (x0 + (x1 - x0) * i / steps, y0 + (y1 - y0) * i / steps)
        for i in range(1, steps + 1)
    ]
