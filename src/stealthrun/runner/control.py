"""Cooperative pause/stop token shared between a running session and its controller."""

from __future__ import annotations

import asyncio


class SessionControl:
    """Pause, resume and stop flags checked by the monitor at step boundaries.

    A stop also releases any waiter blocked in ``wait_if_paused``.
    """

    def __init__(self) -> None:
        self._running = asyncio.Event()
        self._running.set()
        self._stopped = asyncio.Event()

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def pause(self) -> None:
        if not self.stopped:
            self._running.clear()

    def resume(self) -> None:
        self._running.set()

    def stop(self) -> None:
        self._stopped.set()
        self._running.set()

    async def wait_if_paused(self) -> None:
        """Block while paused; returns immediately when running or stopped."""
        await self._running.wait()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()
