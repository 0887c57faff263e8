"""
Cancellable countdown timer.

The only source of unprompted, time-driven events. The owner starts it when
entering a timed state and must cancel it on every exit from that state.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger


class CountdownTimer:
    """Calls ``on_tick`` every ``interval`` seconds until cancelled."""

    def __init__(self, on_tick: Callable[[], None], interval: float = 1.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.on_tick = on_tick
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                self.on_tick()
        except asyncio.CancelledError:
            logger.debug("Countdown timer cancelled")
            raise
