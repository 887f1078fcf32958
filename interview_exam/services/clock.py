"""
services/clock.py

Cancellable once-per-interval ticker owned by the exam engine.
Started on entry to InProgress, stopped on any exit from it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import config

logger = logging.getLogger(__name__)


class SessionClock:
    """
    Calls `on_tick` every `interval` seconds until stopped.

    `on_tick` returns True to keep ticking and False once the countdown is
    over; the clock then ends on its own.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[bool]],
        interval: float = config.TICK_INTERVAL_SECONDS,
    ):
        self._on_tick = on_tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        loop = task.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            # Never cancel ourselves from inside a tick: the tick is already ending
            if task is not asyncio.current_task():
                task.cancel()
        elif not loop.is_closed():
            # Called from another thread (session cleanup)
            loop.call_soon_threadsafe(task.cancel)

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                if not await self._on_tick():
                    break
        except Exception:
            logger.exception("Session clock stopped after a tick failure")
