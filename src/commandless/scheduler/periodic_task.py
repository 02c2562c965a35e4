"""Reusable periodic background task.

Runs a coroutine on a fixed interval inside the current event loop. Used for
config polling, rate-limit cleanup and relay heartbeats. Errors raised by a
single run are logged and the loop keeps going; cancellation always propagates.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from commandless.util.logger import get_logger

logger = get_logger("periodic_task")


class PeriodicTask:
    """
    Fixed-interval runner for one coroutine function.

    Args:
        name: Human-readable name for logging (e.g., "config poll", "janitor").
        tick: Zero-argument async callable invoked once per interval.
        interval: Seconds between runs.
        run_immediately: Run ``tick`` once before the first sleep.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._name = name
        self._tick = tick
        self._interval = interval
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_once(self) -> None:
        try:
            await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Unexpected error during periodic run: %s", self._name, exc)

    async def _run_loop(self) -> None:
        """Infinite loop: (optionally run), sleep, run, repeat."""
        logger.debug("[%s] Starting periodic task (interval=%.1fs)", self._name, self._interval)
        try:
            if self._run_immediately:
                await self._run_once()
            while True:
                await asyncio.sleep(self._interval)
                await self._run_once()
        except asyncio.CancelledError:
            logger.debug("[%s] Periodic task cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task. Must be called from a running event loop.

        A task that is already running is cancelled first, so calling ``start``
        twice never leaves two loops scheduled.
        """
        self.stop()
        self._task = asyncio.create_task(self._run_loop(), name=f"commandless:{self._name}")

    def stop(self) -> None:
        """Cancel the background task without waiting. Safe to call when not running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def shutdown(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("[%s] Periodic task shutdown complete", self._name)
