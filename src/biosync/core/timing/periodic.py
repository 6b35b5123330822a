"""Periodic asyncio tasks for the engine's tick loops."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], "Awaitable[None] | None"]


class PeriodicTask:
    """Runs a callback every ``interval`` seconds on the running event loop.

    ``stop()`` is synchronous: it cancels the pending sleep immediately so
    no further tick can run after it returns.

    Usage::

        ticker = PeriodicTask("gatekeeper", 10.0, engine.gatekeeper_tick)
        ticker.start()
        ...
        ticker.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: TickCallback,
        *,
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.interval = interval
        self._callback = callback
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Periodic task %s already running", self.name)
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.debug("Periodic task %s started (every %.1fs)", self.name, self.interval)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.debug("Periodic task %s stopped", self.name)

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self.interval)
        while self._running:
            try:
                result = self._callback()
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                break
            except Exception:
                # A failing tick must not kill the loop; the next tick retries.
                logger.exception("Periodic task %s tick failed", self.name)
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
