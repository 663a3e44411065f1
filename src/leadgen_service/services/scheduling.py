"""Periodic background maintenance tasks.

Each task is an explicit object with an injectable sleep, started in the
application lifespan and cancelled on shutdown. Tests drive it with
``run_once`` or a fake sleep instead of waiting on a real timer.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]


class PeriodicTask:
    """Run ``action`` every ``interval`` seconds until stopped.

    ``action`` may be sync or async and should return a count of items
    processed (logged at debug level when non-zero). Failures are logged
    and the loop carries on.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], Any],
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.name = name
        self.interval = interval
        self._action = action
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    async def run_once(self) -> Any:
        result = self._action()
        if inspect.isawaitable(result):
            result = await result
        if result:
            logger.debug("periodic_task_ran", task=self.name, processed=result)
        return result

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("periodic_task_error", task=self.name)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
