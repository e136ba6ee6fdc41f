"""Trailing-edge debounce for coroutine functions.

Every call() restarts the timer and replaces the pending arguments; the
wrapped coroutine runs once, with the most recent arguments, after
``wait`` seconds pass without another call.  There is no leading-edge
call, so a burst of player ticks yields exactly one dispatch after the
burst settles.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, func: Callable[..., Awaitable[Any]], wait: float) -> None:
        self._func = func
        self._wait = wait
        self._timer: asyncio.TimerHandle | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def call(self, *args: Any, **kwargs: Any) -> None:
        """Schedule a dispatch; supersedes any not-yet-fired call."""
        if self._timer is not None:
            self._timer.cancel()
        self._pending = (args, kwargs)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._wait, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None

    async def flush(self) -> None:
        """Dispatch the pending call now (if any) and wait for it."""
        if self._pending is None:
            return
        args, kwargs = self._take_pending()
        await self._func(*args, **kwargs)

    async def wait_idle(self) -> None:
        """Wait until dispatches already fired have finished."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def _take_pending(self) -> tuple[tuple[Any, ...], dict[str, Any]]:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending = self._pending
        self._pending = None
        assert pending is not None
        return pending

    def _fire(self) -> None:
        args, kwargs = self._take_pending()
        task = asyncio.get_running_loop().create_task(self._func(*args, **kwargs))
        self._inflight.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task[Any]) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Debounced call failed", exc_info=task.exception())
