"""Leading-edge throttle for bursts of push notifications."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class Throttle:
    """Runs ``func`` at most once per window.

    A call outside the window runs immediately. A call inside the window is
    deferred to the window boundary; further calls before then only replace
    the deferred arguments, so a burst collapses into one trailing run.
    Coroutine results are scheduled as tasks on the running loop.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        window_ms: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._func = func
        self._window = window_ms / 1000.0
        self._clock = clock
        self._last_run: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        """Whether a deferred call is waiting for the window boundary."""
        return self._pending is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        now = self._clock()
        if self._last_run is None or now - self._last_run >= self._window:
            self._cancel_timer()
            self._pending = None
            self._run(args, kwargs)
            return

        self._pending = (args, kwargs)
        if self._timer is None:
            delay = self._window - (now - self._last_run)
            self._timer = asyncio.get_running_loop().call_later(delay, self._fire_pending)

    async def flush(self) -> None:
        """Run any deferred call now and wait for scheduled coroutines."""
        if self._pending is not None:
            self._cancel_timer()
            self._fire_pending()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Drop the deferred call and cancel running coroutines."""
        self._cancel_timer()
        self._pending = None
        for task in list(self._tasks):
            task.cancel()

    def _fire_pending(self) -> None:
        self._timer = None
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self._run(args, kwargs)

    def _run(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self._last_run = self._clock()
        result = self._func(*args, **kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("throttled_call_failed", function=getattr(self._func, "__name__", "?"), error=str(exc))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
