"""Process-wide timers for automatic token refresh."""

from __future__ import annotations

import asyncio
import logging
import typing

logger = logging.getLogger(__name__)

Sleep = typing.Callable[[float], typing.Awaitable[typing.Any]]
Callback = typing.Callable[[], typing.Awaitable[typing.Any]]


class RefreshScheduler:
    """One pending timer per registry URL.

    ``schedule`` cancels any timer already pending for the URL before arming
    the new one. A timer that has fired is removed from the table before its
    callback runs, so the callback may schedule the next timer for the same
    URL without cancelling itself.

    Usage:
        scheduler.schedule(url, 3600, registry.refresh_token)
    """

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._timers: dict[str, asyncio.Task] = {}
        # Strong references until done; fired timers leave _timers early
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, url: str, delay: float, callback: Callback) -> asyncio.Task:
        """Run ``callback`` once after ``delay`` seconds.

        Must be called from a running event loop.
        """
        self.cancel(url)
        task = asyncio.get_running_loop().create_task(
            self._fire(url, delay, callback), name=f"token-refresh-{url}"
        )
        self._timers[url] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Token refresh for {url} scheduled in {delay}s")
        return task

    async def _fire(self, url: str, delay: float, callback: Callback) -> None:
        await self._sleep(delay)
        if self._timers.get(url) is asyncio.current_task():
            del self._timers[url]
        await callback()

    def cancel(self, url: str) -> bool:
        """Cancel the pending timer for ``url``. Returns False if there was none."""
        task = self._timers.pop(url, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for url in list(self._timers):
            self.cancel(url)

    def pending(self, url: str) -> asyncio.Task | None:
        """The pending timer for ``url``, if any."""
        return self._timers.get(url)

    def __len__(self) -> int:
        return len(self._timers)


class RefreshSchedulerProvider:
    """Provider for the process-wide RefreshScheduler."""

    def __init__(self) -> None:
        self._scheduler: RefreshScheduler | None = None

    def get(self) -> RefreshScheduler:
        if self._scheduler is None:
            self._scheduler = RefreshScheduler()
        return self._scheduler

    def set(self, scheduler: RefreshScheduler) -> None:
        self._scheduler = scheduler

    def reset(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel_all()
        self._scheduler = None


refresh_scheduler_provider = RefreshSchedulerProvider()
