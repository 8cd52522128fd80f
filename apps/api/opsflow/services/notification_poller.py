"""Cancellable polling loop for notification refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from opsflow.core.async_utils import await_with_timeout
from opsflow.core.config import MAX_POLL_INTERVAL_SECONDS, MIN_POLL_INTERVAL_SECONDS, settings

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[list[Any]]]
ResultCallback = Callable[[list[Any]], Awaitable[None] | None]


class NotificationPoller:
    """
    Run ``fetch`` on a fixed interval and hand results to ``on_result``.

    The first fetch happens immediately on start. A fetch that times out or
    fails yields an empty result for that tick; the loop keeps going until
    ``stop()`` is called. Usable as an async context manager so the loop is
    always torn down with its owner.
    """

    def __init__(
        self,
        fetch: FetchFn,
        on_result: ResultCallback | None = None,
        *,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.fetch = fetch
        self.on_result = on_result
        self.interval = clamp_interval(interval if interval is not None else settings.NOTIFICATION_POLL_INTERVAL_SECONDS)
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.last_result: list[Any] = []
        self.tick_count = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "NotificationPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def poll_once(self) -> list[Any]:
        """Run one bounded fetch and deliver its result."""
        try:
            result = await await_with_timeout(self.fetch(), self.timeout)
        except TimeoutError:
            logger.warning("Notification poll timed out after %ss", self.timeout)
            result = []
        except Exception as exc:
            logger.warning("Notification poll failed: %s", type(exc).__name__)
            result = []

        self.tick_count += 1
        self.last_result = list(result or [])
        if self.on_result is not None:
            try:
                outcome = self.on_result(self.last_result)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as exc:
                logger.error("Notification callback failed: %s", type(exc).__name__)
        return self.last_result

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)


def clamp_interval(seconds: float) -> float:
    return max(MIN_POLL_INTERVAL_SECONDS, min(MAX_POLL_INTERVAL_SECONDS, seconds))
