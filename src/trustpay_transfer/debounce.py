"""
Debounce helpers for the asynchronous field validators.

Debouncer runs at most one delayed job at a time: arming it again cancels
both the pending timer and a job that already started, so a superseded
lookup never finishes. Each job gets a monotonically increasing token which
callers compare against ``Debouncer.token`` before applying a result.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("trustpay.transfer")


class Debouncer:
    def __init__(self, delay: float, name: str = "debounce") -> None:
        self.delay = delay
        self.name = name
        self.token = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, token: int) -> bool:
        return token == self.token

    def schedule(self, job: Callable[[int], Awaitable[None]]) -> int:
        """Cancel whatever is pending and arm ``job`` after the quiet period."""
        self.cancel()
        self.token += 1
        token = self.token
        self._task = asyncio.get_running_loop().create_task(self._run(job, token))
        return token

    async def _run(self, job: Callable[[int], Awaitable[None]], token: int) -> None:
        await asyncio.sleep(self.delay)
        if not self.is_current(token):
            return
        await job(token)

    def cancel(self) -> None:
        """Drop the pending timer / in-flight job and invalidate its token."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("%s: cancelled pending job (token=%d)", self.name, self.token)
        self._task = None
        self.token += 1

    async def flush(self) -> None:
        """Wait until the currently armed job (if any) has run to completion."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
