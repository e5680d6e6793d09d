"""
Dispatcher adapters that marshal callbacks onto the owner context.

- InlineDispatcher: runs immediately; for single-threaded use.
- QueueDispatcher: thread-safe queue drained explicitly by the owner.
- AsyncioDispatcher: hands work to an event loop from any thread.
"""

import asyncio
import logging
import queue
from collections.abc import Callable
from typing import Any

from adcadence.domain.ports import Dispatcher

logger = logging.getLogger(__name__)


class InlineDispatcher(Dispatcher):
    def post(self, fn: Callable[..., None], *args: Any) -> None:
        fn(*args)


class QueueDispatcher(Dispatcher):
    def __init__(self) -> None:
        self._queue: queue.SimpleQueue = queue.SimpleQueue()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def post(self, fn: Callable[..., None], *args: Any) -> None:
        self._queue.put((fn, args))

    def drain(self) -> int:
        """Run queued work in arrival order, including work posted while draining."""
        ran = 0
        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                return ran
            fn(*args)
            ran += 1


class AsyncioDispatcher(Dispatcher):
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def post(self, fn: Callable[..., None], *args: Any) -> None:
        if self._loop.is_closed():
            logger.debug("Event loop closed; dropping posted callback")
            return
        self._loop.call_soon_threadsafe(fn, *args)
