"""Clock adapters: asyncio-driven wall clock and a deterministic manual clock."""

import asyncio
import heapq
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from adcadence.domain.ports import CancelToken, Clock

logger = logging.getLogger(__name__)


class AsyncioClock(Clock):
    """
    Wall clock whose timers run on an asyncio event loop.

    Timers fire on the loop thread; schedule them from that thread too.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def schedule_once(self, delay: float, fn: Callable[[], None]) -> CancelToken:
        handle = self.loop.call_later(max(0.0, delay), fn)
        return CancelToken(handle.cancel)

    def schedule_repeating(self, interval: float, fn: Callable[[], None]) -> CancelToken:
        if interval <= 0:
            raise ValueError("interval must be positive")

        current: list[asyncio.TimerHandle] = []
        token = CancelToken(lambda: current[0].cancel())

        def fire() -> None:
            if token.cancelled:
                return
            # Re-arm first so a failing callback does not stop the timer
            current[0] = self.loop.call_later(interval, fire)
            fn()

        current.append(self.loop.call_later(interval, fire))
        return token


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    fn: Callable[[], None] = field(compare=False)
    token: CancelToken = field(compare=False)
    interval: float | None = field(default=None, compare=False)


class ManualClock(Clock):
    """
    Deterministic clock for tests and simulations.

    Time only moves on advance()/advance_to(); due timers fire in
    chronological order, including timers scheduled by other timers.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._timers: list[_Timer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def schedule_once(self, delay: float, fn: Callable[[], None]) -> CancelToken:
        return self._push(self._now + max(0.0, delay), fn, None)

    def schedule_repeating(self, interval: float, fn: Callable[[], None]) -> CancelToken:
        if interval <= 0:
            raise ValueError("interval must be positive")
        return self._push(self._now + interval, fn, interval)

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.token.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward, firing every timer that falls due. Returns the number fired."""
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        return self.advance_to(self._now + seconds)

    def advance_to(self, target: float) -> int:
        if target < self._now:
            raise ValueError("cannot move a clock backwards")

        fired = 0
        while self._timers and self._timers[0].due <= target:
            timer = heapq.heappop(self._timers)
            if timer.token.cancelled:
                continue
            self._now = timer.due
            if timer.interval is not None:
                timer.due += timer.interval
                timer.seq = next(self._seq)
                heapq.heappush(self._timers, timer)
            timer.fn()
            fired += 1

        self._now = target
        return fired

    def _push(self, due: float, fn: Callable[[], None], interval: float | None) -> CancelToken:
        token = CancelToken()
        heapq.heappush(self._timers, _Timer(due, next(self._seq), fn, token, interval))
        return token
