"""Cancellable single-shot timers for the client engine.

Everything runs on one asyncio loop, so a timer is just a handle from
loop.call_later. Re-arming is always cancel-then-schedule by the caller.
"""

import asyncio
from typing import Callable, Optional


class TimerHandle:
    def __init__(self, delay_ms: int, callback: Callable[[], None]):
        self.delay_ms = delay_ms
        self.callback = callback
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self):
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def __repr__(self):
        state = 'cancelled' if self.cancelled else 'armed'
        return f"<TimerHandle {self.delay_ms}ms {state}>"


class Scheduler:
    """schedule(delay, fn) -> handle; cancel(handle)"""

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()


class AsyncioScheduler(Scheduler):
    """Timers on the running asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(delay_ms, callback)

        def fire():
            handle._handle = None
            if not handle.cancelled:
                callback()

        handle._handle = self.loop.call_later(max(delay_ms, 0) / 1000.0, fire)
        return handle
