"""Host tick sources.

A host owns the periodic update loop. The scheduler registers its ``tick``
with the host while it has active tasks and unregisters it when idle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol

from tickrun.config import get_settings

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], None]


class Host(Protocol):
    """Anything that can call registered callbacks periodically with the time."""

    def register(self, callback: TickCallback) -> None: ...

    def unregister(self, callback: TickCallback) -> None: ...


class ManualHost:
    """
    Host driven by the caller.

    Useful in tests and when embedding in a foreign loop (a game engine, a GUI
    toolkit's idle handler): call ``advance(now)`` from that loop.
    """

    def __init__(self) -> None:
        self.callbacks: list[TickCallback] = []
        self.registrations = 0
        self.unregistrations = 0

    def register(self, callback: TickCallback) -> None:
        if callback not in self.callbacks:
            self.callbacks.append(callback)
            self.registrations += 1

    def unregister(self, callback: TickCallback) -> None:
        if callback in self.callbacks:
            self.callbacks.remove(callback)
            self.unregistrations += 1

    @property
    def active(self) -> bool:
        return bool(self.callbacks)

    def advance(self, now: float) -> None:
        """Invoke every registered callback once."""
        # Callbacks may unregister themselves
        for callback in list(self.callbacks):
            callback(now)


class BlockingHost:
    """
    Host that ticks in the calling thread.

    Example:
        host = BlockingHost(interval=0.05)
        scheduler = Scheduler(host)
        scheduler.submit(job())
        host.run()  # returns once the scheduler goes idle
    """

    def __init__(
        self,
        interval: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval is None:
            interval = get_settings().tick_interval
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._clock = clock
        self._callbacks: list[TickCallback] = []

    def register(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def active(self) -> bool:
        return bool(self._callbacks)

    def run(self, timeout: float | None = None) -> bool:
        """
        Tick until nothing is registered.

        Args:
            timeout: Max seconds to run. None = until idle.

        Returns:
            True if the host went idle, False if the timeout expired first.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while self._callbacks:
            now = self._clock()
            if deadline is not None and now >= deadline:
                return False
            for callback in list(self._callbacks):
                callback(now)
            if self._callbacks:
                time.sleep(self.interval)
        return True


class AsyncioHost:
    """
    Host that ticks from an asyncio event loop.

    Each registered callback gets its own loop task that calls it with
    ``loop.time()`` every ``interval`` seconds until unregistered.
    Registration requires a running event loop.
    """

    def __init__(self, interval: float | None = None) -> None:
        if interval is None:
            interval = get_settings().tick_interval
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._loops: dict[TickCallback, asyncio.Task] = {}

    def register(self, callback: TickCallback) -> None:
        if callback in self._loops:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise RuntimeError(
                "AsyncioHost.register() needs a running event loop; "
                "submit tasks from a coroutine or use BlockingHost"
            ) from None
        self._loops[callback] = loop.create_task(self._run(callback))

    def unregister(self, callback: TickCallback) -> None:
        loop_task = self._loops.pop(callback, None)
        if loop_task is None:
            return
        # When called from inside the callback, _run sees the pop and exits
        # on its own; cancelling itself would only interrupt the sleep.
        if loop_task is not asyncio.current_task():
            loop_task.cancel()

    @property
    def active(self) -> bool:
        return bool(self._loops)

    async def _run(self, callback: TickCallback) -> None:
        loop = asyncio.get_running_loop()
        me = asyncio.current_task()
        try:
            while self._loops.get(callback) is me:
                callback(loop.time())
                if self._loops.get(callback) is not me:
                    break
                await asyncio.sleep(self.interval)
        except Exception:
            logger.exception("Tick callback %r raised; unregistering it", callback)
        finally:
            if self._loops.get(callback) is me:
                del self._loops[callback]

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """
        Wait until no callback is registered.

        Returns:
            True if idle, False if the timeout expired first.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._loops:
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(self.interval)
        return True

    async def close(self) -> None:
        """Cancel every tick loop."""
        loop_tasks = list(self._loops.values())
        self._loops.clear()
        for loop_task in loop_tasks:
            loop_task.cancel()
        for loop_task in loop_tasks:
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
