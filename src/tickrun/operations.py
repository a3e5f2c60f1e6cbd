"""Pollable operation handles.

The scheduler only ever asks an operation ``is_done()``. It never starts,
cancels or reads the result of one; the task body does that after resuming.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Callable

from tickrun.models import PendingOperation

_Future = concurrent.futures.Future | asyncio.Future

_default_executor: concurrent.futures.ThreadPoolExecutor | None = None
_default_executor_lock = threading.Lock()


def _get_default_executor() -> concurrent.futures.ThreadPoolExecutor:
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = concurrent.futures.ThreadPoolExecutor(
                thread_name_prefix="tickrun",
            )
        return _default_executor


class FutureOperation:
    """Adapts a concurrent.futures or asyncio future to the poll contract."""

    def __init__(self, future: _Future) -> None:
        self.future = future

    def is_done(self) -> bool:
        return self.future.done()

    def result(self) -> Any:
        """The future's result. Raises if it failed or is not done."""
        return self.future.result()

    def exception(self) -> BaseException | None:
        if not self.future.done():
            return None
        if self.future.cancelled():
            return None
        return self.future.exception()

    def wait(self) -> PendingOperation:
        """Yieldable wrapper: ``yield op.wait()``."""
        return PendingOperation(self)

    def __repr__(self) -> str:
        return f"<FutureOperation done={self.is_done()}>"


def run_in_thread(
    fn: Callable[..., Any],
    *args: Any,
    executor: concurrent.futures.Executor | None = None,
    **kwargs: Any,
) -> FutureOperation:
    """
    Run a blocking callable on a worker thread.

    Example:
        def load_manifest(path):
            op = run_in_thread(Path(path).read_text)
            yield op.wait()
            manifest = json.loads(op.result())
    """
    pool = executor or _get_default_executor()
    return FutureOperation(pool.submit(fn, *args, **kwargs))


class ManualOperation:
    """
    An operation finished by explicit calls.

    Thread-safe: ``complete`` / ``fail`` may be called from any thread.
    """

    def __init__(self) -> None:
        self._done = threading.Event()
        self.value: Any = None
        self.error: BaseException | None = None

    def is_done(self) -> bool:
        return self._done.is_set()

    def complete(self, value: Any = None) -> None:
        if self._done.is_set():
            raise RuntimeError("Operation already finished")
        self.value = value
        self._done.set()

    def fail(self, error: BaseException) -> None:
        if self._done.is_set():
            raise RuntimeError("Operation already finished")
        self.error = error
        self._done.set()

    def wait(self) -> PendingOperation:
        """Yieldable wrapper: ``yield op.wait()``."""
        return PendingOperation(self)

    def __repr__(self) -> str:
        return f"<ManualOperation done={self.is_done()}>"
