"""Cooperative task scheduler."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from typing import TYPE_CHECKING, Callable

from tickrun.models import Delay, PendingOperation, Task, TaskBody, TaskState

if TYPE_CHECKING:
    from tickrun.hosts import Host

logger = logging.getLogger(__name__)

# Raised by a task body, these stop the host instead of failing the task
_PROPAGATE = (KeyboardInterrupt, SystemExit)


class Scheduler:
    """
    Runs generator-based tasks cooperatively, one step per tick.

    The host decides WHEN a tick happens. Task bodies decide what to wait on.

    A task body is a generator. Each ``next()`` runs it up to its next
    ``yield``, and the yielded value says how to suspend it:

    - ``None``: resume on the next tick
    - ``Delay(seconds)``: resume on the first tick at or after now + seconds
    - ``PendingOperation(op)``: resume on the first tick after ``op.is_done()``

    Example:
        scheduler = Scheduler(AsyncioHost())

        def fetch_status():
            request = HttpRequest("GET", "http://localhost:8080/status")
            yield request.send()
            print(request.status_code)
            yield Delay(0.5)

        task = scheduler.submit(fetch_status())
        ...
        scheduler.cancel(task)

    The periodic tick is registered with the host while at least one task is
    active and unregistered as soon as a pass leaves the active set empty.
    All entry points must be called from the host's thread.
    """

    def __init__(
        self,
        host: Host | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._host = host
        self._clock = clock

        # Active set, in submission order. Finished tasks are removed immediately.
        self._tasks: list[Task] = []

        # Callbacks
        self._on_complete_callback: Callable | None = None
        self._on_failure_callback: Callable | None = None
        self._on_cancel_callback: Callable | None = None

        # Tick registration state
        self._running = False
        self.tick_count = 0
        self.last_tick_at: float | None = None

    # --- Introspection ---

    @property
    def running(self) -> bool:
        """True while the periodic tick is registered with the host."""
        return self._running

    @property
    def tasks(self) -> list[Task]:
        """Snapshot of active tasks in submission order."""
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        """Get an active task by ID."""
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        # An idle scheduler is still a scheduler; don't let len() make it falsy.
        return True

    # --- Event Callbacks ---

    def on_complete(self, func):
        """
        Decorator to register completion callback.

        Called with (task) after the body is exhausted.

        Example:
            @scheduler.on_complete
            def on_complete(task):
                logging.info(f"{task.name} finished after {task.steps} steps")
        """
        self._on_complete_callback = func
        return func

    def on_failure(self, func):
        """
        Decorator to register failure callback.

        Called with (task, error) after the body raised.
        """
        self._on_failure_callback = func
        return func

    def on_cancel(self, func):
        """
        Decorator to register cancellation callback.

        Called with (task) once per cancelled task. The task body itself is
        not notified.
        """
        self._on_cancel_callback = func
        return func

    def _emit(self, callback: Callable | None, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            # Callback errors never affect scheduling
            logger.exception("Scheduler callback %r raised", callback)

    # --- Tick Registration ---

    def _start_ticking(self) -> None:
        if self._running:
            return
        if self._host is not None:
            self._host.register(self.tick)
        self._running = True
        logger.debug("Tick started")

    def _stop_ticking(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._host is not None:
            self._host.unregister(self.tick)
        logger.debug("Tick stopped")

    # --- Task Operations ---

    def submit(self, body: TaskBody | None, *, name: str | None = None) -> Task | None:
        """
        Submit a task body.

        Args:
            body: A generator (or any iterator) yielding None, Delay or
                PendingOperation values. None is accepted and ignored.
            name: Display name for logs. Defaults to the generator's qualname.

        Returns:
            The Task handle, or None if body was None.

        Raises:
            TypeError: If body is not an iterator (e.g. an uncalled generator
                function).

        The first step runs on the next tick, never during submit.
        """
        if body is None:
            return None
        if not isinstance(body, Iterator):
            raise TypeError(
                f"Task body must be an iterator, got {type(body).__name__}. "
                "Did you forget to call the generator function?"
            )

        task = Task(
            id=uuid.uuid4().hex[:12],
            name=name or getattr(body, "__qualname__", None) or type(body).__name__,
            body=body,
            state=TaskState.RUNNABLE,
            created_at=time.time(),
        )
        self._tasks.append(task)
        try:
            self._start_ticking()
        except Exception:
            self._tasks.remove(task)
            raise
        logger.debug("Submitted task %s (%s)", task.id, task.name)
        return task

    def cancel(self, handle: Task | str | TaskBody) -> bool:
        """
        Cancel tasks matching a handle.

        Args:
            handle: A Task, a task ID, or the body that was submitted.

        Returns:
            True if at least one task was removed, False if nothing matched.

        Removal is immediate whatever the task is waiting on. The body is not
        resumed, closed or otherwise notified.
        """
        if isinstance(handle, Task):
            matches = [t for t in self._tasks if t is handle]
        elif isinstance(handle, str):
            matches = [t for t in self._tasks if t.id == handle]
        else:
            matches = [t for t in self._tasks if t.body is handle]

        for task in matches:
            self._remove(task)
            self._mark_cancelled(task)

        if matches and not self._tasks:
            self._stop_ticking()
        return bool(matches)

    def cancel_all(self) -> int:
        """
        Cancel every active task and stop ticking.

        Returns:
            Number of tasks removed.
        """
        cancelled = self._tasks
        self._tasks = []
        self._stop_ticking()
        for task in cancelled:
            self._mark_cancelled(task)
        return len(cancelled)

    def _mark_cancelled(self, task: Task) -> None:
        task.state = TaskState.CANCELLED
        task.finished_at = time.time()
        task.resume_at = None
        task.operation = None
        logger.debug("Cancelled task %s (%s)", task.id, task.name)
        self._emit(self._on_cancel_callback, task)

    def _remove(self, task: Task) -> None:
        if task in self._tasks:
            self._tasks.remove(task)

    # --- Tick ---

    def tick(self, now: float | None = None) -> None:
        """
        Advance every eligible task by one step.

        Args:
            now: Current time in the host's clock. Defaults to the scheduler's
                clock. Must not decrease between calls.

        Tasks are visited in reverse submission order over the set as it was
        when the pass began: tasks submitted during the pass wait for the next
        tick, and tasks cancelled during the pass are not visited again.
        """
        if now is None:
            now = self._clock()
        self.tick_count += 1
        self.last_tick_at = now

        for task in reversed(list(self._tasks)):
            if task.state is TaskState.CANCELLED:
                continue

            if task.is_finished:
                self._remove(task)
                continue

            if task.state is TaskState.WAITING_UNTIL and now < task.resume_at:
                continue

            if task.state is TaskState.WAITING_ON_OPERATION:
                try:
                    finished = task.operation.is_done()
                except _PROPAGATE:
                    raise
                except BaseException as e:
                    self._fail(task, e)
                    continue
                if not finished:
                    continue

            self._advance(task, now)

        if not self._tasks:
            self._stop_ticking()

    def _advance(self, task: Task, now: float) -> None:
        try:
            value = next(task.body)
        except StopIteration:
            if task.state is TaskState.CANCELLED:
                return
            task.state = TaskState.DONE
            task.finished_at = time.time()
            task.resume_at = None
            task.operation = None
            self._remove(task)
            logger.debug("Task %s (%s) done after %d steps", task.id, task.name, task.steps)
            self._emit(self._on_complete_callback, task)
            return
        except _PROPAGATE:
            raise
        except BaseException as e:
            # asyncio.CancelledError from a cancelled future lands here too
            if task.state is not TaskState.CANCELLED:
                self._fail(task, e)
            return

        # The step may have cancelled its own task
        if task.state is TaskState.CANCELLED:
            return

        task.steps += 1

        if value is None:
            task.state = TaskState.RUNNABLE
            task.resume_at = None
            task.operation = None
        elif isinstance(value, Delay):
            task.state = TaskState.WAITING_UNTIL
            task.resume_at = now + value.seconds
            task.operation = None
        elif isinstance(value, PendingOperation):
            task.state = TaskState.WAITING_ON_OPERATION
            task.operation = value.operation
            task.resume_at = None
        else:
            logger.warning(
                "Task %s (%s) yielded unsupported type %s; resuming next tick",
                task.id,
                task.name,
                type(value).__name__,
            )
            task.state = TaskState.RUNNABLE
            task.resume_at = None
            task.operation = None

    def _fail(self, task: Task, error: BaseException) -> None:
        task.state = TaskState.FAILED
        task.error = error
        task.finished_at = time.time()
        task.resume_at = None
        task.operation = None
        self._remove(task)
        logger.error(
            "Task %s (%s) raised on step %d: %s",
            task.id,
            task.name,
            task.steps + 1,
            error,
            exc_info=error,
        )
        self._emit(self._on_failure_callback, task, error)
