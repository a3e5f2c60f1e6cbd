"""Core data models for tickrun."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generator, Iterator, Protocol, Union


class Operation(Protocol):
    """An external asynchronous operation the scheduler can poll."""

    def is_done(self) -> bool: ...


class TaskState(str, Enum):
    """Possible states for a task."""

    RUNNABLE = "runnable"
    WAITING_UNTIL = "waiting_until"
    WAITING_ON_OPERATION = "waiting_on_operation"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({TaskState.DONE, TaskState.FAILED, TaskState.CANCELLED})


@dataclass(frozen=True)
class Delay:
    """Suspend the yielding task for a number of seconds."""

    seconds: float

    def __post_init__(self) -> None:
        seconds = self.seconds
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            raise ValueError(f"Delay must be a number of seconds, got {seconds!r}")
        if math.isnan(seconds) or seconds < 0:
            raise ValueError(f"Delay must be non-negative, got {seconds}")


@dataclass(frozen=True)
class PendingOperation:
    """Suspend the yielding task until an operation reports completion."""

    operation: Operation


# Everything a task body may yield. Anything else is logged and treated as None.
Yield = Union[None, Delay, PendingOperation]

TaskBody = Union[Generator[Yield, Any, Any], Iterator[Yield]]


def delay(seconds: float) -> Delay:
    """Shorthand for ``yield Delay(seconds)``."""
    return Delay(seconds)


def wait_for(operation: Operation) -> PendingOperation:
    """Shorthand for ``yield PendingOperation(operation)``."""
    return PendingOperation(operation)


@dataclass(eq=False)
class Task:
    """A submitted body and its scheduling state.

    Returned by ``Scheduler.submit`` and accepted by ``Scheduler.cancel``.
    """

    id: str
    name: str
    body: TaskBody = field(repr=False)
    state: TaskState = TaskState.RUNNABLE
    resume_at: float | None = None  # Set while WAITING_UNTIL
    operation: Operation | None = None  # Set while WAITING_ON_OPERATION
    created_at: float = 0.0
    finished_at: float | None = None
    steps: int = 0
    error: BaseException | None = None

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES
