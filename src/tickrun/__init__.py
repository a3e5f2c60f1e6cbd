"""tickrun - Cooperative, tick-driven task scheduling with generators."""

from tickrun.hosts import AsyncioHost, BlockingHost, ManualHost
from tickrun.models import Delay, PendingOperation, Task, TaskState, delay, wait_for
from tickrun.operations import FutureOperation, ManualOperation, run_in_thread
from tickrun.scheduler import Scheduler

__version__ = "0.1.0"
__all__ = [
    "Scheduler",
    "Task",
    "TaskState",
    "Delay",
    "PendingOperation",
    "delay",
    "wait_for",
    "ManualHost",
    "BlockingHost",
    "AsyncioHost",
    "FutureOperation",
    "ManualOperation",
    "run_in_thread",
]
