"""Basic import and instantiation tests."""

import math

import pytest

import tickrun
from tickrun import Delay, ManualHost, Scheduler, TaskState


def test_import():
    """Verify tickrun exposes the Scheduler."""
    assert hasattr(tickrun, "Scheduler")
    assert hasattr(tickrun, "Delay")


def test_scheduler_instantiation():
    """A new scheduler is idle and empty."""
    scheduler = Scheduler()
    assert len(scheduler) == 0
    assert scheduler.running is False
    assert scheduler.tasks == []


def test_empty_scheduler_is_truthy():
    """An idle scheduler does not look falsy."""
    assert Scheduler()


def test_scheduler_with_host():
    """Creating a scheduler does not register with the host."""
    host = ManualHost()
    Scheduler(host)
    assert host.active is False


def test_delay_rejects_negative():
    """Delays cannot go backwards."""
    with pytest.raises(ValueError, match="non-negative"):
        Delay(-1)


@pytest.mark.parametrize("seconds", [math.nan, "1", None, True])
def test_delay_rejects_non_numbers(seconds):
    """NaN and non-numeric delays are rejected up front."""
    with pytest.raises(ValueError):
        Delay(seconds)


def test_nan_delay_never_reaches_the_scheduler():
    """A body that builds a NaN delay fails instead of resuming early."""
    scheduler = Scheduler()

    def body():
        yield Delay(math.nan)
        yield

    task = scheduler.submit(body())
    scheduler.tick(0.0)

    assert task.state == TaskState.FAILED
    assert isinstance(task.error, ValueError)
    assert task.steps == 0


def test_delay_accepts_int_and_infinity():
    assert Delay(2).seconds == 2
    assert Delay(math.inf).seconds == math.inf


def test_task_states_are_strings():
    """TaskState values are readable strings."""
    assert TaskState.WAITING_UNTIL == "waiting_until"
    assert TaskState("done") is TaskState.DONE
