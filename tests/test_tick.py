"""Tests for the tick pass: suspension, ordering, failures."""

import asyncio
import logging

import pytest

from tickrun import Delay, ManualOperation, PendingOperation, Scheduler, TaskState


def idle(steps=1):
    for _ in range(steps):
        yield


class TestCompletion:
    """Bodies that run to the end."""

    def test_empty_body_drains_in_one_tick(self):
        """A body with no yields finishes on the first tick."""
        scheduler = Scheduler()
        tasks = [scheduler.submit(idle(0)) for _ in range(5)]

        scheduler.tick(0.0)

        assert len(scheduler) == 0
        assert all(t.state == TaskState.DONE for t in tasks)
        assert scheduler.running is False

    def test_drain_returns_to_previous_count(self):
        scheduler = Scheduler()
        scheduler.submit(iter([Delay(100)]))
        scheduler.tick(0.0)
        before = len(scheduler)

        scheduler.submit(idle(0))
        scheduler.tick(1.0)

        assert len(scheduler) == before
        assert scheduler.running is True

    def test_one_step_per_tick(self):
        """Each tick advances a task exactly once."""
        scheduler = Scheduler()
        task = scheduler.submit(idle(3))

        for expected in (1, 2, 3):
            scheduler.tick(0.0)
            assert task.steps == expected
        scheduler.tick(0.0)
        assert task.state == TaskState.DONE

    def test_return_value_is_ignored(self):
        scheduler = Scheduler()

        def body():
            yield
            return "ignored"

        task = scheduler.submit(body())
        scheduler.tick(0.0)
        scheduler.tick(0.0)
        assert task.state == TaskState.DONE


class TestDelay:
    """Delay suspension."""

    def test_delay_scenario(self):
        """Delay(0.5) then a plain yield, ticked at 0, 0.3, 0.6, 0.7."""
        scheduler = Scheduler()

        def body():
            yield Delay(0.5)
            yield None

        task = scheduler.submit(body())

        scheduler.tick(0.0)
        assert task.state == TaskState.WAITING_UNTIL
        assert task.resume_at == pytest.approx(0.5)

        scheduler.tick(0.3)
        assert task.state == TaskState.WAITING_UNTIL
        assert task.steps == 1

        scheduler.tick(0.6)
        assert task.state == TaskState.RUNNABLE
        assert task.steps == 2

        scheduler.tick(0.7)
        assert task.state == TaskState.DONE
        assert len(scheduler) == 0
        assert scheduler.running is False

    def test_resumes_exactly_at_deadline(self):
        scheduler = Scheduler()
        task = scheduler.submit(iter([Delay(2.0), None]))

        scheduler.tick(10.0)
        scheduler.tick(11.999)
        assert task.steps == 1
        scheduler.tick(12.0)
        assert task.steps == 2

    def test_zero_delay_resumes_next_tick(self):
        scheduler = Scheduler()
        task = scheduler.submit(iter([Delay(0), None]))
        scheduler.tick(1.0)
        scheduler.tick(1.0)
        assert task.steps == 2

    def test_delay_clears_operation(self):
        scheduler = Scheduler()
        op = ManualOperation()
        task = scheduler.submit(iter([op.wait(), Delay(1.0)]))

        scheduler.tick(0.0)
        assert task.operation is op
        op.complete()
        scheduler.tick(0.0)

        assert task.state == TaskState.WAITING_UNTIL
        assert task.operation is None

    def test_uses_clock_without_now(self):
        """tick() reads the scheduler clock when no time is passed."""
        now = [100.0]
        scheduler = Scheduler(clock=lambda: now[0])
        task = scheduler.submit(iter([Delay(5.0), None]))

        scheduler.tick()
        assert task.resume_at == pytest.approx(105.0)
        now[0] = 104.0
        scheduler.tick()
        assert task.steps == 1
        now[0] = 105.5
        scheduler.tick()
        assert task.steps == 2
        assert scheduler.last_tick_at == 105.5


class TestOperationWait:
    """PendingOperation suspension."""

    def test_waits_until_operation_done(self):
        scheduler = Scheduler()
        op = ManualOperation()
        seen = []

        def body():
            yield op.wait()
            seen.append(op.value)

        task = scheduler.submit(body())
        scheduler.tick(0.0)
        assert task.state == TaskState.WAITING_ON_OPERATION

        for i in range(50):
            scheduler.tick(float(i))
        assert task.steps == 1
        assert seen == []

        op.complete("payload")
        scheduler.tick(60.0)

        assert seen == ["payload"]
        assert task.state == TaskState.DONE

    def test_operation_clears_delay(self):
        scheduler = Scheduler()
        op = ManualOperation()
        task = scheduler.submit(iter([Delay(0), op.wait()]))

        scheduler.tick(0.0)
        scheduler.tick(0.0)

        assert task.state == TaskState.WAITING_ON_OPERATION
        assert task.resume_at is None

    def test_failing_poll_fails_task(self):
        """An operation whose is_done() raises takes its task down only."""

        class BrokenOperation:
            def is_done(self):
                raise OSError("poll failed")

        scheduler = Scheduler()

        broken = scheduler.submit(iter([PendingOperation(BrokenOperation())]))
        healthy = scheduler.submit(idle(2))

        scheduler.tick(0.0)
        scheduler.tick(0.0)

        assert broken.state == TaskState.FAILED
        assert isinstance(broken.error, OSError)
        assert healthy.steps == 2


class TestUnsupportedYield:
    """Values outside None / Delay / PendingOperation."""

    def test_logs_warning_and_resumes_next_tick(self, caplog):
        scheduler = Scheduler()
        task = scheduler.submit(iter([42, None]), name="odd")

        with caplog.at_level(logging.WARNING, logger="tickrun.scheduler"):
            scheduler.tick(0.0)

        assert task.state == TaskState.RUNNABLE
        assert "unsupported type int" in caplog.text
        assert "odd" in caplog.text

        scheduler.tick(0.0)
        assert task.steps == 2

    def test_bare_number_is_not_a_delay(self):
        scheduler = Scheduler()
        task = scheduler.submit(iter([5.0]))
        scheduler.tick(0.0)
        assert task.state == TaskState.RUNNABLE
        assert task.resume_at is None


class TestFailures:
    """Exceptions raised by task bodies."""

    def test_fault_fails_and_removes_task(self, caplog):
        scheduler = Scheduler()

        def body():
            yield
            raise RuntimeError("boom")

        task = scheduler.submit(body(), name="exploder")
        scheduler.tick(0.0)

        with caplog.at_level(logging.ERROR, logger="tickrun.scheduler"):
            scheduler.tick(0.0)

        assert task.state == TaskState.FAILED
        assert isinstance(task.error, RuntimeError)
        assert len(scheduler) == 0
        assert "exploder" in caplog.text
        assert "boom" in caplog.text
        assert caplog.records[-1].exc_info is not None

    def test_fault_isolated_from_siblings(self):
        """Tasks on either side of a failing one still advance in the same pass."""
        scheduler = Scheduler()

        def bad():
            raise ValueError("bad step")
            yield

        before = scheduler.submit(idle(2))
        failing = scheduler.submit(bad())
        after = scheduler.submit(idle(2))

        scheduler.tick(0.0)

        assert failing.state == TaskState.FAILED
        assert before.steps == 1
        assert after.steps == 1

        scheduler.tick(0.0)
        assert before.steps == 2
        assert after.steps == 2

    def test_fault_does_not_escape_tick(self):
        scheduler = Scheduler()
        scheduler.submit(1 / 0 for _ in range(1))
        scheduler.tick(0.0)
        assert len(scheduler) == 0

    def test_cancelled_error_is_a_task_fault(self):
        """CancelledError from a body fails that task and nothing else."""
        scheduler = Scheduler()

        def cancelled():
            yield
            raise asyncio.CancelledError()

        before = scheduler.submit(idle(3))
        failing = scheduler.submit(cancelled())
        after = scheduler.submit(idle(3))

        scheduler.tick(0.0)
        scheduler.tick(0.0)

        assert failing.state == TaskState.FAILED
        assert isinstance(failing.error, asyncio.CancelledError)
        assert scheduler.tasks == [before, after]
        assert before.steps == 2
        assert after.steps == 2

    def test_base_exception_from_poll_is_a_task_fault(self):
        class Aborted(BaseException):
            pass

        class Broken:
            def is_done(self):
                raise Aborted()

        scheduler = Scheduler()
        task = scheduler.submit(iter([PendingOperation(Broken())]))
        scheduler.tick(0.0)
        scheduler.tick(0.0)

        assert task.state == TaskState.FAILED
        assert isinstance(task.error, Aborted)
        assert scheduler.running is False

    def test_ticking_resumes_after_base_exception_fault(self):
        scheduler = Scheduler()

        def cancelled():
            raise asyncio.CancelledError()
            yield

        scheduler.submit(cancelled())
        scheduler.tick(0.0)
        assert scheduler.running is False

        task = scheduler.submit(idle(0))
        assert scheduler.running is True
        scheduler.tick(1.0)
        assert task.state == TaskState.DONE

    @pytest.mark.parametrize("exc_type", [KeyboardInterrupt, SystemExit])
    def test_interpreter_exits_propagate(self, exc_type):
        """KeyboardInterrupt and SystemExit are not task faults."""
        scheduler = Scheduler()

        def body():
            raise exc_type
            yield

        scheduler.submit(body())
        with pytest.raises(exc_type):
            scheduler.tick(0.0)


class TestOrdering:
    """Pass ordering and mutation during a pass."""

    def test_reverse_submission_order(self):
        scheduler = Scheduler()
        order = []

        def body(label):
            order.append(label)
            yield

        for label in "abc":
            scheduler.submit(body(label))
        scheduler.tick(0.0)

        assert order == ["c", "b", "a"]

    def test_submitted_during_pass_waits_for_next_tick(self):
        scheduler = Scheduler()
        ran = []

        def child():
            ran.append("child")
            yield

        def parent():
            scheduler.submit(child())
            yield

        scheduler.submit(parent())
        scheduler.tick(0.0)

        assert ran == []
        assert len(scheduler) == 2

        scheduler.tick(0.0)
        assert ran == ["child"]

    def test_child_submitted_by_finishing_task_keeps_ticking(self):
        scheduler = Scheduler()

        def parent():
            scheduler.submit(idle())
            return
            yield

        scheduler.submit(parent())
        scheduler.tick(0.0)

        assert len(scheduler) == 1
        assert scheduler.running is True

    def test_sibling_cancelled_mid_pass_is_skipped(self):
        """A task cancelled by a sibling earlier in the pass is not advanced."""
        scheduler = Scheduler()
        handles = {}

        def victim():
            yield

        def killer():
            scheduler.cancel(handles["victim"])
            yield

        handles["victim"] = scheduler.submit(victim())
        scheduler.submit(killer())
        scheduler.tick(0.0)

        assert handles["victim"].steps == 0
        assert handles["victim"].state == TaskState.CANCELLED

    def test_removal_does_not_skip_neighbours(self):
        """Finishing and failing tasks mid-list leave every other task advanced."""
        scheduler = Scheduler()

        def bad():
            raise RuntimeError
            yield

        bodies = [idle(3), idle(0), bad(), idle(3), idle(0), idle(3)]
        tasks = [scheduler.submit(b) for b in bodies]
        scheduler.tick(0.0)

        survivors = [t for t in tasks if not t.is_finished]
        assert len(survivors) == 3
        assert all(t.steps == 1 for t in survivors)
        assert scheduler.tasks == survivors

    def test_task_cancelling_itself(self):
        scheduler = Scheduler()
        completed = []
        scheduler.on_complete(completed.append)
        handles = {}

        def body():
            scheduler.cancel(handles["me"])
            yield Delay(1.0)

        handles["me"] = scheduler.submit(body())
        scheduler.tick(0.0)

        task = handles["me"]
        assert task.state == TaskState.CANCELLED
        assert task.resume_at is None
        assert completed == []
        assert scheduler.running is False

    def test_cancel_all_from_inside_a_step(self):
        scheduler = Scheduler()
        others = [scheduler.submit(idle(5)) for _ in range(3)]

        def body():
            scheduler.cancel_all()
            yield

        scheduler.submit(body())
        scheduler.tick(0.0)

        assert len(scheduler) == 0
        assert all(t.steps == 0 for t in others)
        assert scheduler.running is False


class TestCallbacks:
    """on_complete / on_failure / on_cancel."""

    def test_callbacks_fire_once(self):
        scheduler = Scheduler()
        events = []

        @scheduler.on_complete
        def on_complete(task):
            events.append(("complete", task.name))

        @scheduler.on_failure
        def on_failure(task, error):
            events.append(("failure", task.name, str(error)))

        @scheduler.on_cancel
        def on_cancel(task):
            events.append(("cancel", task.name))

        def bad():
            raise RuntimeError("nope")
            yield

        scheduler.submit(idle(0), name="ok")
        scheduler.submit(bad(), name="bad")
        waiting = scheduler.submit(iter([Delay(10)]), name="waiting")
        scheduler.tick(0.0)
        scheduler.cancel(waiting)
        scheduler.tick(1.0)

        assert sorted(events) == [
            ("cancel", "waiting"),
            ("complete", "ok"),
            ("failure", "bad", "nope"),
        ]

    def test_raising_callback_is_logged(self, caplog):
        scheduler = Scheduler()

        @scheduler.on_complete
        def on_complete(task):
            raise RuntimeError("callback broke")

        first = scheduler.submit(idle(0))
        second = scheduler.submit(idle(0))

        with caplog.at_level(logging.ERROR, logger="tickrun.scheduler"):
            scheduler.tick(0.0)

        assert first.state == second.state == TaskState.DONE
        assert "callback broke" in caplog.text

    def test_decorators_return_function(self):
        scheduler = Scheduler()

        def handler(task):
            pass

        assert scheduler.on_complete(handler) is handler
        assert scheduler.on_cancel(handler) is handler
