"""Simulation runner for tickrun-sim.

This module drives synthetic task bodies through a Scheduler on an
AsyncioHost. It only updates a SimulationState; rendering lives in display.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from tickrun import AsyncioHost, Delay, ManualOperation, Scheduler, Task, TaskState

if TYPE_CHECKING:
    from tickrun_sim.display import SimulationState


@dataclass
class SimConfig:
    """Configuration for a simulation run."""

    count: int = 100
    steps: int = 4  # Suspension points per task body
    delay_ms: int = 100
    request_ms: int = 200
    jitter: float = 0.2  # ±20% variance
    error_rate: float = 0.0
    cancel_rate: float = 0.0
    interval_ms: int = 10  # Host tick interval
    duration: float | None = None
    submit_rate: float | None = None  # tasks/second, None = batch


class SimulationRunner:
    """Runs simulations and updates state for display.

    Usage:
        config = SimConfig(count=100, delay_ms=50)
        state = SimulationState()
        runner = SimulationRunner(config, state)

        # In your event loop:
        await runner.run()
    """

    def __init__(
        self,
        config: SimConfig,
        state: "SimulationState",
        on_event: Callable[[str, str, str | None, str], None] | None = None,
    ):
        self.config = config
        self.state = state
        self.on_event = on_event or state.add_event

        self._scheduler: Scheduler | None = None
        self._host: AsyncioHost | None = None
        self._running = False
        self._timers: list[asyncio.TimerHandle] = []

    @property
    def scheduler(self) -> Scheduler | None:
        return self._scheduler

    async def run(self) -> None:
        """Run the simulation to completion."""
        self._running = True
        loop = asyncio.get_running_loop()
        self.state.start_time = time.time()
        self.state.target_count = self.config.count
        self.state.delay_ms = self.config.delay_ms
        self.state.request_ms = self.config.request_ms
        self.state.error_rate = self.config.error_rate
        self.state.cancel_rate = self.config.cancel_rate
        self.state.interval_ms = self.config.interval_ms

        self._host = AsyncioHost(interval=self.config.interval_ms / 1000.0)
        self._scheduler = Scheduler(self._host, clock=loop.time)

        @self._scheduler.on_complete
        def on_complete(task: Task) -> None:
            self.state.completed += 1
            self.on_event("completed", task.id, task.name, f"{task.steps} steps")

        @self._scheduler.on_failure
        def on_failure(task: Task, error: BaseException) -> None:
            self.state.failed += 1
            self.on_event("failed", task.id, task.name, str(error))

        @self._scheduler.on_cancel
        def on_cancel(task: Task) -> None:
            self.state.cancelled += 1
            self.on_event("cancelled", task.id, task.name, task.state.value)

        try:
            await self._submit_work()
            await self._monitor()
        finally:
            await self.cleanup()

    def _jittered(self, base_ms: int) -> float:
        jitter = self.config.jitter
        return max(0.0, base_ms / 1000.0 * random.uniform(1 - jitter, 1 + jitter))

    def _task_body(self, index: int):
        """One synthetic task: a random mix of delays, requests and plain yields."""
        loop = asyncio.get_running_loop()
        should_fail = random.random() < self.config.error_rate

        for _ in range(self.config.steps):
            kind = random.choice(("delay", "request", "yield"))
            if kind == "delay":
                yield Delay(self._jittered(self.config.delay_ms))
            elif kind == "request":
                op = ManualOperation()
                latency = self._jittered(self.config.request_ms)
                if should_fail:
                    # Fail through the operation instead of at the end
                    should_fail = False
                    error = ConnectionError(f"Simulated request failure in item_{index:04d}")
                    self._timers.append(loop.call_later(latency, op.fail, error))
                else:
                    self._timers.append(loop.call_later(latency, op.complete, index))
                yield op.wait()
                if op.error is not None:
                    raise op.error
            else:
                yield None

        if should_fail:
            raise RuntimeError(f"Simulated error in item_{index:04d}")

    def _expected_duration(self) -> float:
        longest = max(self.config.delay_ms, self.config.request_ms, self.config.interval_ms)
        return self.config.steps * longest / 1000.0

    async def _submit_work(self) -> None:
        """Submit task bodies according to config."""
        loop = asyncio.get_running_loop()
        for i in range(self.config.count):
            if not self._running:
                break

            task = self._scheduler.submit(self._task_body(i), name=f"item_{i:04d}")
            self.state.submitted += 1
            self.on_event("queued", task.id, task.name, "")

            if self.config.cancel_rate and random.random() < self.config.cancel_rate:
                when = random.uniform(0, self._expected_duration())
                self._timers.append(loop.call_later(when, self._scheduler.cancel, task))

            if self.config.submit_rate:
                await asyncio.sleep(1.0 / self.config.submit_rate)

            if self.config.duration and self._elapsed >= self.config.duration:
                break

    async def _monitor(self) -> None:
        """Monitor until all tasks finish or duration exceeded."""
        while self._running:
            self._update_state()

            if len(self._scheduler) == 0:
                break

            if self.config.duration and self._elapsed >= self.config.duration:
                break

            await asyncio.sleep(0.05)
        self._update_state()

    def _update_state(self) -> None:
        """Update simulation state from the scheduler."""
        if not self._scheduler:
            return

        self.state.elapsed = self._elapsed
        self.state.ticks = self._scheduler.tick_count
        self.state.ticking = self._scheduler.running

        counts = {state: 0 for state in TaskState}
        for task in self._scheduler.tasks:
            counts[task.state] += 1
        self.state.runnable = counts[TaskState.RUNNABLE]
        self.state.waiting_delay = counts[TaskState.WAITING_UNTIL]
        self.state.waiting_operation = counts[TaskState.WAITING_ON_OPERATION]

    @property
    def _elapsed(self) -> float:
        """Elapsed time since start."""
        return time.time() - self.state.start_time

    def stop(self) -> None:
        """Request simulation stop."""
        self._running = False

    async def cleanup(self) -> None:
        """Cancel leftovers. Call after interrupt or completion."""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        if self._scheduler:
            self._scheduler.cancel_all()
            self._update_state()
        if self._host:
            await self._host.close()
        self._running = False
