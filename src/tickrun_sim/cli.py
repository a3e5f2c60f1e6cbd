#!/usr/bin/env python3
"""
tickrun-sim: Interactive simulator for the tickrun scheduler.

Usage:
    tickrun-sim --count 100 --delay 50
    tickrun-sim --count 50 --error-rate 0.1 --cancel-rate 0.1
    tickrun-sim --count 200 --interval 5 --no-tui
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from datetime import datetime

from tickrun.config import Settings, get_settings
from tickrun_sim.display import SimulationState, SimulatorDisplay, print_final_summary, print_simple_stats
from tickrun_sim.runner import SimConfig, SimulationRunner

LOG_HANDLER_NAME = "tickrun-sim"

EVENT_SYMBOLS = {
    "completed": "✓",
    "failed": "✗",
    "cancelled": "⊘",
    "queued": "+",
}


def configure_logging(verbose: bool = False, level: str | None = None) -> None:
    """Configure logging for the simulator.

    The TUI owns the terminal, so library logs are silenced unless --verbose
    asks for them or a plain-text run passes a level. Safe to call again:
    the handler installed by a previous call is replaced.
    """
    tickrun_logger = logging.getLogger("tickrun")
    for handler in list(tickrun_logger.handlers):
        if handler.get_name() == LOG_HANDLER_NAME:
            tickrun_logger.removeHandler(handler)

    if verbose or level:
        tickrun_logger.setLevel(logging.DEBUG if verbose else level.upper())
        handler = logging.StreamHandler()
        handler.set_name(LOG_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        tickrun_logger.addHandler(handler)
    else:
        # Task faults are expected here; the display reports them instead
        tickrun_logger.setLevel(logging.CRITICAL)


async def _drive(runner: SimulationRunner, refresh, period: float) -> None:
    """Run the simulation while calling refresh() every period seconds."""

    async def update_loop():
        while True:
            refresh()
            await asyncio.sleep(period)

    update_task = asyncio.create_task(update_loop())
    try:
        await runner.run()
    except asyncio.CancelledError:
        runner.stop()
        raise
    finally:
        update_task.cancel()
        try:
            await update_task
        except asyncio.CancelledError:
            pass
        await runner.cleanup()


async def run_with_display(config: SimConfig, use_tui: bool = True, verbose: bool = False) -> SimulationState:
    """Run simulation with visual display.

    Args:
        config: Simulation configuration
        use_tui: Use Rich TUI display (default True)
        verbose: Print event log instead of status updates (implies no-tui)
    """
    state = SimulationState()

    if verbose:
        def print_event(event_type: str, task_id: str, task_name: str | None = None, details: str = "") -> None:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            symbol = EVENT_SYMBOLS.get(event_type, "·")
            print(f"{ts} {symbol} {event_type:<10} {task_name or '':<12} {task_id:<14} {details}")
            state.add_event(event_type, task_id, task_name, details)

        runner = SimulationRunner(config, state, on_event=print_event)
        print("\ntickrun-sim [verbose]")
        print(f"   Count: {config.count}, Steps: {config.steps}, Tick: {config.interval_ms}ms")
        print()
        print(f"{'TIME':<12} {'':1} {'EVENT':<10} {'TASK':<12} {'TASK_ID':<14} DETAILS")
        print("-" * 80)
        await _drive(runner, lambda: None, 0.5)
        print("-" * 80)

    elif use_tui:
        runner = SimulationRunner(config, state)
        with SimulatorDisplay(state) as display:
            await _drive(runner, display.refresh, 0.1)

    else:
        runner = SimulationRunner(config, state)
        print("\ntickrun-sim")
        print(f"   Count: {config.count}, Delay: {config.delay_ms}ms, Request: {config.request_ms}ms")
        print()
        await _drive(runner, lambda: print_simple_stats(state), 0.5)
        print_simple_stats(state)
        print()

    print_final_summary(state)
    return state


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    defaults = SimConfig()
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(
        description="tickrun simulator - drive synthetic tasks through the scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tickrun-sim --count 100 --delay 50
  tickrun-sim --count 1000 --steps 8 --interval 5
  tickrun-sim --count 50 --error-rate 0.2 --cancel-rate 0.1
  tickrun-sim --count 20 --verbose
        """,
    )
    parser.add_argument("--count", "-n", type=int, default=defaults.count,
                        help=f"Number of tasks to submit (default: {defaults.count})")
    parser.add_argument("--steps", type=int, default=defaults.steps,
                        help=f"Suspension points per task (default: {defaults.steps})")
    parser.add_argument("--delay", "-d", type=int, default=defaults.delay_ms,
                        help=f"Base Delay length in ms (default: {defaults.delay_ms})")
    parser.add_argument("--request", "-l", type=int, default=defaults.request_ms,
                        help=f"Base simulated request latency in ms (default: {defaults.request_ms})")
    parser.add_argument("--jitter", "-j", type=float, default=defaults.jitter,
                        help="Latency variance as fraction, e.g. 0.2 = ±20%% (default: 0.2)")
    parser.add_argument("--error-rate", "-e", type=float, default=0.0,
                        help="Fraction of tasks that fail, 0.0-1.0 (default: 0.0)")
    parser.add_argument("--cancel-rate", "-c", type=float, default=0.0,
                        help="Fraction of tasks cancelled mid-flight, 0.0-1.0 (default: 0.0)")
    parser.add_argument("--interval", "-i", type=int, default=max(1, round(settings.tick_interval * 1000)),
                        help="Host tick interval in ms (default: TICKRUN_TICK_INTERVAL or 10)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Maximum duration in seconds (default: run until complete)")
    parser.add_argument("--submit-rate", "-s", type=float, default=None,
                        help="Submit rate (tasks/second), None = batch (default: batch)")
    parser.add_argument("--no-tui", action="store_true", help="Disable TUI, use simple text output")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print event log and scheduler debug logs instead of status updates")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducible behavior (default: random)")
    return parser


def main(argv: list[str] | None = None) -> None:
    try:
        settings = get_settings()
    except ValueError as e:
        print(f"tickrun-sim: error: {e}", file=sys.stderr)
        sys.exit(2)

    parser = build_parser(settings)
    args = parser.parse_args(argv)

    for name in ("error_rate", "cancel_rate"):
        value = getattr(args, name)
        if not 0.0 <= value <= 1.0:
            parser.error(f"--{name.replace('_', '-')} must be between 0.0 and 1.0")
    if args.interval <= 0:
        parser.error("--interval must be positive")

    configure_logging(verbose=args.verbose, level=settings.log_level if args.no_tui else None)

    if args.seed is not None:
        random.seed(args.seed)

    config = SimConfig(
        count=args.count,
        steps=args.steps,
        delay_ms=args.delay,
        request_ms=args.request,
        jitter=args.jitter,
        error_rate=args.error_rate,
        cancel_rate=args.cancel_rate,
        interval_ms=args.interval,
        duration=args.duration,
        submit_rate=args.submit_rate,
    )

    try:
        asyncio.run(run_with_display(config, use_tui=not args.no_tui, verbose=args.verbose))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
