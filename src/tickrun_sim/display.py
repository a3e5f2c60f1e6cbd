"""Rich-based display for tickrun-sim.

Decoupled from the simulation logic: it only renders a SimulationState.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


@dataclass
class EventRecord:
    """A recent event for display."""

    timestamp: datetime
    event_type: str
    task_id: str
    task_name: str | None = None
    details: str = ""


@dataclass
class SimulationState:
    """Current state of the simulation for display.

    The runner updates this; the display renders it.
    """

    # Active tasks by state
    submitted: int = 0
    runnable: int = 0
    waiting_delay: int = 0
    waiting_operation: int = 0

    # Terminal counts
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    # Scheduler
    ticks: int = 0
    ticking: bool = False

    # Timing
    start_time: float = 0.0
    elapsed: float = 0.0

    # Recent events (most recent first)
    events: list[EventRecord] = field(default_factory=list)
    max_events: int = 10

    # Config display
    target_count: int = 0
    delay_ms: int = 0
    request_ms: int = 0
    error_rate: float = 0.0
    cancel_rate: float = 0.0
    interval_ms: int = 0

    @property
    def active(self) -> int:
        return self.runnable + self.waiting_delay + self.waiting_operation

    @property
    def finished(self) -> int:
        return self.completed + self.failed + self.cancelled

    @property
    def throughput(self) -> float:
        """Tasks finished per second."""
        if self.elapsed > 0:
            return self.finished / self.elapsed
        return 0.0

    @property
    def tick_rate(self) -> float:
        if self.elapsed > 0:
            return self.ticks / self.elapsed
        return 0.0

    @property
    def progress(self) -> float:
        """Fraction finished (0.0 to 1.0)."""
        if self.submitted > 0:
            return self.finished / self.submitted
        return 0.0

    def add_event(self, event_type: str, task_id: str, task_name: str | None = None, details: str = "") -> None:
        """Add an event to the display log."""
        self.events.insert(0, EventRecord(
            timestamp=datetime.now(),
            event_type=event_type,
            task_id=task_id,
            task_name=task_name,
            details=details,
        ))
        if len(self.events) > self.max_events:
            self.events = self.events[:self.max_events]


EVENT_STYLES = {
    "completed": "green",
    "failed": "red",
    "cancelled": "magenta",
    "queued": "dim",
}


class SimulatorDisplay:
    """Rich TUI: task counts, scheduler stats, recent events, config footer."""

    def __init__(self, state: SimulationState, console: Console | None = None):
        self.state = state
        self.console = console or Console()
        self._live: Live | None = None

    def __enter__(self) -> SimulatorDisplay:
        self._live = Live(
            self._build_layout(),
            console=self.console,
            refresh_per_second=10,
            screen=False,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args) -> None:
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def refresh(self) -> None:
        """Update the display with current state."""
        if self._live:
            self._live.update(self._build_layout())

    def _build_layout(self) -> Panel:
        layout = Layout()
        layout.split_column(
            Layout(self._build_tasks_section(), name="tasks", size=4),
            Layout(self._build_scheduler_section(), name="scheduler", size=3),
            Layout(self._build_events_section(), name="events", size=8),
            Layout(self._build_config_section(), name="config", size=3),
        )
        return Panel(
            layout,
            title="[bold cyan]tickrun-sim[/bold cyan]",
            border_style="cyan",
        )

    def _build_tasks_section(self) -> Panel:
        s = self.state

        active = Table.grid(expand=True, padding=(0, 2))
        for _ in range(4):
            active.add_column(justify="left")
        active.add_row(
            f"[dim]Active:[/dim] [bold]{s.active:,}[/bold]",
            f"[dim]Runnable:[/dim] [bold yellow]{s.runnable}[/bold yellow]",
            f"[dim]Delayed:[/dim] [bold blue]{s.waiting_delay}[/bold blue]",
            f"[dim]On operation:[/dim] [bold cyan]{s.waiting_operation}[/bold cyan]",
        )

        finished = Table.grid(expand=True, padding=(0, 2))
        for _ in range(4):
            finished.add_column(justify="left")
        finished.add_row(
            f"[dim]Completed:[/dim] [bold green]{s.completed:,}[/bold green]",
            f"[dim]Failed:[/dim] [bold red]{s.failed}[/bold red]",
            f"[dim]Cancelled:[/dim] [bold magenta]{s.cancelled}[/bold magenta]",
            f"[dim]Progress:[/dim] [bold]{s.progress * 100:.0f}%[/bold] {self._progress_bar(s.progress, 10)}",
        )

        content = Table.grid(expand=True)
        content.add_row(active)
        content.add_row(finished)
        return Panel(content, title="[bold]Tasks[/bold]", border_style="blue")

    def _build_scheduler_section(self) -> Panel:
        s = self.state
        status = "[green]● ticking[/green]" if s.ticking else "[dim]○ idle[/dim]"

        table = Table.grid(expand=True, padding=(0, 2))
        for _ in range(4):
            table.add_column(justify="left")
        table.add_row(
            status,
            f"[dim]Ticks:[/dim] [bold]{s.ticks:,}[/bold]",
            f"[dim]Tick rate:[/dim] [bold]{s.tick_rate:.0f}/s[/bold]",
            f"[dim]Throughput:[/dim] [bold]{s.throughput:.1f}/s[/bold]",
        )
        return Panel(table, title="[bold]Scheduler[/bold]", border_style="blue")

    def _build_events_section(self) -> Panel:
        s = self.state

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Time", width=10, style="dim")
        table.add_column("Event", width=11)
        table.add_column("ID", width=13)
        table.add_column("Task", width=12)
        table.add_column("Details")

        for event in s.events[:6]:
            style = EVENT_STYLES.get(event.event_type, "white")
            table.add_row(
                event.timestamp.strftime("%H:%M:%S"),
                f"[{style}]{event.event_type}[/{style}]",
                event.task_id,
                event.task_name or "",
                event.details[:40],
            )

        if not s.events:
            table.add_row("[dim]No events yet[/dim]", "", "", "", "")

        return Panel(table, title="[bold]Recent Events[/bold]", border_style="blue")

    def _build_config_section(self) -> Panel:
        s = self.state

        text = Text()
        text.append("Delay: ", style="dim")
        text.append(f"{s.delay_ms}ms", style="bold")
        text.append("  Request: ", style="dim")
        text.append(f"{s.request_ms}ms", style="bold")
        text.append("  Tick: ", style="dim")
        text.append(f"{s.interval_ms}ms", style="bold")
        text.append("  Error: ", style="dim")
        text.append(f"{s.error_rate * 100:.0f}%", style="bold red" if s.error_rate > 0 else "bold")
        text.append("  Cancel: ", style="dim")
        text.append(f"{s.cancel_rate * 100:.0f}%", style="bold magenta" if s.cancel_rate > 0 else "bold")
        text.append("  Target: ", style="dim")
        text.append(f"{s.target_count:,}", style="bold")
        text.append("    Ctrl+C to stop", style="dim")

        return Panel(text, title="[bold]Config[/bold]", border_style="dim")

    @staticmethod
    def _progress_bar(pct: float, width: int = 10) -> str:
        """Create a mini progress bar."""
        pct = min(1.0, max(0.0, pct))
        filled = int(pct * width)
        return f"[green]{'█' * filled}{'░' * (width - filled)}[/green]"


def print_simple_stats(state: SimulationState) -> None:
    """One-line progress for --no-tui."""
    s = state
    print(
        f"\r[{s.finished}/{s.submitted}] "
        f"A:{s.active} D:{s.waiting_delay} O:{s.waiting_operation} "
        f"✓:{s.completed} ✗:{s.failed} ⊘:{s.cancelled} "
        f"({s.progress * 100:.0f}%) ticks:{s.ticks}",
        end="",
        flush=True,
    )


def print_final_summary(state: SimulationState, console: Console | None = None) -> None:
    """Print final summary after simulation."""
    console = console or Console()
    console.print()

    table = Table(title="Simulation Results", show_header=False, border_style="green")
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Submitted", str(state.submitted))
    table.add_row("Completed", f"[green]{state.completed}[/green]")
    table.add_row("Failed", f"[red]{state.failed}[/red]" if state.failed else "0")
    table.add_row("Cancelled", f"[magenta]{state.cancelled}[/magenta]" if state.cancelled else "0")
    table.add_row("Ticks", f"{state.ticks:,}")
    table.add_row("Duration", f"{state.elapsed:.2f}s")
    table.add_row("Throughput", f"{state.throughput:.2f}/s")

    console.print(table)
