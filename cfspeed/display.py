"""Rich terminal output for cfspeed."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from cfspeed.config import CATEGORY_STYLES, LABEL_WIDTH
from cfspeed.models import ReportRow

console = Console()
err_console = Console(stderr=True)


class Presenter(Protocol):
    """Anything that can show the rows of a Report."""

    def render(self, rows: Iterable[ReportRow]) -> None: ...


class ConsolePresenter:
    """Right-aligned ``label: value`` lines, colored by row category."""

    def __init__(self, target: Optional[Console] = None, label_width: int = LABEL_WIDTH):
        self.console = target or console
        self.label_width = label_width

    def format_row(self, row: ReportRow) -> Text:
        style = CATEGORY_STYLES.get(row.category, "")
        text = Text(f"{row.label}:".rjust(self.label_width) + " ", style="bold")
        text.append(row.formatted, style=f"bold {style}".strip())
        return text

    def render(self, rows: Iterable[ReportRow]) -> None:
        for row in rows:
            self.console.print(self.format_row(row))


def render_header(host: str) -> None:
    console.print(f"[bold]Speed test[/bold] [dim]({host})[/dim]\n")


# ── Progress tracking ─────────────────────────────────────────────────


class ProgressTracker:
    """Live progress display for the tier currently being measured."""

    def __init__(self, bar_width: int = 15):
        self.bar_width = bar_width
        self.label = ""
        self.completed = 0
        self.total = 0
        self.failed = 0
        self.live: Optional[Live] = None

    def _build_table(self) -> Table:
        table = Table(show_header=True, expand=False, border_style="dim")
        table.add_column("Phase", style="bold")
        table.add_column("Progress", min_width=20)
        table.add_column("Failed", justify="right")

        filled = int((self.completed / self.total) * self.bar_width) if self.total > 0 else 0
        bar = "[green]" + "█" * filled + "[/green]" + "[dim]░[/dim]" * (self.bar_width - filled)
        failed = f"[red]{self.failed}[/red]" if self.failed else "[dim]0[/dim]"
        table.add_row(self.label or "—", f"{bar} {self.completed}/{self.total}", failed)
        return table

    def start(self) -> None:
        self.live = Live(self._build_table(), console=console, refresh_per_second=4, transient=True)
        self.live.start()

    def update(self, label: str, completed: int, total: int, sample: Optional[float]) -> None:
        if label != self.label or completed < self.completed:
            self.failed = 0
        self.label = label
        self.completed = completed
        self.total = total
        if sample is None:
            self.failed += 1
        if self.live:
            self.live.update(self._build_table())

    def finish(self) -> None:
        if self.live:
            self.live.stop()
            self.live = None


def render_error(message: str) -> None:
    """Display an error message on stderr."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    err_console.print(f"[yellow]Warning:[/yellow] {message}")
