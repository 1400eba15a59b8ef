"""
Velvest Console Output Module

Rich console rendering of engine snapshots for the CLI.
"""

from rich.box import DOUBLE, ROUNDED
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from velvest import __version__
from velvest.analysis.models import EngineSnapshot
from velvest.exceptions import LogEntryNotFound


# =============================================================================
# Constants
# =============================================================================

ALERT_MARKER = "[!] ALERT"

NO_DETAIL_TEXT = "select a packet for detailed analysis..."


# =============================================================================
# Console Display Class
# =============================================================================


class VelvestConsole:
    """Rich console interface for the Velvest CLI."""

    def __init__(self, console: Console | None = None):
        """Initialize the console."""
        self.console = console or Console()
        self._width = self.console.width

    def print_header(self, source: str) -> None:
        """Print the run header."""
        title = Text()
        title.append("VELVEST", style="cyan bold")
        title.append(f" v{__version__}", style="bright_white")
        title.append(" | ", style="dim")
        title.append(source, style="bright_blue")
        self.console.print(Panel(title, border_style="bright_blue"))

    def print_info(self, text: str) -> None:
        """Print an info message."""
        self.console.print(f"  [cyan]ℹ[/cyan] {escape(text)}")

    def print_error(self, text: str) -> None:
        """Print an error message."""
        self.console.print(f"  [red]✗[/red] {escape(text)}")

    def create_progress(self) -> Progress:
        """Create a spinner for capture replay."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TextColumn("•"),
            TextColumn("[bright_cyan]{task.fields[packets]:,}[/bright_cyan] packets"),
            TextColumn("•"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )

    # =========================================================================
    # Snapshot Display
    # =========================================================================

    def print_snapshot(self, snapshot: EngineSnapshot) -> None:
        """Print counters, top sources and the activity log."""
        self.print_stats(snapshot)
        self.print_top_sources(snapshot)
        self.print_log(snapshot)

    def print_stats(self, snapshot: EngineSnapshot) -> None:
        """Print the protocol counters."""
        table = Table(title="Traffic", box=ROUNDED, border_style="dim", title_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Packets", style="bright_white", justify="right")

        stats = snapshot.stats
        table.add_row("Total", f"{stats.total:,}")
        table.add_row("TCP", f"{stats.tcp:,}")
        table.add_row("UDP", f"{stats.udp:,}")
        table.add_row("Other", f"{stats.other:,}")

        self.console.print(table)

    def print_top_sources(self, snapshot: EngineSnapshot) -> None:
        """Print the top talkers."""
        if not snapshot.top_sources:
            return

        table = Table(title="Top Sources", box=ROUNDED, border_style="dim", title_style="bold cyan")
        table.add_column("#", style="bright_yellow", justify="center", width=4)
        table.add_column("Address", style="bright_yellow")
        table.add_column("Packets", style="bright_white", justify="right")

        for i, source in enumerate(snapshot.top_sources, 1):
            table.add_row(str(i), source.address, f"{source.count:,}")

        self.console.print(table)

    def print_log(self, snapshot: EngineSnapshot) -> None:
        """Print the activity log, oldest first."""
        title = "Activity Log"
        if snapshot.filter_text:
            title += f" (filter: {escape(snapshot.filter_text)})"

        lines = Text()
        for i, (_, summary) in enumerate(snapshot.log_view):
            style = "red" if ALERT_MARKER in summary else "bright_white"
            lines.append(f"{i:>3} ", style="dim")
            lines.append(summary, style=style)
            lines.append("\n")

        if not snapshot.log:
            lines.append("no matching packets", style="dim")

        self.console.print(Panel(lines, title=title, border_style="bright_blue"))

    def print_detail(self, snapshot: EngineSnapshot, index: int | None) -> None:
        """Print the detail block for a log position."""
        if index is None:
            body = Text(NO_DETAIL_TEXT, style="dim")
            border = "dim"
        else:
            try:
                body = Text(snapshot.detail(index))
                border = "red" if "ANOMALY" in body.plain else "bright_green"
            except LogEntryNotFound:
                body = Text(f"no detail available for index {index}", style="yellow")
                border = "yellow"

        self.console.print(Panel(body, title="Details", box=DOUBLE, border_style=border))


# =============================================================================
# Singleton Instance
# =============================================================================

_console: VelvestConsole | None = None


def get_console() -> VelvestConsole:
    """Get the singleton console instance."""
    global _console
    if _console is None:
        _console = VelvestConsole()
    return _console
