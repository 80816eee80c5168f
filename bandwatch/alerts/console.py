"""Terminal alert sink."""

from datetime import datetime, timezone
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bandwatch.models import Signal
from bandwatch.sources.base import AlertSink


def format_timestamp(timestamp: int) -> str:
    """Epoch milliseconds as a UTC date-time string."""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def signals_table(signals: list[Signal], title: str) -> Table:
    """Build a rich table listing signals and their condition results."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Instrument", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Time (UTC)")
    table.add_column("Conditions", style="dim")

    for signal in sorted(signals, key=lambda s: s.instrument):
        price = f"{signal.price:.4f}" if signal.price is not None else "N/A"
        conditions = "\n".join(
            (f"[green]{r.condition_id}[/green]" if r.passed else f"[red]{r.condition_id}[/red]")
            + (f" {r.measurement}" if r.measurement else "")
            for r in signal.results
        )
        table.add_row(signal.instrument, price, format_timestamp(signal.timestamp), conditions)

    return table


class ConsoleAlertSink(AlertSink):
    """Prints each cycle's passing signals as a table."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._pending: list[Signal] = []

    def emit(self, signal: Signal) -> None:
        self._pending.append(signal)

    def flush(self) -> None:
        if not self._pending:
            return
        self.console.print(
            signals_table(self._pending, f"Instruments meeting all conditions ({len(self._pending)})")
        )
        self._pending.clear()

    def heartbeat(self, cycles: int) -> None:
        self.console.print(Panel(
            f"[green]System is running normally.[/green]\n\n"
            f"[dim]No instrument met all conditions in the last {cycles} cycles.[/dim]",
            title="[bold]Heartbeat[/bold]",
            border_style="green",
        ))
