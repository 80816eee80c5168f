"""Check command for bandwatch CLI.

Evaluates the rule set against a single instrument right now.
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bandwatch.alerts.console import format_timestamp
from bandwatch.cli.common import build_orchestrator, config_option, load_settings_or_exit
from bandwatch.errors import DataSourceError
from bandwatch.models import Signal

console = Console()


def signal_table(signal: Signal) -> Table:
    """Build a table of one signal's condition results."""
    table = Table(
        title=f"{signal.instrument} @ {format_timestamp(signal.timestamp)} UTC",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Condition", style="bold")
    table.add_column("Result", justify="center")
    table.add_column("Value", justify="right")
    table.add_column("Threshold", justify="right")
    table.add_column("Detail", style="dim")

    for i, result in enumerate(signal.results, start=1):
        status = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
        value = f"{result.value:.6g}" if result.value is not None else "-"
        threshold = f"{result.threshold:.6g}" if result.threshold is not None else "-"
        table.add_row(str(i), result.condition_id, status, value, threshold, result.detail)

    return table


@click.command()
@click.argument("symbol")
@config_option
def check(symbol: str, config_path: Optional[Path]) -> None:
    """Evaluate every active condition for one instrument.

    SYMBOL is the futures symbol (e.g., BTCUSDT).
    """
    settings = load_settings_or_exit(console, config_path)
    symbol = symbol.upper()

    with build_orchestrator(settings, console, (symbol,)) as orchestrator:
        try:
            signal = orchestrator.check_instrument(symbol)
        except DataSourceError as e:
            console.print(Panel(
                f"[red]{e}[/red]",
                title=f"[bold red]Cannot fetch {symbol} ({e.reason})[/bold red]",
                border_style="red",
            ))
            raise SystemExit(1)

    console.print(signal_table(signal))
    if signal.price is not None:
        console.print(f"Price: [bold]{signal.price:.4f}[/bold]")

    if signal.overall:
        console.print("[bold green]All active conditions pass.[/bold green]")
    else:
        console.print(f"[yellow]{len(signal.failed)} of {len(signal.results)} conditions fail.[/yellow]")
