"""Run command for bandwatch CLI.

Starts the periodic scan loop.
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from bandwatch.cli.common import build_orchestrator, config_option, load_settings_or_exit
from bandwatch.log import setup_logging

console = Console()


@click.command()
@config_option
@click.option(
    "-s", "--symbol",
    "symbols",
    multiple=True,
    help="Scan only this instrument (repeatable), e.g. -s BTCUSDT -s ETHUSDT",
)
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option("-n", "--max-cycles", type=int, default=None, help="Stop after N cycles")
@click.option(
    "-l", "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
def run(
    config_path: Optional[Path],
    symbols: tuple[str, ...],
    once: bool,
    max_cycles: Optional[int],
    log_level: str,
) -> None:
    """Start the scan loop.

    Every cycle refreshes 15m, 30m and 4h bars plus open interest for each
    instrument, evaluates the rule set and alerts on full matches.

    \b
    Examples:
      bandwatch run                     # Scan the top-N universe forever
      bandwatch run --once              # One cycle, then exit
      bandwatch run -s BTCUSDT -n 4     # One instrument, four cycles
    """
    setup_logging(log_level)
    settings = load_settings_or_exit(console, config_path)

    if once:
        max_cycles = 1

    with build_orchestrator(settings, console, symbols) as orchestrator:
        try:
            orchestrator.run_forever(max_cycles=max_cycles)
        except KeyboardInterrupt:
            console.print("[dim]Interrupted, shutting down.[/dim]")
