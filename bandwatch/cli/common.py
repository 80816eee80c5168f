"""Helpers shared by CLI commands."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from bandwatch.config import Settings, load_settings
from bandwatch.errors import ConfigurationError

config_option = click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: $BANDWATCH_CONFIG or ~/.config/bandwatch/config.toml)",
)


def load_settings_or_exit(console: Console, config_path: Optional[Path]) -> Settings:
    """Load settings, or print the problem and exit with status 1."""
    try:
        return load_settings(config_path)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/red]\n\n"
            "See [cyan]config/default.toml[/cyan] for a complete example.",
            title="[bold red]Configuration Error[/bold red]",
            border_style="red",
        ))
        raise SystemExit(1)


def build_orchestrator(
    settings: Settings,
    console: Console,
    symbols: tuple[str, ...] = (),
):
    """Wire the Binance, CoinGecko and alert collaborators together.

    Args:
        settings: Validated settings.
        console: Console for the terminal alert sink.
        symbols: Fixed instruments to scan instead of the market-cap universe.
    """
    from bandwatch.alerts import ConsoleAlertSink, EmailAlertSink, MultiSink
    from bandwatch.ratelimit import RateLimiter
    from bandwatch.scanner import ScanOrchestrator
    from bandwatch.sources import StaticUniverse
    from bandwatch.sources.binance import BinanceFuturesClient
    from bandwatch.sources.coingecko import CoinGeckoClient, PerpetualUniverse

    limiter = RateLimiter.per_minute(settings.scan.requests_per_minute)
    binance = BinanceFuturesClient(
        settings.binance,
        limiter=limiter,
        history_period=settings.open_interest.history_period,
    )

    if symbols:
        universe = StaticUniverse({s.upper() for s in symbols})
    else:
        universe = PerpetualUniverse(
            CoinGeckoClient(settings.coingecko), binance, settings.coingecko.top_n
        )

    sinks = [ConsoleAlertSink(console)]
    if settings.email.enabled:
        sinks.append(EmailAlertSink(settings.email))

    return ScanOrchestrator.from_settings(
        settings,
        market_data=binance,
        open_interest=binance,
        universe=universe,
        sink=MultiSink(sinks),
    )
