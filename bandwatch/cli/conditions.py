"""Conditions command for bandwatch CLI."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from bandwatch.cli.common import config_option, load_settings_or_exit
from bandwatch.conditions import ConditionSetEvaluator

console = Console()

COMMON_FIELDS = {"id", "kind", "enabled", "description"}


@click.command()
@config_option
def conditions(config_path: Optional[Path]) -> None:
    """Show the configured rule set and the history each timeframe keeps."""
    settings = load_settings_or_exit(console, config_path)
    evaluator = ConditionSetEvaluator(settings.conditions, version=settings.rule_set_version)

    table = Table(
        title=f"Rule set {settings.rule_set_version} ({len(evaluator.active)} active)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Id", style="bold")
    table.add_column("Kind")
    table.add_column("Active", justify="center")
    table.add_column("Parameters", style="dim")

    for i, condition in enumerate(settings.conditions, start=1):
        params = ", ".join(
            f"{k}={v.value if hasattr(v, 'value') else v}"
            for k, v in condition.model_dump().items()
            if k not in COMMON_FIELDS and v is not None
        )
        active = "[green]yes[/green]" if condition.enabled else "[dim]no[/dim]"
        table.add_row(str(i), condition.id, condition.kind, active, params)

    console.print(table)

    retention = ", ".join(
        f"{tf.value}: {bars}" for tf, bars in sorted(
            evaluator.required_bars().items(), key=lambda item: item[0].milliseconds
        )
    )
    console.print(f"[dim]Bars retained per timeframe: {retention}[/dim]")
