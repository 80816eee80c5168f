"""CLI commands for bandwatch.

This package provides the command-line interface: the scan loop, one-off
instrument checks and the rule set listing.
"""

from bandwatch.cli.main import cli, main

__all__ = ["cli", "main"]
