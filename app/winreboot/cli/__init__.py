"""CLI package for winreboot.

This package contains the Typer application and all subcommands.
"""

from winreboot.cli.main import app

__all__ = ["app"]
