"""Config commands.

Prints, writes and locates the winreboot configuration file.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.types import get_settings
from winreboot.core.config import ConfigError, Settings, save_settings
from winreboot.core.paths import get_config_path
from winreboot.utils.formatting import console, create_table, print_error, print_success

app = typer.Typer(
    help="Show or create the configuration file.",
    no_args_is_help=True,
)


def _config_path(ctx: typer.Context) -> Path:
    obj = ctx.find_root().obj or {}
    return obj.get("config_path") or get_config_path()


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Print the effective configuration."""
    settings = get_settings(ctx)
    path = _config_path(ctx)

    source = str(path) if path.exists() else "defaults (no config file)"
    table = create_table(f"Configuration: {source}")
    table.add_column("Key", no_wrap=True)
    table.add_column("Value")
    for key, value in settings.model_dump(mode="json").items():
        table.add_row(key, str(value))
    console.print(table)


@app.command("init")
def init(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Write a config file with every setting at its default."""
    path = _config_path(ctx)
    if path.exists() and not force:
        print_error(f"Config already exists: {path} (use --force to overwrite)")
        raise typer.Exit(code=1)

    try:
        saved = save_settings(Settings(), path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Wrote {saved}")


@app.command("path")
def path(ctx: typer.Context) -> None:
    """Print the config file location."""
    typer.echo(str(_config_path(ctx)))
