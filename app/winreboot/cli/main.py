"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot import __version__
from winreboot.cli.commands import (
    check,
    cleanup,
    config,
    drivers,
    grub,
    media,
    presets,
    reboot,
    status,
    trim,
)
from winreboot.utils.formatting import set_quiet, setup_logging

# Create main Typer app
app = typer.Typer(
    name="winreboot",
    help="Prepare trimmed Windows 11 installer media from Linux.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"winreboot version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Config file to use instead of ~/.config/winreboot/config.toml.",
        ),
    ] = None,
) -> None:
    """winreboot - Prepare trimmed Windows 11 installer media from Linux.

    Removes unwanted components from the install image, bypasses the
    hardware checks, stages drivers and makes the result bootable from
    GRUB or a USB stick.
    """
    setup_logging(verbose)
    set_quiet(quiet)

    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = config_path


# Command groups
app.add_typer(presets.app, name="presets")
app.add_typer(media.app, name="media")
app.add_typer(config.app, name="config")

# Single commands taking positional arguments
app.command("check")(check.check)
app.command("trim")(trim.trim)
app.command("drivers")(drivers.drivers)
app.command("grub")(grub.grub)
app.command("cleanup")(cleanup.cleanup)
app.command("status")(status.status)
app.command("reboot")(reboot.reboot)


if __name__ == "__main__":
    app()
