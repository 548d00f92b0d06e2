"""Shared types and utilities for CLI commands.

This module provides settings loading, the options shared by the
pipeline commands and the error boundary used by every command.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer

from winreboot.core.config import ConfigError, Settings, load_settings
from winreboot.core.errors import EXIT_GENERIC, WinRebootError
from winreboot.utils.formatting import err_console, print_error, print_warning


def get_settings(ctx: typer.Context) -> Settings:
    """Load settings from the --config path (or the default location).

    Exits with code 1 if the file is invalid.
    """
    obj = ctx.find_root().obj or {}
    config_path: Path | None = obj.get("config_path")
    try:
        return load_settings(config_path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_GENERIC) from e


def image_index_option(cli_value: int | None, settings: Settings) -> int | None:
    """Index to service: the CLI value, else the configured one (0 means all)."""
    value = cli_value if cli_value is not None else settings.image_index
    return value or None


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn pipeline errors into a message, a hint and the matching exit code."""
    try:
        yield
    except WinRebootError as e:
        print_error(str(e))
        err_console.print(f"[hint]Hint:[/] {e.hint}")
        raise typer.Exit(code=e.exit_code) from e
    except KeyboardInterrupt as e:
        print_warning("Interrupted; temporary resources were released.")
        raise typer.Exit(code=130) from e


# Options shared by every command that runs the servicing pipeline
PresetOption = Annotated[
    str,
    typer.Option(
        "--preset",
        "-p",
        help="Removal preset (minimal, lite, aggressive, or vanilla to keep everything).",
    ),
]
ImageIndexOption = Annotated[
    int | None,
    typer.Option(
        "--image-index",
        "-i",
        min=0,
        help="Install image index to service (0 services every index).",
    ),
]
CustomListOption = Annotated[
    Path | None,
    typer.Option(
        "--custom-list",
        "-c",
        help="Extra removal list applied after the preset.",
    ),
]
SkipRegOption = Annotated[
    bool,
    typer.Option(
        "--skip-reg",
        help="Do not apply the TPM/Secure Boot/RAM check bypass.",
    ),
]
DriversDirOption = Annotated[
    Path | None,
    typer.Option(
        "--drivers-dir",
        "-d",
        help="Directory with vendor drivers (INF folders, ZIP, CAB, MSI, EXE).",
    ),
]
