"""Reboot command implementation.

Last step of the chainload flow: make sure the installer entry made it into
grub.cfg, then restart so it can be picked from the boot menu.
"""

from typing import Annotated

import typer

from winreboot.cli.types import get_settings, handle_errors
from winreboot.core.capabilities import require_root
from winreboot.core.errors import BootConfigError, WinRebootError
from winreboot.media import grub as grub_config
from winreboot.utils.formatting import print_info, print_success
from winreboot.utils.shell import run_command


def _confirm_reboot(title: str) -> bool:
    return typer.confirm(f"\nReboot now and choose '{title}' in the GRUB menu?", default=False)


def reboot(
    ctx: typer.Context,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation prompt and reboot.",
        ),
    ] = False,
) -> None:
    """Reboot into the installer once its GRUB entry is active."""
    settings = get_settings(ctx)

    with handle_errors():
        require_root()
        title = grub_config.installed_entry(settings.grub_cfg_path)
        if title is None:
            raise BootConfigError(
                f"No installer entry in {settings.grub_cfg_path}",
                hint="Run `winreboot grub ISO --update` (or `update-grub`) first.",
            )
        print_success(f"Found GRUB entry '{title}'")

        if not yes and not _confirm_reboot(title):
            print_info("Aborted.")
            raise typer.Exit(code=0)

        result = run_command(["systemctl", "reboot"])
        if not result.success:
            raise WinRebootError(
                f"systemctl reboot failed: {result.error_text}",
                hint="Reboot manually and pick the installer entry from the GRUB menu.",
            )
