"""GRUB command implementation.

Places a finished ISO on the boot partition and adds a loopback entry.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.display import print_provision_result
from winreboot.cli.types import get_settings, handle_errors
from winreboot.core.capabilities import detect_capabilities, require_root
from winreboot.core.resources import ResourceTracker
from winreboot.media import grub as grub_config
from winreboot.media.provisioner import MediaProvisioner
from winreboot.models.media import DeploymentMode
from winreboot.utils.formatting import print_info, print_success


def grub(
    ctx: typer.Context,
    iso: Annotated[
        Path,
        typer.Argument(
            help="Installer ISO to boot (usually the output of `winreboot trim`).",
            exists=True,
            dir_okay=False,
        ),
    ],
    update: Annotated[
        bool,
        typer.Option(
            "--update",
            "-u",
            help="Regenerate grub.cfg after writing the entry.",
        ),
    ] = False,
) -> None:
    """Boot the installer from an ISO file through a GRUB loopback entry.

    Requires UEFI boot with Secure Boot disabled.
    """
    settings = get_settings(ctx)

    with handle_errors():
        require_root()
        caps = detect_capabilities()
        with ResourceTracker(scratch_root=settings.work_dir) as tracker:
            provisioner = MediaProvisioner(
                caps,
                tracker,
                volume_label=settings.volume_label,
                grub_entry_path=settings.grub_custom_path,
                iso_boot_path=settings.iso_boot_path,
            )
            result = provisioner.provision(iso, None, DeploymentMode.CHAINLOAD_ISO)
        print_provision_result(result)

        if not update:
            print_info("Run `update-grub` (or pass --update) to activate the entry.")
            return
        cfg = grub_config.regenerate_config(caps, settings.grub_cfg_path)
        print_success(f"Regenerated {cfg}")
