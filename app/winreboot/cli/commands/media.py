"""Media commands.

Lists candidate devices and writes a prepared installer onto one of them.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.display import print_devices, print_pipeline_result
from winreboot.cli.types import (
    CustomListOption,
    DriversDirOption,
    ImageIndexOption,
    PresetOption,
    SkipRegOption,
    get_settings,
    handle_errors,
    image_index_option,
)
from winreboot.core.pipeline import Pipeline, PipelineOptions
from winreboot.core.resources import install_signal_handlers
from winreboot.media.devices import discover_targets, find_target
from winreboot.models.media import Bootloader, DeploymentMode
from winreboot.utils.formatting import console, print_info

app = typer.Typer(
    help="List devices and write installer media.",
    no_args_is_help=True,
)


@app.command("list")
def list_devices() -> None:
    """List devices that can receive installer media."""
    with handle_errors():
        listing = discover_targets()
    print_devices(listing)


@app.command("write")
def write(
    ctx: typer.Context,
    iso: Annotated[
        Path,
        typer.Argument(help="Windows 11 installer ISO.", dir_okay=False),
    ],
    device: Annotated[
        str,
        typer.Argument(help="Whole-disk device to wipe (e.g. /dev/sdb)."),
    ],
    confirm: Annotated[
        str | None,
        typer.Option(
            "--confirm",
            help="Device path typed again to approve wiping it.",
        ),
    ] = None,
    bootloader: Annotated[
        Bootloader,
        typer.Option(
            "--bootloader",
            "-b",
            help="Add a GRUB entry, or leave booting to the firmware menu.",
            case_sensitive=False,
        ),
    ] = Bootloader.GRUB,
    preset: PresetOption = "minimal",
    image_index: ImageIndexOption = None,
    custom_list: CustomListOption = None,
    skip_reg: SkipRegOption = False,
    drivers_dir: DriversDirOption = None,
) -> None:
    """Wipe DEVICE and write a trimmed installer onto it.

    The device gets one FAT32 partition; install.wim is split when it is
    too large for FAT32. Nothing is written unless the confirmation equals
    the device path exactly.
    """
    settings = get_settings(ctx)

    with handle_errors():
        target = find_target(device)

    if confirm is None:
        console.print(f"[warning]All data on {target.describe()} will be destroyed.[/]")
        confirm = typer.prompt(f"Type {target.path} to continue")

    options = PipelineOptions(
        iso=iso,
        preset=preset,
        custom_list=custom_list,
        image_index=image_index_option(image_index, settings),
        registry_bypass=not skip_reg,
        drivers_dir=drivers_dir,
        mode=DeploymentMode.COPY_TO_PARTITION,
        target_device=target.path,
        confirmation=confirm,
        bootloader=bootloader,
    )

    install_signal_handlers()
    print_info(f"Writing {iso.name} to {target.path}...")
    with handle_errors():
        result = Pipeline(settings).run(options)
    print_pipeline_result(result)
