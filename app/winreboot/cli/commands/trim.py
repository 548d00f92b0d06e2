"""Trim command implementation.

Builds a trimmed installer ISO: extract, convert, service and rebuild.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.display import print_pipeline_result
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
from winreboot.utils.formatting import print_info


def trim(
    ctx: typer.Context,
    iso: Annotated[
        Path,
        typer.Argument(help="Windows 11 installer ISO.", dir_okay=False),
    ],
    preset: PresetOption = "minimal",
    image_index: ImageIndexOption = None,
    custom_list: CustomListOption = None,
    skip_reg: SkipRegOption = False,
    drivers_dir: DriversDirOption = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Where to write the trimmed ISO (default: <out_dir>/win11.iso).",
        ),
    ] = None,
) -> None:
    """Build a trimmed Windows 11 installer ISO.

    Removes the preset's components from every serviced install image,
    applies the hardware-check bypass unless --skip-reg is given, and
    stages drivers when --drivers-dir is given.
    """
    settings = get_settings(ctx)
    options = PipelineOptions(
        iso=iso,
        preset=preset,
        custom_list=custom_list,
        image_index=image_index_option(image_index, settings),
        registry_bypass=not skip_reg,
        drivers_dir=drivers_dir,
        output_iso=output,
    )

    install_signal_handlers()
    print_info(f"Trimming {iso.name} with preset '{preset}'...")
    with handle_errors():
        result = Pipeline(settings).run(options)
    print_pipeline_result(result)
