"""Drivers command implementation.

Injects vendor drivers into an already extracted installer tree.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.display import print_injection_report
from winreboot.cli.types import DriversDirOption, get_settings, handle_errors
from winreboot.core.capabilities import detect_capabilities, require_root
from winreboot.core.resources import ResourceTracker, install_signal_handlers
from winreboot.drivers.injector import DriverInjector
from winreboot.servicing.wimlib import WIMLIB
from winreboot.utils.formatting import print_info


def drivers(
    ctx: typer.Context,
    tree: Annotated[
        Path,
        typer.Argument(
            help="Extracted installer tree (the directory holding sources/).",
            exists=True,
            file_okay=False,
        ),
    ],
    drivers_dir: DriversDirOption = None,
) -> None:
    """Stage drivers into a media tree and patch the pre-boot startup script."""
    settings = get_settings(ctx)
    source = drivers_dir or settings.drivers_dir

    install_signal_handlers()
    with handle_errors():
        caps = detect_capabilities()
        caps.require(WIMLIB)
        require_root()
        print_info(f"Injecting drivers from {source} into {tree}...")
        with ResourceTracker(scratch_root=settings.work_dir) as tracker:
            tracker.recover_stale()
            report = DriverInjector(caps, tracker).inject(tree, source)
    print_injection_report(report)
