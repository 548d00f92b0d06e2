"""Shared Rich display functions for pipeline results.

Provides the table builders and summaries printed by trim, drivers,
media write and grub.
"""

from rich.table import Table

from winreboot.core.pipeline import PipelineResult
from winreboot.media.devices import DeviceListing
from winreboot.models.driver import InjectionReport
from winreboot.models.media import MediaTarget, ProvisionResult
from winreboot.utils.formatting import (
    console,
    create_table,
    format_size,
    print_info,
    print_success,
    print_warning,
)


def create_devices_table(title: str, targets: list[MediaTarget]) -> Table:
    """Create a table of candidate devices."""
    table = create_table(title)
    table.add_column("Device", style="device", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Model")
    table.add_column("Label")
    table.add_column("Mounted at", style="muted")
    for target in targets:
        table.add_row(
            target.path,
            format_size(target.size_bytes),
            target.model or "",
            target.label or "",
            ", ".join(target.mountpoints),
        )
    return table


def print_devices(listing: DeviceListing) -> None:
    """Print removable and internal candidates as separate tables."""
    if not listing.all:
        print_info("No usable devices found (the system disk is never listed).")
        return
    if listing.removable:
        console.print(create_devices_table("Removable devices", listing.removable))
    if listing.internal:
        console.print(
            create_devices_table("Internal disks (not the system disk)", listing.internal)
        )


def print_injection_report(report: InjectionReport, show_warnings: bool = True) -> None:
    """Summarize a driver injection run."""
    for warning in report.warnings if show_warnings else []:
        print_warning(warning)
    if report.staged_count == 0:
        print_info("No drivers were staged.")
        return
    print_success(
        f"Staged {report.staged_count} driver set(s); "
        f"WinPE will drvload them before Setup starts."
    )


def print_provision_result(result: ProvisionResult) -> None:
    """Summarize what was made bootable and how."""
    print_success(f"Installer ready at {result.boot_path}")
    if result.boot_entry is not None:
        print_info(f"GRUB entry written to {result.boot_entry}")


def print_pipeline_result(result: PipelineResult) -> None:
    """Summarize a full pipeline run."""
    if result.recovered:
        print_warning(f"Released {result.recovered} resource(s) left by an interrupted run.")

    removal = result.removal
    print_info(
        f"Removed {removal.removed_count} entr{'y' if removal.removed_count == 1 else 'ies'} "
        f"({len(removal.unmatched)} directive(s) matched nothing)"
    )
    if result.registry_bypass:
        print_info("Hardware-check bypass requested for every serviced index.")
    if result.container is not None and result.container.parts:
        print_info(f"install.wim split into {len(result.container.parts)} part(s) for FAT32.")
    if result.injection is not None:
        print_injection_report(result.injection, show_warnings=False)
    for warning in result.warnings:
        print_warning(warning)
    if result.output_iso is not None:
        print_success(f"Output ISO: {result.output_iso}")
    if result.provision is not None:
        print_provision_result(result.provision)
