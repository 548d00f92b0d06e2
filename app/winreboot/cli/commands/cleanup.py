"""Cleanup command implementation.

Releases resources left behind by interrupted runs and removes working
files, built ISOs and the GRUB entry on request.
"""

from pathlib import Path
from typing import Annotated

import typer

from winreboot.cli.types import get_settings, handle_errors
from winreboot.core.capabilities import detect_capabilities, require_root
from winreboot.core.config import Settings
from winreboot.core.resources import ResourceKind, ResourceTracker, release_resource
from winreboot.media import grub as grub_config
from winreboot.media.provisioner import MediaProvisioner
from winreboot.utils.formatting import print_info, print_success, print_warning


def cleanup(
    ctx: typer.Context,
    iso: Annotated[
        bool,
        typer.Option("--iso", help="Also delete built ISOs in the output directory."),
    ] = False,
    grub: Annotated[
        bool,
        typer.Option("--grub", help="Also remove the GRUB entry and the ISO on /boot."),
    ] = False,
    remove_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Same as --iso --grub."),
    ] = False,
) -> None:
    """Release leftover mounts and delete working files."""
    settings = get_settings(ctx)
    if remove_all:
        iso = grub = True

    with handle_errors():
        with ResourceTracker(scratch_root=settings.work_dir) as tracker:
            recovered = tracker.recover_stale()
            if recovered:
                print_info(f"Released {recovered} resource(s) left by an interrupted run.")

            _clean_work_dir(settings.work_dir)
            if iso:
                _remove_built_isos(settings.out_dir)
            if grub:
                require_root()
                _remove_boot_entry(settings, tracker)

    print_success("Cleanup complete.")


# === Private helper functions ===


def _clean_work_dir(work_dir: Path) -> None:
    """Delete every scratch directory under work_dir."""
    if not work_dir.is_dir():
        return
    removed = 0
    for child in sorted(work_dir.iterdir()):
        try:
            if child.is_dir() and not child.is_symlink():
                release_resource(ResourceKind.SCRATCH_DIR, child)
            else:
                child.unlink()
        except OSError as e:
            print_warning(f"Could not remove {child}: {e}")
            continue
        removed += 1
    if removed:
        print_info(f"Removed {removed} working item(s) from {work_dir}")


def _remove_built_isos(out_dir: Path) -> None:
    if not out_dir.is_dir():
        return
    for iso in sorted(out_dir.glob("*.iso")):
        try:
            iso.unlink()
        except OSError as e:
            print_warning(f"Could not remove {iso}: {e}")
            continue
        print_info(f"Removed {iso}")


def _remove_boot_entry(settings: Settings, tracker: ResourceTracker) -> None:
    caps = detect_capabilities()
    provisioner = MediaProvisioner(
        caps,
        tracker,
        grub_entry_path=settings.grub_custom_path,
        iso_boot_path=settings.iso_boot_path,
    )
    removed = provisioner.remove_boot_entry(remove_iso=True)
    if not removed:
        print_info("No GRUB entry or boot ISO to remove.")
        return
    for path in removed:
        print_info(f"Removed {path}")

    if caps.grub_mkconfig is None:
        print_warning("grub-mkconfig not found; regenerate grub.cfg manually.")
        return
    grub_config.regenerate_config(caps, settings.grub_cfg_path)
    print_info(f"Regenerated {settings.grub_cfg_path}")
