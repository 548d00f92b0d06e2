"""Status command implementation.

Shows what winreboot has left on disk: working files, built ISOs, the
boot entry and any resources still recorded as open.
"""

import shutil
from pathlib import Path

import typer

from winreboot.cli.types import get_settings
from winreboot.core.resources import ResourceTracker
from winreboot.utils.formatting import console, create_table, format_size


def _tree_size(path: Path) -> int:
    total = 0
    for item in path.rglob("*"):
        try:
            if item.is_file() and not item.is_symlink():
                total += item.stat().st_size
        except OSError:
            continue
    return total


def status(ctx: typer.Context) -> None:
    """Show working files, built ISOs, the boot entry and open resources."""
    settings = get_settings(ctx)

    table = create_table("winreboot status")
    table.add_column("Item", no_wrap=True)
    table.add_column("Location", style="muted")
    table.add_column("State")

    work_dir = settings.work_dir
    if work_dir.is_dir() and any(work_dir.iterdir()):
        state = f"{format_size(_tree_size(work_dir))} in use"
    else:
        state = "empty"
    table.add_row("Working files", str(work_dir), state)

    isos = sorted(settings.out_dir.glob("*.iso")) if settings.out_dir.is_dir() else []
    if not isos:
        table.add_row("Built ISO", str(settings.out_dir), "none")
    for iso in isos:
        table.add_row("Built ISO", str(iso), format_size(iso.stat().st_size))

    boot_iso = settings.iso_boot_path
    state = format_size(boot_iso.stat().st_size) if boot_iso.is_file() else "absent"
    table.add_row("Boot ISO", str(boot_iso), state)

    entry = settings.grub_custom_path
    table.add_row("GRUB entry", str(entry), "[success]present[/]" if entry.exists() else "absent")

    entries = ResourceTracker().ledger_entries()
    if entries:
        state = f"[warning]{len(entries)} open[/] (run `winreboot cleanup`)"
    else:
        state = "none"
    table.add_row("Open mounts/scratch", "resource ledger", state)

    location = work_dir if work_dir.exists() else work_dir.parent
    if location.exists():
        free = shutil.disk_usage(location).free
        table.add_row("Free space", str(location), format_size(free))

    console.print(table)
