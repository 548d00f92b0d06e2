"""Check command implementation.

Reports which external tools are installed and whether the essentials
for building installer media are present.
"""

import typer

from winreboot.core.capabilities import ALL_TOOLS, Capabilities, detect_capabilities
from winreboot.core.errors import EXIT_MISSING_DEPENDENCY, MissingDependencyError
from winreboot.utils.formatting import console, create_table, print_error, print_success

# What each tool is used for
TOOL_PURPOSES: dict[str, str] = {
    "wimlib-imagex": "convert, split and service install images",
    "7z": "extract ISOs, MSI and EXE driver packages",
    "unzip": "extract ZIP driver packages",
    "cabextract": "extract CAB driver packages",
    "hivexregedit": "apply the hardware-check registry bypass",
    "xorriso": "rebuild bootable ISOs",
    "genisoimage": "rebuild bootable ISOs (fallback)",
    "lsblk": "list target devices",
    "parted": "partition target devices",
    "mkfs.fat": "format target devices as FAT32",
    "mount": "mount target devices and ISOs",
    "umount": "unmount target devices",
    "partprobe": "re-read partition tables",
    "udevadm": "wait for new partition nodes",
    "grub-mkconfig": "regenerate grub.cfg",
    "grub2-mkconfig": "regenerate grub.cfg (Fedora/RHEL)",
    "grub-script-check": "validate the GRUB entry",
}


def missing_essentials(caps: Capabilities) -> list[str]:
    """Tools without which no installer can be built."""
    missing = caps.missing("wimlib-imagex")
    if caps.iso_tool is None:
        missing.append("xorriso")
    return missing


def check() -> None:
    """Check that the external tools winreboot drives are installed.

    Exits with code 10 when wimlib-imagex or an ISO authoring tool is
    missing; everything else only limits optional features.
    """
    caps = detect_capabilities()

    table = create_table("External tools")
    table.add_column("Tool", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Used to", style="muted")
    for tool in ALL_TOOLS:
        status = "[success]found[/]" if caps.has(tool) else "[warning]missing[/]"
        table.add_row(tool, status, TOOL_PURPOSES.get(tool, ""))
    console.print(table)

    missing = missing_essentials(caps)
    if missing:
        error = MissingDependencyError(missing)
        print_error(str(error))
        console.print(f"[hint]Hint:[/] {error.hint}")
        raise typer.Exit(code=EXIT_MISSING_DEPENDENCY)

    print_success("All essential tools are installed.")
