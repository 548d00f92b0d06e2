"""GRUB menu entries for the installer.

Entries are written as a /etc/grub.d fragment that grub-mkconfig runs; the
fragment prints everything after its two-line shell header verbatim. This
module only produces, validates and removes that fragment. Regenerating
grub.cfg is a separate, explicit step.
"""

import contextlib
import logging
import os
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.core.errors import BootConfigError
from winreboot.core.paths import EFI_BOOT_BINARY, GRUB_CFG_PATH, GRUB_CUSTOM_PATH
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

ISO_ENTRY_TITLE = "Windows 11 installer (ISO loop)"
LABEL_ENTRY_TITLE = "Windows 11 installer (USB/disk)"

# grub-mkconfig executes the fragment; this header makes it print the rest
FRAGMENT_HEADER = "#!/bin/sh\nexec tail -n +3 $0\n"

_MKCONFIG_TIMEOUT: float = 300.0


def grub_visible_path(path: Path) -> str:
    """Path of a file as GRUB sees it, relative to its filesystem root.

    /boot/win11.iso stays /boot/win11.iso when /boot is part of the root
    filesystem, and becomes /win11.iso when /boot is its own partition.
    """
    absolute = Path(os.path.abspath(path))
    mount = absolute.parent
    while not os.path.ismount(mount) and mount != mount.parent:
        mount = mount.parent
    return "/" + absolute.relative_to(mount).as_posix()


def render_iso_entry(iso_path: str) -> str:
    """Render a loopback entry that chainloads the EFI loader inside an ISO.

    Args:
        iso_path: ISO location as GRUB sees it (see :func:`grub_visible_path`).
    """
    return (
        f'menuentry "{ISO_ENTRY_TITLE}" {{\n'
        f'    set isofile="{iso_path}"\n'
        "    search --no-floppy --set=iso_root --file $isofile\n"
        "    loopback loop ($iso_root)$isofile\n"
        f"    chainloader (loop)/{EFI_BOOT_BINARY}\n"
        "}\n"
    )


def render_label_entry(label: str) -> str:
    """Render an entry that chainloads the EFI loader of a labelled volume."""
    return (
        f'menuentry "{LABEL_ENTRY_TITLE}" {{\n'
        f"    search --no-floppy --set=esp --label {label}\n"
        f"    chainloader ($esp)/{EFI_BOOT_BINARY}\n"
        "}\n"
    )


def write_entry(entry: str, path: Path = GRUB_CUSTOM_PATH) -> Path:
    """Write a menu entry fragment, replacing any earlier one.

    Raises:
        BootConfigError: If the fragment cannot be written.
    """
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(FRAGMENT_HEADER + entry, encoding="utf-8")
        tmp.chmod(0o755)
        os.replace(tmp, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        msg = f"Cannot write GRUB entry {path}: {e}"
        raise BootConfigError(msg) from e
    logger.info("Wrote GRUB entry %s", path)
    return path


def validate_entry(path: Path, capabilities: Capabilities) -> bool:
    """Check the fragment with grub-script-check when it is installed.

    Returns:
        True if validated, False if the checker is not installed.

    Raises:
        BootConfigError: If the checker rejects the fragment.
    """
    if not capabilities.has("grub-script-check"):
        logger.debug("grub-script-check not installed; skipping validation")
        return False
    result = run_command(["grub-script-check", str(path)])
    if not result.success:
        msg = f"GRUB rejected {path}: {result.error_text}"
        raise BootConfigError(msg)
    return True


def regenerate_config(capabilities: Capabilities, cfg_path: Path = GRUB_CFG_PATH) -> Path:
    """Run grub-mkconfig (or grub2-mkconfig) to rebuild grub.cfg.

    Raises:
        BootConfigError: If no generator is installed or it fails.
    """
    tool = capabilities.grub_mkconfig
    if tool is None:
        msg = "Neither grub-mkconfig nor grub2-mkconfig is installed"
        raise BootConfigError(msg)
    logger.info("Regenerating %s with %s", cfg_path, tool)
    result = run_command([tool, "-o", str(cfg_path)], timeout=_MKCONFIG_TIMEOUT)
    if not result.success:
        msg = f"{tool} failed: {result.error_text}"
        raise BootConfigError(msg)
    return cfg_path


def installed_entry(cfg_path: Path = GRUB_CFG_PATH) -> str | None:
    """Find the installer entry in the generated grub.cfg.

    Returns:
        The title of the entry GRUB will offer, or None if neither the ISO
        nor the USB/disk entry has been generated into the config yet.

    Raises:
        BootConfigError: If grub.cfg is missing or unreadable.
    """
    try:
        text = cfg_path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as e:
        msg = f"grub.cfg not found at {cfg_path}"
        raise BootConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read {cfg_path}: {e}"
        raise BootConfigError(msg) from e
    for title in (ISO_ENTRY_TITLE, LABEL_ENTRY_TITLE):
        if f'menuentry "{title}"' in text:
            return title
    return None


def remove_entry(path: Path = GRUB_CUSTOM_PATH) -> bool:
    """Delete the fragment.

    Returns:
        True if a fragment was removed.

    Raises:
        BootConfigError: If it exists but cannot be deleted.
    """
    if not path.exists():
        return False
    try:
        path.unlink()
    except OSError as e:
        msg = f"Cannot remove GRUB entry {path}: {e}"
        raise BootConfigError(msg) from e
    logger.info("Removed GRUB entry %s", path)
    return True
