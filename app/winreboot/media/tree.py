"""Installer media trees: ISO extraction, ISO rebuild and tree copy."""

import logging
import os
import shutil
import stat
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.core.errors import CopyFailedError, ImageOperationError, MissingDependencyError
from winreboot.core.resources import ResourceTracker
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

ISO_VOLUME_LABEL = "WIN11_CUSTOM"
BIOS_BOOT_IMAGE = "boot/etfsboot.com"
EFI_BOOT_IMAGE = "efi/microsoft/boot/efisys.bin"


def _make_writable(tree: Path) -> None:
    # Files copied off an ISO 9660 mount are read-only
    for dirpath, _dirnames, filenames in os.walk(tree):
        for name in [".", *filenames]:
            entry = Path(dirpath) / name
            if entry.is_symlink():
                continue
            mode = entry.stat().st_mode
            entry.chmod(mode | stat.S_IWUSR)


def extract_iso(
    iso: Path,
    destination: Path,
    capabilities: Capabilities,
    tracker: ResourceTracker,
) -> Path:
    """Unpack an installer ISO into a writable directory tree.

    Uses 7z when installed; otherwise loop-mounts the ISO read-only
    (requires root) and copies it out.

    Args:
        iso: Source ISO file.
        destination: Directory to fill (created if missing).
        capabilities: Host tool set.
        tracker: Owns the temporary loop mount.

    Returns:
        The destination directory.

    Raises:
        MissingDependencyError: If neither 7z nor mount is available.
        ImageOperationError: If extraction fails.
    """
    destination.mkdir(parents=True, exist_ok=True)

    if capabilities.has_7z:
        logger.info("Extracting %s with 7z", iso.name)
        result = run_command(["7z", "x", "-y", f"-o{destination}", str(iso)], timeout=None)
        if not result.success:
            msg = f"Extracting {iso.name} failed: {result.error_text}"
            raise ImageOperationError(msg, hint="Re-download the ISO; it may be corrupt.")
        return destination

    if not capabilities.has("mount"):
        raise MissingDependencyError(["7z"])

    mount_point = tracker.make_scratch_dir("iso-")
    handle = tracker.register_mount(mount_point)
    logger.info("7z not installed; loop-mounting %s", iso.name)
    result = run_command(["mount", "-o", "loop,ro", str(iso), str(mount_point)])
    if not result.success:
        tracker.forget(handle)
        msg = f"Loop-mounting {iso.name} failed: {result.error_text}"
        raise ImageOperationError(msg, hint="Install 7z (p7zip-full) or run as root.")

    try:
        copy_tree(mount_point, destination)
    except CopyFailedError as e:
        raise ImageOperationError(str(e)) from e
    finally:
        tracker.release(handle)
    _make_writable(destination)
    return destination


def rebuild_iso(
    tree: Path,
    output: Path,
    capabilities: Capabilities,
    volume_label: str = ISO_VOLUME_LABEL,
) -> Path:
    """Author a BIOS + UEFI bootable ISO from a media tree.

    Raises:
        MissingDependencyError: If neither xorriso nor genisoimage is installed.
        ImageOperationError: If authoring fails.
    """
    tool = capabilities.iso_tool
    if tool is None:
        raise MissingDependencyError(["xorriso"])

    output.parent.mkdir(parents=True, exist_ok=True)
    args = [tool]
    if tool == "xorriso":
        args += ["-as", "mkisofs"]
    args += [
        "-iso-level", "3", "-udf", "-D", "-N",
        "-V", volume_label,
        "-b", BIOS_BOOT_IMAGE, "-no-emul-boot", "-boot-load-size", "8", "-boot-info-table",
        "-eltorito-alt-boot", "-eltorito-platform", "efi",
        "-eltorito-boot", EFI_BOOT_IMAGE, "-no-emul-boot",
        "-o", str(output), str(tree),
    ]  # fmt: skip

    logger.info("Rebuilding ISO %s with %s", output, tool)
    result = run_command(args, timeout=None)
    if not result.success:
        output.unlink(missing_ok=True)
        msg = f"Rebuilding ISO failed: {result.error_text}"
        raise ImageOperationError(msg)
    return output


def copy_tree(source: Path, destination: Path) -> int:
    """Copy file contents of a tree without permissions or ownership.

    FAT32 targets accept neither, so only data is copied.

    Returns:
        Number of files copied.

    Raises:
        CopyFailedError: On the first file that cannot be copied.
    """
    copied = 0
    for dirpath, dirnames, filenames in os.walk(source):
        dirnames.sort()
        relative = Path(dirpath).relative_to(source)
        target_dir = destination / relative
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            for name in sorted(filenames):
                shutil.copyfile(Path(dirpath) / name, target_dir / name)
                copied += 1
        except OSError as e:
            msg = f"Copy to {destination} failed: {e}"
            raise CopyFailedError(msg) from e
    logger.info("Copied %d file(s) to %s", copied, destination)
    return copied
