"""Media provisioning.

Two ways to make the prepared installer bootable:

- CHAINLOAD_ISO: the finished ISO is placed on the host's boot partition
  and a GRUB loopback entry chainloads the EFI loader inside it.
- COPY_TO_PARTITION: a whole device is wiped, given one FAT32 ESP and
  filled with the prepared tree. Nothing touches the device unless the
  operator's confirmation equals the device path exactly.
"""

import logging
import shutil
import time
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.core.config import DEFAULT_VOLUME_LABEL
from winreboot.core.errors import (
    BootConfigError,
    ConfirmationMismatchError,
    FormatFailedError,
    NoTargetDeviceError,
)
from winreboot.core.paths import GRUB_CUSTOM_PATH, ISO_BOOT_PATH
from winreboot.core.resources import ResourceTracker
from winreboot.media import grub
from winreboot.media.tree import copy_tree
from winreboot.models.media import (
    Bootloader,
    DeploymentMode,
    MediaState,
    MediaTarget,
    ProvisionResult,
)
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

# parted can fail while udev still holds the old partitions
_PARTED_RETRIES = 3
_RETRY_DELAYS = (2.0, 4.0)
_PARTITION_WAIT_STEPS = 10
_PARTITION_WAIT_SECONDS = 0.5


def confirmation_matches(target: MediaTarget, confirmation: str | None) -> bool:
    """Exact, case-sensitive comparison of the typed text with the device path."""
    return confirmation is not None and confirmation == target.path


class MediaProvisioner:
    """Deploys a prepared installer to a boot path.

    Attributes:
        volume_label: FAT32 label of provisioned media.
        grub_entry_path: GRUB fragment location.
        iso_boot_path: Where the ISO is placed for loopback booting.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        tracker: ResourceTracker,
        volume_label: str = DEFAULT_VOLUME_LABEL,
        grub_entry_path: Path = GRUB_CUSTOM_PATH,
        iso_boot_path: Path = ISO_BOOT_PATH,
    ) -> None:
        self._capabilities = capabilities
        self._tracker = tracker
        self.volume_label = volume_label
        self.grub_entry_path = grub_entry_path
        self.iso_boot_path = iso_boot_path

    def provision(
        self,
        source: Path,
        target: MediaTarget | None,
        mode: DeploymentMode,
        confirmation: str | None = None,
        bootloader: Bootloader = Bootloader.GRUB,
    ) -> ProvisionResult:
        """Make the prepared installer bootable.

        Args:
            source: The finished ISO (CHAINLOAD_ISO) or the prepared media
                tree (COPY_TO_PARTITION).
            target: Device to wipe; required for COPY_TO_PARTITION.
            mode: Deployment mode.
            confirmation: Text the operator typed to approve wiping target.
            bootloader: Whether to add a GRUB entry for copied media.

        Returns:
            ProvisionResult describing the configured boot path.

        Raises:
            NoTargetDeviceError: If COPY_TO_PARTITION is requested without a target.
            ConfirmationMismatchError: If confirmation is not the exact device path.
            FormatFailedError: If partitioning, formatting or mounting fails.
            CopyFailedError: If copying the tree fails.
            BootConfigError: If the GRUB entry cannot be written.
        """
        if mode == DeploymentMode.CHAINLOAD_ISO:
            return self._chainload_iso(source)

        if target is None:
            raise NoTargetDeviceError("COPY_TO_PARTITION needs a target device")
        return self._copy_to_partition(source, target, confirmation, bootloader)

    # --- chainload ISO ----------------------------------------------------

    def _chainload_iso(self, iso: Path) -> ProvisionResult:
        if not iso.is_file():
            msg = f"ISO not found: {iso}"
            raise BootConfigError(msg)

        logger.info("Copying %s to %s", iso.name, self.iso_boot_path)
        try:
            self.iso_boot_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(iso, self.iso_boot_path)
        except OSError as e:
            msg = f"Cannot copy ISO to {self.iso_boot_path}: {e}"
            raise BootConfigError(msg) from e

        entry = grub.render_iso_entry(grub.grub_visible_path(self.iso_boot_path))
        entry_path = grub.write_entry(entry, self.grub_entry_path)
        grub.validate_entry(entry_path, self._capabilities)
        return ProvisionResult(
            mode=DeploymentMode.CHAINLOAD_ISO,
            boot_path=str(self.iso_boot_path),
            bootloader=Bootloader.GRUB,
            boot_entry=entry_path,
        )

    # --- copy to partition ------------------------------------------------

    def _copy_to_partition(
        self,
        tree: Path,
        target: MediaTarget,
        confirmation: str | None,
        bootloader: Bootloader,
    ) -> ProvisionResult:
        if not confirmation_matches(target, confirmation):
            raise ConfirmationMismatchError(target.path)

        self._capabilities.require("parted", "mkfs.fat", "mount", "umount")
        logger.warning("Wiping %s", target.describe())

        self._unmount_all(target)
        self._partition(target)
        partition = self._wait_for_partition(target)
        self._format(partition)

        mount_point = self._tracker.make_scratch_dir("media-")
        handle = self._tracker.register_mount(mount_point)
        result = run_command(["mount", partition, str(mount_point)])
        if not result.success:
            self._tracker.forget(handle)
            msg = f"Mounting {partition} failed: {result.error_text}"
            raise FormatFailedError(msg)

        copy_tree(tree, mount_point)
        run_command(["sync"], timeout=None)
        self._tracker.release(handle)
        logger.info("Installer media written to %s", partition)

        entry_path: Path | None = None
        if bootloader == Bootloader.GRUB:
            entry_path = grub.write_entry(
                grub.render_label_entry(self.volume_label), self.grub_entry_path
            )
            grub.validate_entry(entry_path, self._capabilities)

        return ProvisionResult(
            mode=DeploymentMode.COPY_TO_PARTITION,
            boot_path=partition,
            bootloader=bootloader,
            boot_entry=entry_path,
            state=MediaState.POPULATED,
        )

    def _unmount_all(self, target: MediaTarget) -> None:
        # Deepest mounts first
        for mountpoint in sorted(target.mountpoints, key=len, reverse=True):
            logger.info("Unmounting %s", mountpoint)
            result = run_command(["umount", mountpoint])
            if not result.success:
                msg = f"Cannot unmount {mountpoint}: {result.error_text}"
                raise FormatFailedError(msg)
        self._settle(target)

    def _partition(self, target: MediaTarget) -> None:
        device = target.path
        self._parted(device, "mklabel", "gpt")
        self._parted(device, "mkpart", "primary", "fat32", "1MiB", "100%")
        self._parted(device, "set", "1", "esp", "on")
        self._settle(target)

    def _parted(self, device: str, *args: str) -> None:
        error = ""
        for attempt in range(_PARTED_RETRIES):
            result = run_command(["parted", "-s", device, *args])
            if result.success:
                return
            error = result.error_text
            logger.warning(
                "parted %s failed (attempt %d/%d): %s",
                " ".join(args),
                attempt + 1,
                _PARTED_RETRIES,
                error,
            )
            if attempt < len(_RETRY_DELAYS):
                time.sleep(_RETRY_DELAYS[attempt])
        msg = f"parted {' '.join(args)} on {device} failed: {error}"
        raise FormatFailedError(msg)

    def _settle(self, target: MediaTarget) -> None:
        run_command(["sync"], timeout=None)
        if self._capabilities.has("partprobe"):
            run_command(["partprobe", target.path])
        if self._capabilities.has("udevadm"):
            run_command(["udevadm", "settle", "--timeout=10"])

    def _wait_for_partition(self, target: MediaTarget) -> str:
        partition = target.partition_path
        for _ in range(_PARTITION_WAIT_STEPS):
            if Path(partition).exists():
                return partition
            time.sleep(_PARTITION_WAIT_SECONDS)
        msg = f"Partition node {partition} did not appear"
        raise FormatFailedError(msg)

    def _format(self, partition: str) -> None:
        logger.info("Formatting %s as FAT32 (%s)", partition, self.volume_label)
        result = run_command(
            ["mkfs.fat", "-F", "32", "-n", self.volume_label, partition], timeout=None
        )
        if not result.success:
            msg = f"mkfs.fat on {partition} failed: {result.error_text}"
            raise FormatFailedError(msg)

    # --- removal ----------------------------------------------------------

    def remove_boot_entry(self, remove_iso: bool = True) -> list[Path]:
        """Delete the GRUB fragment and, optionally, the staged ISO.

        Returns:
            Paths that were removed.

        Raises:
            BootConfigError: If an existing file cannot be removed.
        """
        removed: list[Path] = []
        if grub.remove_entry(self.grub_entry_path):
            removed.append(self.grub_entry_path)
        if remove_iso and self.iso_boot_path.exists():
            try:
                self.iso_boot_path.unlink()
            except OSError as e:
                msg = f"Cannot remove {self.iso_boot_path}: {e}"
                raise BootConfigError(msg) from e
            removed.append(self.iso_boot_path)
        return removed
