"""Media provisioning models.

Describes the devices that can receive installer media, the two deployment
modes, and the outcome of a provisioning run.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class DeploymentMode(str, Enum):
    """How the prepared installer is made bootable.

    Attributes:
        CHAINLOAD_ISO: Keep the ISO as a file on the boot partition and add a
            loopback menu entry that chainloads its EFI loader.
        COPY_TO_PARTITION: Wipe a device, create one FAT32 partition and copy
            the prepared tree onto it.
    """

    CHAINLOAD_ISO = "iso"
    COPY_TO_PARTITION = "partition"


class Bootloader(str, Enum):
    """Boot path recorded for copy-based media.

    Attributes:
        GRUB: Add a GRUB entry that chainloads the media by volume label.
        FIRMWARE: Leave GRUB alone; boot through the firmware boot menu.
    """

    GRUB = "grub"
    FIRMWARE = "firmware"


class MediaState(str, Enum):
    """Lifecycle of a target device inside the provisioner."""

    UNFORMATTED = "unformatted"
    FORMATTED = "formatted"
    POPULATED = "populated"


@dataclass(frozen=True, slots=True)
class MediaTarget:
    """A block device that may receive installer media.

    Attributes:
        path: Device node (e.g. /dev/sdb).
        removable: Whether the kernel reports the device as removable.
        size_bytes: Device capacity.
        label: Current filesystem label of the first partition, if any.
        model: Vendor model string.
        mountpoints: Active mount points of the device and its partitions.
    """

    path: str
    removable: bool
    size_bytes: int
    label: str | None = None
    model: str | None = None
    mountpoints: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.path.startswith("/dev/"):
            msg = f"Device path must start with /dev/: {self.path}"
            raise ValueError(msg)

    @property
    def size_gb(self) -> int:
        return self.size_bytes // 1024**3

    @property
    def partition_path(self) -> str:
        """Node of the first partition (/dev/sdb1, /dev/nvme0n1p1)."""
        suffix = "p" if self.path[-1].isdigit() else ""
        return f"{self.path}{suffix}1"

    def describe(self) -> str:
        kind = "removable" if self.removable else "internal"
        model = f" {self.model}" if self.model else ""
        return f"{self.path} ({self.size_gb}GB, {kind}){model}"


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    """Outcome of a provisioning run.

    Attributes:
        mode: Deployment mode that was used.
        boot_path: The image file or partition the firmware/GRUB will boot.
        bootloader: Boot path that was configured.
        boot_entry: GRUB fragment written, or None.
        state: Final state of the target device (copy mode only).
    """

    mode: DeploymentMode
    boot_path: str
    bootloader: Bootloader
    boot_entry: Path | None = None
    state: MediaState | None = None
