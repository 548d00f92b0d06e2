"""Block device discovery using lsblk.

Lists whole disks that may receive installer media. The disk holding the
running system (anything mounted at /, /boot or the ESP) is never offered.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from winreboot.core.errors import DeviceNotFoundError, MediaError
from winreboot.models.media import MediaTarget
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

LSBLK_COLUMNS = "NAME,PATH,TYPE,SIZE,MODEL,TRAN,RM,MOUNTPOINT,LABEL"
ROOT_MOUNTPOINTS = frozenset({"/", "/boot", "/boot/efi", "/boot/firmware", "/efi"})


@dataclass(slots=True)
class DeviceListing:
    """Candidate devices, split by kind.

    Attributes:
        removable: USB sticks, SD cards and other removable disks.
        internal: Fixed disks other than the system disk.
    """

    removable: list[MediaTarget] = field(default_factory=list)
    internal: list[MediaTarget] = field(default_factory=list)

    @property
    def all(self) -> list[MediaTarget]:
        return [*self.removable, *self.internal]


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true")


def _children(device: dict[str, Any]) -> list[dict[str, Any]]:
    return device.get("children") or []


def _mountpoints(device: dict[str, Any]) -> list[str]:
    """Mount points of a device and all of its partitions."""
    points: list[str] = []
    # lsblk >= 2.37 reports a list, older versions a single value
    raw = device.get("mountpoints", [device.get("mountpoint")])
    points.extend(p for p in raw or [] if p)
    for child in _children(device):
        points.extend(_mountpoints(child))
    return points


def is_system_disk(device: dict[str, Any]) -> bool:
    """Check whether the running system is mounted from this disk."""
    return any(p in ROOT_MOUNTPOINTS for p in _mountpoints(device))


def list_block_devices() -> list[dict[str, Any]]:
    """Query lsblk for every block device.

    Returns:
        The ``blockdevices`` array of lsblk's JSON output.

    Raises:
        MediaError: If lsblk fails or prints invalid JSON.
    """
    result = run_command(["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS])
    if not result.success:
        msg = f"lsblk failed: {result.error_text}"
        raise MediaError(msg)
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        msg = f"Could not parse lsblk output: {e}"
        raise MediaError(msg) from e
    return data.get("blockdevices", [])


def to_target(device: dict[str, Any]) -> MediaTarget:
    """Build a MediaTarget from one lsblk disk entry."""
    path = device.get("path") or f"/dev/{device['name']}"
    children = _children(device)
    label = children[0].get("label") if children else device.get("label")
    model = (device.get("model") or "").strip() or None
    return MediaTarget(
        path=path,
        removable=_flag(device.get("rm")) or device.get("tran") == "usb",
        size_bytes=int(device.get("size") or 0),
        label=label,
        model=model,
        mountpoints=tuple(_mountpoints(device)),
    )


def discover_targets(devices: list[dict[str, Any]] | None = None) -> DeviceListing:
    """List disks that may be provisioned.

    Args:
        devices: Pre-fetched lsblk entries; queried when None.

    Returns:
        DeviceListing with the system disk, loop devices and ROMs left out.
    """
    listing = DeviceListing()
    for device in devices if devices is not None else list_block_devices():
        if device.get("type") != "disk":
            continue
        if is_system_disk(device):
            logger.debug("Excluding system disk %s", device.get("name"))
            continue
        target = to_target(device)
        if target.size_bytes == 0:
            continue
        (listing.removable if target.removable else listing.internal).append(target)
    return listing


def find_target(device_path: str, devices: list[dict[str, Any]] | None = None) -> MediaTarget:
    """Look up one device by its node path.

    Raises:
        DeviceNotFoundError: If the device does not exist, is not a whole
            disk, or holds the running system.
    """
    for device in devices if devices is not None else list_block_devices():
        path = device.get("path") or f"/dev/{device.get('name')}"
        if path != device_path:
            continue
        if device.get("type") != "disk":
            raise DeviceNotFoundError(device_path, "not a whole disk")
        if is_system_disk(device):
            raise DeviceNotFoundError(device_path, "it holds the running system")
        return to_target(device)
    raise DeviceNotFoundError(device_path)
