"""Unit tests for block device discovery."""

import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from winreboot.core.errors import DeviceNotFoundError, MediaError
from winreboot.media.devices import (
    discover_targets,
    find_target,
    is_system_disk,
    list_block_devices,
    to_target,
)
from winreboot.utils.shell import CommandResult

GB = 1024**3

SYSTEM_DISK: dict[str, Any] = {
    "name": "nvme0n1",
    "path": "/dev/nvme0n1",
    "type": "disk",
    "size": 512 * GB,
    "model": "Samsung SSD 980",
    "tran": "nvme",
    "rm": False,
    "mountpoints": [None],
    "children": [
        {"name": "nvme0n1p1", "type": "part", "mountpoints": ["/boot/efi"]},
        {"name": "nvme0n1p2", "type": "part", "mountpoints": ["/"]},
    ],
}

USB_STICK: dict[str, Any] = {
    "name": "sdb",
    "path": "/dev/sdb",
    "type": "disk",
    "size": 32 * GB,
    "model": "SanDisk Ultra  ",
    "tran": "usb",
    "rm": "1",
    "mountpoints": [None],
    "children": [
        {"name": "sdb1", "type": "part", "label": "OLDSTICK", "mountpoints": ["/media/stick"]},
    ],
}

DATA_DISK: dict[str, Any] = {
    "name": "sda",
    "path": "/dev/sda",
    "type": "disk",
    "size": 2000 * GB,
    "tran": "sata",
    "rm": False,
    "mountpoint": None,
}

LOOP: dict[str, Any] = {"name": "loop0", "path": "/dev/loop0", "type": "loop", "size": GB}

DEVICES = [SYSTEM_DISK, USB_STICK, DATA_DISK, LOOP]


class TestIsSystemDisk:
    """Tests for is_system_disk function."""

    def test_root_partition(self) -> None:
        assert is_system_disk(SYSTEM_DISK)

    def test_other_mounts(self) -> None:
        assert not is_system_disk(USB_STICK)
        assert not is_system_disk(DATA_DISK)


class TestToTarget:
    """Tests for to_target function."""

    def test_usb_stick(self) -> None:
        target = to_target(USB_STICK)

        assert target.path == "/dev/sdb"
        assert target.removable
        assert target.size_gb == 32
        assert target.label == "OLDSTICK"
        assert target.model == "SanDisk Ultra"
        assert target.mountpoints == ("/media/stick",)

    def test_path_from_name(self) -> None:
        target = to_target({"name": "sdc", "type": "disk", "size": "1024"})

        assert target.path == "/dev/sdc"
        assert not target.removable
        assert target.model is None


class TestDiscoverTargets:
    """Tests for discover_targets function."""

    def test_split_by_kind(self) -> None:
        listing = discover_targets(DEVICES)

        assert [t.path for t in listing.removable] == ["/dev/sdb"]
        assert [t.path for t in listing.internal] == ["/dev/sda"]
        assert [t.path for t in listing.all] == ["/dev/sdb", "/dev/sda"]

    def test_zero_size_skipped(self) -> None:
        reader = {"name": "sr0", "path": "/dev/sdz", "type": "disk", "size": 0}

        assert discover_targets([reader]).all == []

    @patch("winreboot.media.devices.run_command")
    def test_queries_lsblk(self, mock_run: MagicMock) -> None:
        mock_run.return_value = CommandResult(
            stdout=json.dumps({"blockdevices": DEVICES}), stderr="", returncode=0
        )

        listing = discover_targets()

        assert len(listing.all) == 2
        assert mock_run.call_args.args[0][:3] == ["lsblk", "-J", "-b"]


class TestListBlockDevices:
    """Tests for list_block_devices function."""

    @patch("winreboot.media.devices.run_command")
    def test_lsblk_failure(self, mock_run: MagicMock) -> None:
        mock_run.return_value = CommandResult(stdout="", stderr="boom", returncode=1)

        with pytest.raises(MediaError, match="lsblk failed"):
            list_block_devices()

    @patch("winreboot.media.devices.run_command")
    def test_invalid_json(self, mock_run: MagicMock) -> None:
        mock_run.return_value = CommandResult(stdout="{", stderr="", returncode=0)

        with pytest.raises(MediaError, match="Could not parse"):
            list_block_devices()


class TestFindTarget:
    """Tests for find_target function."""

    def test_found(self) -> None:
        assert find_target("/dev/sdb", DEVICES).removable

    def test_partition_rejected(self) -> None:
        partition = {"name": "sdb1", "path": "/dev/sdb1", "type": "part"}

        with pytest.raises(DeviceNotFoundError, match="not a whole disk"):
            find_target("/dev/sdb1", [partition])

    def test_system_disk_rejected(self) -> None:
        with pytest.raises(DeviceNotFoundError, match="running system"):
            find_target("/dev/nvme0n1", DEVICES)

    def test_unknown(self) -> None:
        with pytest.raises(DeviceNotFoundError):
            find_target("/dev/sdx", DEVICES)
