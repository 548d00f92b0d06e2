"""Unit tests for media provisioning."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from winreboot.core.capabilities import ALL_TOOLS, Capabilities
from winreboot.core.errors import (
    BootConfigError,
    ConfirmationMismatchError,
    FormatFailedError,
    NoTargetDeviceError,
)
from winreboot.core.resources import ResourceKind, ResourceTracker
from winreboot.media.provisioner import MediaProvisioner, confirmation_matches
from winreboot.models.media import Bootloader, DeploymentMode, MediaState, MediaTarget
from winreboot.utils.shell import CommandResult

OK = CommandResult(stdout="", stderr="", returncode=0)
FAIL = CommandResult(stdout="", stderr="device busy", returncode=1)


@pytest.fixture
def target() -> MediaTarget:
    return MediaTarget(
        path="/dev/sdb",
        removable=True,
        size_bytes=32 * 1024**3,
        mountpoints=("/media/stick", "/media/stick/inner"),
    )


@pytest.fixture
def provisioner(tmp_path: Path, tracker: ResourceTracker) -> MediaProvisioner:
    # No grub-script-check: validation would run the host binary
    tools = [t for t in ALL_TOOLS if t != "grub-script-check"]
    return MediaProvisioner(
        Capabilities.of(*tools),
        tracker,
        volume_label="WIN11_SETUP",
        grub_entry_path=tmp_path / "grub.d" / "40_custom_win11",
        iso_boot_path=tmp_path / "boot" / "win11.iso",
    )


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "tree"
    (root / "sources").mkdir(parents=True)
    (root / "sources/install.swm").write_bytes(b"part1")
    (root / "setup.exe").write_bytes(b"MZ")
    return root


def commands(mock_run: MagicMock) -> list[list[str]]:
    return [c.args[0] for c in mock_run.call_args_list]


class TestConfirmationMatches:
    """Tests for confirmation_matches function."""

    def test_exact_match(self, target: MediaTarget) -> None:
        assert confirmation_matches(target, "/dev/sdb")

    @pytest.mark.parametrize("typed", ["/dev/SDB", "/dev/sd", "/dev/sdb ", "sdb", "", None])
    def test_mismatch(self, target: MediaTarget, typed: str | None) -> None:
        assert not confirmation_matches(target, typed)


class TestCopyToPartition:
    """Tests for the COPY_TO_PARTITION path."""

    @pytest.mark.parametrize("typed", ["/dev/SDB", "/dev/sd", None])
    @patch("winreboot.media.provisioner.run_command")
    def test_mismatch_touches_nothing(
        self,
        mock_run: MagicMock,
        typed: str | None,
        provisioner: MediaProvisioner,
        target: MediaTarget,
        tree: Path,
    ) -> None:
        with pytest.raises(ConfirmationMismatchError):
            provisioner.provision(
                tree, target, DeploymentMode.COPY_TO_PARTITION, confirmation=typed
            )

        mock_run.assert_not_called()

    @patch("winreboot.media.provisioner.time.sleep")
    @patch("winreboot.media.provisioner.run_command", return_value=OK)
    def test_wipes_formats_and_copies(
        self,
        mock_run: MagicMock,
        _mock_sleep: MagicMock,
        provisioner: MediaProvisioner,
        target: MediaTarget,
        tree: Path,
        tracker: ResourceTracker,
    ) -> None:
        with patch.object(MediaProvisioner, "_wait_for_partition", return_value="/dev/sdb1"):
            result = provisioner.provision(
                tree, target, DeploymentMode.COPY_TO_PARTITION, confirmation="/dev/sdb"
            )

        ran = commands(mock_run)
        assert ran[0] == ["umount", "/media/stick/inner"]
        assert ran[1] == ["umount", "/media/stick"]
        assert ["parted", "-s", "/dev/sdb", "mklabel", "gpt"] in ran
        assert ["parted", "-s", "/dev/sdb", "set", "1", "esp", "on"] in ran
        assert ["mkfs.fat", "-F", "32", "-n", "WIN11_SETUP", "/dev/sdb1"] in ran
        mount = next(c for c in ran if c[0] == "mount")
        assert mount[1] == "/dev/sdb1"
        assert (Path(mount[2]) / "sources/install.swm").read_bytes() == b"part1"

        assert result.state == MediaState.POPULATED
        assert result.boot_path == "/dev/sdb1"
        assert result.boot_entry == provisioner.grub_entry_path
        assert "--label WIN11_SETUP" in provisioner.grub_entry_path.read_text()
        assert all(h.kind != ResourceKind.MOUNT for h in tracker.held)

    @patch("winreboot.media.provisioner.time.sleep")
    @patch("winreboot.media.provisioner.run_command", return_value=OK)
    def test_firmware_boot_skips_grub(
        self,
        _mock_run: MagicMock,
        _mock_sleep: MagicMock,
        provisioner: MediaProvisioner,
        target: MediaTarget,
        tree: Path,
    ) -> None:
        with patch.object(MediaProvisioner, "_wait_for_partition", return_value="/dev/sdb1"):
            result = provisioner.provision(
                tree,
                target,
                DeploymentMode.COPY_TO_PARTITION,
                confirmation="/dev/sdb",
                bootloader=Bootloader.FIRMWARE,
            )

        assert result.boot_entry is None
        assert not provisioner.grub_entry_path.exists()

    @patch("winreboot.media.provisioner.time.sleep")
    @patch("winreboot.media.provisioner.run_command")
    def test_parted_retried_then_fails(
        self,
        mock_run: MagicMock,
        mock_sleep: MagicMock,
        provisioner: MediaProvisioner,
        tree: Path,
    ) -> None:
        target = MediaTarget(path="/dev/sdb", removable=True, size_bytes=1024**3)
        mock_run.side_effect = lambda args, **_: FAIL if args[0] == "parted" else OK

        with pytest.raises(FormatFailedError, match="mklabel gpt"):
            provisioner.provision(
                tree, target, DeploymentMode.COPY_TO_PARTITION, confirmation="/dev/sdb"
            )

        assert sum(1 for c in commands(mock_run) if c[0] == "parted") == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 4.0]

    @patch("winreboot.media.provisioner.run_command", return_value=FAIL)
    def test_busy_mountpoint(
        self, _mock_run: MagicMock, provisioner: MediaProvisioner, target: MediaTarget, tree: Path
    ) -> None:
        with pytest.raises(FormatFailedError, match="Cannot unmount"):
            provisioner.provision(
                tree, target, DeploymentMode.COPY_TO_PARTITION, confirmation="/dev/sdb"
            )

    @patch("winreboot.media.provisioner.time.sleep")
    def test_partition_never_appears(
        self, _mock_sleep: MagicMock, provisioner: MediaProvisioner
    ) -> None:
        target = MediaTarget(path="/dev/sdzz", removable=True, size_bytes=1024**3)

        with pytest.raises(FormatFailedError, match="did not appear"):
            provisioner._wait_for_partition(target)

    def test_missing_target(self, provisioner: MediaProvisioner, tree: Path) -> None:
        with pytest.raises(NoTargetDeviceError, match="needs a target device"):
            provisioner.provision(tree, None, DeploymentMode.COPY_TO_PARTITION)


class TestChainloadIso:
    """Tests for the CHAINLOAD_ISO path."""

    def test_places_iso_and_writes_entry(
        self, provisioner: MediaProvisioner, tmp_path: Path
    ) -> None:
        iso = tmp_path / "out" / "win11.iso"
        iso.parent.mkdir()
        iso.write_bytes(b"CD001")

        result = provisioner.provision(iso, None, DeploymentMode.CHAINLOAD_ISO)

        assert provisioner.iso_boot_path.read_bytes() == b"CD001"
        assert result.boot_path == str(provisioner.iso_boot_path)
        assert result.bootloader == Bootloader.GRUB
        entry = provisioner.grub_entry_path.read_text()
        assert "loopback loop" in entry
        assert provisioner.iso_boot_path.name in entry

    @patch("winreboot.media.grub.run_command", return_value=OK)
    def test_entry_validated_when_checker_installed(
        self, mock_run: MagicMock, tmp_path: Path, tracker: ResourceTracker
    ) -> None:
        provisioner = MediaProvisioner(
            Capabilities.of("grub-script-check"),
            tracker,
            grub_entry_path=tmp_path / "grub.d" / "40_custom_win11",
            iso_boot_path=tmp_path / "boot" / "win11.iso",
        )
        iso = tmp_path / "win11.iso"
        iso.write_bytes(b"CD001")

        provisioner.provision(iso, None, DeploymentMode.CHAINLOAD_ISO)

        mock_run.assert_called_once_with(
            ["grub-script-check", str(provisioner.grub_entry_path)]
        )

    def test_missing_iso(self, provisioner: MediaProvisioner, tmp_path: Path) -> None:
        with pytest.raises(BootConfigError, match="ISO not found"):
            provisioner.provision(tmp_path / "none.iso", None, DeploymentMode.CHAINLOAD_ISO)


class TestRemoveBootEntry:
    """Tests for remove_boot_entry method."""

    def test_removes_entry_and_iso(self, provisioner: MediaProvisioner) -> None:
        for path in (provisioner.grub_entry_path, provisioner.iso_boot_path):
            path.parent.mkdir(parents=True)
            path.write_text("x")

        removed = provisioner.remove_boot_entry()

        assert removed == [provisioner.grub_entry_path, provisioner.iso_boot_path]

    def test_keep_iso(self, provisioner: MediaProvisioner) -> None:
        provisioner.iso_boot_path.parent.mkdir(parents=True)
        provisioner.iso_boot_path.write_text("x")

        assert provisioner.remove_boot_entry(remove_iso=False) == []
        assert provisioner.iso_boot_path.exists()
