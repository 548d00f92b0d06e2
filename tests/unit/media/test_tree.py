"""Unit tests for media tree extraction, rebuild and copy."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from winreboot.core.capabilities import Capabilities
from winreboot.core.errors import CopyFailedError, ImageOperationError, MissingDependencyError
from winreboot.core.resources import ResourceKind, ResourceTracker
from winreboot.media.tree import copy_tree, extract_iso, rebuild_iso
from winreboot.utils.shell import CommandResult


@pytest.fixture
def iso(tmp_path: Path) -> Path:
    path = tmp_path / "win11.iso"
    path.write_bytes(b"CD001")
    return path


class TestExtractIso:
    """Tests for extract_iso function."""

    @patch("winreboot.media.tree.run_command")
    def test_with_7z(
        self,
        mock_run: MagicMock,
        iso: Path,
        tmp_path: Path,
        tracker: ResourceTracker,
        ok: CommandResult,
    ) -> None:
        mock_run.return_value = ok
        dest = tmp_path / "tree"

        assert extract_iso(iso, dest, Capabilities.of("7z"), tracker) == dest

        assert dest.is_dir()
        assert mock_run.call_args.args[0] == ["7z", "x", "-y", f"-o{dest}", str(iso)]
        assert tracker.held == []

    @patch("winreboot.media.tree.run_command")
    def test_7z_failure(
        self,
        mock_run: MagicMock,
        iso: Path,
        tmp_path: Path,
        tracker: ResourceTracker,
        failed: CommandResult,
    ) -> None:
        mock_run.return_value = failed

        with pytest.raises(ImageOperationError, match="Extracting win11.iso failed"):
            extract_iso(iso, tmp_path / "tree", Capabilities.of("7z"), tracker)

    def test_no_extractor(self, iso: Path, tmp_path: Path, tracker: ResourceTracker) -> None:
        with pytest.raises(MissingDependencyError):
            extract_iso(iso, tmp_path / "tree", Capabilities.of(), tracker)

    @patch("winreboot.core.resources.os.path.ismount", return_value=False)
    @patch("winreboot.media.tree.run_command")
    def test_loop_mount_fallback(
        self,
        mock_run: MagicMock,
        _mock_ismount: MagicMock,
        iso: Path,
        tmp_path: Path,
        tracker: ResourceTracker,
        ok: CommandResult,
    ) -> None:
        """Without 7z the ISO is loop-mounted, copied out and released."""

        def fake_mount(args: list[str], **_kwargs: object) -> CommandResult:
            mount_point = Path(args[-1])
            (mount_point / "sources").mkdir()
            (mount_point / "sources/install.wim").write_bytes(b"MSWIM")
            return ok

        mock_run.side_effect = fake_mount
        dest = tmp_path / "tree"

        extract_iso(iso, dest, Capabilities.of("mount"), tracker)

        assert mock_run.call_args.args[0][:3] == ["mount", "-o", "loop,ro"]
        assert (dest / "sources/install.wim").read_bytes() == b"MSWIM"
        assert all(h.kind != ResourceKind.MOUNT for h in tracker.held)

    @patch("winreboot.media.tree.run_command")
    def test_loop_mount_failure(
        self,
        mock_run: MagicMock,
        iso: Path,
        tmp_path: Path,
        tracker: ResourceTracker,
        failed: CommandResult,
    ) -> None:
        mock_run.return_value = failed

        with pytest.raises(ImageOperationError, match="Loop-mounting"):
            extract_iso(iso, tmp_path / "tree", Capabilities.of("mount"), tracker)

        assert all(h.kind != ResourceKind.MOUNT for h in tracker.held)


class TestRebuildIso:
    """Tests for rebuild_iso function."""

    @patch("winreboot.media.tree.run_command")
    def test_xorriso(self, mock_run: MagicMock, tmp_path: Path, ok: CommandResult) -> None:
        mock_run.return_value = ok
        output = tmp_path / "out" / "win11.iso"

        assert rebuild_iso(tmp_path / "tree", output, Capabilities.of("xorriso")) == output

        args = mock_run.call_args.args[0]
        assert args[:3] == ["xorriso", "-as", "mkisofs"]
        assert args[args.index("-b") + 1] == "boot/etfsboot.com"
        assert args[args.index("-eltorito-boot") + 1] == "efi/microsoft/boot/efisys.bin"
        assert args[-3:] == ["-o", str(output), str(tmp_path / "tree")]
        assert output.parent.is_dir()

    @patch("winreboot.media.tree.run_command")
    def test_genisoimage(self, mock_run: MagicMock, tmp_path: Path, ok: CommandResult) -> None:
        mock_run.return_value = ok

        rebuild_iso(tmp_path / "tree", tmp_path / "o.iso", Capabilities.of("genisoimage"))

        args = mock_run.call_args.args[0]
        assert args[0] == "genisoimage"
        assert "-as" not in args

    def test_no_tool(self, tmp_path: Path) -> None:
        with pytest.raises(MissingDependencyError):
            rebuild_iso(tmp_path, tmp_path / "o.iso", Capabilities.of())

    @patch("winreboot.media.tree.run_command")
    def test_failure_removes_partial_output(
        self, mock_run: MagicMock, tmp_path: Path, failed: CommandResult
    ) -> None:
        output = tmp_path / "o.iso"
        output.write_bytes(b"partial")
        mock_run.return_value = failed

        with pytest.raises(ImageOperationError, match="Rebuilding ISO failed"):
            rebuild_iso(tmp_path, output, Capabilities.of("xorriso"))

        assert not output.exists()


class TestCopyTree:
    """Tests for copy_tree function."""

    def test_copies_data(self, tmp_path: Path) -> None:
        source = tmp_path / "src"
        (source / "sources").mkdir(parents=True)
        (source / "setup.exe").write_bytes(b"MZ")
        (source / "sources/install.swm").write_bytes(b"part1")
        (source / "setup.exe").chmod(0o444)
        dest = tmp_path / "dest"

        assert copy_tree(source, dest) == 2

        assert (dest / "sources/install.swm").read_bytes() == b"part1"
        assert (dest / "setup.exe").stat().st_mode & 0o200

    def test_failure(self, tmp_path: Path) -> None:
        source = tmp_path / "src"
        source.mkdir()
        (source / "a").write_text("x")
        blocker = tmp_path / "dest"
        blocker.write_text("not a dir")

        with pytest.raises(CopyFailedError, match="Copy to"):
            copy_tree(source, blocker)
