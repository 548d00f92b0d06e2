"""Unit tests for image format conversion and splitting."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from winreboot.core.capabilities import Capabilities
from winreboot.core.config import FAT32_MAX_FILE_BYTES
from winreboot.core.errors import (
    ConversionFailedError,
    MissingDependencyError,
    SplitFailedError,
)
from winreboot.models.image import ImageContainer, ImageState
from winreboot.servicing.converter import (
    ImageFormatConverter,
    find_install_image,
    list_split_parts,
)
from winreboot.utils.shell import CommandResult

GIB = 1024**3
MIB = 1024**2

OK = CommandResult(stdout="", stderr="", returncode=0)


def sparse_file(path: Path, size: int) -> Path:
    """Create a file of the given apparent size without using the disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


@pytest.fixture
def caps() -> Capabilities:
    return Capabilities.of("wimlib-imagex")


@pytest.fixture
def converter(caps: Capabilities) -> ImageFormatConverter:
    return ImageFormatConverter(caps, split_size_mb=3800)


class TestFindInstallImage:
    """Tests for find_install_image function."""

    def test_prefers_wim(self, tmp_path: Path) -> None:
        sparse_file(tmp_path / "sources/install.esd", 10)
        sparse_file(tmp_path / "sources/install.wim", 10)

        assert find_install_image(tmp_path) == tmp_path / "sources/install.wim"

    def test_finds_esd(self, tmp_path: Path) -> None:
        sparse_file(tmp_path / "sources/install.esd", 10)

        assert find_install_image(tmp_path) == tmp_path / "sources/install.esd"

    def test_none_when_missing(self, tmp_path: Path) -> None:
        assert find_install_image(tmp_path) is None


class TestListSplitParts:
    """Tests for list_split_parts function."""

    def test_stops_at_gap(self, tmp_path: Path) -> None:
        """Parts after a missing number are not part of the set."""
        for name in ("install.swm", "install2.swm", "install4.swm"):
            sparse_file(tmp_path / name, 1)

        parts = list_split_parts(tmp_path / "install.swm")

        assert [p.name for p in parts] == ["install.swm", "install2.swm"]


class TestImageFormatConverter:
    """Tests for ImageFormatConverter class."""

    def test_split_size_must_be_below_ceiling(self, caps: Capabilities) -> None:
        with pytest.raises(ValueError):
            ImageFormatConverter(caps, split_size_mb=4096)

    def test_small_wim_not_split(self, converter: ImageFormatConverter, tmp_path: Path) -> None:
        """A container under the ceiling is returned unchanged."""
        wim = sparse_file(tmp_path / "sources/install.wim", 3 * GIB)
        container = ImageContainer.from_path(wim)

        with patch("winreboot.servicing.wimlib.run_command") as mock_run:
            result = converter.ensure_serviceable(container)

        mock_run.assert_not_called()
        assert result == container
        assert result.state == ImageState.CONVERTED

    def test_scenario_oversized_wim_split_in_two(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """A 5.2 GiB WIM becomes two parts under 4 GiB; the WIM is removed."""
        size = int(5.2 * GIB)
        wim = sparse_file(tmp_path / "sources/install.wim", size)
        container = ImageContainer.from_path(wim)

        def fake_split(args: list[str], **_kwargs: object) -> CommandResult:
            assert args[:2] == ["wimlib-imagex", "split"]
            first = Path(args[3])
            part_size = int(args[4]) * MIB
            sparse_file(first, part_size)
            sparse_file(first.with_name("install2.swm"), size - part_size)
            return OK

        with patch("winreboot.servicing.wimlib.run_command", side_effect=fake_split):
            result = converter.ensure_serviceable(container)

        assert result.state == ImageState.SPLIT
        assert len(result.parts) == 2
        assert [p.name for p in result.parts] == ["install.swm", "install2.swm"]
        assert all(p.stat().st_size < FAT32_MAX_FILE_BYTES for p in result.parts)
        assert sum(p.stat().st_size for p in result.parts) == size
        assert not wim.exists()

    def test_allow_split_false_defers_split(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """Oversized containers stay whole when splitting is deferred."""
        wim = sparse_file(tmp_path / "sources/install.wim", int(5.2 * GIB))

        with patch("winreboot.servicing.wimlib.run_command") as mock_run:
            result = converter.ensure_serviceable(
                ImageContainer.from_path(wim), allow_split=False
            )

        mock_run.assert_not_called()
        assert result.state == ImageState.CONVERTED
        assert converter.needs_split(result)

    def test_already_split_returned_unchanged(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        swm = sparse_file(tmp_path / "sources/install.swm", 10)
        container = ImageContainer.from_path(swm)

        assert converter.ensure_serviceable(container) is container

    def test_esd_converted_and_removed(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """Export writes install.wim and deletes install.esd."""
        esd = sparse_file(tmp_path / "sources/install.esd", 100)

        def fake_export(args: list[str], **_kwargs: object) -> CommandResult:
            assert args == [
                "wimlib-imagex",
                "export",
                str(esd),
                "all",
                str(esd.with_suffix(".wim")),
                "--compress=LZX",
                "--check",
            ]
            sparse_file(Path(args[4]), 200)
            return OK

        with patch("winreboot.servicing.wimlib.run_command", side_effect=fake_export):
            result = converter.ensure_serviceable(ImageContainer.from_path(esd))

        assert result.state == ImageState.CONVERTED
        assert result.path == tmp_path / "sources/install.wim"
        assert not esd.exists()

    def test_conversion_failure_keeps_source(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """A failed export removes the partial WIM and keeps the ESD."""
        esd = sparse_file(tmp_path / "sources/install.esd", 100)

        def failing_export(args: list[str], **_kwargs: object) -> CommandResult:
            sparse_file(Path(args[4]), 50)
            return CommandResult(stdout="", stderr="corrupt resource", returncode=1)

        with (
            patch("winreboot.servicing.wimlib.run_command", side_effect=failing_export),
            pytest.raises(ConversionFailedError, match="corrupt resource"),
        ):
            converter.ensure_serviceable(ImageContainer.from_path(esd))

        assert esd.exists()
        assert not (tmp_path / "sources/install.wim").exists()

    def test_split_failure_removes_parts(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """A failed split leaves the WIM and no stray parts."""
        wim = sparse_file(tmp_path / "sources/install.wim", int(5.2 * GIB))

        def failing_split(args: list[str], **_kwargs: object) -> CommandResult:
            sparse_file(Path(args[3]), MIB)
            return CommandResult(stdout="", stderr="No space left on device", returncode=1)

        with (
            patch("winreboot.servicing.wimlib.run_command", side_effect=failing_split),
            pytest.raises(SplitFailedError),
        ):
            converter.split_if_oversized(ImageContainer.from_path(wim))

        assert wim.exists()
        assert list(wim.parent.glob("*.swm")) == []

    def test_split_with_oversized_part_rejected(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """A part at or above the ceiling fails verification."""
        wim = sparse_file(tmp_path / "sources/install.wim", int(5.2 * GIB))

        def bad_split(args: list[str], **_kwargs: object) -> CommandResult:
            sparse_file(Path(args[3]), FAT32_MAX_FILE_BYTES + 1)
            return OK

        with (
            patch("winreboot.servicing.wimlib.run_command", side_effect=bad_split),
            pytest.raises(SplitFailedError, match="invalid size"),
        ):
            converter.split_if_oversized(ImageContainer.from_path(wim))

        assert wim.exists()

    def test_missing_wimlib(self, tmp_path: Path) -> None:
        """Converting without wimlib-imagex fails fast."""
        esd = sparse_file(tmp_path / "sources/install.esd", 100)
        converter = ImageFormatConverter(Capabilities.of())

        with pytest.raises(MissingDependencyError) as exc_info:
            converter.ensure_serviceable(ImageContainer.from_path(esd))

        assert exc_info.value.missing == ["wimlib-imagex"]
        assert exc_info.value.exit_code == 10

    def test_export_timeout_is_unbounded(
        self, converter: ImageFormatConverter, tmp_path: Path
    ) -> None:
        """Long-running exports are not cut off by a timeout."""
        esd = sparse_file(tmp_path / "sources/install.esd", 100)

        def fake_export(args: list[str], **_kwargs: object) -> CommandResult:
            sparse_file(Path(args[4]), 1)
            return OK

        mock_run = MagicMock(side_effect=fake_export)
        with patch("winreboot.servicing.wimlib.run_command", mock_run):
            converter.convert(ImageContainer.from_path(esd))

        assert mock_run.call_args.kwargs["timeout"] is None
