"""Unit tests for the pre-boot startup script rewrite."""

from pathlib import Path

import pytest
from winreboot.drivers.startnet import patch_startnet, render_startnet

ORIGINAL = b"wpeinit\r\n"


@pytest.fixture
def mount_root(tmp_path: Path) -> Path:
    script = tmp_path / "Windows/System32/startnet.cmd"
    script.parent.mkdir(parents=True)
    script.write_bytes(ORIGINAL)
    return tmp_path


class TestRenderStartnet:
    """Tests for render_startnet function."""

    def test_crlf_line_endings(self) -> None:
        text = render_startnet()

        assert text.endswith("\r\n")
        assert "\n" not in text.replace("\r\n", "")

    def test_loads_drivers_then_starts_setup(self) -> None:
        lines = render_startnet().split("\r\n")

        assert lines[1] == "wpeinit"
        assert any("drvload" in line for line in lines)
        assert lines[-2] == "X:\\sources\\setup.exe"

    def test_probes_staging_dir(self) -> None:
        text = render_startnet()

        assert "for %%D in (C D E" in text
        assert "sources\\$OEM$\\$$\\INFDRIVERS" in text


class TestPatchStartnet:
    """Tests for patch_startnet function."""

    def test_rewrites_and_backs_up(self, mount_root: Path) -> None:
        script = patch_startnet(mount_root)

        assert script.read_bytes() == render_startnet().encode("ascii")
        assert script.with_name("startnet.cmd.orig").read_bytes() == ORIGINAL

    def test_backup_kept_on_rerun(self, mount_root: Path) -> None:
        patch_startnet(mount_root)
        patch_startnet(mount_root)

        backup = mount_root / "Windows/System32/startnet.cmd.orig"
        assert backup.read_bytes() == ORIGINAL

    def test_missing_script(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="startnet.cmd not found"):
            patch_startnet(tmp_path)
