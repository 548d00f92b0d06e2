"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

from pathlib import Path

import pytest
from winreboot.core.capabilities import ALL_TOOLS, Capabilities
from winreboot.core.resources import ResourceTracker
from winreboot.utils.shell import CommandResult


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG directory into the test's temp dir."""
    home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / "config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / "state"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / "cache"))
    return home


@pytest.fixture
def all_tools() -> Capabilities:
    """Capabilities with every external tool installed."""
    return Capabilities.of(*ALL_TOOLS)


@pytest.fixture
def no_tools() -> Capabilities:
    """Capabilities with no external tool installed."""
    return Capabilities.of()


@pytest.fixture
def tracker(tmp_path: Path) -> ResourceTracker:
    """Tracker whose ledger and scratch dirs live in the temp dir."""
    return ResourceTracker(
        ledger_path=tmp_path / "state" / "open-resources.json",
        scratch_root=tmp_path / "work",
    )


@pytest.fixture
def ok() -> CommandResult:
    """A successful command result with no output."""
    return CommandResult(stdout="", stderr="", returncode=0)


@pytest.fixture
def failed() -> CommandResult:
    """A failed command result."""
    return CommandResult(stdout="", stderr="boom", returncode=1)


@pytest.fixture
def wimlib_info_output() -> str:
    """Sample `wimlib-imagex info` output with two indices."""
    return """WIM Information:
----------------
Path:           /tmp/install.wim
GUID:           0x2b9b5a4c0b6f4e5b9d0f3e2a1c4d5e6f
Version:        68864
Image Count:    2
Compression:    LZX
Chunk Size:     32768 bytes
Part Number:    1/1
Boot Index:     0
Size:           4831838208 bytes

Available Images:
-----------------
Index:                  1
Name:                   Windows 11 Home
Description:            Windows 11 Home
Directory Count:        23145
File Count:             101203
Total Bytes:            17465890123
Hard Link Bytes:        6543210987

Index:                  2
Name:                   Windows 11 Pro
Description:            Windows 11 Pro
Directory Count:        23198
File Count:             101522
Total Bytes:            17560123456
Hard Link Bytes:        6612345678
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A config file pointing every winreboot location into the temp dir."""
    path = tmp_path / "config.toml"
    path.write_text(
        f'work_dir = "{tmp_path / "work"}"\n'
        f'out_dir = "{tmp_path / "out"}"\n'
        f'presets_dir = "{tmp_path / "presets"}"\n'
        f'grub_custom_path = "{tmp_path / "grub.d" / "40_custom_win11"}"\n'
        f'iso_boot_path = "{tmp_path / "boot" / "win11.iso"}"\n'
        f'grub_cfg_path = "{tmp_path / "grub" / "grub.cfg"}"\n'
    )
    return path
