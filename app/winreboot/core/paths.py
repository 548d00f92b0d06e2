"""XDG-compliant path management for winreboot.

This module provides standardized paths following the XDG Base Directory
Specification for configuration, state, and working storage, plus the
fixed locations used inside the installer media and on the host's boot
partition.

XDG defaults:
- Config: ~/.config/winreboot/
- State: ~/.local/state/winreboot/
- Cache: ~/.cache/winreboot/ (working trees, extraction scratch, output ISO)
"""

import os
from pathlib import Path, PurePosixPath

# Application identifier for directory naming
APP_NAME = "winreboot"

# Host boot configuration
GRUB_CUSTOM_PATH = Path("/etc/grub.d/40_custom_win11")
GRUB_CFG_PATH = Path("/boot/grub/grub.cfg")
ISO_BOOT_PATH = Path("/boot/win11.iso")

# Locations relative to the root of the installer media tree
INSTALL_IMAGE_DIR = PurePosixPath("sources")
BOOT_IMAGE_PATH = PurePosixPath("sources/boot.wim")
DRIVER_STAGING_PATH = PurePosixPath("sources/$OEM$/$$/INFDRIVERS")
EFI_BOOT_BINARY = PurePosixPath("efi/boot/bootx64.efi")

# Locations relative to the root of a mounted pre-boot image
STARTNET_PATH = PurePosixPath("Windows/System32/startnet.cmd")
SYSTEM_HIVE_PATH = PurePosixPath("Windows/System32/config/SYSTEM")


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/winreboot/ (or XDG_CONFIG_HOME/winreboot/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes the open-resource ledger that survives an
    abnormal exit so the next run can release what was left behind.

    Returns:
        Path to ~/.local/state/winreboot/ (or XDG_STATE_HOME/winreboot/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_cache_dir() -> Path:
    """Get the cache directory path.

    Returns:
        Path to ~/.cache/winreboot/ (or XDG_CACHE_HOME/winreboot/).
    """
    return _get_xdg_dir("XDG_CACHE_HOME", ".cache")


def get_config_path() -> Path:
    """Get the configuration file path.

    Returns:
        Path to ~/.config/winreboot/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_user_presets_dir() -> Path:
    """Get the directory searched for user-defined removal presets.

    Returns:
        Path to ~/.config/winreboot/removal-presets/.
    """
    return get_config_dir() / "removal-presets"


def get_ledger_path() -> Path:
    """Get the open-resource ledger path.

    Returns:
        Path to ~/.local/state/winreboot/open-resources.json.
    """
    return get_state_dir() / "open-resources.json"


def get_default_work_dir() -> Path:
    """Get the default working directory for extracted trees and scratch.

    Returns:
        Path to ~/.cache/winreboot/tmp/.
    """
    return get_cache_dir() / "tmp"


def get_default_out_dir() -> Path:
    """Get the default output directory for built ISOs.

    Returns:
        Path to ~/.cache/winreboot/out/.
    """
    return get_cache_dir() / "out"


def media_path(tree: Path, relative: PurePosixPath) -> Path:
    """Join a media-relative location onto a concrete tree root."""
    return tree.joinpath(*relative.parts)


def ensure_dir(path: Path, name: str) -> Path:
    """Create directory if it doesn't exist.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path

