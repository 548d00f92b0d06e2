"""User configuration for winreboot.

Configuration is stored in ~/.config/winreboot/config.toml. Every field
has a default, so a missing file simply yields the default settings.
"""

import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from winreboot.core.paths import (
    GRUB_CFG_PATH,
    GRUB_CUSTOM_PATH,
    ISO_BOOT_PATH,
    ensure_dir,
    get_config_path,
    get_default_out_dir,
    get_default_work_dir,
    get_user_presets_dir,
)

# Largest file a FAT32 volume can hold (4 GiB - 1 byte)
FAT32_MAX_FILE_BYTES = 4 * 1024**3 - 1

# mkfs.fat rejects labels longer than 11 characters
DEFAULT_VOLUME_LABEL = "WIN11_SETUP"


class Settings(BaseModel):
    """Settings for the media preparation pipeline.

    Attributes:
        work_dir: Scratch area for extracted trees and driver payloads.
        out_dir: Where built ISOs are written.
        drivers_dir: Directory the operator fills with vendor drivers.
        presets_dir: User removal presets, searched before the bundled ones.
        split_size_mb: Part size used when splitting install.wim for FAT32.
        volume_label: FAT32 label of provisioned media.
        image_index: Install image index to service (0 services every index).
        min_free_mb: Free space required in work_dir before extraction.
        grub_custom_path: Boot entry fragment written for GRUB.
        iso_boot_path: Where the ISO is placed for loopback booting.
        grub_cfg_path: Generated GRUB configuration.
    """

    model_config = ConfigDict(extra="forbid")

    work_dir: Path = Field(default_factory=get_default_work_dir)
    out_dir: Path = Field(default_factory=get_default_out_dir)
    drivers_dir: Path = Field(default_factory=lambda: Path.cwd() / "drivers")
    presets_dir: Path = Field(default_factory=get_user_presets_dir)
    split_size_mb: Annotated[
        int,
        Field(ge=100, description="Split part size in MiB, kept below the FAT32 limit"),
    ] = 3800
    volume_label: Annotated[str, Field(min_length=1, max_length=11)] = DEFAULT_VOLUME_LABEL
    image_index: Annotated[int, Field(ge=0)] = 0
    min_free_mb: Annotated[int, Field(ge=0)] = 10240
    grub_custom_path: Path = GRUB_CUSTOM_PATH
    iso_boot_path: Path = ISO_BOOT_PATH
    grub_cfg_path: Path = GRUB_CFG_PATH

    @field_validator("split_size_mb")
    @classmethod
    def validate_split_below_ceiling(cls, v: int) -> int:
        """Parts must stay strictly below the FAT32 file-size ceiling."""
        if v * 1024 * 1024 >= FAT32_MAX_FILE_BYTES:
            msg = f"split_size_mb must be below {FAT32_MAX_FILE_BYTES // (1024 * 1024)}"
            raise ValueError(msg)
        return v

    @field_validator("volume_label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """FAT labels are upper-case and space free."""
        if " " in v:
            msg = "volume_label must not contain spaces"
            raise ValueError(msg)
        return v.upper()

    @property
    def split_size_bytes(self) -> int:
        """Split part size in bytes."""
        return self.split_size_mb * 1024 * 1024


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or written."""


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from a TOML file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated Settings object (defaults if the file does not exist).

    Raises:
        ConfigError: If the TOML is invalid or doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        return Settings()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config content in {config_path}: {e}") from e


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Save settings to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        settings: The Settings object to save.
        path: Path to save the config. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    try:
        ensure_dir(config_path.parent, "config")
    except RuntimeError as e:
        raise ConfigError(str(e)) from e

    data = settings.model_dump(mode="json")

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    return config_path
