"""Host tool detection.

The set of available external tools is probed once at pipeline start and
passed down explicitly, so components never re-query PATH on their own and
tests can describe any combination of tools directly.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from winreboot.core.errors import (
    InsufficientSpaceError,
    MissingDependencyError,
    PermissionDeniedError,
)
from winreboot.utils.shell import command_exists

logger = logging.getLogger(__name__)

# Tools probed on the host, grouped by the concern that needs them.
IMAGE_TOOLS = ("wimlib-imagex",)
EXTRACT_TOOLS = ("7z", "unzip", "cabextract")
REGISTRY_TOOLS = ("hivexregedit",)
ISO_TOOLS = ("xorriso", "genisoimage")
MEDIA_TOOLS = ("lsblk", "parted", "mkfs.fat", "mount", "umount", "partprobe", "udevadm")
BOOT_TOOLS = ("grub-mkconfig", "grub2-mkconfig", "grub-script-check")

ALL_TOOLS = IMAGE_TOOLS + EXTRACT_TOOLS + REGISTRY_TOOLS + ISO_TOOLS + MEDIA_TOOLS + BOOT_TOOLS


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Which external tools are present on the host.

    Attributes:
        tools: Names of the tools found on PATH.
    """

    tools: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, *names: str) -> Capabilities:
        """Build a capability set from explicit tool names."""
        return cls(tools=frozenset(names))

    def has(self, name: str) -> bool:
        """Check whether a tool is available."""
        return name in self.tools

    @property
    def has_wimlib(self) -> bool:
        return self.has("wimlib-imagex")

    @property
    def has_7z(self) -> bool:
        return self.has("7z")

    @property
    def has_unzip(self) -> bool:
        return self.has("unzip")

    @property
    def has_hivexregedit(self) -> bool:
        return self.has("hivexregedit")

    @property
    def iso_tool(self) -> str | None:
        """Preferred ISO authoring tool (xorriso over genisoimage)."""
        for name in ISO_TOOLS:
            if self.has(name):
                return name
        return None

    @property
    def grub_mkconfig(self) -> str | None:
        """Name of the GRUB config generator for this distribution."""
        for name in ("grub-mkconfig", "grub2-mkconfig"):
            if self.has(name):
                return name
        return None

    def missing(self, *names: str) -> list[str]:
        """Return the subset of names that are not available."""
        return [name for name in names if not self.has(name)]

    def require(self, *names: str) -> None:
        """Fail fast when any of the named tools is absent.

        Raises:
            MissingDependencyError: If one or more tools are missing.
        """
        missing = self.missing(*names)
        if missing:
            raise MissingDependencyError(missing)


def detect_capabilities(names: tuple[str, ...] = ALL_TOOLS) -> Capabilities:
    """Probe PATH for the given tools.

    Args:
        names: Tool names to look for.

    Returns:
        Capabilities describing the tools that were found.
    """
    found = frozenset(name for name in names if command_exists(name))
    logger.debug("Detected tools: %s", ", ".join(sorted(found)) or "none")
    return Capabilities(tools=found)


def require_root() -> None:
    """Fail unless running with root privileges.

    Raises:
        PermissionDeniedError: If the effective user is not root.
    """
    if os.geteuid() != 0:
        raise PermissionDeniedError("This operation requires root (run with sudo).")


def check_free_space(path: Path, required_mb: int) -> int:
    """Ensure a directory's filesystem has enough free space.

    The directory is created if missing.

    Args:
        path: Directory that will receive data.
        required_mb: Space needed in MiB.

    Returns:
        Available space in MiB.

    Raises:
        PermissionDeniedError: If the directory cannot be created.
        InsufficientSpaceError: If less than required_mb is available.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        raise PermissionDeniedError(f"Cannot create directory {path}: {e}") from e

    available_mb = shutil.disk_usage(path).free // (1024 * 1024)
    if available_mb < required_mb:
        raise InsufficientSpaceError(str(path), required_mb, available_mb)
    return available_mb
