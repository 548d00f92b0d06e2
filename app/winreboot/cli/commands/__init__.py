"""CLI commands for winreboot.

This package contains all subcommand implementations.
"""

from winreboot.cli.commands import (
    check,
    cleanup,
    config,
    drivers,
    grub,
    media,
    presets,
    reboot,
    status,
    trim,
)

__all__ = [
    "check",
    "cleanup",
    "config",
    "drivers",
    "grub",
    "media",
    "presets",
    "reboot",
    "status",
    "trim",
]
