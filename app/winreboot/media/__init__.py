"""Target devices and boot configuration.

This module exports device discovery, GRUB entry handling, media tree
helpers and the provisioner that deploys the prepared installer.
"""

from winreboot.media.devices import DeviceListing, discover_targets, find_target
from winreboot.media.provisioner import MediaProvisioner, confirmation_matches
from winreboot.media.tree import copy_tree, extract_iso, rebuild_iso

__all__ = [
    "DeviceListing",
    "MediaProvisioner",
    "confirmation_matches",
    "copy_tree",
    "discover_targets",
    "extract_iso",
    "find_target",
    "rebuild_iso",
]
