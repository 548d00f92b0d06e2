"""Driver injection for installer media.

This module exports payload extraction, driver root discovery and the
injector that wires staged drivers into the pre-boot environment.
"""

from winreboot.drivers.discovery import find_inf_roots, stage_driver_sets
from winreboot.drivers.extract import ExtractionResult, extract_payloads
from winreboot.drivers.injector import DriverInjector
from winreboot.drivers.startnet import patch_startnet, render_startnet

__all__ = [
    "DriverInjector",
    "ExtractionResult",
    "extract_payloads",
    "find_inf_roots",
    "patch_startnet",
    "render_startnet",
    "stage_driver_sets",
]
