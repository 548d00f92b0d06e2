"""Data models for winreboot.

This module exports the core data structures used throughout the application.
"""

from winreboot.models.directive import DirectiveKind, RemovalDirective, RemovalProfile
from winreboot.models.driver import DriverSet, InjectionReport, PayloadKind
from winreboot.models.image import ImageContainer, ImageFormat, ImageIndex, ImageState
from winreboot.models.media import (
    Bootloader,
    DeploymentMode,
    MediaState,
    MediaTarget,
    ProvisionResult,
)

__all__ = [
    "Bootloader",
    "DeploymentMode",
    "DirectiveKind",
    "DriverSet",
    "ImageContainer",
    "ImageFormat",
    "ImageIndex",
    "ImageState",
    "InjectionReport",
    "MediaState",
    "MediaTarget",
    "PayloadKind",
    "ProvisionResult",
    "RemovalDirective",
    "RemovalProfile",
]
