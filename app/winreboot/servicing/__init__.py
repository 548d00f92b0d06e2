"""Offline image servicing.

This module exports preset resolution, format conversion and the
read-write servicing session for installer images.
"""

from winreboot.servicing.converter import ImageFormatConverter, find_install_image
from winreboot.servicing.presets import PresetResolver, is_noop_profile, resolve
from winreboot.servicing.removal import RemovalReport, apply_directives
from winreboot.servicing.session import ServicingSession, SessionState, service

__all__ = [
    "ImageFormatConverter",
    "PresetResolver",
    "RemovalReport",
    "ServicingSession",
    "SessionState",
    "apply_directives",
    "find_install_image",
    "is_noop_profile",
    "resolve",
    "service",
]
