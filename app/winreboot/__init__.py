"""winreboot - prepare Windows installation media from a Linux host."""

__version__ = "0.4.0"
