"""Bundled data files (removal presets)."""
