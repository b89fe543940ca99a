"""Bundled adapters for the stackforge ports."""
