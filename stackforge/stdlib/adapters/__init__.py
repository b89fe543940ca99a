"""Adapters implementing the kernel ports."""
