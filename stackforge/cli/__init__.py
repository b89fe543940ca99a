"""Command line interface for stackforge."""
