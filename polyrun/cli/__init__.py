"""Command line interface for polyrun."""
