"""Command-line interface for shipkit (``shipkit`` entry point)."""
