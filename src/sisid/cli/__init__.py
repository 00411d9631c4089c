"""Command-line interface for canvas-sisid."""
