"""Configuration for canvas-sisid."""
