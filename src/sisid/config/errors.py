"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class ConfigFileError(ConfigurationError):
    """Raised when the TOML config file cannot be read or parsed."""
