"""Settings for canvas-sisid.

Settings are read once at startup. Precedence, lowest to highest:

- built-in defaults
- the optional TOML file (~/.config/sisid/config.toml, or $SISID_CONFIG)
- environment variables (PATTERN, BATCH_SIZE, ENROLLMENT_TYPES,
  SISID_DB_PATH, SISID_LOG_LEVEL)
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sisid.config.errors import ConfigFileError, ConfigurationError
from sisid.populate.identifiers import pattern_prefix

DEFAULT_PATTERN = "Canvas-%05d"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_ENROLLMENT_TYPES = ("StudentEnrollment",)
DEFAULT_LOG_LEVEL = "WARNING"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_default_config_path() -> Path:
    """Return the config file location, honouring $SISID_CONFIG."""
    override = os.environ.get("SISID_CONFIG")
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "sisid" / "config.toml"


def get_default_db_path() -> Path:
    """Return the default SQLite database location."""
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / "sisid" / "canvas.db"


def parse_enrollment_types(raw: str) -> list[str]:
    """Split a comma-separated list of enrollment types, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Runtime settings, fixed for the duration of a run."""

    pattern: str = DEFAULT_PATTERN
    batch_size: int = DEFAULT_BATCH_SIZE
    enrollment_types: list[str] = field(default_factory=lambda: list(DEFAULT_ENROLLMENT_TYPES))
    db_path: Path = field(default_factory=get_default_db_path)
    log_level: str = DEFAULT_LOG_LEVEL
    config_path: Path | None = None

    def validate(self, mode: str | None = None) -> list[str]:
        """Check settings and return a list of problems (empty when valid).

        With mode="rollback" the pattern must also start with literal text,
        since rollback selects sis_user_id values by that prefix.
        """
        errors: list[str] = []

        try:
            formatted = self.pattern % 1
        except (TypeError, ValueError) as e:
            errors.append(
                f"pattern '{self.pattern}' must format exactly one integer (e.g. Canvas-%05d): {e}"
            )
        else:
            if formatted == self.pattern:
                errors.append(f"pattern '{self.pattern}' has no integer placeholder")

        if mode == "rollback" and not pattern_prefix(self.pattern):
            errors.append(
                f"pattern '{self.pattern}' has no literal prefix; rollback would clear "
                "every sis_user_id"
            )

        if self.batch_size <= 0:
            errors.append(f"batch_size must be positive, got {self.batch_size}")

        if not self.enrollment_types:
            errors.append("enrollment_types must name at least one enrollment type")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"log_level '{self.log_level}' is not one of: {', '.join(VALID_LOG_LEVELS)}"
            )

        return errors

    @property
    def log_level_number(self) -> int:
        """Numeric logging level for log_level."""
        return logging.getLevelNamesMapping().get(self.log_level.upper(), logging.WARNING)


def _read_config_file(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigFileError(f"Invalid TOML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"Cannot read {config_path}: {e}") from e


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _as_types(name: str, value: Any) -> list[str]:
    if isinstance(value, str):
        return parse_enrollment_types(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ConfigurationError(f"{name} must be a list of strings, got {value!r}")


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from defaults, the TOML file and the environment.

    Args:
        config_path: Config file to read. Defaults to get_default_config_path().
            A missing file is not an error.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Settings instance. Call validate() before using it.

    Raises:
        ConfigurationError: If a value cannot be parsed.
    """
    env = os.environ if environ is None else environ
    path = config_path or get_default_config_path()

    settings = Settings()

    if path.exists():
        data = _read_config_file(path)
        settings.config_path = path

        if "pattern" in data:
            settings.pattern = str(data["pattern"])
        if "batch_size" in data:
            settings.batch_size = _as_int("batch_size", data["batch_size"])
        if "enrollment_types" in data:
            settings.enrollment_types = _as_types("enrollment_types", data["enrollment_types"])
        if "db_path" in data:
            settings.db_path = Path(str(data["db_path"])).expanduser()
        if "log_level" in data:
            settings.log_level = str(data["log_level"])

    if env.get("PATTERN"):
        settings.pattern = env["PATTERN"]
    if env.get("BATCH_SIZE"):
        settings.batch_size = _as_int("BATCH_SIZE", env["BATCH_SIZE"])
    if env.get("ENROLLMENT_TYPES"):
        settings.enrollment_types = parse_enrollment_types(env["ENROLLMENT_TYPES"])
    if env.get("SISID_DB_PATH"):
        settings.db_path = Path(env["SISID_DB_PATH"]).expanduser()
    if env.get("SISID_LOG_LEVEL"):
        settings.log_level = env["SISID_LOG_LEVEL"]

    return settings
