"""
Configuration loader — reads footprints.yml into Settings.

Reads YAML, validates against the pydantic schema, and returns a
typed Settings object. A host without a config file runs on the
built-in defaults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from footprints.core.models.settings import Settings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "footprints.yml"
CONFIG_ENV = "FOOTPRINTS_CONFIG"


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for footprints.yml starting from the given directory, walking up.

    ``FOOTPRINTS_CONFIG`` wins over the search when set.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to footprints.yml, or None if not found.
    """
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path)

    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate configuration.

    Args:
        path: Explicit path to footprints.yml. If None, searches upward;
            when nothing is found the defaults are returned.

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using defaults", CONFIG_FILE)
            return Settings()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "footprints" key or be flat
    if "footprints" in data and isinstance(data["footprints"], dict):
        data = data["footprints"]

    try:
        settings = Settings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded config from %s (state_dir=%s)", path, settings.state_dir)
    return settings


def dump_settings(settings: Settings) -> str:
    """Render settings back to YAML (used by `config check --json` and tests)."""
    return yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False)
