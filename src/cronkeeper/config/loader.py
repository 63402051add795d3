"""Configuration loading from TOML files."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from cronkeeper.config.models import CronkeeperConfig
from cronkeeper.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("cronkeeper.toml"),  # Current directory
        get_config_path(),  # ~/.cronkeeper/config.toml (or CRONKEEPER_HOME)
        Path("/etc/cronkeeper/config.toml"),  # System-wide
    ]


def find_config_path(path: Path | None = None) -> Path | None:
    """Resolve the config file to load, or None when none exists.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(path: Path | None = None) -> CronkeeperConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations
            and falls back to defaults when nothing is found.

    Returns:
        Validated CronkeeperConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ValueError: If the config file is invalid.
    """
    config_path = find_config_path(path)
    if config_path is None:
        return CronkeeperConfig()

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        return CronkeeperConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ValueError(f"Invalid config in {config_path}:\n{e}") from e
