"""TOML configuration loader.

``config/default.toml`` is required; ``config/{HEARTH_ENV}.toml`` is layered
over it when present.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

DEFAULT_FILE = "default.toml"


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Serverless deployments ship the TOML files next to the handler, so the
    directory is HEARTH_CONFIG_DIR when set, else ./config.
    """
    config_dir_env = os.environ.get("HEARTH_CONFIG_DIR")
    if not config_dir_env:
        return Path("config")

    path = Path(config_dir_env)
    if not path.is_dir():
        raise FileNotFoundError(f"Config directory not found: {config_dir_env}")
    return path


def get_environment() -> str:
    """Current environment name from HEARTH_ENV, 'development' by default."""
    return os.environ.get("HEARTH_ENV", "development")


def load_toml(file_path: Path) -> dict[str, Any]:
    """Parse one TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base, recursing into nested tables."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def load_config(config_dir: Path | None = None, env: str | None = None) -> dict[str, Any]:
    """Load the merged configuration.

    Args:
        config_dir: Directory holding the TOML files (get_config_dir() if omitted)
        env: Environment overlay to apply (get_environment() if omitted)
    """
    config_dir = config_dir or get_config_dir()
    env = env or get_environment()

    default_path = config_dir / DEFAULT_FILE
    if not default_path.is_file():
        raise FileNotFoundError(
            f"Default configuration file not found: {default_path}. "
            "Create it or set HEARTH_CONFIG_DIR."
        )

    config = load_toml(default_path)
    overlay_path = config_dir / f"{env}.toml"
    if env != "default" and overlay_path.is_file():
        config = deep_merge(config, load_toml(overlay_path))
    return config
