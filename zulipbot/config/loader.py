"""Configuration loading and saving."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from zulipbot.config.schema import Config


def get_data_dir() -> Path:
    """Get the ZulipBot data directory (~/.zulipbot)."""
    path = Path.home() / ".zulipbot"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".zulipbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Keys may be written in camelCase or snake_case.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file in camelCase form.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# Sections whose keys are user data (account ids) rather than field names.
_VERBATIM_KEY_PARENTS = {"accounts"}


def convert_keys(data: Any, parent: str = "") -> Any:
    """Convert camelCase keys to snake_case, leaving account ids untouched."""
    if isinstance(data, dict):
        return {
            (k if parent in _VERBATIM_KEY_PARENTS else camel_to_snake(k)): convert_keys(
                v, camel_to_snake(k)
            )
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, parent) for item in data]
    return data


def convert_to_camel(data: Any, parent: str = "") -> Any:
    """Convert snake_case keys to camelCase, leaving account ids untouched."""
    if isinstance(data, dict):
        return {
            (k if parent in _VERBATIM_KEY_PARENTS else snake_to_camel(k)): convert_to_camel(v, k)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item, parent) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(word.capitalize() for word in rest)
