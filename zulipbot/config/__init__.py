"""Configuration module for ZulipBot."""

from zulipbot.config.loader import load_config, save_config, get_config_path, get_data_dir
from zulipbot.config.schema import Config, ZulipConfig, ZulipAccountConfig

__all__ = [
    "Config",
    "ZulipConfig",
    "ZulipAccountConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_data_dir",
]
