"""Configuration module for forty-six."""

from fortysix.config.loader import get_config_path, load_config, save_config
from fortysix.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
