"""Configuration loading utilities."""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from fortysix.config.schema import Config
from fortysix.utils.helpers import get_data_path


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def read_config_file(config_path: Path | None = None) -> dict[str, Any]:
    """Raw settings from the config file, migrated to sections. Empty if missing or unreadable."""
    path = config_path or get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read config from {path}: {e}")
        return {}
    return _migrate_config(data)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, environment and defaults.

    Values present in the file win over environment variables; anything the
    file leaves out is taken from the environment, then the defaults.
    """
    path = config_path or get_config_path()
    data = read_config_file(path)
    try:
        return Config(**data)
    except ValueError as e:
        logger.warning(f"Invalid config in {path}: {e}")
        logger.warning("Using default configuration.")
        return Config()


def load_file_config(config_path: Path | None = None) -> Config:
    """Settings from the config file alone, without the environment."""
    path = config_path or get_config_path()
    try:
        return Config.model_validate(read_config_file(path))
    except ValueError as e:
        logger.warning(f"Invalid config in {path}: {e}")
        return Config.model_validate({})


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Only values that differ from the defaults are written, so settings left
    at their default can still come from the environment.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(exclude_defaults=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _migrate_config(data: dict) -> dict:
    """Map the flat keys of older config files onto sections."""
    ai = data.setdefault("ai", {})
    bot = data.setdefault("bot", {})
    if "prefixCommands" in data:
        bot.setdefault("command_prefix", data.pop("prefixCommands"))
    for old, new in (
        ("prefixQueries", "query_prefix"),
        ("prefixQueriesEnabled", "query_prefix_enabled"),
        ("aiModel", "model"),
        ("aiInGroups", "in_groups"),
        ("aiInDM", "in_direct"),
        ("aiSelfOnly", "self_only"),
    ):
        if old in data:
            ai.setdefault(new, data.pop(old))
    return data
