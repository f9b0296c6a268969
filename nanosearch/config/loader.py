"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from nanosearch.config.schema import Config

CONFIG_ENV_VAR = "NANOSEARCH_CONFIG_FILE"


def get_config_path() -> Path:
    """Get the per-user configuration file path."""
    return Path.home() / ".nanosearch" / "config.json"


def find_config_file(config_path: Path | None = None) -> Path | None:
    """
    Resolve which configuration file to read.

    Order: explicit path, ``NANOSEARCH_CONFIG_FILE``, ``./config.json``, then
    ``~/.nanosearch/config.json``. An explicit path is returned even when it
    does not exist so the caller can report it.
    """
    if config_path is not None:
        return Path(config_path)

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path).expanduser()
        if path.exists():
            return path
        logger.warning("{}={} not found, searching default paths", CONFIG_ENV_VAR, env_path)

    for path in (Path.cwd() / "config.json", get_config_path()):
        if path.exists():
            return path
    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Searched for if not provided.

    Returns:
        Loaded configuration object.
    """
    path = find_config_file(Path(config_path) if config_path is not None else None)

    if path is not None and path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            data = _migrate_config(data)
            config = Config(**convert_keys(data))
            logger.debug("Loaded configuration from {}", path)
            return config
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.warning("Failed to load config from {}: {}", path, e)
            logger.warning("Using default configuration.")
    elif path is not None:
        logger.warning("Config file {} not found, using default configuration", path)

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    # search.allowedEngines given as "bing, baidu"
    search_cfg = data.get("search")
    if isinstance(search_cfg, dict):
        for key in ("allowedEngines", "allowed_engines"):
            value = search_cfg.get(key)
            if isinstance(value, str):
                search_cfg[key] = [part.strip() for part in value.split(",") if part.strip()]

    # proxy given as a bare URL string
    proxy_cfg = data.get("proxy")
    if isinstance(proxy_cfg, str):
        url = proxy_cfg.strip()
        data["proxy"] = {"enabled": bool(url), "url": url}

    # Top-level defaultEngine / allowedEngines from the flat layout
    for key in ("defaultEngine", "allowedEngines", "default_engine", "allowed_engines"):
        if key in data:
            search_cfg = data.setdefault("search", {})
            search_cfg.setdefault(key, data.pop(key))

    return data


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
