"""Cache configuration.

Settings come from (lowest to highest precedence):
    1. Defaults below
    2. A YAML file: explicit path, else $DEPCACHE_CONFIG, else
       <user config dir>/depcache/config.yaml if it exists
    3. Environment overrides (DEPCACHE_CACHE_DIR, DEPCACHE_HTTP_TIMEOUT,
       DEPCACHE_LINK_MODE)

The YAML file may hold the settings at top level or under a ``cache:`` key.
"""

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError

from .constants import (
    APP_AUTHOR,
    APP_NAME,
    CACHE_DIR_ENV,
    CONFIG_ENV,
    CONFIG_FILE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_USER_AGENT,
    HTTP_TIMEOUT_ENV,
    LINK_MODE_ENV,
)
from .errors import ConfigError

LinkMode = Literal["auto", "reflink", "hardlink", "copy"]


def default_cache_dir() -> Path:
    """Platform-appropriate cache directory (e.g. ~/.cache/depcache on Linux)."""
    return Path(platformdirs.user_cache_dir(APP_NAME, APP_AUTHOR))


def default_config_path() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)) / CONFIG_FILE


class CacheSettings(BaseModel):
    """Settings for the download cache."""
    cache_dir: Path = Field(default_factory=default_cache_dir)
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0)        # streaming chunk size in bytes
    http_timeout: float = Field(60.0, gt=0)                  # per socket operation, seconds
    lock_timeout: float = Field(300.0, ge=0)                 # wait for another writer, seconds
    link_mode: LinkMode = "copy"                             # how cached files reach targets
    user_agent: str = DEFAULT_USER_AGENT
    git_executable: str = "git"


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    section = data.get("cache", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'cache' section in {path} must be a mapping")
    return dict(section)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if os.environ.get(CACHE_DIR_ENV):
        overrides["cache_dir"] = os.environ[CACHE_DIR_ENV]
    if os.environ.get(HTTP_TIMEOUT_ENV):
        overrides["http_timeout"] = os.environ[HTTP_TIMEOUT_ENV]
    if os.environ.get(LINK_MODE_ENV):
        overrides["link_mode"] = os.environ[LINK_MODE_ENV]
    return overrides


def load_settings(path: Optional[Path] = None) -> CacheSettings:
    """Load settings from file and environment.

    Args:
        path: Explicit config file; must exist if given

    Returns:
        Validated CacheSettings

    Raises:
        ConfigError: If an explicitly named file is missing, or the file or
            environment holds invalid values
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV))
    cfg_path = Path(path) if path is not None else Path(os.environ.get(CONFIG_ENV) or default_config_path())

    data: Dict[str, Any] = {}
    if cfg_path.exists():
        data = _read_yaml(cfg_path)
    elif explicit:
        raise ConfigError(f"Config file not found: {cfg_path}")

    data.update(_env_overrides())
    try:
        return CacheSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid cache settings: {e}") from e


__all__ = ["CacheSettings", "LinkMode", "default_cache_dir", "load_settings"]
