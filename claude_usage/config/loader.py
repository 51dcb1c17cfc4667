"""
Configuration management and loading.

Handles where usage data is read from and how pricing is fetched.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from claude_usage.core.pricing import (
    CACHE_DURATION_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    LITELLM_PRICING_URL,
)

CONFIG_ENV_VAR = "CLAUDE_USAGE_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/claude-usage/config.yaml")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the usage reporter."""
    claude_dir: Path = field(default_factory=lambda: Path("~/.claude").expanduser())
    config_file: Path = field(default_factory=lambda: Path("~/.claude.json").expanduser())
    pricing_url: str = LITELLM_PRICING_URL
    pricing_timeout: float = DEFAULT_TIMEOUT_SECONDS
    cache_ttl: float = CACHE_DURATION_SECONDS
    max_workers: int = 8

    def __post_init__(self):
        """Validate numeric settings."""
        if self.pricing_timeout <= 0:
            raise ValueError("pricing_timeout must be > 0")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be > 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    @property
    def projects_dir(self) -> Path:
        """Directory holding one sub-directory of JSONL logs per project."""
        return self.claude_dir / "projects"


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate settings from a YAML file.

    When ``path`` is None the ``CLAUDE_USAGE_CONFIG`` environment variable is
    consulted, then ``~/.config/claude-usage/config.yaml``. If neither names
    an existing file the defaults are returned.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        config_path = Path(explicit).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
    else:
        config_path = DEFAULT_CONFIG_PATH.expanduser()
        if not config_path.exists():
            return Settings()

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return Settings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    return _parse_settings(raw_config)


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """Validate raw YAML data and build Settings.

    Raises:
        ValueError: If keys are unknown or values have the wrong type
    """
    allowed_keys = {
        'claude_dir', 'config_file', 'pricing_url',
        'pricing_timeout', 'cache_ttl', 'max_workers',
    }
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    kwargs: Dict[str, Any] = {}

    for key in ('claude_dir', 'config_file'):
        if key in data:
            value = data[key]
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"'{key}' must be a non-empty string")
            kwargs[key] = Path(value).expanduser()

    if 'pricing_url' in data:
        url = data['pricing_url']
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ValueError("'pricing_url' must be an http(s) URL")
        kwargs['pricing_url'] = url

    for key in ('pricing_timeout', 'cache_ttl'):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"'{key}' must be > 0")
            kwargs[key] = float(value)

    if 'max_workers' in data:
        workers = data['max_workers']
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise ValueError("'max_workers' must be an integer >= 1")
        kwargs['max_workers'] = workers

    return Settings(**kwargs)
