"""YAML configuration loader with environment overrides.

Layers, later wins:

  1. config/config.yaml  -- static tuning checked into the repo
  2. .env / environment  -- read through :class:`Settings`

``_deep_merge`` merges nested sections so an override of one key keeps
its siblings from the YAML file.
"""

from pathlib import Path

import yaml

from ragler.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge environment-derived values on top.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to read overrides from; a fresh one is
            built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "chunking": {
            "chunk_size": settings.chunk_size,
            "overlap": settings.chunk_overlap,
            "semantic_max_content_length": settings.semantic_max_content_length,
        },
        "features": {
            "enabled": settings.get_enabled_features(),
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
