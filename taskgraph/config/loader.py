"""Configuration loader with validation."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import TaskGraphConfig


class ConfigError(Exception):
    """Configuration error."""

    pass


def load_config(config_path: Path) -> TaskGraphConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config YAML file

    Returns:
        Validated TaskGraphConfig instance

    Raises:
        ConfigError: If config file missing or invalid
    """
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if not data:
        raise ConfigError(f"Empty configuration file: {config_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_path}")

    # Resolve working directory relative to config file
    executor = data.get("executor")
    if isinstance(executor, dict) and executor.get("working_dir"):
        working_dir = Path(executor["working_dir"])
        if not working_dir.is_absolute():
            executor["working_dir"] = (config_path.parent / working_dir).resolve()

    try:
        return TaskGraphConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def create_default_config(config_path: Path) -> None:
    """Create default configuration file.

    Args:
        config_path: Path where config should be created
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    default_config = {
        "scheduler": {
            "max_parallel": 5,
        },
        "executor": {
            "timeout_sec": 600,
            "working_dir": None,
            "shell": "/bin/sh",
        },
        "logging": {
            "level": "INFO",
            "log_dir": ".taskgraph/logs",
            "rotation_mb": 10,
            "retention_days": 7,
        },
    }

    with open(config_path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
