"""
Configuration utilities for the supervisor
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

from pydantic import ValidationError

from supervision.config import SupervisionConfig
from supervision.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "supervisor_config.json"

DEFAULT_CONFIG: Dict[str, Any] = json.loads(SupervisionConfig().model_dump_json())


def load_config(config_file: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """Load configuration from file"""
    config_path = Path(config_file)

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)

            # Merge with defaults
            merged_config = DEFAULT_CONFIG.copy()
            merged_config.update(config)
            return merged_config

        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not load config file %s: %s", config_file, e)
            return DEFAULT_CONFIG.copy()

    return DEFAULT_CONFIG.copy()


def save_config(config: Dict[str, Any], config_file: str = DEFAULT_CONFIG_FILE) -> bool:
    """Save configuration to file"""
    try:
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            json.dump(config, f, indent=2)

        return True

    except IOError as e:
        logger.error("Could not save config file %s: %s", config_file, e)
        return False


def get_env_config() -> Dict[str, Any]:
    """Get configuration from environment variables"""
    env_config = {}

    env_mapping = {
        "SUPERVISOR_MODE": "mode",
        "SUPERVISOR_MIN_RESPONSE_INTERVAL": "min_response_interval",
        "SUPERVISOR_DUPLICATE_WINDOW": "duplicate_window",
        "SUPERVISOR_BUFFER_SIZE": "buffer_size",
        "SUPERVISOR_LIVENESS_INTERVAL": "liveness_interval",
        "SUPERVISOR_CLAUDE_COMMAND": "claude_command",
        "SUPERVISOR_DELIVERY": "delivery",
        "SUPERVISOR_USE_PTY": "use_pty",
        "SUPERVISOR_LOG_LEVEL": "log_level",
    }

    for env_var, config_key in env_mapping.items():
        value = os.getenv(env_var)
        if value is None:
            continue
        if config_key in ("buffer_size",):
            try:
                env_config[config_key] = int(value)
            except ValueError:
                logger.warning("Ignoring non-integer %s=%r", env_var, value)
        elif config_key in ("min_response_interval", "duplicate_window", "liveness_interval"):
            try:
                env_config[config_key] = float(value)
            except ValueError:
                logger.warning("Ignoring non-numeric %s=%r", env_var, value)
        elif config_key == "claude_command":
            env_config[config_key] = value.split()
        elif config_key == "use_pty":
            env_config[config_key] = value.lower() in ("1", "true", "yes")
        else:
            env_config[config_key] = value

    return env_config


def merge_configs(*configs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge multiple configuration dictionaries"""
    merged = {}

    for config in configs:
        if config:
            merged.update(config)

    return merged


def build_config(config_file: Optional[str] = None, **overrides) -> SupervisionConfig:
    """Defaults < config file < environment < explicit overrides"""
    file_config = load_config(config_file) if config_file else {}
    cli_config = {key: value for key, value in overrides.items() if value is not None}
    merged = merge_configs(DEFAULT_CONFIG, file_config, get_env_config(), cli_config)
    try:
        return SupervisionConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid supervisor configuration: {e}") from e
