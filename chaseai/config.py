"""On-disk network configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from chaseai.errors import ConfigurationError, PersistenceError
from chaseai.schemas import NetworkConfig

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "CHASEAI_CONFIG_DIR"
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "chaseai"
NETWORK_CONFIG_NAME = "network.json"


def config_dir() -> Path:
    """Directory holding ChaseAI configuration ($CHASEAI_CONFIG_DIR overrides)."""
    override = os.environ.get(CONFIG_DIR_ENV)
    return Path(override) if override else DEFAULT_CONFIG_DIR


def network_config_path() -> Path:
    return config_dir() / NETWORK_CONFIG_NAME


def load_network_config(path: Path | str | None = None) -> NetworkConfig:
    """Load the network configuration, falling back to defaults if absent.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
        PersistenceError: If the file exists but cannot be read
    """
    path = Path(path) if path else network_config_path()
    if not path.exists():
        logger.info(f"No network config at {path}; using defaults")
        return NetworkConfig()

    try:
        content = path.read_text()
    except OSError as e:
        raise PersistenceError(f"Failed to read config file at {path}: {e}") from e

    try:
        return NetworkConfig.model_validate_json(content)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Failed to parse network configuration {path}: {e}") from e


def save_network_config(config: NetworkConfig, path: Path | str | None = None) -> Path:
    """Write the network configuration with owner-only permissions.

    Raises:
        PersistenceError: If the file cannot be written
    """
    path = Path(path) if path else network_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(config.model_dump_json(indent=2) + "\n")
        if os.name == "posix":
            os.chmod(path, 0o600)
    except OSError as e:
        raise PersistenceError(f"Failed to write config file to {path}: {e}") from e

    logger.debug(f"Saved network config to {path}")
    return path
