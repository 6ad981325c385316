"""Loading of k8sdiscovery configuration files."""

from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .logging_config import get_logger
from .models import DiscoveryConfig

logger = get_logger(__name__)

DEFAULT_CONFIG_PATHS: List[Path] = [
    Path("k8sdiscovery.yaml"),
    Path("/etc/k8sdiscovery/config.yaml"),
]


def load_config(path: Union[str, Path]) -> DiscoveryConfig:
    """Read a YAML configuration file.

    Raises:
        ConfigurationError: The file is missing, is not YAML, or does not
            describe a valid configuration.
    """
    config_path = Path(path)
    logger.debug("Loading configuration file", config_path=str(config_path))

    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Configuration file {config_path} is not valid YAML: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    try:
        return DiscoveryConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration file {config_path} is invalid: {e}") from e


def find_config(explicit: Optional[str] = None) -> Optional[Path]:
    """Return the explicit path, or the first default path that exists."""
    if explicit:
        return Path(explicit)
    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return path
    return None
