"""
Configuration loading for mavendist.

Settings come from an optional YAML file (``mavendist.yaml``) stored in the
platformdirs user config directory. Every key is optional; missing keys fall
back to the defaults in :mod:`mavendist.constants`.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import platformdirs
import yaml

from mavendist.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_BUILD_OUTPUT_DIR,
    DEFAULT_CACHE_DIR,
    DEFAULT_MAVEN_VERSION,
    DEFAULT_REQUEST_TIMEOUT,
    DOWNLOAD_POLL_INTERVAL,
    DOWNLOADED_DIR_NAME,
    MAVEN_3_URL_TEMPLATE,
    MAX_DOWNLOAD_ATTEMPTS,
    TARGET_DIR_NAME,
    TOOL_NAMESPACE,
)
from mavendist.exceptions import ConfigFileError, ConfigurationError
from mavendist.log_utils import logger

Pathish = Union[str, Path]


def get_config_dir() -> str:
    """Return the platformdirs-managed configuration directory."""
    return platformdirs.user_config_dir(TOOL_NAMESPACE)


def get_config_file() -> str:
    """Return the default configuration file path."""
    return os.path.join(get_config_dir(), CONFIG_FILE_NAME)


def get_log_dir() -> str:
    """Return the platformdirs-managed log directory."""
    return platformdirs.user_log_dir(TOOL_NAMESPACE)


def load_config(path: Optional[Pathish] = None) -> Dict[str, Any]:
    """
    Load the mavendist configuration YAML.

    Parameters:
        path (Optional[Pathish]): Explicit configuration file to read. When omitted the
            platformdirs-managed ``mavendist.yaml`` is used.

    Returns:
        Dict[str, Any]: The parsed configuration mapping; an empty dict when the file does not exist or is empty.

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or does not contain a mapping.
    """
    config_path = str(path) if path is not None else get_config_file()
    if not os.path.exists(config_path):
        logger.debug(f"No configuration file at {config_path}; using defaults")
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(
            f"Failed to load configuration from {config_path}", details=str(e)
        ) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigFileError(
            f"Configuration in {config_path} must be a mapping",
            details=f"got {type(config).__name__}",
        )

    logger.debug(f"Loaded configuration from {config_path}")
    return config


def _get_int(config: Dict[str, Any], key: str, default: int) -> int:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(
            f"Configuration value {key} must be a positive integer",
            details=f"got {value!r}",
        )
    return value


def _get_float(config: Dict[str, Any], key: str, default: float) -> float:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(
            f"Configuration value {key} must be a positive number",
            details=f"got {value!r}",
        )
    return float(value)


def _get_str(config: Dict[str, Any], key: str, default: str) -> str:
    value = config.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(
            f"Configuration value {key} must be a non-empty string",
            details=f"got {value!r}",
        )
    return value


@dataclass(frozen=True)
class ResolverSettings:
    """Locations and limits used while resolving a distribution."""

    cache_dir: Path = field(default_factory=lambda: Path(DEFAULT_CACHE_DIR))
    """Persistent, user-scoped directory for cached archives"""

    build_output_dir: Path = field(default_factory=lambda: Path(DEFAULT_BUILD_OUTPUT_DIR))
    """Build output area holding staging and extraction directories"""

    url_template: str = MAVEN_3_URL_TEMPLATE
    """Download URL template with a %version% placeholder"""

    default_version: str = DEFAULT_MAVEN_VERSION
    """Version used by use_default_distribution()"""

    max_attempts: int = MAX_DOWNLOAD_ATTEMPTS
    """Total number of transfer attempts per fetch"""

    poll_interval: float = DOWNLOAD_POLL_INTERVAL
    """Seconds between progress ticks while awaiting a transfer"""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """HTTP connect/read timeout in seconds"""

    @property
    def target_root(self) -> Path:
        return self.build_output_dir / TARGET_DIR_NAME

    @property
    def ephemeral_dir(self) -> Path:
        return self.target_root / DOWNLOADED_DIR_NAME

    def staging_dir(self, use_cache: bool) -> Path:
        """Return the persistent cache dir when caching, else the per-build staging dir."""
        return self.cache_dir if use_cache else self.ephemeral_dir

    def extraction_dir(self, digest: str) -> Path:
        return self.target_root / digest

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ResolverSettings":
        """
        Build settings from a configuration mapping.

        Recognized keys are CACHE_DIR, BUILD_OUTPUT_DIR, URL_TEMPLATE,
        DEFAULT_MAVEN_VERSION, MAX_DOWNLOAD_ATTEMPTS, DOWNLOAD_POLL_INTERVAL and
        REQUEST_TIMEOUT. Unknown keys are ignored.

        Raises:
            ConfigurationError: If a recognized key holds a value of the wrong type.
        """
        cache_dir = _get_str(config, "CACHE_DIR", DEFAULT_CACHE_DIR)
        build_output_dir = _get_str(config, "BUILD_OUTPUT_DIR", DEFAULT_BUILD_OUTPUT_DIR)
        return cls(
            cache_dir=Path(os.path.expanduser(cache_dir)),
            build_output_dir=Path(os.path.expanduser(build_output_dir)),
            url_template=_get_str(config, "URL_TEMPLATE", MAVEN_3_URL_TEMPLATE),
            default_version=_get_str(config, "DEFAULT_MAVEN_VERSION", DEFAULT_MAVEN_VERSION),
            max_attempts=_get_int(config, "MAX_DOWNLOAD_ATTEMPTS", MAX_DOWNLOAD_ATTEMPTS),
            poll_interval=_get_float(
                config, "DOWNLOAD_POLL_INTERVAL", DOWNLOAD_POLL_INTERVAL
            ),
            request_timeout=_get_float(config, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        )

    @classmethod
    def load(cls, path: Optional[Pathish] = None) -> "ResolverSettings":
        """Load settings from the configuration file (defaults when absent)."""
        return cls.from_config(load_config(path))
