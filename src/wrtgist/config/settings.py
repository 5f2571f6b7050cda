"""
Configuration settings management for wrtgist.

This module handles loading and validating configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.wrtgist/config.yaml by default, with the
path overridable via the WRTGIST_CONFIG environment variable. Secrets
(access token, encryption password) never live here; see credentials.py.
"""

import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".wrtgist"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_DESCRIPTION_MARKER = "OpenWrt Config Backup - Encrypted"
DEFAULT_ENCRYPTED_SUFFIX = ".enc"
DEFAULT_FILENAME_PREFIX = "openwrt_config"

SCHEME_CHACHA20_POLY1305 = "chacha20-poly1305"
SCHEME_OPENSSL_CHACHA20 = "openssl-chacha20-pbkdf2"

# Iteration defaults per scheme. The OpenSSL value matches the
# `openssl enc -pbkdf2 -iter 100000` command line used on routers.
SCHEME_DEFAULT_ITERATIONS = {
    SCHEME_CHACHA20_POLY1305: 600_000,
    SCHEME_OPENSSL_CHACHA20: 100_000,
}
MIN_ITERATIONS = 1_000


@dataclass
class GistConfig:
    """Gist Store addressing and transport settings."""

    api_url: str = DEFAULT_API_URL
    gist_id: str = ""
    description_marker: str = DEFAULT_DESCRIPTION_MARKER
    encrypted_suffix: str = DEFAULT_ENCRYPTED_SUFFIX
    filename_prefix: str = DEFAULT_FILENAME_PREFIX
    request_timeout: float = 30.0
    max_retries: int = 2


@dataclass
class EncryptionConfig:
    """Cipher scheme selection."""

    scheme: str = SCHEME_CHACHA20_POLY1305
    # None means "use the scheme default"
    iterations: int | None = None

    @property
    def effective_iterations(self) -> int:
        """Iteration count actually used for key derivation."""
        if self.iterations is not None:
            return self.iterations
        return SCHEME_DEFAULT_ITERATIONS.get(self.scheme, MIN_ITERATIONS)


@dataclass
class DeviceConfig:
    """Router-side commands."""

    sysupgrade_command: str = "sysupgrade"


@dataclass
class Settings:
    """
    Complete wrtgist configuration settings.

    Settings are loaded from a YAML configuration file and can be overridden
    by environment variables prefixed with WRTGIST_.

    Attributes:
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        scratch_dir: Parent directory for the per-run scratch directory.
        gist: Gist Store settings.
        encryption: Cipher settings.
        device: Router command settings.
    """

    log_level: str = "INFO"
    scratch_dir: str = tempfile.gettempdir()

    gist: GistConfig = field(default_factory=GistConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from WRTGIST_CONFIG environment variable if set,
    otherwise returns the default path (~/.wrtgist/config.yaml).

    Returns:
        Path to the configuration file.
    """
    env_path = os.environ.get("WRTGIST_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.
    A missing file is not an error: defaults are used.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses WRTGIST_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    general = data.get("wrtgist") or {}

    if "log_level" in general:
        settings.log_level = str(general["log_level"]).upper()
    if "scratch_dir" in general:
        settings.scratch_dir = str(general["scratch_dir"])

    gist = data.get("gist") or {}
    if "api_url" in gist:
        settings.gist.api_url = str(gist["api_url"])
    if "gist_id" in gist:
        settings.gist.gist_id = str(gist["gist_id"] or "")
    if "description_marker" in gist:
        settings.gist.description_marker = str(gist["description_marker"])
    if "encrypted_suffix" in gist:
        settings.gist.encrypted_suffix = str(gist["encrypted_suffix"])
    if "filename_prefix" in gist:
        settings.gist.filename_prefix = str(gist["filename_prefix"])
    try:
        if "request_timeout" in gist:
            settings.gist.request_timeout = float(gist["request_timeout"])
        if "max_retries" in gist:
            settings.gist.max_retries = int(gist["max_retries"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid gist transport setting: {e}") from e

    encryption = data.get("encryption") or {}
    if "scheme" in encryption:
        settings.encryption.scheme = str(encryption["scheme"]).lower()
    if encryption.get("iterations") is not None:
        try:
            settings.encryption.iterations = int(encryption["iterations"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid iterations value: {e}") from e

    device = data.get("device") or {}
    if "sysupgrade_command" in device:
        settings.device.sysupgrade_command = str(device["sysupgrade_command"])

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "WRTGIST_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "WRTGIST_SCRATCH_DIR": ("scratch_dir", str),
        "WRTGIST_API_URL": ("gist.api_url", str),
        "WRTGIST_REQUEST_TIMEOUT": ("gist.request_timeout", float),
        "WRTGIST_MAX_RETRIES": ("gist.max_retries", int),
        "WRTGIST_ENCRYPTION_SCHEME": ("encryption.scheme", lambda x: x.lower()),
        "WRTGIST_ITERATIONS": ("encryption.iterations", int),
        "WRTGIST_SYSUPGRADE_COMMAND": ("device.sysupgrade_command", str),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None and value != "":
            try:
                converted = converter(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e
            _set_nested_attr(settings, attr_path, converted)

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.encryption.scheme not in SCHEME_DEFAULT_ITERATIONS:
        raise ConfigurationError(
            f"Invalid encryption scheme: {settings.encryption.scheme}. "
            f"Must be one of: {', '.join(SCHEME_DEFAULT_ITERATIONS)}"
        )

    if settings.encryption.effective_iterations < MIN_ITERATIONS:
        raise ConfigurationError(f"iterations must be at least {MIN_ITERATIONS}")

    if not settings.gist.encrypted_suffix:
        raise ConfigurationError("encrypted_suffix must not be empty")

    if not settings.gist.description_marker:
        raise ConfigurationError("description_marker must not be empty")

    if settings.gist.request_timeout <= 0:
        raise ConfigurationError("request_timeout must be positive")

    if settings.gist.max_retries < 0:
        raise ConfigurationError("max_retries must not be negative")
