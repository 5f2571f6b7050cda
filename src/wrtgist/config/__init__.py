"""
Configuration management for wrtgist.

This module handles loading and validating configuration settings,
and reading the secrets the procedures need from the environment.
"""

from wrtgist.config.credentials import (
    CredentialError,
    Credentials,
    MissingCredentialError,
    load_credentials,
)
from wrtgist.config.settings import (
    ConfigurationError,
    Settings,
    load_config,
)

__all__ = [
    # Settings
    "Settings",
    "load_config",
    "ConfigurationError",
    # Credentials
    "Credentials",
    "CredentialError",
    "MissingCredentialError",
    "load_credentials",
]
