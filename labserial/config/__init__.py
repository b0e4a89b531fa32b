"""
Configuration loading module.

Provides centralized access to all configuration values from defaults.json.
"""

from .loader import (
    get_config,
    reload_config,
    InstrumentConfig,
    ConfigurationError,
    viper_config,
)

__all__ = [
    "get_config",
    "reload_config",
    "InstrumentConfig",
    "ConfigurationError",
    "viper_config",
]
