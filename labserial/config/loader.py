"""
Centralized configuration loader.

Loads instrument configuration from defaults.json with override chain:
1. Bundled copy (shipped inside the package, always the base)
2. User file (~/.labserial/defaults.json), merged over the bundled copy
3. File named by $LABSERIAL_CONFIG, merged last

Line-discipline settings, end-of-line bytes, timeouts and legal value ranges
for each instrument family live in this file, so a lab with a reconfigured
instrument only has to edit JSON.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_logger = logging.getLogger(__name__)

CONFIG_ENV = "LABSERIAL_CONFIG"


class ConfigurationError(Exception):
    """Raised when configuration cannot be loaded."""
    pass


# Singleton cache for loaded config
_config_cache: Optional[Dict[str, Any]] = None


def get_user_path() -> Path:
    """Get path of the per-user override file."""
    return Path.home() / ".labserial" / "defaults.json"


def get_bundled_path() -> Path:
    """Get path to bundled defaults.json."""
    return Path(__file__).parent / "defaults.json"


def deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge override dict into base dict.

    Args:
        base: Base dictionary
        override: Dictionary with values to override

    Returns:
        New merged dictionary (base is not modified)
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_json_file(path: Path) -> Optional[Dict[str, Any]]:
    """
    Load a JSON config file.

    Returns:
        Config dict if the file exists and parses, None otherwise
    """
    if not path.exists():
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        _logger.warning(f"Failed to parse config {path}: {e}")
        return None
    except OSError as e:
        _logger.warning(f"Failed to read config {path}: {e}")
        return None
    if not isinstance(data, dict):
        _logger.warning(f"Ignoring config {path}: top level is not an object")
        return None
    _logger.debug(f"Loaded config {path} version: {data.get('version', 'unknown')}")
    return data


def load_full_config() -> Dict[str, Any]:
    """
    Load full config with override chain.

    Raises:
        ConfigurationError: If the bundled defaults.json is missing or invalid
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    config = load_json_file(get_bundled_path())
    if not config:
        raise ConfigurationError(
            "No configuration available. Bundled defaults.json not found."
        )

    user = load_json_file(get_user_path())
    if user:
        _logger.info(f"Using user config overrides from {get_user_path()}")
        config = deep_merge(config, user)

    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        override = load_json_file(Path(env_path))
        if override is None:
            raise ConfigurationError(
                f"{CONFIG_ENV} points to {env_path}, which could not be loaded."
            )
        _logger.info(f"Using config overrides from {env_path}")
        config = deep_merge(config, override)

    _config_cache = config
    return config


def get_config() -> Dict[str, Any]:
    """
    Get the full configuration dict.

    Loads config on first call, returns cached copy on subsequent calls.
    """
    return load_full_config()


def reload_config() -> Dict[str, Any]:
    """
    Force reload config from source (useful for testing).

    Returns:
        Freshly loaded config dict
    """
    global _config_cache
    _config_cache = None
    return load_full_config()


class InstrumentConfig:
    """
    Type-safe accessor for one instrument section of the configuration.

    All properties lazily load from the singleton config cache, so
    reload_config() is picked up by existing instances.
    """

    def __init__(self, section: str):
        self.section = section

    def _get_section(self) -> Dict[str, Any]:
        """Get this instrument's section of config."""
        try:
            return get_config()[self.section]
        except KeyError:
            raise ConfigurationError(f"No '{self.section}' section in configuration")

    def __getitem__(self, key: str) -> Any:
        try:
            return self._get_section()[key]
        except KeyError:
            raise ConfigurationError(f"Missing '{self.section}.{key}' in configuration")

    def get(self, key: str, default: Any = None) -> Any:
        return self._get_section().get(key, default)

    @property
    def raw(self) -> Dict[str, Any]:
        """The whole section as a dict."""
        return self._get_section()

    @property
    def line_settings(self) -> List[str]:
        """stty options applied to the device file when the port opens."""
        return list(self["line_settings"])

    @property
    def eol(self) -> str:
        """End-of-line character terminating commands and replies."""
        eol = self["eol"]
        if isinstance(eol, int):
            return chr(eol)
        if len(eol) != 1:
            raise ConfigurationError(
                f"'{self.section}.eol' must be a single character, got {eol!r}"
            )
        return eol

    @property
    def timeout(self) -> float:
        """Read timeout in seconds."""
        return float(self["timeout_s"])

    @property
    def identification(self) -> Dict[str, Any]:
        """Identification handshake parameters."""
        return self["identification"]

    @property
    def limits(self) -> Dict[str, Tuple[float, float]]:
        """Legal [low, high] interval per settable property."""
        return {name: (bounds[0], bounds[1]) for name, bounds in self.get("limits", {}).items()}


# Shared accessor for the one driver that has no serial port
viper_config = InstrumentConfig("viper")
