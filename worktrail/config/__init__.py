"""Configuration module for WorkTrail."""

from .defaults import DEFAULT_IGNORE_PATTERNS, get_default_config
from .manager import ConfigManager, create_config_manager
from .providers import LocalFileConfigProvider
from .schema import ConfigValidationError
from .settings import Settings, settings

__all__ = [
    "settings",
    "Settings",
    "ConfigManager",
    "ConfigValidationError",
    "create_config_manager",
    "LocalFileConfigProvider",
    "DEFAULT_IGNORE_PATTERNS",
    "get_default_config",
]
