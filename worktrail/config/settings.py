"""Configuration settings for WorkTrail.

This module provides a Settings class that wraps the ConfigManager,
providing property-based access to configuration values with hot-reload support.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from worktrail.config.constants import DEFAULT_HOME_DIRNAME
from worktrail.config.defaults import DEFAULT_IGNORE_PATTERNS
from worktrail.config.manager import ConfigManager


class Settings:
    """Application settings with hot-reload support.

    Values come from the ConfigManager when one is attached, otherwise from
    environment variables, otherwise from built-in defaults.
    """

    def __init__(self, config_manager: ConfigManager | None = None):
        self._config_manager = config_manager

    def attach(self, config_manager: ConfigManager) -> None:
        self._config_manager = config_manager

    def _get(
        self,
        key: str,
        default: Any,
        env_key: str | None = None,
    ) -> Any:
        """Get config value from manager, fallback to env, then default."""
        if self._config_manager:
            # Support dot-path lookup for nested sections
            if "." in key:
                cfg_obj: object = self._config_manager.get_all()
                for part in key.split("."):
                    if isinstance(cfg_obj, dict) and part in cfg_obj:
                        cfg_obj = cfg_obj[part]
                    else:
                        cfg_obj = None
                        break
                if cfg_obj is not None:
                    return cfg_obj
            else:
                value = self._config_manager.get(key)
                if value is not None:
                    return value
        # Fallback to environment variable
        if env_key and (env_val := os.getenv(env_key)):
            # Type conversion based on default type
            if isinstance(default, bool):
                return env_val.lower() in ("true", "1", "yes")
            elif isinstance(default, int):
                return int(env_val)
            elif isinstance(default, float):
                return float(env_val)
            return env_val
        return default

    # Storage
    @property
    def home(self) -> Path:
        """Root directory for config.json and every per-project store."""
        env_home = os.getenv("WORKTRAIL_HOME")
        if env_home:
            return Path(env_home).expanduser()
        return Path.home() / DEFAULT_HOME_DIRNAME

    @property
    def ignore_patterns(self) -> tuple[str, ...]:
        patterns = self._get("ignore_patterns", None)
        if not isinstance(patterns, list) or not patterns:
            return tuple(DEFAULT_IGNORE_PATTERNS)
        return tuple(patterns)

    @property
    def verify_snapshots(self) -> bool:
        return self._get("verify_snapshots", True, "WORKTRAIL_VERIFY_SNAPSHOTS")

    # Change summarizer
    @property
    def summarizer_model(self) -> str:
        return self._get("summarizer.model", "gpt-4o-mini", "WORKTRAIL_SUMMARY_MODEL")

    @property
    def summarizer_api_key(self) -> str | None:
        return self._get("summarizer.api_key", None, "OPENAI_API_KEY")

    @property
    def summarizer_base_url(self) -> str | None:
        return self._get("summarizer.base_url", None, "OPENAI_BASE_URL")

    @property
    def summarizer_max_tokens(self) -> int:
        return self._get("summarizer.max_tokens", 300)

    @property
    def summarizer_temperature(self) -> float:
        return self._get("summarizer.temperature", 0.3)

    @property
    def summarizer_max_diff_chars(self) -> int:
        return self._get("summarizer.max_diff_chars", 8000)

    # Server Configuration
    @property
    def server_host(self) -> str:
        return self._get("server_host", "127.0.0.1", "SERVER_HOST")

    @property
    def server_port(self) -> int:
        return self._get("server_port", 8765, "SERVER_PORT")

    # Logging Configuration
    @property
    def log_format(self) -> str:
        return self._get("log_format", "pretty", "LOG_FORMAT")

    @property
    def log_colors(self) -> bool:
        return self._get("log_colors", True, "LOG_COLORS")


# Global settings instance (attached to a config manager at startup)
settings = Settings()
