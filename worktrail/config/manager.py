"""In-memory view of config.json with change notifications."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from worktrail.config.constants import CONFIG_FILENAME
from worktrail.config.providers import ConfigCallback, LocalFileConfigProvider
from worktrail.config.schema import deep_merge
from worktrail.utils.logger import get_logger

logger = get_logger("config.manager")


class ConfigManager:
    """Holds the current configuration and tells listeners when it changes.

    Changes arrive either from the file watcher or from ``update``; both paths
    end in the same callbacks. A failing callback is logged and skipped so the
    remaining listeners still run.
    """

    def __init__(self, provider: LocalFileConfigProvider):
        self.provider = provider
        self._config: dict[str, Any] = {}
        self._listeners: list[ConfigCallback] = []

    async def initialize(self) -> None:
        self._config = await self.provider.load()
        logger.info("Configuration initialized", path=str(self.provider.config_path))

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_all(self) -> dict[str, Any]:
        return dict(self._config)

    async def update(self, updates: dict[str, Any]) -> None:
        """Merge ``updates`` into the file's own values and persist them."""
        merged = deep_merge(self.provider.user_config, updates)
        self._apply(await self.provider.save(merged))

    def register_change_callback(self, callback: ConfigCallback) -> None:
        self._listeners.append(callback)

    async def start_watching(self) -> None:
        await self.provider.watch(self._apply)

    async def stop_watching(self) -> None:
        await self.provider.stop_watching()

    def _apply(self, config: dict[str, Any]) -> None:
        changed = sorted(
            key
            for key in self._config.keys() | config.keys()
            if self._config.get(key) != config.get(key)
        )
        self._config = config
        if not changed:
            logger.debug("Configuration unchanged")
            return
        logger.info("Configuration changed", changed_keys=changed)
        for listener in self._listeners:
            try:
                listener(dict(config))
            except Exception as exc:
                logger.error(
                    "Config change listener failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(exc),
                )


def create_config_manager(
    home_dir: Path, *, defaults: dict[str, Any] | None = None
) -> ConfigManager:
    """Manager for ``<home_dir>/config.json``; call ``initialize`` before use."""
    return ConfigManager(
        LocalFileConfigProvider(home_dir / CONFIG_FILENAME, defaults=defaults)
    )
