"""The JSON config file under the WorkTrail home, with hot reload."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from worktrail.config.schema import ConfigValidationError, deep_merge, validate_config
from worktrail.utils.logger import get_logger

logger = get_logger("config.providers")

ConfigCallback = Callable[[dict[str, Any]], None]

RELOAD_EVENTS = ("created", "modified", "moved")


class _ReloadHandler(FileSystemEventHandler):
    """Schedules a reload on the provider's loop when config.json changes.

    Atomic saves (write a temp file, then rename) arrive as a move whose
    destination is the config file.
    """

    def __init__(
        self, provider: LocalFileConfigProvider, loop: asyncio.AbstractEventLoop
    ):
        self.provider = provider
        self.loop = loop
        self.target = provider.config_path.resolve()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELOAD_EVENTS:
            return
        changed = getattr(event, "dest_path", "") or event.src_path
        if Path(str(changed)).resolve() != self.target:
            return
        if not self.provider.changed_since_last_read() or self.loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self.provider.reload(), self.loop)


class LocalFileConfigProvider:
    """``config.json`` merged over the defaults and validated on every read.

    A file that cannot be read or is not valid JSON never takes the process
    down: the last configuration that loaded cleanly is served instead, or the
    defaults before the first good read. A file that parses but does not pass
    validation raises ``ConfigValidationError``.
    """

    def __init__(self, config_path: Path, defaults: dict[str, Any] | None = None):
        self.config_path = Path(config_path)
        self.defaults: dict[str, Any] = dict(defaults or {})
        self.user_config: dict[str, Any] = {}
        self._last_good: dict[str, Any] | None = None
        self._mtime: float | None = None
        self._observer: Any = None
        self._callback: ConfigCallback | None = None

    def changed_since_last_read(self) -> bool:
        try:
            return self.config_path.stat().st_mtime != self._mtime
        except FileNotFoundError:
            return False

    async def load(self) -> dict[str, Any]:
        if not self.config_path.exists():
            logger.info(
                "Config file not found, creating with defaults",
                path=str(self.config_path),
            )
            return await self.save({})

        try:
            raw = json.loads(self.config_path.read_text(encoding="utf-8"))
            self._mtime = self.config_path.stat().st_mtime
        except json.JSONDecodeError as exc:
            logger.error(
                "Invalid JSON syntax in config file",
                path=str(self.config_path),
                line=exc.lineno,
                column=exc.colno,
            )
            return self._fallback()
        except OSError as exc:
            logger.error(
                "Failed to read config file", path=str(self.config_path), error=str(exc)
            )
            return self._fallback()

        if not isinstance(raw, dict):
            raise ConfigValidationError(["config: must be a JSON object"])
        config = validate_config(deep_merge(self.defaults, raw))
        self.user_config = raw
        self._last_good = config
        logger.debug("Config loaded", path=str(self.config_path))
        return dict(config)

    def _fallback(self) -> dict[str, Any]:
        source = "last valid config" if self._last_good is not None else "defaults"
        logger.warning("Keeping previous configuration", using=source)
        return dict(self._last_good if self._last_good is not None else self.defaults)

    async def save(self, user_config: dict[str, Any]) -> dict[str, Any]:
        """Validate and atomically write ``user_config`` over the defaults.

        Returns:
            The merged configuration that was written.
        """
        config = validate_config(deep_merge(self.defaults, user_config))
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.config_path.with_name(self.config_path.name + ".tmp")
        tmp_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        tmp_path.replace(self.config_path)

        self._mtime = self.config_path.stat().st_mtime
        self.user_config = config
        self._last_good = config
        logger.debug("Config saved", path=str(self.config_path))
        return dict(config)

    async def reload(self) -> None:
        try:
            config = await self.load()
        except ConfigValidationError as exc:
            logger.error("Ignoring invalid config file change", errors=exc.errors)
            return
        if self._callback is not None:
            self._callback(config)

    async def watch(self, callback: ConfigCallback) -> None:
        """Call ``callback`` with the new configuration after each file change."""
        self._callback = callback
        handler = _ReloadHandler(self, asyncio.get_running_loop())
        # Watch the directory; single-file watches miss atomic replaces
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.config_path.parent), recursive=False)
        self._observer.start()
        logger.info("Watching config file", path=str(self.config_path))

    async def stop_watching(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        await asyncio.to_thread(observer.join, 1.0)
        logger.info("Stopped watching config file")
