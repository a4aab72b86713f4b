"""Async facade over the snapshot engine, one instance per project.

Every blocking filesystem and store call runs in a worker thread. Mutating
operations on one project are serialized by a lock owned by its engine, so
rapid repeated commands cannot interleave captures, restores and repairs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from worktrail.config.settings import settings
from worktrail.core.project import ProjectContext
from worktrail.errors import IntegrityError, StoreError, ValidationError
from worktrail.services.analysis import ChangeStats
from worktrail.services.guardian import ConfirmCallback, HealthReport, IntegrityGuardian
from worktrail.services.restore import RestoreResult, RestoreSynchronizer
from worktrail.services.snapshots import (
    CaptureResult,
    SnapshotCoordinator,
    resolve_snapshot,
)
from worktrail.services.summarizer import (
    NO_CHANGES_RISK,
    NO_CHANGES_SUMMARY,
    ChangeSummarizer,
    ChangeSummary,
)
from worktrail.services.timeline import (
    TimelineEntry,
    build_timeline,
    compare_snapshots,
    file_at,
    file_diff,
)
from worktrail.utils.logger import get_logger

logger = get_logger("engine")

T = TypeVar("T")


class ProjectEngine:
    def __init__(
        self,
        context: ProjectContext,
        summarizer_factory: Callable[[], ChangeSummarizer] | None = None,
    ):
        self.context = context
        self.guardian = IntegrityGuardian(context.store)
        self.coordinator = SnapshotCoordinator(context, self.guardian)
        self.restorer = RestoreSynchronizer(context, self.guardian, self.coordinator)
        self._summarizer_factory = summarizer_factory or (
            lambda: ChangeSummarizer.from_settings(settings)
        )
        self._lock = asyncio.Lock()

    @property
    def store(self):
        return self.context.store

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ---- mutating operations ----
    async def capture(
        self, prompt: str | None = None, confirm: ConfirmCallback | None = None
    ) -> CaptureResult:
        async with self._lock:
            return await asyncio.to_thread(self.coordinator.capture, prompt, confirm)

    async def restore(
        self, target: str, confirm: ConfirmCallback | None = None
    ) -> RestoreResult:
        async with self._lock:
            return await asyncio.to_thread(self.restorer.restore, target, confirm)

    async def repair(self) -> HealthReport:
        async with self._lock:
            return await asyncio.to_thread(self.guardian.repair)

    async def check_health(self) -> HealthReport:
        async with self._lock:
            return await asyncio.to_thread(self.guardian.check)

    # ---- read operations ----
    async def _read(self, func: Callable[..., T], *args: Any) -> T:
        if not self.store.root.exists():
            raise ValidationError("No snapshots have been taken for this project yet")
        try:
            return await asyncio.to_thread(func, *args)
        except StoreError as exc:
            logger.error(
                "History store read failed",
                project=self.context.identity.key,
                error=str(exc),
            )
            raise IntegrityError(
                f"History store could not be read: {exc}. Run repair and try again."
            ) from exc

    async def timeline(self, max_count: int | None = None) -> list[TimelineEntry]:
        if not self.store.root.exists():
            return []
        return await self._read(build_timeline, self.store, max_count)

    def _diff_text(self, older: str, newer: str) -> str:
        older_hash = resolve_snapshot(self.store, older).hash
        newer_hash = resolve_snapshot(self.store, newer).hash
        return self.store.diff(f"{older_hash}..{newer_hash}")

    async def diff_stats(self, older: str, newer: str) -> ChangeStats:
        return await self._read(compare_snapshots, self.store, older, newer)

    async def diff_text(self, older: str, newer: str) -> str:
        return await self._read(self._diff_text, older, newer)

    async def file_at(self, snapshot: str, path: str) -> bytes:
        return await self._read(file_at, self.store, snapshot, path)

    async def file_diff(self, older: str, newer: str, path: str) -> str:
        return await self._read(file_diff, self.store, older, newer, path)

    async def summarize(self, older: str, newer: str) -> ChangeSummary:
        diff_text = await self.diff_text(older, newer)
        if not diff_text.strip():
            return ChangeSummary(summary=NO_CHANGES_SUMMARY, risk=NO_CHANGES_RISK)
        summarizer = self._summarizer_factory()
        return await summarizer.summarize(diff_text)


_engines: dict[str, ProjectEngine] = {}


def get_engine(
    workspace: str | Path,
    home: Path | None = None,
    ignore_patterns: list[str] | tuple[str, ...] | None = None,
) -> ProjectEngine:
    """Return the engine for ``workspace``, creating it on first use."""
    context = ProjectContext.open(workspace, home=home, ignore_patterns=ignore_patterns)
    key = str(context.store_root)
    engine = _engines.get(key)
    if engine is None:
        engine = ProjectEngine(context)
        _engines[key] = engine
        logger.debug("Engine created", project=context.identity.key)
    return engine


def reset_engines() -> None:
    _engines.clear()
