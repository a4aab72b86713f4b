"""Read-only views over a project's snapshot history."""

from __future__ import annotations

import difflib
from dataclasses import dataclass

from worktrail.errors import StoreError
from worktrail.services.analysis import (
    ChangeStats,
    FileChangeRecord,
    compute_change_stats,
    summarize_changes,
)
from worktrail.services.snapshots import SnapshotDescriptor, resolve_snapshot
from worktrail.store.adapter import HistoryStore
from worktrail.utils.logger import get_logger

logger = get_logger("timeline")


@dataclass(frozen=True)
class TimelineEntry:
    snapshot: SnapshotDescriptor
    previous_hash: str | None
    stats: ChangeStats
    summary: str


def build_timeline(
    store: HistoryStore, max_count: int | None = None
) -> list[TimelineEntry]:
    """Snapshots newest first, each with change stats against its predecessor.

    A snapshot whose diff cannot be computed is listed with zero stats.
    """
    timeline: list[TimelineEntry] = []
    for entry in store.log(max_count=max_count):
        try:
            stats = compute_change_stats(store, entry.parent, entry.hash)
        except StoreError as exc:
            logger.warning(
                "Failed to compute change stats",
                commit_id=entry.hash[:8],
                error=str(exc),
            )
            stats = ChangeStats()
        timeline.append(
            TimelineEntry(
                snapshot=SnapshotDescriptor.from_log(entry),
                previous_hash=entry.parent,
                stats=stats,
                summary=summarize_changes(stats, has_prior=entry.parent is not None),
            )
        )
    return timeline


def compare_snapshots(store: HistoryStore, older: str, newer: str) -> ChangeStats:
    """Change stats between two snapshot references (full hash or prefix)."""
    older_entry = resolve_snapshot(store, older)
    newer_entry = resolve_snapshot(store, newer)
    return compute_change_stats(store, older_entry.hash, newer_entry.hash)


def changed_files(
    store: HistoryStore, older: str, newer: str
) -> list[FileChangeRecord]:
    return compare_snapshots(store, older, newer).file_details


def file_at(store: HistoryStore, snapshot: str, path: str) -> bytes:
    """File content at a snapshot; empty when the file does not exist there.

    Raises:
        ValidationError: the snapshot is unknown.
    """
    entry = resolve_snapshot(store, snapshot)
    return store.read_blob(entry.hash, path) or b""


def file_diff(store: HistoryStore, older: str, newer: str, path: str) -> str:
    """Unified diff of one file between two snapshots."""
    old_data = file_at(store, older, path)
    new_data = file_at(store, newer, path)
    if old_data == new_data:
        return ""
    if b"\x00" in old_data[:8192] or b"\x00" in new_data[:8192]:
        return f"Binary files a/{path} and b/{path} differ\n"

    old_lines = old_data.decode("utf-8", errors="replace").splitlines(keepends=True)
    new_lines = new_data.decode("utf-8", errors="replace").splitlines(keepends=True)
    return "".join(
        difflib.unified_diff(
            old_lines,
            new_lines,
            fromfile=f"a/{path}" if old_data else "/dev/null",
            tofile=f"b/{path}" if new_data else "/dev/null",
        )
    )
