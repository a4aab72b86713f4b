"""Change analysis between adjacent snapshots.

Turns per-file insertion/deletion counts from the store into classified
change records and a one-line human summary. Everything here is derived data,
recomputed on demand and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from worktrail.store.adapter import DiffSummary, HistoryStore


class ChangeStatus(str, Enum):
    """Status of a file change between two snapshots."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


def classify(insertions: int, deletions: int) -> ChangeStatus:
    """Classify a file from its line counts.

    Binary files report zero counts and therefore classify as modified.
    """
    if insertions > 0 and deletions == 0:
        return ChangeStatus.ADDED
    if insertions == 0 and deletions > 0:
        return ChangeStatus.DELETED
    return ChangeStatus.MODIFIED


def describe_file_change(insertions: int, deletions: int) -> str:
    """Short label for a file picker entry."""
    if insertions > 0 and deletions == 0:
        return "Added"
    if insertions == 0 and deletions > 0:
        return "Deleted"
    if insertions > 0 and deletions > 0:
        return "Modified"
    return "Changed"


@dataclass(frozen=True)
class FileChangeRecord:
    filename: str
    lines_added: int
    lines_removed: int
    status: ChangeStatus
    binary: bool = False

    @property
    def description(self) -> str:
        return describe_file_change(self.lines_added, self.lines_removed)


@dataclass
class ChangeStats:
    files_changed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    file_details: list[FileChangeRecord] = field(default_factory=list)

    def count(self, status: ChangeStatus) -> int:
        return sum(1 for record in self.file_details if record.status == status)


def stats_from_summary(summary: DiffSummary) -> ChangeStats:
    records = [
        FileChangeRecord(
            filename=stat.path,
            lines_added=stat.insertions,
            lines_removed=stat.deletions,
            status=classify(stat.insertions, stat.deletions),
            binary=stat.binary,
        )
        for stat in summary.files
    ]
    return ChangeStats(
        files_changed=len(records),
        lines_added=sum(r.lines_added for r in records),
        lines_removed=sum(r.lines_removed for r in records),
        file_details=records,
    )


def compute_change_stats(
    store: HistoryStore, older_hash: str | None, newer_hash: str
) -> ChangeStats:
    """Change statistics from ``older_hash`` to ``newer_hash``.

    The first snapshot has nothing to compare against and reports zero.
    """
    if not older_hash:
        return ChangeStats()
    return stats_from_summary(store.diff_summary(older_hash, newer_hash))


def _plural(count: int) -> str:
    return "file" if count == 1 else "files"


def summarize_changes(stats: ChangeStats, has_prior: bool = True) -> str:
    """One-line summary, e.g. ``"Added 1 file, Modified 2 files"``."""
    if not has_prior or (stats.files_changed == 0 and not stats.file_details):
        return "No specific changes detected"

    parts: list[str] = []
    for label, status in (
        ("Added", ChangeStatus.ADDED),
        ("Modified", ChangeStatus.MODIFIED),
        ("Deleted", ChangeStatus.DELETED),
    ):
        count = stats.count(status)
        if count:
            parts.append(f"{label} {count} {_plural(count)}")

    if not parts:
        return "Files changed"
    return ", ".join(parts)
