"""History store contract used by the snapshot, restore and repair engine.

Any backend implementing :class:`HistoryStore` can hold a project's history.
All operations are blocking and may fail; failures surface as
:class:`worktrail.errors.StoreError` (or ``CommitError`` for commits), never as
a result inferred from message text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

CommitStatus = Literal["committed", "no_op"]


@dataclass(frozen=True)
class LogEntry:
    hash: str
    message: str
    date: datetime
    parent: str | None = None


@dataclass(frozen=True)
class CommitResult:
    """Tagged commit outcome: a new commit, or nothing to commit."""

    status: CommitStatus
    commit_id: str | None = None

    @property
    def committed(self) -> bool:
        return self.status == "committed"

    @classmethod
    def no_op(cls) -> CommitResult:
        return cls(status="no_op")


@dataclass(frozen=True)
class FileStat:
    path: str
    insertions: int
    deletions: int
    binary: bool = False


@dataclass
class DiffSummary:
    files: list[FileStat] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.files)

    @property
    def insertions(self) -> int:
        return sum(f.insertions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)


@dataclass
class StoreStatus:
    staged: list[str] = field(default_factory=list)
    unstaged: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.staged or self.unstaged or self.untracked)


@runtime_checkable
class HistoryStore(Protocol):
    """Primitive set required from a versioned-object-store backend."""

    @property
    def root(self) -> Path: ...

    @property
    def metadata_dir(self) -> Path: ...

    def init(self) -> None: ...

    def is_valid_store(self) -> bool: ...

    def status(self) -> StoreStatus: ...

    def log(self, max_count: int | None = None) -> list[LogEntry]: ...

    def stage(self, pathspec: str = ".") -> None: ...

    def commit(self, message: str) -> CommitResult: ...

    def diff(self, range_spec: str) -> str: ...

    def diff_summary(self, hash_a: str, hash_b: str) -> DiffSummary: ...

    def read_blob(self, commit_hash: str, path: str) -> bytes | None: ...

    def checkout(self, commit_hash: str) -> None: ...

    def clone_to(self, destination: Path) -> HistoryStore: ...

    def hard_reset_to_head(self) -> None: ...

    def clean_untracked(self) -> list[str]: ...
