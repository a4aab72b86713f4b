"""History store backed by a private, non-bare git repository.

Note: This module uses dulwich (pure Python git implementation) for all git
operations. Git binary is not required - everything works through dulwich API.

Layout of a store::

    ~/.worktrail/<name>_<digest>/
        .git/          metadata, owned by this module and the repair path
        ...            mirrored copy of the workspace (ignore-filtered)

The index is always rebuilt from the mirrored tree when staging, so files
removed from the workspace are staged as deletions without a separate pass.
"""

from __future__ import annotations

import difflib
import functools
import io
import os
import shutil
import stat
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar, cast

from dulwich import porcelain
from dulwich.diff_tree import tree_changes
from dulwich.errors import (
    ChecksumMismatch,
    NotGitRepository,
    NotTreeError,
    ObjectFormatException,
)
from dulwich.index import index_entry_from_stat
from dulwich.objects import Blob, Commit, Tree, parse_timezone
from dulwich.patch import write_tree_diff
from dulwich.repo import Repo

from worktrail.config.constants import STORE_METADATA_DIRNAME
from worktrail.errors import CommitError, StoreError, WorkTrailError
from worktrail.store.adapter import (
    CommitResult,
    DiffSummary,
    FileStat,
    LogEntry,
    StoreStatus,
)
from worktrail.utils.logger import store_logger

T = TypeVar("T")

AUTHOR_NAME = b"WorkTrail Snapshots"
AUTHOR_EMAIL = b"snapshots@worktrail.local"
AUTHOR = AUTHOR_NAME + b" <" + AUTHOR_EMAIL + b">"

DEFAULT_HEAD = "ref: refs/heads/master\n"
DEFAULT_CONFIG = (
    "[core]\n"
    "\trepositoryformatversion = 0\n"
    "\tfilemode = true\n"
    "\tbare = false\n"
    "\tlogallrefupdates = true\n"
)

# Bytes inspected when deciding whether a blob is binary
BINARY_SNIFF_BYTES = 8192

_BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    KeyError,
    ValueError,
    NotGitRepository,
    NotTreeError,
    ObjectFormatException,
    ChecksumMismatch,
)


def _store_operation(
    name: str, error: type[WorkTrailError] = StoreError
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Re-raise backend failures of a store primitive as ``error``."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(self: DulwichHistoryStore, *args: Any, **kwargs: Any) -> T:
            try:
                return func(self, *args, **kwargs)
            except WorkTrailError:
                raise
            except _BACKEND_ERRORS as exc:
                store_logger.debug(
                    "Store operation failed",
                    operation=name,
                    store=str(self.root),
                    error=str(exc),
                )
                raise error(f"History store {name} failed: {exc}") from exc

        return wrapper

    return decorator


def _head_id(repo: Repo) -> bytes | None:
    try:
        return repo.refs[b"HEAD"]
    except KeyError:
        # No commits yet
        return None


def _collect_blobs(
    repo: Repo, tree_id: bytes, prefix: str = ""
) -> dict[str, tuple[int, bytes]]:
    """Recursively collect path -> (mode, blob sha) for every file in a tree."""
    files: dict[str, tuple[int, bytes]] = {}
    tree = cast(Tree, repo[tree_id])
    for name, mode, sha in tree.items():
        decoded_name = name.decode("utf-8")
        full_path = f"{prefix}/{decoded_name}" if prefix else decoded_name
        if stat.S_ISDIR(mode):
            files.update(_collect_blobs(repo, sha, full_path))
        else:
            files[full_path] = (mode, sha)
    return files


def _in_pathspec(path: str, pathspec: str | None) -> bool:
    if not pathspec or pathspec == ".":
        return True
    prefix = pathspec.strip("/")
    return path == prefix or path.startswith(prefix + "/")


def _split_range(range_spec: str) -> tuple[str | None, str]:
    spec = range_spec.strip()
    if ".." in spec:
        older, _, newer = spec.partition("..")
        return older.strip() or None, newer.strip()
    parts = spec.split()
    if len(parts) == 2:
        return parts[0], parts[1]
    return None, spec


def _is_binary(data: bytes) -> bool:
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


def _entry_sha(entry: Any) -> bytes | None:
    return getattr(entry, "sha", None) if entry is not None else None


def _entry_path(entry: Any) -> bytes | None:
    return getattr(entry, "path", None) if entry is not None else None


def _file_stat(path: str, old_data: bytes, new_data: bytes) -> FileStat:
    """Line insertions/deletions between two blob contents."""
    if _is_binary(old_data) or _is_binary(new_data):
        return FileStat(path=path, insertions=0, deletions=0, binary=True)

    old_lines = old_data.splitlines()
    new_lines = new_data.splitlines()
    insertions = deletions = 0
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            deletions += i2 - i1
        if tag in ("replace", "insert"):
            insertions += j2 - j1
    return FileStat(path=path, insertions=insertions, deletions=deletions)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _prune_empty_dirs(root: Path) -> None:
    """Remove empty directories below root, leaving the metadata subtree alone."""
    # Walk bottom-up so we delete child dirs before parents
    for dirpath, _dirs, _files in os.walk(root, topdown=False):
        current = Path(dirpath)
        if current == root:
            continue
        if current.relative_to(root).parts[0] == STORE_METADATA_DIRNAME:
            continue
        if not any(current.iterdir()):
            current.rmdir()


class DulwichHistoryStore:
    """Per-project history store isolated from the project's own git.

    - Non-bare repository at the store root; the working tree is the mirror
    - Linear history on the default branch, never rewritten
    - Does not touch the workspace or the user's own .git
    """

    def __init__(self, root: Path):
        self._root = Path(root)

    def __repr__(self) -> str:
        return f"DulwichHistoryStore({str(self._root)!r})"

    @property
    def root(self) -> Path:
        return self._root

    @property
    def metadata_dir(self) -> Path:
        return self._root / STORE_METADATA_DIRNAME

    # ---- repo management ----
    def _open(self) -> Repo:
        if not self.metadata_dir.is_dir():
            raise StoreError(
                f"History store metadata not found at {self.metadata_dir}"
            )
        if not (self.metadata_dir / "HEAD").is_file():
            raise StoreError(f"History store HEAD is missing in {self.metadata_dir}")
        try:
            return Repo(str(self._root))
        except (NotGitRepository, OSError, ValueError) as exc:
            raise StoreError(
                f"Cannot open history store at {self._root}: {exc}"
            ) from exc

    def _repair_skeleton(self) -> None:
        """Recreate missing repository scaffolding around existing objects."""
        git_dir = self.metadata_dir
        for sub in ("objects/info", "objects/pack", "refs/heads", "refs/tags", "info"):
            (git_dir / sub).mkdir(parents=True, exist_ok=True)
        head = git_dir / "HEAD"
        if not head.is_file():
            head.write_text(DEFAULT_HEAD)
        config = git_dir / "config"
        if not config.is_file():
            config.write_text(DEFAULT_CONFIG)

    @_store_operation("init")
    def init(self) -> None:
        """Create the store, or restore missing scaffolding of an existing one.

        Never touches mirrored files in the store root.
        """
        self._root.mkdir(parents=True, exist_ok=True)
        if self.metadata_dir.exists():
            self._repair_skeleton()
            repo = Repo(str(self._root))
        else:
            repo = Repo.init(str(self._root))

        with repo:
            cfg = repo.get_config()
            cfg.set((b"user",), b"name", AUTHOR_NAME)
            cfg.set((b"user",), b"email", AUTHOR_EMAIL)
            cfg.write_to_path()

        store_logger.info("History store initialized", store=str(self._root))

    def is_valid_store(self) -> bool:
        if not self.metadata_dir.is_dir():
            return False
        try:
            with self._open() as repo:
                head = _head_id(repo)
                if head is not None:
                    commit = cast(Commit, repo[head])
                    _ = repo[commit.tree]
            return True
        except (StoreError, *_BACKEND_ERRORS):
            return False

    def _tree_of(self, repo: Repo, commit_hash: str) -> bytes:
        commit = repo[commit_hash.strip().encode("ascii")]
        if not isinstance(commit, Commit):
            raise StoreError(f"{commit_hash} is not a snapshot")
        return commit.tree

    def _workdir_files(self) -> dict[str, Path]:
        """Map of posix relative path -> absolute path for the mirrored tree."""
        files: dict[str, Path] = {}
        for dirpath, dirnames, filenames in os.walk(self._root):
            current = Path(dirpath)
            if current == self._root:
                dirnames[:] = [d for d in dirnames if d != STORE_METADATA_DIRNAME]
            dirnames.sort()
            rel_dir = current.relative_to(self._root)
            for name in sorted(filenames):
                files[(rel_dir / name).as_posix()] = current / name
        return files

    def _rebuild_index(self, repo: Repo, files: dict[str, tuple[int, bytes]]) -> None:
        index = repo.open_index()
        index.clear()
        for rel, (mode, sha) in files.items():
            st = os.stat(self._root / rel)
            index[rel.encode("utf-8")] = index_entry_from_stat(st, sha, mode=mode)
        index.write()

    # ---- status and history ----
    @_store_operation("status")
    def status(self) -> StoreStatus:
        """Compare HEAD, index and mirrored tree. Fails if any is unreadable."""
        with self._open() as repo:
            head_files: dict[str, bytes] = {}
            head_id = _head_id(repo)
            if head_id is not None:
                head_commit = cast(Commit, repo[head_id])
                head_files = {
                    path: sha
                    for path, (_mode, sha) in _collect_blobs(
                        repo, head_commit.tree
                    ).items()
                }
            index = repo.open_index()
            index_files = {path.decode("utf-8"): index[path].sha for path in index}

        workdir = self._workdir_files()
        staged = sorted(
            path
            for path in head_files.keys() | index_files.keys()
            if head_files.get(path) != index_files.get(path)
        )
        unstaged = sorted(
            path
            for path, sha in index_files.items()
            if path not in workdir
            or Blob.from_string(workdir[path].read_bytes()).id != sha
        )
        untracked = sorted(workdir.keys() - index_files.keys())
        return StoreStatus(staged=staged, unstaged=unstaged, untracked=untracked)

    @_store_operation("log")
    def log(self, max_count: int | None = None) -> list[LogEntry]:
        """Snapshots on the current line of history, most recent first."""
        entries: list[LogEntry] = []
        with self._open() as repo:
            current = _head_id(repo)
            while current is not None:
                if max_count is not None and len(entries) >= max_count:
                    break
                commit = cast(Commit, repo[current])
                parent = commit.parents[0] if commit.parents else None
                entries.append(
                    LogEntry(
                        hash=current.decode("ascii"),
                        message=commit.message.decode("utf-8", errors="replace").rstrip(
                            "\n"
                        ),
                        date=datetime.fromtimestamp(commit.commit_time, UTC),
                        parent=parent.decode("ascii") if parent else None,
                    )
                )
                current = parent
        return entries

    # ---- recording ----
    @_store_operation("stage")
    def stage(self, pathspec: str = ".") -> None:
        """Make the index match the mirrored tree below ``pathspec``."""
        with self._open() as repo:
            index = repo.open_index()
            on_disk = {
                rel: path
                for rel, path in self._workdir_files().items()
                if _in_pathspec(rel, pathspec)
            }

            blobs: list[Blob] = []
            for rel, path in on_disk.items():
                blob = Blob.from_string(path.read_bytes())
                blobs.append(blob)
                index[rel.encode("utf-8")] = index_entry_from_stat(
                    os.stat(path), blob.id
                )

            stale = [
                name
                for name in index
                if _in_pathspec(name.decode("utf-8"), pathspec)
                and name.decode("utf-8") not in on_disk
            ]
            for name in stale:
                del index[name]

            if blobs:
                repo.object_store.add_objects([(blob, None) for blob in blobs])
            index.write()

        store_logger.debug(
            "Store staged",
            store=str(self._root),
            files=len(on_disk),
            removed=len(stale),
        )

    @_store_operation("commit", error=CommitError)
    def commit(self, message: str) -> CommitResult:
        """Record the index as a new snapshot.

        Returns a no-op result when the index tree equals HEAD's tree, or when
        the very first commit would be empty.
        """
        with self._open() as repo:
            index = repo.open_index()
            tree_id = index.commit(repo.object_store)
            head_id = _head_id(repo)

            if head_id is None:
                if len(index) == 0:
                    return CommitResult.no_op()
                parents: list[bytes] = []
            else:
                head_commit = cast(Commit, repo[head_id])
                if head_commit.tree == tree_id:
                    return CommitResult.no_op()
                parents = [head_id]

            commit: Commit = Commit()
            commit.tree = tree_id
            commit.parents = parents
            commit.author = commit.committer = AUTHOR
            commit.commit_time = commit.author_time = int(time.time())
            commit.commit_timezone = commit.author_timezone = parse_timezone(b"+0000")[
                0
            ]
            commit.message = message.encode("utf-8")

            repo.object_store.add_object(commit)
            repo.refs[b"HEAD"] = commit.id

        commit_id = commit.id.decode("ascii")
        store_logger.info(
            "Snapshot committed",
            store=str(self._root),
            commit_id=commit_id[:8],
            files=len(index),
        )
        return CommitResult(status="committed", commit_id=commit_id)

    # ---- reading ----
    @_store_operation("diff")
    def diff(self, range_spec: str) -> str:
        """Unified git-style diff for ``"older..newer"`` or a single snapshot."""
        older, newer = _split_range(range_spec)
        with self._open() as repo:
            new_tree = self._tree_of(repo, newer)
            old_tree: bytes | None
            if older is None:
                commit = cast(Commit, repo[newer.encode("ascii")])
                old_tree = (
                    cast(Commit, repo[commit.parents[0]]).tree
                    if commit.parents
                    else None
                )
            else:
                old_tree = self._tree_of(repo, older)

            buf = io.BytesIO()
            write_tree_diff(buf, repo.object_store, old_tree, new_tree)
        return buf.getvalue().decode("utf-8", errors="replace")

    @_store_operation("diff summary")
    def diff_summary(self, hash_a: str, hash_b: str) -> DiffSummary:
        """Per-file insertion/deletion counts from ``hash_a`` to ``hash_b``."""
        files: list[FileStat] = []
        with self._open() as repo:
            old_tree = self._tree_of(repo, hash_a)
            new_tree = self._tree_of(repo, hash_b)
            for change in tree_changes(repo.object_store, old_tree, new_tree):
                old_sha = _entry_sha(change.old)
                new_sha = _entry_sha(change.new)
                path = _entry_path(change.new) or _entry_path(change.old) or b""
                old_data = cast(Blob, repo[old_sha]).data if old_sha else b""
                new_data = cast(Blob, repo[new_sha]).data if new_sha else b""
                files.append(_file_stat(path.decode("utf-8"), old_data, new_data))
        return DiffSummary(files=files)

    @_store_operation("read")
    def read_blob(self, commit_hash: str, path: str) -> bytes | None:
        """File content at a snapshot, or None if the file is not in it."""
        with self._open() as repo:
            tree = cast(Tree, repo[self._tree_of(repo, commit_hash)])
            rel = path.replace("\\", "/").strip("/")
            try:
                _mode, sha = tree.lookup_path(repo.__getitem__, rel.encode("utf-8"))
            except (KeyError, NotTreeError):
                return None
            obj = repo[sha]
            if not isinstance(obj, Blob):
                return None
            return obj.data

    # ---- working tree ----
    @_store_operation("checkout")
    def checkout(self, commit_hash: str) -> None:
        """Make the working tree and index match a snapshot; detach HEAD."""
        with self._open() as repo:
            files = _collect_blobs(repo, self._tree_of(repo, commit_hash))

            for entry in self._root.iterdir():
                if entry.name != STORE_METADATA_DIRNAME:
                    _remove(entry)

            for rel, (mode, sha) in files.items():
                target = self._root / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(cast(Blob, repo[sha]).data)
                if mode & 0o111:
                    target.chmod(target.stat().st_mode | 0o111)

            self._rebuild_index(repo, files)

        (self.metadata_dir / "HEAD").write_text(commit_hash.strip() + "\n")
        store_logger.debug(
            "Store checked out", store=str(self._root), commit_id=commit_hash[:8]
        )

    @_store_operation("clone")
    def clone_to(self, destination: Path) -> DulwichHistoryStore:
        """Clone into ``destination`` (created if missing). No checkout."""
        destination = Path(destination)
        cloned = porcelain.clone(
            str(self._root),
            str(destination),
            checkout=False,
            errstream=io.BytesIO(),
        )
        cloned.close()
        store_logger.debug(
            "Store cloned", store=str(self._root), destination=str(destination)
        )
        return DulwichHistoryStore(destination)

    @_store_operation("reset")
    def hard_reset_to_head(self) -> None:
        """Make tracked files and the index match HEAD."""
        with self._open() as repo:
            head_id = _head_id(repo)
            if head_id is None:
                raise StoreError("History store has no snapshot to reset to")
            files = _collect_blobs(repo, cast(Commit, repo[head_id]).tree)

            index = repo.open_index()
            tracked = {name.decode("utf-8") for name in index}
            for rel in sorted(tracked - files.keys()):
                target = self._root / rel
                if target.is_file() or target.is_symlink():
                    target.unlink()

            for rel, (mode, sha) in files.items():
                target = self._root / rel
                data = cast(Blob, repo[sha]).data
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                if not target.is_file() or target.read_bytes() != data:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(data)
                    if mode & 0o111:
                        target.chmod(target.stat().st_mode | 0o111)

            self._rebuild_index(repo, files)

        store_logger.debug("Store reset to HEAD", store=str(self._root))

    @_store_operation("clean")
    def clean_untracked(self) -> list[str]:
        """Delete files not in the index, then empty directories."""
        with self._open() as repo:
            index = repo.open_index()
            tracked = {name.decode("utf-8") for name in index}

        removed: list[str] = []
        for rel, path in self._workdir_files().items():
            if rel not in tracked:
                path.unlink()
                removed.append(rel)
        _prune_empty_dirs(self._root)

        if removed:
            store_logger.debug(
                "Removed untracked files", store=str(self._root), count=len(removed)
            )
        return removed
