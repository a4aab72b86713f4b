"""Ignore-filtered tree synchronisation between the workspace and the store.

``mirror`` pushes one tree onto another: it empties the destination (except
the protected metadata directory) and copies every non-ignored entry of the
source into it. ``clean_tree`` and ``copy_tree`` are the two halves used on
their own by restore, where the workspace is the destination and entries the
ignore policy matches must survive.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from worktrail.config.constants import MAX_FAILURE_SAMPLES, STORE_METADATA_DIRNAME
from worktrail.errors import CopyError, IntegrityError
from worktrail.services.ignore import IgnorePolicy
from worktrail.utils.logger import get_logger

logger = get_logger("mirror")


@dataclass(frozen=True)
class EntryFailure:
    path: str
    error: str

    def __str__(self) -> str:
        return f"{self.path}: {self.error}"


@dataclass
class MirrorReport:
    """Outcome of a successful mirror.

    Deletion failures do not abort a mirror; they are listed in ``failures``
    and surfaced to the caller as warnings.
    """

    copied_files: int = 0
    removed_entries: int = 0
    failures: list[EntryFailure] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [f"Could not remove {failure}" for failure in self.failures]


def _resolve_all(paths: Iterable[Path]) -> frozenset[Path]:
    return frozenset(Path(p).resolve() for p in paths)


def _remove_entry(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def mirror(
    source: Path,
    destination: Path,
    policy: IgnorePolicy,
    *,
    protected: str = STORE_METADATA_DIRNAME,
    require_protected: bool = True,
    exclude: Iterable[Path] = (),
) -> MirrorReport:
    """Make ``destination`` an ignore-filtered, byte-exact copy of ``source``.

    Args:
        source: Tree to read from.
        destination: Tree to overwrite. Its ``protected`` child is never touched.
        policy: Ignore rules applied while walking ``source``.
        protected: Name of the top-level entry of ``destination`` to keep.
        require_protected: Abort before deleting anything when ``protected``
            is missing from ``destination``.
        exclude: Paths inside ``source`` never copied, such as a WorkTrail
            home that lives in the workspace.

    Raises:
        IntegrityError: ``protected`` is required but absent. Nothing was deleted.
        CopyError: at least one entry could not be copied. The destination is
            left partially populated and the whole operation must be retried.
    """
    source = Path(source)
    destination = Path(destination)

    if require_protected and not (destination / protected).is_dir():
        raise IntegrityError(
            f"History store metadata is missing at {destination / protected}; "
            "run repair before taking snapshots"
        )
    destination.mkdir(parents=True, exist_ok=True)

    report = MirrorReport()
    for entry in sorted(destination.iterdir()):
        if entry.name == protected:
            continue
        try:
            _remove_entry(entry)
            report.removed_entries += 1
        except OSError as exc:
            logger.warning(
                "Failed to remove entry during mirror",
                path=str(entry),
                error=str(exc),
            )
            report.failures.append(EntryFailure(str(entry), str(exc)))

    report.copied_files = copy_tree(
        source, destination, policy=policy, skip=(protected,), exclude=exclude
    )

    logger.debug(
        "Mirror completed",
        source=str(source),
        destination=str(destination),
        copied=report.copied_files,
        removed=report.removed_entries,
        failures=len(report.failures),
    )
    return report


def clean_tree(
    root: Path,
    policy: IgnorePolicy,
    *,
    keep: Iterable[str] = (),
    exclude: Iterable[Path] = (),
) -> list[EntryFailure]:
    """Delete every entry under ``root`` the ignore policy does not match.

    Ignored entries and ``exclude`` paths keep their whole subtree.
    Directories that end up empty are removed; directories still holding
    kept entries stay. Failures are collected per entry and never raised.
    """
    keep_names = set(keep)
    excluded = _resolve_all(exclude)
    failures: list[EntryFailure] = []

    for entry in sorted(Path(root).iterdir()):
        if entry.name in keep_names or policy.matches(entry):
            continue
        if excluded and entry.resolve() in excluded:
            continue
        try:
            if entry.is_dir() and not entry.is_symlink():
                failures.extend(clean_tree(entry, policy, exclude=excluded))
                if not any(entry.iterdir()):
                    entry.rmdir()
            else:
                entry.unlink()
        except OSError as exc:
            logger.warning("Failed to remove entry", path=str(entry), error=str(exc))
            failures.append(EntryFailure(str(entry), str(exc)))

    return failures


def copy_tree(
    source: Path,
    destination: Path,
    *,
    policy: IgnorePolicy | None = None,
    skip: Iterable[str] = (),
    exclude: Iterable[Path] = (),
) -> int:
    """Recursively copy files from ``source`` into ``destination``.

    ``skip`` names top-level entries of ``source`` to leave out. ``policy``,
    when given, prunes matching files and directories at every depth.
    Directories whose resolved path is in ``exclude`` are pruned too, which
    keeps a store that lives inside ``source`` from being copied into itself.
    Symlinked directories are not followed.

    Returns:
        Number of files copied.

    Raises:
        CopyError: listing every entry that failed to copy.
    """
    failed: list[tuple[str, str]] = []
    skip_names = set(skip)
    excluded = _resolve_all(exclude)

    def walk(src_dir: Path, dst_dir: Path, top_level: bool) -> int:
        copied = 0
        try:
            dst_dir.mkdir(parents=True, exist_ok=True)
            entries = sorted(src_dir.iterdir())
        except OSError as exc:
            failed.append((str(src_dir), str(exc)))
            return 0

        for entry in entries:
            if top_level and entry.name in skip_names:
                continue
            if policy is not None and policy.matches(entry):
                continue
            target = dst_dir / entry.name
            if entry.is_dir():
                if entry.is_symlink():
                    logger.debug("Skipping symlinked directory", path=str(entry))
                    continue
                if excluded and entry.resolve() in excluded:
                    logger.debug("Skipping excluded directory", path=str(entry))
                    continue
                copied += walk(entry, target, False)
                continue
            if entry.is_symlink() and not entry.exists():
                logger.debug("Skipping dangling symlink", path=str(entry))
                continue
            try:
                shutil.copy2(entry, target)
                copied += 1
            except OSError as exc:
                failed.append((str(entry), str(exc)))
        return copied

    total = walk(Path(source), Path(destination), True)

    if failed:
        logger.error(
            "Failed to copy entries",
            failed_count=len(failed),
            source=str(source),
            destination=str(destination),
        )
        sample_failures = failed[:MAX_FAILURE_SAMPLES]
        failure_details = "\n".join(f"  - {path}: {err}" for path, err in sample_failures)
        more_info = (
            f"\n  ... and {len(failed) - MAX_FAILURE_SAMPLES} more"
            if len(failed) > MAX_FAILURE_SAMPLES
            else ""
        )
        raise CopyError(
            f"Failed to copy {len(failed)} entr{'y' if len(failed) == 1 else 'ies'} "
            f"from {source}:\n{failure_details}{more_info}",
            failures=failed,
        )

    return total
