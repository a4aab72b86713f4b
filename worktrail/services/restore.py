"""Restore the workspace to a snapshot without rewriting history.

The target snapshot is checked out in an isolated clone, the workspace is
replaced from that clone, and the restored state is then recorded as a new
snapshot on top of the existing history. Going back in time therefore
appends to the timeline; nothing is ever removed from it.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from worktrail.config.constants import (
    RESTORE_TEMP_PREFIX,
    SHORT_HASH_LENGTH,
    STORE_METADATA_DIRNAME,
)
from worktrail.core.project import ProjectContext
from worktrail.errors import (
    CopyError,
    OperationCancelled,
    RestoreError,
    StoreError,
    WorkTrailError,
)
from worktrail.services.guardian import (
    ConfirmCallback,
    HealthState,
    IntegrityGuardian,
)
from worktrail.services.messages import SnapshotMessage
from worktrail.services.mirror import clean_tree, copy_tree
from worktrail.services.snapshots import SnapshotCoordinator, resolve_snapshot
from worktrail.utils.logger import get_logger

logger = get_logger("restore")

ResyncStatus = Literal["committed", "no_op", "failed"]


@dataclass
class RestoreResult:
    """Outcome of a restore.

    A failed resync leaves ``resync_status == "failed"`` with the reason in
    ``warnings``; the workspace itself was still restored.
    """

    restored_to: str
    resync_status: ResyncStatus
    new_snapshot: str | None = None
    warnings: list[str] = field(default_factory=list)


def _remove_temp(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning(
            "Failed to remove temporary restore directory",
            path=str(path),
            error=str(exc),
        )


class RestoreSynchronizer:
    def __init__(
        self,
        context: ProjectContext,
        guardian: IntegrityGuardian | None = None,
        coordinator: SnapshotCoordinator | None = None,
    ):
        self.context = context
        self.store = context.store
        self.guardian = guardian or IntegrityGuardian(context.store)
        self.coordinator = coordinator or SnapshotCoordinator(context, self.guardian)

    def restore(
        self, target: str, confirm: ConfirmCallback | None = None
    ) -> RestoreResult:
        """Replace the workspace with the content of snapshot ``target``.

        Args:
            target: Full hash or unique prefix of the snapshot.
            confirm: Asked first whether to overwrite the workspace, then
                whether to repair an unhealthy store. Declining either
                cancels before anything is touched.

        Raises:
            ValidationError: unknown snapshot.
            OperationCancelled: the user declined.
            IntegrityError: the store cannot be made usable.
            RestoreError: failure before the workspace was fully replaced.
        """
        entry = None
        if self.guardian.check().state == HealthState.HEALTHY:
            entry = resolve_snapshot(self.store, target)
        label = entry.hash if entry is not None else target
        question = (
            f"Restore workspace to snapshot {label[:SHORT_HASH_LENGTH]}? Files "
            "that are not in the snapshot will be deleted. Ignored files are kept."
        )
        if confirm is None or not confirm(question):
            raise OperationCancelled("Restore cancelled")

        health = self.guardian.ensure_ready(confirm)
        warnings = list(health.warnings)
        if entry is None:
            entry = resolve_snapshot(self.store, target)
        short_hash = entry.hash[:SHORT_HASH_LENGTH]

        temp_dir = Path(tempfile.mkdtemp(prefix=RESTORE_TEMP_PREFIX))
        try:
            self._replace_workspace(entry.hash, temp_dir, warnings)
        except WorkTrailError as exc:
            self._recover(exc)
            if isinstance(exc, RestoreError):
                raise
            raise RestoreError(
                f"Restore to snapshot {short_hash} failed: {exc}"
            ) from exc
        finally:
            _remove_temp(temp_dir)

        result = self._resync(entry.hash, warnings)
        logger.info(
            "Workspace restored",
            project=self.context.identity.key,
            restored_to=short_hash,
            resync=result.resync_status,
            warnings=len(result.warnings),
        )
        return result

    def _replace_workspace(
        self, commit_hash: str, temp_dir: Path, warnings: list[str]
    ) -> None:
        try:
            clone = self.store.clone_to(temp_dir / "snapshot")
            clone.checkout(commit_hash)
        except StoreError as exc:
            raise RestoreError(
                f"Could not prepare snapshot {commit_hash[:SHORT_HASH_LENGTH]}: {exc}"
            ) from exc

        failures = clean_tree(
            self.context.workspace,
            self.context.ignore_policy,
            exclude=self.context.excluded_paths,
        )
        warnings.extend(f"Could not remove {failure}" for failure in failures)

        try:
            copied = copy_tree(
                clone.root,
                self.context.workspace,
                skip=(STORE_METADATA_DIRNAME,),
            )
        except CopyError as exc:
            raise RestoreError(
                f"Workspace was only partially restored, run restore again: {exc}"
            ) from exc

        logger.debug(
            "Workspace replaced from snapshot",
            commit_id=commit_hash[:SHORT_HASH_LENGTH],
            copied=copied,
            clean_failures=len(failures),
        )

    def _recover(self, error: Exception) -> None:
        """Best-effort return of the live store to its last snapshot."""
        logger.warning("Restore failed, resetting history store", error=str(error))
        try:
            self.store.hard_reset_to_head()
            self.store.clean_untracked()
        except StoreError as exc:
            logger.warning("History store recovery failed", error=str(exc))

    def _resync(self, commit_hash: str, warnings: list[str]) -> RestoreResult:
        """Record the restored workspace as a new forward snapshot."""
        short_hash = commit_hash[:SHORT_HASH_LENGTH]
        message = SnapshotMessage.create(f"Restored to snapshot {short_hash}")
        try:
            commit, report = self.coordinator.record(message)
        except WorkTrailError as exc:
            logger.warning("Resync after restore failed", error=str(exc))
            warnings.append(f"Restored workspace was not recorded: {exc}")
            return RestoreResult(
                restored_to=commit_hash, resync_status="failed", warnings=warnings
            )

        warnings.extend(report.warnings)
        if not commit.committed:
            return RestoreResult(
                restored_to=commit_hash, resync_status="no_op", warnings=warnings
            )
        return RestoreResult(
            restored_to=commit_hash,
            resync_status="committed",
            new_snapshot=commit.commit_id,
            warnings=warnings,
        )
